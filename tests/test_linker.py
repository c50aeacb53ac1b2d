"""Tests du moteur de linkage (enchaînement des étapes)."""

import pytest

from partlink.config import MatchingConfig
from partlink.matching.index import MatchingIndex
from partlink.matching.linker import Linker
from partlink.matching.master_rules import PairGuard
from partlink.matching.schema import (
    ACTION_LIFT,
    ACTION_NONE,
    METHOD_CANONICAL,
    METHOD_MASTER_RULE,
    STAGE_MASTER_RULES,
)
from partlink.records import (
    MasterRule,
    MatchHistoryEntry,
    StoreRecord,
    SupplierRecord,
    VendorActionRule,
)
from partlink.stores import InMemoryRuleStore

MASTER_RULES = [MasterRule("m1", "OLD-1", "NEW1", "POSITIVE_MAP")]


@pytest.fixture
def store_records() -> list[StoreRecord]:
    return [
        StoreRecord.build("s1", "ABC-123"),
        StoreRecord.build("s2", "OLD-1"),
        StoreRecord.build("s3", "K060842"),
        StoreRecord.build("s4", "ZZZ999"),
    ]


@pytest.fixture
def index() -> MatchingIndex:
    suppliers = [
        SupplierRecord.build("t1", "ABC123", description="oil filter"),
        SupplierRecord.build("t2", "NEW1"),
        SupplierRecord.build("t3", "K060842", line_code="GATES", category="Belts"),
    ]
    return MatchingIndex(suppliers, rules=MASTER_RULES)


def _pairs(candidates) -> set[tuple[str, str]]:
    return {c.pair for c in candidates}


def test_run_all_stages(store_records: list[StoreRecord], index: MatchingIndex) -> None:
    linker = Linker(MatchingConfig(), guard=PairGuard(MASTER_RULES))
    result = linker.run(store_records, index)

    assert _pairs(result.matches) == {("s1", "t1"), ("s2", "t2"), ("s3", "t3")}
    by_store = {c.store_item_id: c for c in result.matches}
    assert by_store["s2"].method == METHOD_MASTER_RULE
    assert by_store["s2"].match_stage == STAGE_MASTER_RULES
    assert by_store["s2"].confidence == 1.0
    assert by_store["s1"].method == METHOD_CANONICAL
    assert [m.stage_name for m in result.metrics] == [
        "Master Rules",
        "Interchange",
        "Deterministic Matching",
        "Fuzzy Matching",
    ]
    summary = result.summary
    assert summary["total_items"] == 4
    assert summary["matched_items"] == 3
    assert summary["stage0_matches"] == 1
    assert summary["stage1_matches"] == 2


def test_master_rule_item_not_rematched(store_records: list[StoreRecord], index: MatchingIndex) -> None:
    """Un article apparié à l'étape 0 est exclu des étapes suivantes."""
    linker = Linker(MatchingConfig(), guard=PairGuard(MASTER_RULES))
    result = linker.run(store_records, index)
    assert [c.store_item_id for c in result.matches].count("s2") == 1
    assert result.metrics[2].items_processed == 3


def test_run_is_idempotent(store_records: list[StoreRecord], index: MatchingIndex) -> None:
    linker = Linker(MatchingConfig(), guard=PairGuard(MASTER_RULES))
    first = [(c.pair, c.method, c.confidence) for c in linker.run(store_records, index).matches]
    second = [(c.pair, c.method, c.confidence) for c in linker.run(store_records, index).matches]
    assert first == second


def test_no_duplicate_pairs(store_records: list[StoreRecord], index: MatchingIndex) -> None:
    result = Linker(MatchingConfig(), guard=PairGuard(MASTER_RULES)).run(store_records, index)
    pairs = [c.pair for c in result.matches]
    assert len(pairs) == len(set(pairs))


def test_history_overrides(store_records: list[StoreRecord], index: MatchingIndex) -> None:
    guard = PairGuard(
        MASTER_RULES,
        accepted=[MatchHistoryEntry("ABC-123", "ABC123")],
        rejected=[MatchHistoryEntry("K060842", "K060842")],
    )
    result = Linker(MatchingConfig(), guard=guard).run(store_records, index)

    by_store = {c.store_item_id: c for c in result.matches}
    assert "s3" not in by_store
    assert by_store["s1"].confidence == 1.0
    assert by_store["s1"].features["override_reason"] == "previously accepted"


def test_history_overrides_disabled(store_records: list[StoreRecord], index: MatchingIndex) -> None:
    config = MatchingConfig(apply_history_overrides=False)
    guard = PairGuard(MASTER_RULES, accepted=[MatchHistoryEntry("ABC-123", "ABC123")])
    result = Linker(config, guard=guard).run(store_records, index)
    by_store = {c.store_item_id: c for c in result.matches}
    assert "override_reason" not in by_store["s1"].features


def test_vendor_action_tagging(store_records: list[StoreRecord], index: MatchingIndex) -> None:
    rule_store = InMemoryRuleStore(vendor_action_rules=[VendorActionRule("GATES", "Belts", "*", "LIFT")])
    linker = Linker(MatchingConfig(), rule_store=rule_store, guard=PairGuard(MASTER_RULES))
    result = linker.run(store_records, index)

    actions = {c.store_item_id: c.vendor_action for c in result.matches}
    assert actions == {"s1": ACTION_NONE, "s2": ACTION_NONE, "s3": ACTION_LIFT}


def test_vendor_category_falls_back_to_store_item() -> None:
    rule_store = InMemoryRuleStore(vendor_action_rules=[VendorActionRule("GATES", "Belts", "*", "LIFT")])
    index = MatchingIndex([SupplierRecord.build("t1", "K060842", line_code="GATES")])
    store = [StoreRecord.build("s1", "K060842", category="Belts")]
    result = Linker(MatchingConfig(), rule_store=rule_store).run(store, index)
    assert result.matches[0].vendor_action == ACTION_LIFT


def test_stages_can_be_disabled(store_records: list[StoreRecord], index: MatchingIndex) -> None:
    config = MatchingConfig(deterministic_enabled=False, fuzzy_enabled=False)
    result = Linker(config, guard=PairGuard(MASTER_RULES)).run(store_records, index)
    assert _pairs(result.matches) == {("s2", "t2")}
    assert [m.stage_name for m in result.metrics] == ["Master Rules"]


def test_master_metrics_exclude_existing_pairs(store_records: list[StoreRecord], index: MatchingIndex) -> None:
    """Les métriques de l'étape 0 ne comptent pas les paires déjà connues."""
    linker = Linker(MatchingConfig(), guard=PairGuard(MASTER_RULES))
    candidates, metrics = linker.run_global(store_records, index, existing_pairs={("s2", "t2")})
    assert ("s2", "t2") not in _pairs(candidates)
    assert metrics[0].stage_name == "Master Rules"
    assert metrics[0].matches_found == 0
    assert metrics[0].match_rate == 0.0
    assert metrics[0].avg_confidence == 0.0
