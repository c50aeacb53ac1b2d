"""Tests du matching fuzzy (étape 2)."""

import pytest

from partlink.config import MatchingConfig
from partlink.matching.fuzzy import adjust_for_cost, match_fuzzy
from partlink.matching.index import MatchingIndex
from partlink.matching.master_rules import PairGuard
from partlink.matching.schema import METHOD_FUZZY, METHOD_SUBSTRING, STAGE_FUZZY
from partlink.normalize import CostComparison
from partlink.records import MatchHistoryEntry, StoreRecord, SupplierRecord

BELT = "Serpentine belt six rib"


@pytest.fixture
def config() -> MatchingConfig:
    return MatchingConfig(fuzzy_threshold=0.75)


def test_one_character_difference(config: MatchingConfig) -> None:
    """BLT3456 / BLT3450 : distance 1 sur 7 caractères, descriptions identiques."""
    store = [StoreRecord.build("s1", "BLT3456", description=BELT)]
    index = MatchingIndex([SupplierRecord.build("t1", "BLT3450", description=BELT)])

    matches, metrics = match_fuzzy(store, index, config)

    assert len(matches) == 1
    m = matches[0]
    assert m.method == METHOD_FUZZY
    assert m.match_stage == STAGE_FUZZY
    assert m.features["part_similarity"] == pytest.approx(6 / 7)
    assert m.confidence == pytest.approx(0.7 * 6 / 7 + 0.3)
    assert metrics.matches_found == 1


def test_below_threshold_without_description(config: MatchingConfig) -> None:
    store = [StoreRecord.build("s1", "BLT3456")]
    index = MatchingIndex([SupplierRecord.build("t1", "BLT3450")])
    matches, _ = match_fuzzy(store, index, config)
    assert matches == []


def test_substring_containment_lowers_threshold(config: MatchingConfig) -> None:
    """ABC1234 est contenu dans ABC12345 : 0.7 * 7/8 passe le seuil abaissé à 0.6."""
    store = [StoreRecord.build("s1", "ABC1234")]
    index = MatchingIndex([SupplierRecord.build("t1", "ABC12345")])

    matches, _ = match_fuzzy(store, index, config)

    assert [m.method for m in matches] == [METHOD_SUBSTRING]
    assert matches[0].confidence == pytest.approx(0.7 * 7 / 8)


def test_best_candidate_first_seen_on_tie(config: MatchingConfig) -> None:
    store = [StoreRecord.build("s1", "BLT3456", description=BELT)]
    index = MatchingIndex(
        [
            SupplierRecord.build("t2", "BLT3450", description=BELT),
            SupplierRecord.build("t1", "BLT3451", description=BELT),
            SupplierRecord.build("t0", "BLT9999", description=BELT),
        ]
    )
    matches, _ = match_fuzzy(store, index, config)
    assert [m.target_id for m in matches] == ["t1"]


def test_cost_agreement_selects_candidate(config: MatchingConfig) -> None:
    store = [StoreRecord.build("s1", "BLT3456", description=BELT, cost=10.0)]
    index = MatchingIndex(
        [
            SupplierRecord.build("t1", "BLT3451", description=BELT, cost=40.0),
            SupplierRecord.build("t2", "BLT3450", description=BELT, cost=10.0),
        ]
    )
    matches, _ = match_fuzzy(store, index, config)
    assert [m.target_id for m in matches] == ["t2"]
    assert matches[0].features["cost_match"] is True
    assert matches[0].confidence <= 0.95


def test_already_matched_items_skipped(config: MatchingConfig) -> None:
    store = [
        StoreRecord.build("s1", "BLT3456", description=BELT),
        StoreRecord.build("s2", "BLT3457", description=BELT),
    ]
    index = MatchingIndex([SupplierRecord.build("t1", "BLT3450", description=BELT)])

    matches, metrics = match_fuzzy(store, index, config, already_matched={"s1"})

    assert [m.store_item_id for m in matches] == ["s2"]
    assert metrics.items_processed == 1


def test_blocked_pair_ignored(config: MatchingConfig) -> None:
    store = [StoreRecord.build("s1", "BLT3456", description=BELT)]
    index = MatchingIndex([SupplierRecord.build("t1", "BLT3450", description=BELT)])
    guard = PairGuard(rejected=[MatchHistoryEntry("BLT3456", "BLT3450")])
    matches, _ = match_fuzzy(store, index, config, guard=guard)
    assert matches == []


def test_adjust_for_cost() -> None:
    close = CostComparison(difference=0.1, percent_difference=1.0, similarity=0.9, is_close=True)
    far = CostComparison(difference=60.0, percent_difference=80.0, similarity=0.0, is_close=False)
    middle = CostComparison(difference=20.0, percent_difference=20.0, similarity=0.1, is_close=False)
    assert adjust_for_cost(0.8, close) == pytest.approx(0.845)
    assert adjust_for_cost(0.93, close) == pytest.approx(0.95)
    assert adjust_for_cost(0.8, far) == pytest.approx(0.72)
    assert adjust_for_cost(0.8, middle) == 0.8
    assert adjust_for_cost(0.8, None) == 0.8
