"""Tests du module scorers."""

import pytest

from partlink.matching.master_rules import PairGuard
from partlink.matching.schema import MatchCandidate
from partlink.matching.scorers import (
    MatchScorer,
    category_match,
    containment_similarity,
    description_similarity,
    levenshtein_similarity,
    part_number_similarity,
)
from partlink.records import MasterRule, MatchHistoryEntry, StoreRecord, SupplierRecord


def test_part_number_similarity_exact_after_cleanup() -> None:
    assert part_number_similarity("12-34", "1234") == 1.0
    assert part_number_similarity("ab 12", "AB12") == 1.0
    assert part_number_similarity("", "AB12") == 0.0


def test_part_number_similarity_levenshtein() -> None:
    assert part_number_similarity("BLT3456", "BLT3450") == pytest.approx(6 / 7)


@pytest.mark.parametrize(
    "a, b",
    [("BLT3456", "BLT3450"), ("ABC", "ABCD"), ("GATK060", "K060GAT"), ("", "X"), ("WIX51515", "FRAPH8A")],
)
def test_levenshtein_symmetry(a: str, b: str) -> None:
    assert levenshtein_similarity(a, b) == levenshtein_similarity(b, a)


def test_containment_similarity() -> None:
    assert containment_similarity("ABC1234", "ABC12345") == pytest.approx(7 / 8)
    assert containment_similarity("ABC12345", "ABC1234") == pytest.approx(7 / 8)
    assert containment_similarity("ABC", "XYZ") is None
    assert containment_similarity("", "XYZ") is None


def test_description_similarity() -> None:
    assert description_similarity("Oil filter engine", "oil FILTER") == pytest.approx(2 / 3)
    assert description_similarity(None, "oil filter") == 0.0


def test_category_match() -> None:
    assert category_match("Filters", "filters") == 1.0
    assert category_match("Filters", "Belts") == 0.0
    assert category_match(None, "Belts") == 0.5


@pytest.fixture
def store_item() -> StoreRecord:
    return StoreRecord.build("s1", "ABC-123", description="oil filter", category="Filters")


@pytest.fixture
def supplier() -> SupplierRecord:
    return SupplierRecord.build("t1", "ABC123", description="oil filter", category="Filters")


def test_rejected_history_scores_zero(store_item: StoreRecord, supplier: SupplierRecord) -> None:
    scorer = MatchScorer(PairGuard(rejected=[MatchHistoryEntry("ABC-123", "ABC123")]))
    result = scorer.calculate_match_score(store_item, supplier)
    assert result.score == 0.0
    assert result.reason == "previously rejected"


def test_accepted_history_scores_one() -> None:
    scorer = MatchScorer(PairGuard(accepted=[MatchHistoryEntry("ABC-123", "XYZ-999")]))
    result = scorer.calculate_match_score(StoreRecord.build("s1", "ABC-123"), SupplierRecord.build("t1", "XYZ999"))
    assert result.score == 1.0
    assert result.reason == "previously accepted"


def test_history_project_scope() -> None:
    guard = PairGuard(accepted=[MatchHistoryEntry("A1", "B1", project_id="p2")], project_id="p1")
    assert guard.verdict("A1", "B1") is None


def test_master_rules_verdict() -> None:
    guard = PairGuard(
        [
            MasterRule("m1", "A1", "B1", "POSITIVE_MAP"),
            MasterRule("m2", "A2", None, "NEGATIVE_BLOCK"),
        ]
    )
    scorer = MatchScorer(guard)
    assert scorer.calculate_match_score(StoreRecord.build("s1", "A1"), SupplierRecord.build("t1", "B1")).score == 1.0
    assert scorer.calculate_match_score(StoreRecord.build("s2", "A2"), SupplierRecord.build("t2", "A2")).score == 0.0


def test_category_hard_filter() -> None:
    """Filters / Electrical : score nul même avec des références identiques."""
    result = MatchScorer().calculate_match_score(
        StoreRecord.build("s1", "ABC123", category="Filters"),
        SupplierRecord.build("t1", "ABC123", category="Electrical"),
    )
    assert result.score == 0.0
    assert result.reason == "category mismatch"


def test_weighted_score(store_item: StoreRecord, supplier: SupplierRecord) -> None:
    result = MatchScorer().calculate_match_score(store_item, supplier)
    # 0.5 * 1 + 0.3 * 1 + 0.1 * 1 + 0.1 * 0.5 (sous-catégories absentes)
    assert result.score == pytest.approx(0.95)
    assert result.breakdown["subcategory"] == 0.5
    assert result.reason is None


def test_weighted_score_neutral_categories() -> None:
    result = MatchScorer().calculate_match_score(StoreRecord.build("s1", "ABC123"), SupplierRecord.build("t1", "ABC123"))
    assert result.score == pytest.approx(0.6)


def test_batch_scores(store_item: StoreRecord, supplier: SupplierRecord) -> None:
    results = MatchScorer().calculate_match_scores_batch([(store_item, supplier), (supplier, store_item)])
    assert [r.score for r in results] == pytest.approx([0.95, 0.95])


def test_apply_overrides(store_item: StoreRecord, supplier: SupplierRecord) -> None:
    other = SupplierRecord.build("t2", "ABC124")
    guard = PairGuard(
        accepted=[MatchHistoryEntry("ABC-123", "ABC123")],
        rejected=[MatchHistoryEntry("ABC-123", "ABC124")],
    )
    candidates = [
        MatchCandidate("s1", "t1", "fuzzy", 0.8, 2),
        MatchCandidate("s1", "t2", "fuzzy", 0.8, 2),
    ]
    kept = MatchScorer(guard).apply_overrides(candidates, {"s1": store_item}, {"t1": supplier, "t2": other})
    assert [c.target_id for c in kept] == ["t1"]
    assert kept[0].confidence == 1.0
    assert kept[0].features["override_reason"] == "previously accepted"


def test_candidate_confidence_clamped() -> None:
    assert MatchCandidate("s1", "t1", "fuzzy", 1.3, 2).confidence == 1.0
    assert MatchCandidate("s1", "t1", "fuzzy", -0.2, 2).confidence == 0.0
