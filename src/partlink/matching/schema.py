"""Schémas et types pour le matching."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

# Méthodes de matching (tag porté par chaque candidat)
METHOD_MASTER_RULE = "master_rule"
METHOD_INTERCHANGE = "interchange"
METHOD_CANONICAL = "canonical"
METHOD_LINE_CODE_MFR = "line_code_mfr"
METHOD_MFR_PART_ONLY = "mfr_part_only"
METHOD_PREFIX_STRIP = "line_code_prefix_strip"
METHOD_AFFIX = "affix_variation"
METHOD_TRANSFORMATION_RULE = "transformation_rule"
METHOD_FUZZY = "fuzzy"
METHOD_SUBSTRING = "substring_containment"

DETERMINISTIC_METHODS = (
    METHOD_INTERCHANGE,
    METHOD_CANONICAL,
    METHOD_LINE_CODE_MFR,
    METHOD_MFR_PART_ONLY,
    METHOD_PREFIX_STRIP,
    METHOD_AFFIX,
    METHOD_TRANSFORMATION_RULE,
)

STAGE_MASTER_RULES = 0
STAGE_DETERMINISTIC = 1
STAGE_FUZZY = 2

STATUS_PENDING = "PENDING"

# Actions fournisseur
ACTION_NONE = "NONE"
ACTION_LIFT = "LIFT"
ACTION_REBOX = "REBOX"


@dataclass
class MatchCandidate:
    """Un candidat de correspondance article magasin -> article fournisseur."""

    store_item_id: str
    target_id: str
    method: str
    confidence: float
    match_stage: int
    features: dict[str, Any] = field(default_factory=dict)
    vendor_action: str = ACTION_NONE
    status: str = STATUS_PENDING
    cost_difference: float | None = None
    cost_similarity: float | None = None
    transformation_signature: str | None = None
    rules_applied: list[str] = field(default_factory=list)

    def __post_init__(self) -> None:
        self.confidence = max(0.0, min(1.0, float(self.confidence)))

    @property
    def pair(self) -> tuple[str, str]:
        return self.store_item_id, self.target_id

    def __repr__(self) -> str:
        return (
            f"MatchCandidate(store={self.store_item_id}, target={self.target_id}, "
            f"method={self.method}, confidence={self.confidence:.3f})"
        )


@dataclass
class StageMetrics:
    """Mesures d'une étape du pipeline."""

    stage_number: int
    stage_name: str
    items_processed: int
    matches_found: int
    match_rate: float
    avg_confidence: float
    processing_time_ms: float
    rules_applied: list[str] = field(default_factory=list)

    @classmethod
    def compute(
        cls,
        stage_number: int,
        stage_name: str,
        items_processed: int,
        matches: list[MatchCandidate],
        processing_time_ms: float,
        rules_applied: list[str] | None = None,
    ) -> StageMetrics:
        avg = sum(m.confidence for m in matches) / len(matches) if matches else 0.0
        return cls(
            stage_number=stage_number,
            stage_name=stage_name,
            items_processed=items_processed,
            matches_found=len(matches),
            match_rate=len(matches) / items_processed if items_processed else 0.0,
            avg_confidence=avg,
            processing_time_ms=processing_time_ms,
            rules_applied=sorted(rules_applied or []),
        )


@dataclass
class MatchingResult:
    """Résultat d'un run multi-étapes."""

    matches: list[MatchCandidate]
    metrics: list[StageMetrics]
    total_items: int

    @property
    def summary(self) -> dict[str, Any]:
        by_stage: dict[int, int] = {}
        for m in self.metrics:
            by_stage[m.stage_number] = by_stage.get(m.stage_number, 0) + m.matches_found
        matched_items = len({m.store_item_id for m in self.matches})
        return {
            "total_items": self.total_items,
            "total_matches": len(self.matches),
            "matched_items": matched_items,
            "overall_match_rate": matched_items / self.total_items if self.total_items else 0.0,
            "stage0_matches": by_stage.get(STAGE_MASTER_RULES, 0),
            "stage1_matches": by_stage.get(STAGE_DETERMINISTIC, 0),
            "stage2_matches": by_stage.get(STAGE_FUZZY, 0),
        }

    def counts_by_method(self) -> dict[str, int]:
        counts: dict[str, int] = {}
        for m in self.matches:
            counts[m.method] = counts.get(m.method, 0) + 1
        return counts


@dataclass
class ScoringResult:
    """Score pondéré d'une paire, avec le détail par composante."""

    score: float
    breakdown: dict[str, float]
    reason: str | None = None


@dataclass(frozen=True)
class BatchCursor:
    """Curseur de reprise d'un run par lots."""

    processed: int
    total: int
    remaining: int
    has_more: bool
    next_offset: int | None


@dataclass
class BatchResult:
    """Résultat d'un lot : nouveaux candidats, compteurs cumulés par méthode, curseur."""

    candidates: list[MatchCandidate]
    counts_by_method: dict[str, int]
    cursor: BatchCursor
    metrics: list[StageMetrics] = field(default_factory=list)
    states: list[str] = field(default_factory=list)
