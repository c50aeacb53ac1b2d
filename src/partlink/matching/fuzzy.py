"""Étape 2 : matching approché des articles restés sans candidat."""

from __future__ import annotations

import logging
import time
from collections.abc import Iterable, Sequence

from partlink.config import MatchingConfig
from partlink.matching.index import MatchingIndex
from partlink.matching.master_rules import PairGuard
from partlink.matching.schema import (
    METHOD_FUZZY,
    METHOD_SUBSTRING,
    STAGE_FUZZY,
    MatchCandidate,
    StageMetrics,
)
from partlink.matching.scorers import (
    containment_similarity,
    description_similarity,
    levenshtein_similarity,
)
from partlink.normalize import CostComparison, compare_costs
from partlink.records import Record

logger = logging.getLogger(__name__)

PART_WEIGHT = 0.7
DESCRIPTION_WEIGHT = 0.3
CONTAINMENT_THRESHOLD_FACTOR = 0.8
COST_BONUS_WEIGHT = 0.05
COST_BONUS_CAP = 0.95
COST_PENALTY_PERCENT = 50.0
COST_PENALTY_FACTOR = 0.9


def adjust_for_cost(score: float, cost: CostComparison | None) -> float:
    """Bonus si les coûts sont proches, pénalité si l'écart dépasse 50 %."""
    if cost is None:
        return score
    if cost.is_close:
        return min(COST_BONUS_CAP, score + cost.similarity * COST_BONUS_WEIGHT)
    if cost.percent_difference > COST_PENALTY_PERCENT:
        return score * COST_PENALTY_FACTOR
    return score


def _best_candidate(
    item: Record,
    pool: Iterable[Record],
    config: MatchingConfig,
    taken: set[tuple[str, str]],
    guard: PairGuard | None,
) -> tuple[Record, dict[str, object], float] | None:
    best: tuple[Record, dict[str, object], float] | None = None
    best_adjusted = -1.0

    for supplier in pool:
        if (item.id, supplier.id) in taken:
            continue
        if guard is not None and guard.is_blocked(item, supplier):
            continue

        contained = containment_similarity(item.canonical, supplier.canonical)
        if contained is not None:
            method = METHOD_SUBSTRING
            part_sim = contained
            threshold = config.fuzzy_threshold * CONTAINMENT_THRESHOLD_FACTOR
        else:
            method = METHOD_FUZZY
            part_sim = levenshtein_similarity(item.canonical, supplier.canonical)
            threshold = config.fuzzy_threshold

        desc_sim = description_similarity(item.description, supplier.description)
        score = PART_WEIGHT * part_sim + DESCRIPTION_WEIGHT * desc_sim
        if score < threshold:
            continue

        cost = compare_costs(item.cost, supplier.cost, config.fuzzy_cost_tolerance)
        adjusted = adjust_for_cost(score, cost)
        if adjusted > best_adjusted:
            best_adjusted = adjusted
            best = (
                supplier,
                {
                    "method": method,
                    "part_similarity": part_sim,
                    "description_similarity": desc_sim,
                    "raw_score": score,
                    "threshold": threshold,
                    "cost_match": bool(cost and cost.is_close),
                    "cost_difference": cost.difference if cost else None,
                    "cost_similarity": cost.similarity if cost else None,
                },
                adjusted,
            )
    return best


def match_fuzzy(
    store_records: Sequence[Record],
    index: MatchingIndex,
    config: MatchingConfig,
    *,
    already_matched: Iterable[str] = (),
    guard: PairGuard | None = None,
    existing_pairs: Iterable[tuple[str, str]] = (),
) -> tuple[list[MatchCandidate], StageMetrics]:
    """
    Un candidat au plus par article magasin non encore apparié (le meilleur).

    Les fournisseurs sont parcourus dans l'ordre de l'index (identifiant croissant) :
    à score égal, le premier rencontré est retenu.

    Returns:
        (candidats, métriques de l'étape 2)
    """
    start = time.perf_counter()
    matched = set(already_matched)
    taken = set(existing_pairs)
    remaining = [r for r in store_records if r.id not in matched and r.canonical]
    matches: list[MatchCandidate] = []

    for item in remaining:
        pool, same_line_only = index.candidate_pool(item, config.max_candidates_per_item)
        found = _best_candidate(item, pool, config, taken, guard)
        if found is None:
            logger.debug("Aucun candidat fuzzy pour %s", item.part_number)
            continue
        supplier, details, adjusted = found
        method = details.pop("method")
        taken.add((item.id, supplier.id))
        matches.append(
            MatchCandidate(
                store_item_id=item.id,
                target_id=supplier.id,
                method=str(method),
                confidence=adjusted,
                match_stage=STAGE_FUZZY,
                features={
                    "match_type": method,
                    "store_part_number": item.part_number,
                    "supplier_part_number": supplier.part_number,
                    "same_line_code_only": same_line_only,
                    "candidates_considered": len(pool),
                    **details,
                },
                cost_difference=details["cost_difference"],  # type: ignore[arg-type]
                cost_similarity=details["cost_similarity"],  # type: ignore[arg-type]
            )
        )

    elapsed = (time.perf_counter() - start) * 1000
    metrics = StageMetrics.compute(STAGE_FUZZY, "Fuzzy Matching", len(remaining), matches, elapsed)
    logger.info(
        "Étape 2 (fuzzy): %d candidats pour %d articles restants",
        len(matches),
        len(remaining),
    )
    return matches, metrics
