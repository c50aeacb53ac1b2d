"""Calcul des scores de similarité et score final pondéré d'une paire."""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping

from rapidfuzz.distance import Levenshtein

from partlink.matching.master_rules import PairGuard
from partlink.matching.schema import MatchCandidate, ScoringResult
from partlink.normalize import canonicalize, tokenize_description
from partlink.records import Record

logger = logging.getLogger(__name__)

# Poids du score final
PART_NUMBER_WEIGHT = 0.5
DESCRIPTION_WEIGHT = 0.3
CATEGORY_WEIGHT = 0.1
SUBCATEGORY_WEIGHT = 0.1

# Valeur neutre quand une catégorie manque d'un côté
NEUTRAL_CATEGORY = 0.5

REASON_ACCEPTED = "previously accepted"
REASON_CATEGORY_MISMATCH = "category mismatch"


def levenshtein_similarity(a: str, b: str) -> float:
    """1 - distance / longueur max (symétrique, 1.0 si les deux sont vides)."""
    return float(Levenshtein.normalized_similarity(a, b))


def containment_similarity(a: str, b: str) -> float | None:
    """
    min(len) / max(len) si l'une des chaînes contient l'autre, sinon None.

    Les chaînes vides ne comptent pas comme contenues.
    """
    if not a or not b:
        return None
    if a in b or b in a:
        return min(len(a), len(b)) / max(len(a), len(b))
    return None


def part_number_similarity(a: str | None, b: str | None) -> float:
    """Levenshtein normalisé sur les références sans espaces ni ponctuation."""
    s = canonicalize(a)
    t = canonicalize(b)
    if not s or not t:
        return 0.0
    if s == t:
        return 1.0
    return levenshtein_similarity(s, t)


def description_similarity(a: str | None, b: str | None) -> float:
    """Indice de Jaccard sur les mots (0 si une description manque)."""
    ta = tokenize_description(a)
    tb = tokenize_description(b)
    if not ta or not tb:
        return 0.0
    return len(ta & tb) / len(ta | tb)


def category_match(a: str | None, b: str | None) -> float:
    """1.0 si égales (casse ignorée), 0.0 si différentes, 0.5 si l'une manque."""
    if not a or not b:
        return NEUTRAL_CATEGORY
    return 1.0 if a.strip().casefold() == b.strip().casefold() else 0.0


class MatchScorer:
    """
    Score final d'une paire magasin / fournisseur.

    Ordre de priorité : historique accepté (1.0), historique refusé (0.0), règles
    maîtres (négative 0.0, positive 1.0), filtre dur sur la catégorie (0.0), puis
    formule pondérée.
    """

    def __init__(self, guard: PairGuard | None = None) -> None:
        self.guard = guard or PairGuard()

    def calculate_match_score(self, store_item: Record, supplier: Record) -> ScoringResult:
        verdict = self.guard.verdict(store_item.part_number, supplier.part_number)
        if verdict is not None:
            score, reason = verdict
            return ScoringResult(score=score, breakdown={}, reason=reason)

        if (
            store_item.category
            and supplier.category
            and store_item.category.strip().casefold() != supplier.category.strip().casefold()
        ):
            return ScoringResult(score=0.0, breakdown={}, reason=REASON_CATEGORY_MISMATCH)

        breakdown = {
            "part_number": part_number_similarity(store_item.part_number, supplier.part_number),
            "description": description_similarity(store_item.description, supplier.description),
            "category": category_match(store_item.category, supplier.category),
            "subcategory": category_match(store_item.subcategory, supplier.subcategory),
        }
        score = (
            PART_NUMBER_WEIGHT * breakdown["part_number"]
            + DESCRIPTION_WEIGHT * breakdown["description"]
            + CATEGORY_WEIGHT * breakdown["category"]
            + SUBCATEGORY_WEIGHT * breakdown["subcategory"]
        )
        return ScoringResult(score=max(0.0, min(1.0, score)), breakdown=breakdown)

    def calculate_match_scores_batch(
        self,
        pairs: Iterable[tuple[Record, Record]],
    ) -> list[ScoringResult]:
        return [self.calculate_match_score(s, t) for s, t in pairs]

    def apply_overrides(
        self,
        candidates: Iterable[MatchCandidate],
        store_by_id: Mapping[str, Record],
        supplier_by_id: Mapping[str, Record],
    ) -> list[MatchCandidate]:
        """
        Applique l'historique aux candidats produits.

        Une paire déjà acceptée passe à 1.0 ; une paire bloquée (rejet, règle
        négative) est retirée. Les autres candidats sont inchangés.
        """
        kept: list[MatchCandidate] = []
        dropped = 0
        for candidate in candidates:
            store_item = store_by_id.get(candidate.store_item_id)
            supplier = supplier_by_id.get(candidate.target_id)
            if store_item is None or supplier is None:
                kept.append(candidate)
                continue
            if self.guard.is_accepted(store_item, supplier):
                candidate.confidence = 1.0
                candidate.features["override_reason"] = REASON_ACCEPTED
            elif self.guard.is_blocked(store_item, supplier):
                dropped += 1
                continue
            kept.append(candidate)
        if dropped:
            logger.info("Historique: %d candidats retirés (paires refusées)", dropped)
        return kept
