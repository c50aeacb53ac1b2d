"""Étape 1 : matching déterministe par recherches d'index, dans un ordre de priorité fixe.

Ordre des méthodes pour chaque article magasin :

1. interchange (équivalence SKU complète, puis interchange de référence)
2. forme canonique exacte
3. code ligne (éventuellement traduit) + référence fabricant
4. référence fabricant seule, code ligne ignoré
5. suppression du préfixe code ligne
6. variantes de préfixe de marque connues (seulement si rien n'a matché avant)
7. règles de transformation (ponctuation)

Chaque méthode retient le premier article fournisseur libre de son bucket ; plusieurs
méthodes peuvent produire des candidats distincts pour un même article magasin,
jamais deux fois la même paire. L'accord de coût ne fait qu'augmenter la confiance.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Collection, Iterable, Sequence

from partlink.config import MatchingConfig
from partlink.matching.index import MatchingIndex
from partlink.matching.interchange import InterchangeResolver
from partlink.matching.master_rules import PairGuard
from partlink.matching.schema import (
    DETERMINISTIC_METHODS,
    METHOD_AFFIX,
    METHOD_CANONICAL,
    METHOD_INTERCHANGE,
    METHOD_LINE_CODE_MFR,
    METHOD_MFR_PART_ONLY,
    METHOD_PREFIX_STRIP,
    METHOD_TRANSFORMATION_RULE,
    STAGE_DETERMINISTIC,
    MatchCandidate,
    StageMetrics,
)
from partlink.normalize import (
    CostComparison,
    canonicalize,
    compare_costs,
    compute_transformation_signature,
)
from partlink.records import RULE_PUNCTUATION, Record, TransformationRule

logger = logging.getLogger(__name__)

# (confiance de base, plafond après bonus de coût, poids du bonus)
CANONICAL_CONFIDENCE = (0.95, 0.99, 0.04)
LINE_CODE_MFR_CONFIDENCE = (0.90, 0.95, 0.05)
MFR_PART_ONLY_CONFIDENCE = (0.75, 0.85, 0.10)
PREFIX_STRIP_CONFIDENCE = (0.85, 0.92, 0.07)
AFFIX_CONFIDENCE = (0.80, 0.88, 0.08)
LINE_CODE_COINCIDENCE_BONUS = 0.10
MFR_PART_ONLY_CAP = 0.90
INTERCHANGE_CONFIDENCE = 1.0


def boosted_confidence(
    base: float,
    cap: float,
    weight: float,
    cost: CostComparison | None,
) -> float:
    """Confiance de base, augmentée (jamais diminuée) si les coûts sont proches."""
    if cost is not None and cost.is_close:
        return max(base, min(cap, base + cost.similarity * weight))
    return base


def _cost_features(cost: CostComparison | None) -> dict[str, object]:
    return {
        "cost_match": bool(cost and cost.is_close),
        "cost_similarity": cost.similarity if cost else None,
    }


class _ItemMatcher:
    """État de matching d'un seul article magasin (paires déjà produites)."""

    def __init__(
        self,
        item: Record,
        taken: set[tuple[str, str]],
        guard: PairGuard | None,
    ) -> None:
        self.item = item
        self.taken = taken
        self.guard = guard
        self.matches: list[MatchCandidate] = []

    def first_free(self, suppliers: Iterable[Record]) -> Record | None:
        for supplier in suppliers:
            if (self.item.id, supplier.id) in self.taken:
                continue
            if self.guard is not None and self.guard.is_blocked(self.item, supplier):
                continue
            return supplier
        return None

    def emit(
        self,
        supplier: Record,
        method: str,
        confidence: float,
        features: dict[str, object],
        cost: CostComparison | None = None,
        **extra: object,
    ) -> MatchCandidate:
        candidate = MatchCandidate(
            store_item_id=self.item.id,
            target_id=supplier.id,
            method=method,
            confidence=confidence,
            match_stage=STAGE_DETERMINISTIC,
            features=features,
            cost_difference=cost.difference if cost else None,
            cost_similarity=cost.similarity if cost else None,
            **extra,  # type: ignore[arg-type]
        )
        self.taken.add((self.item.id, supplier.id))
        self.matches.append(candidate)
        return candidate


def _match_interchange(
    m: _ItemMatcher,
    index: MatchingIndex,
    resolver: InterchangeResolver | None,
) -> bool:
    item = m.item
    for target_sku in index.interchange_targets(item.part_number):
        supplier = m.first_free(index.by_canonical(target_sku))
        if supplier is not None:
            m.emit(
                supplier,
                METHOD_INTERCHANGE,
                INTERCHANGE_CONFIDENCE,
                {
                    "match_type": "interchange",
                    "source_sku": item.part_number,
                    "target_sku": target_sku,
                },
                rules_applied=["interchange"],
            )
            return True

    if resolver:
        hit = resolver.resolve(item, index)
        if hit is not None:
            supplier = m.first_free(hit.suppliers)
            if supplier is not None:
                m.emit(
                    supplier,
                    METHOD_INTERCHANGE,
                    INTERCHANGE_CONFIDENCE,
                    {
                        "match_type": "part_number_interchange",
                        "source_line_code": hit.effective_line_code,
                        "target_line_code": hit.interchange.target_line_code,
                        "target_part_number": hit.interchange.target_part_number,
                        "translated_line_code": hit.translated_line_code,
                    },
                    rules_applied=["interchange"],
                )
                return True
    return False


def _match_canonical(m: _ItemMatcher, index: MatchingIndex, config: MatchingConfig) -> bool:
    item = m.item
    supplier = m.first_free(index.by_canonical(item.canonical))
    if supplier is None:
        return False
    cost = compare_costs(item.cost, supplier.cost, config.cost_tolerance_percent)
    m.emit(
        supplier,
        METHOD_CANONICAL,
        boosted_confidence(*CANONICAL_CONFIDENCE, cost),
        {
            "match_type": "canonical",
            "store_canonical": item.canonical,
            "supplier_canonical": supplier.canonical,
            **_cost_features(cost),
        },
        cost,
    )
    return True


def _match_line_code_mfr(
    m: _ItemMatcher,
    index: MatchingIndex,
    config: MatchingConfig,
    resolver: InterchangeResolver | None,
) -> bool:
    item = m.item
    if not item.line_code or not item.manufacturer_part:
        return False

    translated = None
    line_codes = [item.line_code]
    if resolver:
        effective, translated = resolver.effective_line_code(item.line_code)
        if translated:
            line_codes = [effective, item.line_code]

    for line_code in line_codes:
        supplier = m.first_free(index.by_line_code_mfr(line_code, item.manufacturer_part))
        if supplier is None:
            continue
        cost = compare_costs(item.cost, supplier.cost, config.cost_tolerance_percent)
        m.emit(
            supplier,
            METHOD_LINE_CODE_MFR,
            boosted_confidence(*LINE_CODE_MFR_CONFIDENCE, cost),
            {
                "match_type": "line_mfr",
                "line_code": line_code,
                "mfr_part": item.manufacturer_part,
                "translated_line_code": translated if line_code == translated else None,
                **_cost_features(cost),
            },
            cost,
        )
        return True
    return False


def _match_mfr_part_only(m: _ItemMatcher, index: MatchingIndex, config: MatchingConfig) -> bool:
    item = m.item
    if not item.manufacturer_part:
        return False
    supplier = m.first_free(index.by_mfr_part_only(item.manufacturer_part))
    if supplier is None:
        return False

    cost = compare_costs(item.cost, supplier.cost, config.cost_tolerance_percent)
    confidence = boosted_confidence(*MFR_PART_ONLY_CONFIDENCE, cost)
    line_code_match = bool(
        item.line_code and supplier.line_code and item.line_code.upper() == supplier.line_code.upper()
    )
    if line_code_match:
        confidence = min(MFR_PART_ONLY_CAP, confidence + LINE_CODE_COINCIDENCE_BONUS)

    m.emit(
        supplier,
        METHOD_MFR_PART_ONLY,
        confidence,
        {
            "match_type": "mfr_part_only",
            "mfr_part": item.manufacturer_part,
            "store_line_code": item.line_code,
            "supplier_line_code": supplier.line_code,
            "line_code_match": line_code_match,
            **_cost_features(cost),
        },
        cost,
    )
    return True


def _match_prefix_strip(m: _ItemMatcher, index: MatchingIndex, config: MatchingConfig) -> bool:
    item = m.item
    if not item.line_code or not item.manufacturer_part:
        return False
    supplier = m.first_free(index.by_canonical(canonicalize(item.manufacturer_part)))
    if supplier is None:
        return False
    cost = compare_costs(item.cost, supplier.cost, config.prefix_strip_cost_tolerance)
    m.emit(
        supplier,
        METHOD_PREFIX_STRIP,
        boosted_confidence(*PREFIX_STRIP_CONFIDENCE, cost),
        {
            "match_type": "line_code_prefix_strip",
            "store_part_number": item.part_number,
            "supplier_part_number": supplier.part_number,
            "line_code_stripped": item.line_code,
            "mfr_part_matched": item.manufacturer_part,
            **_cost_features(cost),
        },
        cost,
    )
    return True


def _match_affix(m: _ItemMatcher, index: MatchingIndex, config: MatchingConfig) -> bool:
    item = m.item
    canonical = item.canonical
    for prefix in config.affix_prefixes:
        if not canonical.startswith(prefix) or len(canonical) <= len(prefix) + 3:
            continue
        supplier = m.first_free(index.by_canonical(canonical[len(prefix):]))
        if supplier is None:
            continue
        cost = compare_costs(item.cost, supplier.cost, config.affix_cost_tolerance)
        m.emit(
            supplier,
            METHOD_AFFIX,
            boosted_confidence(*AFFIX_CONFIDENCE, cost),
            {
                "match_type": "prefix_variation",
                "store_part_number": item.part_number,
                "supplier_part_number": supplier.part_number,
                "prefix_removed": prefix,
                **_cost_features(cost),
            },
            cost,
        )
        return True
    return False


def _match_transformation_rules(m: _ItemMatcher, index: MatchingIndex) -> bool:
    item = m.item
    for rule in index.rules_of_type(RULE_PUNCTUATION):
        if not isinstance(rule, TransformationRule):
            continue
        if rule.line_code and (item.line_code or "") != rule.line_code.upper():
            continue
        transformed = rule.apply(item.part_number)
        if not transformed:
            continue
        supplier = m.first_free(index.by_canonical(transformed))
        if supplier is None:
            continue
        m.emit(
            supplier,
            METHOD_TRANSFORMATION_RULE,
            rule.confidence,
            {
                "match_type": "rule_based",
                "rule_id": rule.id,
                "transformation": {"from": rule.from_text, "to": rule.to_text},
            },
            transformation_signature=compute_transformation_signature(item.part_number, supplier.part_number),
            rules_applied=[rule.id],
        )
        return True
    return False


def match_deterministic(
    store_records: Sequence[Record],
    index: MatchingIndex,
    config: MatchingConfig,
    *,
    resolver: InterchangeResolver | None = None,
    guard: PairGuard | None = None,
    existing_pairs: Iterable[tuple[str, str]] = (),
    methods: Collection[str] = DETERMINISTIC_METHODS,
) -> tuple[list[MatchCandidate], StageMetrics]:
    """
    Applique les méthodes déterministes demandées à chaque article magasin.

    Args:
        store_records: Articles magasin à traiter (ordre conservé).
        index: Index fournisseur du run.
        config: Configuration (tolérances de coût, préfixes de marque).
        resolver: Traductions de codes ligne / interchanges de références.
        guard: Paires bloquées par règle négative ou rejet historique.
        existing_pairs: Paires déjà produites plus tôt dans le run.
        methods: Sous-ensemble des méthodes à appliquer.

    Returns:
        (candidats, métriques de l'étape 1)
    """
    start = time.perf_counter()
    taken = set(existing_pairs)
    matches: list[MatchCandidate] = []
    rules_applied: set[str] = set()

    for item in store_records:
        if not item.canonical:
            continue
        m = _ItemMatcher(item, taken, guard)

        if METHOD_INTERCHANGE in methods:
            _match_interchange(m, index, resolver)
        if METHOD_CANONICAL in methods:
            _match_canonical(m, index, config)
        if METHOD_LINE_CODE_MFR in methods:
            _match_line_code_mfr(m, index, config, resolver)
        if METHOD_MFR_PART_ONLY in methods:
            _match_mfr_part_only(m, index, config)
        if METHOD_PREFIX_STRIP in methods:
            _match_prefix_strip(m, index, config)
        if METHOD_AFFIX in methods and not m.matches:
            _match_affix(m, index, config)
        if METHOD_TRANSFORMATION_RULE in methods:
            _match_transformation_rules(m, index)

        for candidate in m.matches:
            rules_applied.update(candidate.rules_applied)
        matches.extend(m.matches)

    elapsed = (time.perf_counter() - start) * 1000
    metrics = StageMetrics.compute(
        STAGE_DETERMINISTIC,
        "Deterministic Matching",
        len(store_records),
        matches,
        elapsed,
        sorted(rules_applied),
    )
    logger.info(
        "Étape 1 (déterministe): %d candidats pour %d articles (%.1f%%)",
        len(matches),
        len(store_records),
        metrics.match_rate * 100,
    )
    return matches, metrics
