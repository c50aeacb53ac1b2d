"""Index de recherche sur la population fournisseur, construits une fois par run."""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping
from types import MappingProxyType
from typing import TypeVar

from partlink.normalize import canonicalize
from partlink.records import InterchangeMapping, MatchingRule, Record

logger = logging.getLogger(__name__)

T = TypeVar("T")


def _freeze(buckets: dict[str, list[T]]) -> Mapping[str, tuple[T, ...]]:
    return MappingProxyType({k: tuple(v) for k, v in buckets.items()})


def line_code_key(line_code: str, manufacturer_part: str) -> str:
    """Clé `CODE:REFERENCE` (majuscules, référence canonisée)."""
    return f"{line_code.strip().upper()}:{canonicalize(manufacturer_part)}"


class MatchingIndex:
    """
    Index immuables sur les articles fournisseur.

    - canonique -> articles
    - `code ligne:référence fabricant` -> articles
    - référence fabricant seule (sans ponctuation) -> articles
    - clé source d'interchange -> références cibles complètes
    - type de règle -> règles

    La population est triée par identifiant fournisseur : c'est l'ordre d'itération
    documenté de toutes les recherches (premier rencontré = premier retenu).
    """

    def __init__(
        self,
        supplier_records: Iterable[Record],
        interchanges: Iterable[InterchangeMapping] = (),
        rules: Iterable[MatchingRule] = (),
        *,
        project_id: str | None = None,
    ) -> None:
        population = sorted(
            (r for r in supplier_records if r.canonical),
            key=lambda r: r.id,
        )
        canonical: dict[str, list[Record]] = {}
        line_mfr: dict[str, list[Record]] = {}
        mfr_only: dict[str, list[Record]] = {}
        by_line_code: dict[str, list[Record]] = {}

        for item in population:
            canonical.setdefault(item.canonical, []).append(item)
            if item.manufacturer_part:
                mfr = canonicalize(item.manufacturer_part)
                if mfr:
                    mfr_only.setdefault(mfr, []).append(item)
                    if item.line_code:
                        line_mfr.setdefault(line_code_key(item.line_code, mfr), []).append(item)
            if item.line_code:
                by_line_code.setdefault(item.line_code.upper(), []).append(item)

        interchange: dict[str, list[str]] = {}
        for mapping in interchanges:
            if not mapping.applies_to(project_id):
                continue
            key = canonicalize(mapping.source_full_sku)
            if key:
                interchange.setdefault(key, []).append(mapping.target_full_sku)

        rules_by_type: dict[str, list[MatchingRule]] = {}
        for rule in rules:
            if rule.applies_to(project_id):
                rules_by_type.setdefault(rule.rule_type, []).append(rule)

        self.project_id = project_id
        self.population: tuple[Record, ...] = tuple(population)
        self.by_id: Mapping[str, Record] = MappingProxyType({r.id: r for r in population})
        self.canonical_index = _freeze(canonical)
        self.line_code_mfr_index = _freeze(line_mfr)
        self.mfr_part_only_index = _freeze(mfr_only)
        self.line_code_groups = _freeze(by_line_code)
        self.interchange_index = _freeze(interchange)
        self.rules_by_type = _freeze(rules_by_type)

        logger.info(
            "Index construits: %d articles fournisseur, %d clés canoniques, %d interchanges, %d règles",
            len(self.population),
            len(self.canonical_index),
            len(self.interchange_index),
            sum(len(v) for v in self.rules_by_type.values()),
        )

    def by_canonical(self, canonical: str) -> tuple[Record, ...]:
        return self.canonical_index.get(canonicalize(canonical), ())

    def by_line_code_mfr(self, line_code: str, manufacturer_part: str) -> tuple[Record, ...]:
        return self.line_code_mfr_index.get(line_code_key(line_code, manufacturer_part), ())

    def by_mfr_part_only(self, manufacturer_part: str) -> tuple[Record, ...]:
        return self.mfr_part_only_index.get(canonicalize(manufacturer_part), ())

    def interchange_targets(self, full_sku: str) -> tuple[str, ...]:
        return self.interchange_index.get(canonicalize(full_sku), ())

    def rules_of_type(self, rule_type: str) -> tuple[MatchingRule, ...]:
        return self.rules_by_type.get(rule_type, ())

    def candidate_pool(self, store_item: Record, max_candidates: int) -> tuple[tuple[Record, ...], bool]:
        """
        Population candidate pour le matching fuzzy d'un article magasin.

        Restreinte au même code ligne si ce sous-ensemble est non vide et plus petit
        que `max_candidates`, puis tronquée à `max_candidates`.

        Returns:
            (candidats, same_line_code_only)
        """
        candidates = self.population
        same_line_only = False
        if store_item.line_code:
            same_line = self.line_code_groups.get(store_item.line_code.upper(), ())
            if same_line and len(same_line) < max_candidates:
                candidates = same_line
                same_line_only = True
        return candidates[:max_candidates], same_line_only
