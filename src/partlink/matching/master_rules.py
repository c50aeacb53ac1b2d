"""Étape 0 : règles maîtres apprises et blocage des paires refusées."""

from __future__ import annotations

import logging
import time
from collections.abc import Iterable, Sequence

from partlink.matching.index import MatchingIndex
from partlink.matching.schema import (
    METHOD_MASTER_RULE,
    STAGE_MASTER_RULES,
    MatchCandidate,
    StageMetrics,
)
from partlink.normalize import canonicalize
from partlink.records import (
    RULE_NEGATIVE_BLOCK,
    RULE_POSITIVE_MAP,
    MasterRule,
    MatchHistoryEntry,
    Record,
)

logger = logging.getLogger(__name__)


class PairGuard:
    """
    Verdicts durables sur des paires de références.

    Une paire est bloquée par une règle NEGATIVE_BLOCK (sans référence fournisseur :
    toute paire de cette référence magasin) ou par l'historique des rejets. Une paire
    est acceptée par l'historique des acceptations ou une règle POSITIVE_MAP.
    """

    def __init__(
        self,
        master_rules: Iterable[MasterRule] = (),
        accepted: Iterable[MatchHistoryEntry] = (),
        rejected: Iterable[MatchHistoryEntry] = (),
        *,
        project_id: str | None = None,
    ) -> None:
        self.accepted_history = {h.key() for h in accepted if h.applies_to(project_id)}
        self.rejected_history = {h.key() for h in rejected if h.applies_to(project_id)}
        self.positive_rules: set[tuple[str, str]] = set()
        self.negative_rules: set[tuple[str, str]] = set()
        self.blocked_store_parts: set[str] = set()

        for rule in master_rules:
            if not rule.applies_to(project_id):
                continue
            store_pn = canonicalize(rule.store_part_number)
            if rule.rule_type == RULE_NEGATIVE_BLOCK:
                if rule.supplier_part_number:
                    self.negative_rules.add((store_pn, canonicalize(rule.supplier_part_number)))
                else:
                    self.blocked_store_parts.add(store_pn)
            elif rule.supplier_part_number:
                self.positive_rules.add((store_pn, canonicalize(rule.supplier_part_number)))

    @staticmethod
    def _key(store_part_number: str, supplier_part_number: str) -> tuple[str, str]:
        return canonicalize(store_part_number), canonicalize(supplier_part_number)

    def verdict(self, store_part_number: str, supplier_part_number: str) -> tuple[float, str] | None:
        """
        Returns:
            (1.0 | 0.0, raison) si une décision durable s'applique, sinon None.
        """
        key = self._key(store_part_number, supplier_part_number)
        if key in self.accepted_history:
            return 1.0, "previously accepted"
        if key in self.rejected_history:
            return 0.0, "previously rejected"
        if key in self.negative_rules or key[0] in self.blocked_store_parts:
            return 0.0, "master rule negative block"
        if key in self.positive_rules:
            return 1.0, "master rule positive map"
        return None

    def is_blocked(self, store_item: Record, supplier: Record) -> bool:
        key = (store_item.canonical, supplier.canonical)
        if key in self.accepted_history:
            return False
        return (
            key in self.rejected_history
            or key in self.negative_rules
            or store_item.canonical in self.blocked_store_parts
        )

    def is_accepted(self, store_item: Record, supplier: Record) -> bool:
        return (store_item.canonical, supplier.canonical) in self.accepted_history


def apply_master_rules(
    store_records: Sequence[Record],
    index: MatchingIndex,
    guard: PairGuard | None = None,
) -> tuple[list[MatchCandidate], StageMetrics]:
    """
    Crée un candidat par combinaison magasin/fournisseur couverte par une règle POSITIVE_MAP.

    Les paires bloquées (règle négative, rejet historique) sont ignorées.
    """
    start = time.perf_counter()
    stores_by_canonical: dict[str, list[Record]] = {}
    for item in store_records:
        if item.canonical:
            stores_by_canonical.setdefault(item.canonical, []).append(item)

    matches: list[MatchCandidate] = []
    seen: set[tuple[str, str]] = set()
    rules_applied: set[str] = set()

    for rule in index.rules_of_type(RULE_POSITIVE_MAP):
        if not isinstance(rule, MasterRule) or not rule.supplier_part_number:
            continue
        stores = stores_by_canonical.get(canonicalize(rule.store_part_number), [])
        if not stores:
            continue
        suppliers = index.by_canonical(rule.supplier_part_number)
        for store_item in stores:
            for supplier in suppliers:
                pair = (store_item.id, supplier.id)
                if pair in seen:
                    continue
                if guard is not None and guard.is_blocked(store_item, supplier):
                    logger.debug("Règle %s ignorée: paire bloquée %s", rule.id, pair)
                    continue
                seen.add(pair)
                rules_applied.add(rule.id)
                matches.append(
                    MatchCandidate(
                        store_item_id=store_item.id,
                        target_id=supplier.id,
                        method=METHOD_MASTER_RULE,
                        confidence=rule.confidence,
                        match_stage=STAGE_MASTER_RULES,
                        features={
                            "rule_id": rule.id,
                            "rule_type": rule.master_type,
                            "learned_from": rule.project_id,
                            "auto_confirmed": True,
                        },
                        rules_applied=[rule.id],
                    )
                )

    elapsed = (time.perf_counter() - start) * 1000
    logger.info("Étape 0 (règles maîtres): %d candidats", len(matches))
    return matches, StageMetrics.compute(
        STAGE_MASTER_RULES,
        "Master Rules",
        len(store_records),
        matches,
        elapsed,
        sorted(rules_applied),
    )
