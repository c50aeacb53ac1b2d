"""Apprentissage de règles maîtres à partir des décisions de revue manuelle."""

from __future__ import annotations

import itertools
import logging
from collections.abc import Iterable
from dataclasses import dataclass, replace

from partlink.config import PartLinkError
from partlink.normalize import canonicalize
from partlink.records import (
    NEGATIVE_BLOCK,
    POSITIVE_MAP,
    SCOPE_GLOBAL,
    InterchangeMapping,
    MasterRule,
)

logger = logging.getLogger(__name__)

DECISION_APPROVE = "approve"
DECISION_REJECT = "reject"
DECISION_CORRECT = "correct"
VALID_DECISIONS = frozenset({DECISION_APPROVE, DECISION_REJECT, DECISION_CORRECT})


@dataclass(frozen=True)
class ReviewDecision:
    """Décision d'un relecteur sur un candidat affiché."""

    store_part_number: str
    supplier_part_number: str
    decision: str  # approve, reject, correct
    match_candidate_id: str | None = None
    line_code: str | None = None
    corrected_supplier_part_number: str | None = None
    project_id: str | None = None
    user_id: str | None = None


@dataclass(frozen=True)
class LearnedRule:
    """Règle retenue pour une décision ; `created` est faux si une règle existante a été réutilisée."""

    rule_id: str
    master_type: str
    created: bool


class RuleBook:
    """
    Recueil des règles maîtres, alimenté par les décisions de revue.

    Args:
        rules: Règles déjà connues.
        known_projects: Projets existants ; None = tout identifiant de projet est accepté.
    """

    def __init__(
        self,
        rules: Iterable[MasterRule] = (),
        *,
        known_projects: Iterable[str] | None = None,
    ) -> None:
        self._rules: dict[str, MasterRule] = {r.id: r for r in rules}
        self.known_projects = None if known_projects is None else set(known_projects)
        self._ids = itertools.count(len(self._rules) + 1)

    @property
    def rules(self) -> list[MasterRule]:
        return list(self._rules.values())

    def get(self, rule_id: str) -> MasterRule | None:
        return self._rules.get(rule_id)

    def _next_id(self) -> str:
        while True:
            rule_id = f"MR{next(self._ids):06d}"
            if rule_id not in self._rules:
                return rule_id

    def _find_enabled(self, store_pn: str, supplier_pn: str | None, master_type: str) -> MasterRule | None:
        store_key = canonicalize(store_pn)
        supplier_key = canonicalize(supplier_pn)
        for rule in self._rules.values():
            if (
                rule.enabled
                and rule.master_type == master_type
                and canonicalize(rule.store_part_number) == store_key
                and canonicalize(rule.supplier_part_number) == supplier_key
            ):
                return rule
        return None

    def _validated_project(self, project_id: str | None) -> str | None:
        if project_id is None or self.known_projects is None or project_id in self.known_projects:
            return project_id
        logger.warning("Projet %s inexistant: règle créée sans référence de projet", project_id)
        return None

    def learn_from_decision(self, decision: ReviewDecision) -> LearnedRule | None:
        """
        Traduit une décision en règle maître.

        approve -> POSITIVE_MAP vers la référence affichée ; reject -> NEGATIVE_BLOCK
        sur la paire affichée ; correct -> POSITIVE_MAP vers la référence corrigée.
        Une règle active identique est réutilisée.

        Returns:
            LearnedRule, ou None si la décision est invalide (correction absente).
        """
        if decision.decision == DECISION_APPROVE:
            master_type, target = POSITIVE_MAP, decision.supplier_part_number
        elif decision.decision == DECISION_REJECT:
            master_type, target = NEGATIVE_BLOCK, decision.supplier_part_number
        elif decision.decision == DECISION_CORRECT and decision.corrected_supplier_part_number:
            master_type, target = POSITIVE_MAP, decision.corrected_supplier_part_number
        else:
            logger.warning("Décision invalide ou correction absente: %s", decision.decision)
            return None

        existing = self._find_enabled(decision.store_part_number, target, master_type)
        if existing is not None:
            logger.debug("Règle existante réutilisée: %s", existing.id)
            return LearnedRule(existing.id, existing.master_type, created=False)

        rule = MasterRule(
            id=self._next_id(),
            store_part_number=decision.store_part_number,
            supplier_part_number=target,
            master_type=master_type,
            scope=SCOPE_GLOBAL,
            confidence=1.0,
            enabled=True,
            project_id=self._validated_project(decision.project_id),
            line_code=decision.line_code,
            created_by=decision.user_id,
            match_candidate_id=decision.match_candidate_id,
        )
        self._rules[rule.id] = rule
        logger.info("Règle %s créée: %s -> %s (%s)", rule.id, rule.store_part_number, target, master_type)
        return LearnedRule(rule.id, master_type, created=True)

    def learn_from_bulk_decisions(self, decisions: Iterable[ReviewDecision]) -> dict[str, int]:
        """
        Apprend d'un lot de décisions.

        Returns:
            {"created": n, "skipped": n, "errors": n} ; une règle réutilisée ou une
            décision invalide compte comme skipped.
        """
        counts = {"created": 0, "skipped": 0, "errors": 0}
        for decision in decisions:
            try:
                learned = self.learn_from_decision(decision)
            except PartLinkError as e:
                logger.error("Erreur d'apprentissage pour %s: %s", decision.store_part_number, e)
                counts["errors"] += 1
                continue
            if learned is not None and learned.created:
                counts["created"] += 1
            else:
                counts["skipped"] += 1
        logger.info(
            "Apprentissage en lot: %d créées, %d ignorées, %d erreurs",
            counts["created"],
            counts["skipped"],
            counts["errors"],
        )
        return counts

    def _set_enabled(self, rule_id: str, enabled: bool) -> bool:
        rule = self._rules.get(rule_id)
        if rule is None:
            logger.warning("Règle introuvable: %s", rule_id)
            return False
        self._rules[rule_id] = replace(rule, enabled=enabled)
        return True

    def disable_rule(self, rule_id: str) -> bool:
        return self._set_enabled(rule_id, False)

    def enable_rule(self, rule_id: str) -> bool:
        return self._set_enabled(rule_id, True)

    def delete_rule(self, rule_id: str) -> bool:
        if self._rules.pop(rule_id, None) is None:
            logger.warning("Règle introuvable: %s", rule_id)
            return False
        return True

    def find_rules(
        self,
        *,
        enabled: bool | None = None,
        master_type: str | None = None,
        scope: str | None = None,
        project_id: str | None = None,
        search: str | None = None,
    ) -> list[MasterRule]:
        """Règles filtrées, les plus récentes d'abord. `search` cherche dans les deux références."""
        needle = search.casefold() if search else None
        found = []
        for rule in reversed(list(self._rules.values())):
            if enabled is not None and rule.enabled != enabled:
                continue
            if master_type is not None and rule.master_type != master_type:
                continue
            if scope is not None and rule.scope != scope:
                continue
            if project_id is not None and rule.project_id != project_id:
                continue
            if needle is not None and not (
                needle in rule.store_part_number.casefold()
                or needle in (rule.supplier_part_number or "").casefold()
            ):
                continue
            found.append(rule)
        return found

    def convert_interchanges(
        self,
        mappings: Iterable[InterchangeMapping],
        *,
        created_by: str | None = None,
    ) -> dict[str, int]:
        """Transforme des équivalences connues en règles POSITIVE_MAP (sans doublon)."""
        counts = {"created": 0, "skipped": 0}
        for mapping in mappings:
            if self._find_enabled(mapping.source_full_sku, mapping.target_full_sku, POSITIVE_MAP):
                counts["skipped"] += 1
                continue
            rule = MasterRule(
                id=self._next_id(),
                store_part_number=mapping.source_full_sku,
                supplier_part_number=mapping.target_full_sku,
                master_type=POSITIVE_MAP,
                confidence=mapping.confidence,
                project_id=self._validated_project(mapping.project_id),
                created_by=created_by,
            )
            self._rules[rule.id] = rule
            counts["created"] += 1
        logger.info("Interchanges convertis: %d créées, %d ignorées", counts["created"], counts["skipped"])
        return counts
