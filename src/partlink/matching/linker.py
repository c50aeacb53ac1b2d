"""Moteur de linkage : enchaînement des étapes de matching pour un ensemble d'articles magasin."""

from __future__ import annotations

import logging
from collections.abc import Iterable, Sequence

from partlink.config import MatchingConfig
from partlink.matching.deterministic import match_deterministic
from partlink.matching.fuzzy import match_fuzzy
from partlink.matching.index import MatchingIndex
from partlink.matching.interchange import InterchangeResolver
from partlink.matching.master_rules import PairGuard, apply_master_rules
from partlink.matching.schema import (
    DETERMINISTIC_METHODS,
    METHOD_INTERCHANGE,
    MatchCandidate,
    MatchingResult,
    StageMetrics,
)
from partlink.matching.scorers import MatchScorer
from partlink.matching.vendor_actions import resolve_vendor_actions_batch
from partlink.records import Record
from partlink.stores import RuleStore

logger = logging.getLogger(__name__)

# Méthodes déterministes propres à chaque article (l'interchange est un balayage global)
LOCAL_METHODS = tuple(m for m in DETERMINISTIC_METHODS if m != METHOD_INTERCHANGE)


class Linker:
    """
    Moteur de linkage entre articles magasin et catalogue fournisseur.

    Étapes : 0 règles maîtres, 1 déterministe, 2 fuzzy (reste non apparié), puis
    surcharge par l'historique et étiquetage de l'action fournisseur. Une paire
    (magasin, fournisseur) n'est jamais produite deux fois dans un run.
    """

    def __init__(
        self,
        config: MatchingConfig,
        *,
        rule_store: RuleStore | None = None,
        guard: PairGuard | None = None,
    ) -> None:
        self.config = config
        self.project_id = config.project_id
        self.rule_store = rule_store
        self.guard = guard or PairGuard(project_id=config.project_id)
        self.scorer = MatchScorer(self.guard)

    def _resolver(self, store_records: Sequence[Record]) -> InterchangeResolver:
        if self.rule_store is None:
            return InterchangeResolver(project_id=self.project_id)
        line_codes = sorted({r.line_code for r in store_records if r.line_code})
        return InterchangeResolver.from_store(self.rule_store, line_codes, self.project_id)

    def run_global(
        self,
        store_records: Sequence[Record],
        index: MatchingIndex,
        *,
        existing_pairs: Iterable[tuple[str, str]] = (),
    ) -> tuple[list[MatchCandidate], list[StageMetrics]]:
        """
        Balayages sur toute la population : règles maîtres puis interchanges.

        Returns:
            (candidats, métriques) ; les candidats ne sont pas encore étiquetés.
        """
        taken = set(existing_pairs)
        master, master_metrics = apply_master_rules(store_records, index, self.guard)
        master = [c for c in master if c.pair not in taken]
        master_metrics = StageMetrics.compute(
            master_metrics.stage_number,
            master_metrics.stage_name,
            master_metrics.items_processed,
            master,
            master_metrics.processing_time_ms,
            master_metrics.rules_applied,
        )
        taken.update(c.pair for c in master)
        metrics = [master_metrics]
        candidates = list(master)

        if self.config.deterministic_enabled:
            interchange, interchange_metrics = match_deterministic(
                store_records,
                index,
                self.config,
                resolver=self._resolver(store_records),
                guard=self.guard,
                existing_pairs=taken,
                methods=(METHOD_INTERCHANGE,),
            )
            interchange_metrics.stage_name = "Interchange"
            candidates.extend(interchange)
            metrics.append(interchange_metrics)
        return candidates, metrics

    def run_local(
        self,
        store_records: Sequence[Record],
        index: MatchingIndex,
        *,
        existing_pairs: Iterable[tuple[str, str]] = (),
        already_matched: Iterable[str] = (),
    ) -> tuple[list[MatchCandidate], list[StageMetrics]]:
        """
        Étapes propres aux articles : déterministe (hors interchange) puis fuzzy.

        Les articles de `already_matched` sont exclus des deux étapes ; le fuzzy
        n'examine que les articles sans candidat à l'issue de l'étape 1.
        """
        excluded = set(already_matched)
        items = [r for r in store_records if r.id not in excluded]
        taken = set(existing_pairs)
        candidates: list[MatchCandidate] = []
        metrics: list[StageMetrics] = []

        if self.config.deterministic_enabled:
            exact, exact_metrics = match_deterministic(
                items,
                index,
                self.config,
                resolver=self._resolver(items),
                guard=self.guard,
                existing_pairs=taken,
                methods=LOCAL_METHODS,
            )
            candidates.extend(exact)
            taken.update(c.pair for c in exact)
            metrics.append(exact_metrics)

        if self.config.fuzzy_enabled:
            matched = {c.store_item_id for c in candidates}
            fuzzy, fuzzy_metrics = match_fuzzy(
                items,
                index,
                self.config,
                already_matched=matched,
                guard=self.guard,
                existing_pairs=taken,
            )
            candidates.extend(fuzzy)
            metrics.append(fuzzy_metrics)

        return candidates, metrics

    def finalize(
        self,
        candidates: list[MatchCandidate],
        store_records: Sequence[Record],
        index: MatchingIndex,
    ) -> list[MatchCandidate]:
        """Surcharge par l'historique puis étiquetage de l'action fournisseur."""
        if self.config.apply_history_overrides:
            store_by_id = {r.id: r for r in store_records}
            candidates = self.scorer.apply_overrides(candidates, store_by_id, index.by_id)
        self.tag_vendor_actions(candidates, store_records, index)
        return candidates

    def tag_vendor_actions(
        self,
        candidates: list[MatchCandidate],
        store_records: Sequence[Record],
        index: MatchingIndex,
    ) -> None:
        """
        Étiquette chaque candidat avec l'action fournisseur (une seule lecture des règles).

        Code ligne : celui de l'article fournisseur. Catégorie et sous-catégorie :
        celles du fournisseur, à défaut celles de l'article magasin.
        """
        if self.rule_store is None or not candidates:
            return
        store_by_id = {r.id: r for r in store_records}
        queries = []
        for c in candidates:
            supplier = index.by_id.get(c.target_id)
            store_item = store_by_id.get(c.store_item_id)
            category = (supplier.category if supplier else None) or (store_item.category if store_item else None)
            subcategory = (supplier.subcategory if supplier else None) or (
                store_item.subcategory if store_item else None
            )
            queries.append((supplier.line_code if supplier else None, category, subcategory))

        actions = resolve_vendor_actions_batch(self.rule_store, queries, self.project_id)
        for c, action in zip(candidates, actions):
            c.vendor_action = action

    def run(
        self,
        store_records: Sequence[Record],
        index: MatchingIndex,
    ) -> MatchingResult:
        """
        Exécute toutes les étapes sur l'ensemble des articles magasin.

        Returns:
            MatchingResult (candidats et métriques par étape).
        """
        global_candidates, metrics = self.run_global(store_records, index)
        local_candidates, local_metrics = self.run_local(
            store_records,
            index,
            existing_pairs={c.pair for c in global_candidates},
            already_matched={c.store_item_id for c in global_candidates},
        )
        candidates = self.finalize(global_candidates + local_candidates, store_records, index)
        result = MatchingResult(
            matches=candidates,
            metrics=metrics + local_metrics,
            total_items=len(store_records),
        )
        logger.info(
            "Run terminé: %d candidats, %d/%d articles appariés",
            len(candidates),
            result.summary["matched_items"],
            len(store_records),
        )
        return result
