"""Orchestration par lots : machine à états d'un run repris par offset."""

from __future__ import annotations

import logging
from collections.abc import Sequence
from enum import Enum

from partlink.config import MatchingConfig, PartLinkError
from partlink.matching.index import MatchingIndex
from partlink.matching.linker import Linker
from partlink.matching.master_rules import PairGuard
from partlink.matching.schema import BatchCursor, BatchResult, MatchCandidate, StageMetrics
from partlink.records import Record
from partlink.stores import CandidateStore, RuleStore

logger = logging.getLogger(__name__)


class RunState(str, Enum):
    INIT = "INIT"
    STAGE0_GLOBAL = "STAGE0_GLOBAL"
    STAGE_EXACT = "STAGE_EXACT"
    STAGE_FUZZY = "STAGE_FUZZY"
    PERSIST = "PERSIST"
    DONE = "DONE"
    MORE = "MORE"


class GlobalStageError(PartLinkError):
    """L'étape globale (règles maîtres, interchanges) n'a pas pu être validée."""


def order_store_records(store_records: Sequence[Record]) -> list[Record]:
    """Ordre stable des lots : référence puis identifiant."""
    return sorted(store_records, key=lambda r: (r.part_number, r.id))


class BatchOrchestrator:
    """
    Pilote un run par tranches de `batch_size` articles magasin.

    L'étape globale s'exécute au premier lot (offset 0) et, en reprise, à tout lot
    où le marqueur `global_stage_completed` du stockage est absent ; le marqueur
    n'est posé qu'après l'enregistrement de ses candidats. Les lots d'un même run
    doivent être exécutés l'un après l'autre.
    """

    def __init__(
        self,
        store_records: Sequence[Record],
        index: MatchingIndex,
        config: MatchingConfig,
        candidate_store: CandidateStore,
        *,
        rule_store: RuleStore | None = None,
        guard: PairGuard | None = None,
    ) -> None:
        self.store_records = order_store_records(store_records)
        self.index = index
        self.config = config
        self.candidate_store = candidate_store
        self.linker = Linker(config, rule_store=rule_store, guard=guard)
        self.state = RunState.INIT

    @property
    def total(self) -> int:
        return len(self.store_records)

    def _enter(self, state: RunState, states: list[str]) -> None:
        self.state = state
        states.append(state.value)
        logger.debug("État: %s", state.value)

    def _run_global_stage(self) -> tuple[list[MatchCandidate], list[StageMetrics]]:
        try:
            candidates, metrics = self.linker.run_global(
                self.store_records,
                self.index,
                existing_pairs=self.candidate_store.existing_pairs(),
            )
            candidates = self.linker.finalize(candidates, self.store_records, self.index)
            self.candidate_store.commit(candidates)
            self.candidate_store.mark_global_stage_completed()
        except PartLinkError as e:
            raise GlobalStageError(f"Échec de l'étape globale: {e}") from e
        logger.info("Étape globale validée: %d candidats", len(candidates))
        return candidates, metrics

    def process_batch(self, offset: int = 0) -> BatchResult:
        """
        Traite la tranche [offset, offset + batch_size) des articles magasin.

        Raises:
            GlobalStageError: Si l'étape globale échoue (le marqueur n'est pas posé).
            ValueError: Si offset est négatif.
        """
        if offset < 0:
            raise ValueError(f"offset doit être >= 0 (got {offset})")

        states: list[str] = []
        self._enter(RunState.INIT, states)
        candidates: list[MatchCandidate] = []
        metrics: list[StageMetrics] = []

        if offset == 0 or not self.candidate_store.global_stage_completed():
            self._enter(RunState.STAGE0_GLOBAL, states)
            global_candidates, global_metrics = self._run_global_stage()
            candidates.extend(global_candidates)
            metrics.extend(global_metrics)

        batch = self.store_records[offset:offset + self.config.batch_size]
        already_matched = self.candidate_store.matched_store_ids()
        items = [r for r in batch if r.id not in already_matched]
        logger.info(
            "Lot offset=%d: %d articles, %d déjà appariés",
            offset,
            len(batch),
            len(batch) - len(items),
        )

        self._enter(RunState.STAGE_EXACT, states)
        self._enter(RunState.STAGE_FUZZY, states)
        local_candidates, local_metrics = self.linker.run_local(
            items,
            self.index,
            existing_pairs=self.candidate_store.existing_pairs(),
        )
        metrics.extend(local_metrics)

        self._enter(RunState.PERSIST, states)
        local_candidates = self.linker.finalize(local_candidates, items, self.index)
        self.candidate_store.commit(local_candidates)
        candidates.extend(local_candidates)

        processed = min(offset + len(batch), self.total)
        has_more = processed < self.total
        cursor = BatchCursor(
            processed=processed,
            total=self.total,
            remaining=self.total - processed,
            has_more=has_more,
            next_offset=processed if has_more else None,
        )
        self._enter(RunState.MORE if has_more else RunState.DONE, states)
        return BatchResult(
            candidates=candidates,
            counts_by_method=self.candidate_store.counts_by_method(),
            cursor=cursor,
            metrics=metrics,
            states=states,
        )

    def run_all(self) -> list[BatchResult]:
        """Enchaîne les lots jusqu'au dernier."""
        results: list[BatchResult] = []
        offset: int | None = 0
        while offset is not None:
            result = self.process_batch(offset)
            results.append(result)
            offset = result.cursor.next_offset
        return results
