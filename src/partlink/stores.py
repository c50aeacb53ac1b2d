"""Ports vers les collaborateurs externes (tables de règles, stockage des candidats).

Le coeur du pipeline ne lit et n'écrit qu'à travers ces interfaces ; les
implémentations en mémoire servent aux runs sur instantané et aux tests.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from collections.abc import Iterable
from typing import TYPE_CHECKING

from partlink.config import PartLinkError
from partlink.records import LineCodeTranslation, PartNumberInterchange, VendorActionRule

if TYPE_CHECKING:
    from partlink.matching.schema import MatchCandidate

logger = logging.getLogger(__name__)


class StoreUnavailableError(PartLinkError):
    """Un collaborateur (table de règles, stockage) est indisponible."""


class RuleStore(ABC):
    """Port de lecture des tables de règles consultées pendant un run."""

    @abstractmethod
    def fetch_line_code_translations(
        self,
        line_codes: Iterable[str],
        project_id: str | None,
    ) -> list[LineCodeTranslation]:
        """Traductions actives dont le code source est dans `line_codes`.

        Raises:
            StoreUnavailableError: Si la table ne peut pas être lue.
        """

    @abstractmethod
    def fetch_part_interchanges(self, project_id: str | None) -> list[PartNumberInterchange]:
        """Interchanges de références actifs pour le projet (et globaux).

        Raises:
            StoreUnavailableError: Si la table ne peut pas être lue.
        """

    @abstractmethod
    def fetch_vendor_action_rules(
        self,
        line_codes: Iterable[str],
        project_id: str | None,
    ) -> list[VendorActionRule]:
        """Règles d'action fournisseur actives pour ces codes ligne, en une seule lecture.

        Raises:
            StoreUnavailableError: Si la table ne peut pas être lue.
        """


class CandidateStore(ABC):
    """Port d'écriture des candidats produits par lots."""

    @abstractmethod
    def matched_store_ids(self) -> set[str]:
        """Identifiants magasin ayant déjà au moins un candidat dans ce run."""

    @abstractmethod
    def existing_pairs(self) -> set[tuple[str, str]]:
        """Paires (magasin, fournisseur) déjà enregistrées dans ce run."""

    @abstractmethod
    def counts_by_method(self) -> dict[str, int]:
        """Nombre de candidats enregistrés par méthode, tous lots confondus."""

    @abstractmethod
    def commit(self, candidates: list[MatchCandidate]) -> None:
        """Enregistre un lot de candidats de façon atomique (tout ou rien)."""

    @abstractmethod
    def global_stage_completed(self) -> bool:
        """Vrai si l'étape globale (offset 0) a été validée pour ce run."""

    @abstractmethod
    def mark_global_stage_completed(self) -> None:
        """Pose le marqueur d'étape globale terminée."""


class InMemoryRuleStore(RuleStore):
    """Tables de règles en mémoire (instantané)."""

    def __init__(
        self,
        translations: Iterable[LineCodeTranslation] = (),
        part_interchanges: Iterable[PartNumberInterchange] = (),
        vendor_action_rules: Iterable[VendorActionRule] = (),
    ) -> None:
        self._translations = tuple(translations)
        self._part_interchanges = tuple(part_interchanges)
        self._vendor_action_rules = tuple(vendor_action_rules)

    def fetch_line_code_translations(
        self,
        line_codes: Iterable[str],
        project_id: str | None,
    ) -> list[LineCodeTranslation]:
        wanted = {lc.upper() for lc in line_codes}
        return [
            t for t in self._translations
            if t.source_line_code.upper() in wanted and t.applies_to(project_id)
        ]

    def fetch_part_interchanges(self, project_id: str | None) -> list[PartNumberInterchange]:
        return [p for p in self._part_interchanges if p.applies_to(project_id)]

    def fetch_vendor_action_rules(
        self,
        line_codes: Iterable[str],
        project_id: str | None,
    ) -> list[VendorActionRule]:
        wanted = set(line_codes)
        return [
            r for r in self._vendor_action_rules
            if r.supplier_line_code in wanted and r.applies_to(project_id)
        ]


class InMemoryCandidateStore(CandidateStore):
    """Stockage des candidats en mémoire, avec marqueur d'étape globale."""

    def __init__(self) -> None:
        self.candidates: list[MatchCandidate] = []
        self._pairs: set[tuple[str, str]] = set()
        self._global_done = False

    def matched_store_ids(self) -> set[str]:
        return {c.store_item_id for c in self.candidates}

    def existing_pairs(self) -> set[tuple[str, str]]:
        return set(self._pairs)

    def commit(self, candidates: list[MatchCandidate]) -> None:
        new_pairs = [c.pair for c in candidates]
        if len(set(new_pairs)) != len(new_pairs) or self._pairs.intersection(new_pairs):
            raise PartLinkError("Lot refusé: paire (magasin, fournisseur) déjà enregistrée")
        self.candidates.extend(candidates)
        self._pairs.update(new_pairs)
        logger.debug("Lot enregistré: %d candidats (total %d)", len(candidates), len(self.candidates))

    def counts_by_method(self) -> dict[str, int]:
        counts: dict[str, int] = {}
        for c in self.candidates:
            counts[c.method] = counts.get(c.method, 0) + 1
        return counts

    def global_stage_completed(self) -> bool:
        return self._global_done

    def mark_global_stage_completed(self) -> None:
        self._global_done = True

    def reset(self, store_item_ids: Iterable[str] | None = None) -> None:
        """Efface les candidats (tous, ou ceux des articles donnés) avant un nouveau run."""
        if store_item_ids is None:
            self.candidates = []
            self._global_done = False
        else:
            ids = set(store_item_ids)
            self.candidates = [c for c in self.candidates if c.store_item_id not in ids]
        self._pairs = {c.pair for c in self.candidates}
