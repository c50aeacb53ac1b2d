"""Résolution des interchanges : traduction de codes ligne et équivalences de références."""

from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass

from partlink.matching.index import MatchingIndex
from partlink.normalize import canonicalize
from partlink.records import LineCodeTranslation, PartNumberInterchange, Record
from partlink.stores import RuleStore, StoreUnavailableError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class InterchangeHit:
    """Résultat d'une résolution d'interchange de référence."""

    suppliers: tuple[Record, ...]
    interchange: PartNumberInterchange
    effective_line_code: str
    translated_line_code: str | None


class InterchangeResolver:
    """
    Traduit les codes ligne puis cherche une équivalence (code ligne, référence).

    Traductions : portée projet avant globale, puis priorité décroissante, puis
    ordre d'entrée. Interchanges de référence : priorité décroissante, puis portée
    projet avant globale, puis ordre d'entrée.
    """

    def __init__(
        self,
        translations: Iterable[LineCodeTranslation] = (),
        part_interchanges: Iterable[PartNumberInterchange] = (),
        *,
        project_id: str | None = None,
    ) -> None:
        self.project_id = project_id

        applicable = [t for t in translations if t.applies_to(project_id)]
        ranked = sorted(
            enumerate(applicable),
            key=lambda it: (it[1].project_id is None, -it[1].priority, it[0]),
        )
        self._translations: dict[str, str] = {}
        for _, t in ranked:
            self._translations.setdefault(t.source_line_code.strip().upper(), t.target_line_code.strip().upper())

        interchanges = [p for p in part_interchanges if p.applies_to(project_id)]
        ranked_parts = sorted(
            enumerate(interchanges),
            key=lambda it: (-it[1].priority, it[1].project_id is None, it[0]),
        )
        self._parts: dict[tuple[str, str], PartNumberInterchange] = {}
        for _, p in ranked_parts:
            key = (p.source_line_code.strip().upper(), canonicalize(p.source_part_number))
            self._parts.setdefault(key, p)

    @classmethod
    def from_store(
        cls,
        store: RuleStore,
        line_codes: Iterable[str],
        project_id: str | None,
    ) -> InterchangeResolver:
        """
        Charge les tables depuis le collaborateur.

        Une indisponibilité dégrade en résolveur vide (aucun interchange) : les
        étapes suivantes continuent.
        """
        try:
            translations = store.fetch_line_code_translations(line_codes, project_id)
            part_interchanges = store.fetch_part_interchanges(project_id)
        except StoreUnavailableError as e:
            logger.warning("Tables d'interchange indisponibles, étape ignorée: %s", e)
            return cls(project_id=project_id)
        return cls(translations, part_interchanges, project_id=project_id)

    def __bool__(self) -> bool:
        return bool(self._translations or self._parts)

    def effective_line_code(self, line_code: str | None) -> tuple[str | None, str | None]:
        """
        Returns:
            (code ligne effectif, code traduit ou None si aucune traduction)
        """
        if not line_code:
            return None, None
        lc = line_code.strip().upper()
        translated = self._translations.get(lc)
        if translated:
            return translated, translated
        return lc, None

    def resolve(self, store_item: Record, index: MatchingIndex) -> InterchangeHit | None:
        """Cherche l'article fournisseur cible d'un interchange de référence."""
        effective, translated = self.effective_line_code(store_item.line_code)
        if not effective:
            return None

        interchange = None
        for part in (store_item.manufacturer_part, store_item.part_number):
            if part:
                interchange = self._parts.get((effective, canonicalize(part)))
                if interchange:
                    break
        if interchange is None:
            return None

        suppliers = _find_target(index, interchange.target_line_code, interchange.target_part_number)
        if not suppliers:
            logger.debug(
                "Interchange %s -> %s sans article fournisseur",
                store_item.part_number,
                interchange.target_part_number,
            )
            return None
        return InterchangeHit(suppliers, interchange, effective, translated)


def _find_target(index: MatchingIndex, line_code: str, part_number: str) -> tuple[Record, ...]:
    lc = line_code.strip().upper()
    found = index.by_line_code_mfr(lc, part_number)
    if found:
        return found
    found = tuple(r for r in index.by_canonical(lc + part_number) if (r.line_code or "") == lc)
    if found:
        return found
    return tuple(r for r in index.by_canonical(part_number) if r.line_code in (None, lc))
