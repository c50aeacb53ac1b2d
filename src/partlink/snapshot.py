"""Instantané des entrées d'un run : articles, tables de règles, historique."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from partlink.config import ConfigError, PartLinkError
from partlink.matching.index import MatchingIndex
from partlink.matching.master_rules import PairGuard
from partlink.records import (
    InterchangeMapping,
    LineCodeTranslation,
    MasterRule,
    MatchHistoryEntry,
    MatchingRule,
    PartNumberInterchange,
    Record,
    StoreRecord,
    SupplierRecord,
    TransformationRule,
    VendorActionRule,
    records_from_dicts,
    rule_from_dict,
)
from partlink.stores import InMemoryRuleStore

logger = logging.getLogger(__name__)


class SnapshotError(PartLinkError):
    """Erreur de chargement d'un instantané (fichier absent, JSON invalide, section malformée)."""


def _history(rows: list[dict[str, Any]]) -> tuple[MatchHistoryEntry, ...]:
    return tuple(
        MatchHistoryEntry(
            store_part_number=str(r["store_part_number"]),
            supplier_part_number=str(r["supplier_part_number"]),
            project_id=r.get("project_id"),
        )
        for r in rows
    )


@dataclass(frozen=True)
class Snapshot:
    """
    Entrées figées d'un run. Rien n'y est modifié pendant le matching.

    Les règles du tableau `rules` sont réparties par variante (ponctuation,
    interchange, règle maître, action fournisseur).
    """

    store_records: tuple[Record, ...] = ()
    supplier_records: tuple[Record, ...] = ()
    interchanges: tuple[InterchangeMapping, ...] = ()
    line_code_translations: tuple[LineCodeTranslation, ...] = ()
    part_interchanges: tuple[PartNumberInterchange, ...] = ()
    transformation_rules: tuple[TransformationRule, ...] = ()
    master_rules: tuple[MasterRule, ...] = ()
    vendor_action_rules: tuple[VendorActionRule, ...] = ()
    accepted_history: tuple[MatchHistoryEntry, ...] = ()
    rejected_history: tuple[MatchHistoryEntry, ...] = ()

    @classmethod
    def from_dict(cls, d: dict[str, Any]) -> Snapshot:
        """
        Raises:
            SnapshotError: Si une section est malformée.
        """
        try:
            rules: list[MatchingRule] = [rule_from_dict(r) for r in d.get("rules", [])]
            interchanges = [
                InterchangeMapping(
                    source_full_sku=str(r["source_full_sku"]),
                    target_full_sku=str(r["target_full_sku"]),
                    confidence=float(r.get("confidence", 1.0)),
                    project_id=r.get("project_id"),
                )
                for r in d.get("interchanges", [])
            ]
            translations = [
                LineCodeTranslation(
                    source_line_code=str(r["source_line_code"]),
                    target_line_code=str(r["target_line_code"]),
                    priority=int(r.get("priority", 0)),
                    project_id=r.get("project_id"),
                    active=bool(r.get("active", True)),
                )
                for r in d.get("line_code_translations", [])
            ]
            part_interchanges = [
                PartNumberInterchange(
                    source_line_code=str(r["source_line_code"]),
                    source_part_number=str(r["source_part_number"]),
                    target_line_code=str(r["target_line_code"]),
                    target_part_number=str(r["target_part_number"]),
                    priority=int(r.get("priority", 0)),
                    project_id=r.get("project_id"),
                    active=bool(r.get("active", True)),
                )
                for r in d.get("part_interchanges", [])
            ]
            snapshot = cls(
                store_records=tuple(records_from_dicts(d.get("store_records", []), StoreRecord)),
                supplier_records=tuple(records_from_dicts(d.get("supplier_records", []), SupplierRecord)),
                interchanges=tuple(interchanges + [r for r in rules if isinstance(r, InterchangeMapping)]),
                line_code_translations=tuple(translations),
                part_interchanges=tuple(part_interchanges),
                transformation_rules=tuple(r for r in rules if isinstance(r, TransformationRule)),
                master_rules=tuple(r for r in rules if isinstance(r, MasterRule)),
                vendor_action_rules=tuple(r for r in rules if isinstance(r, VendorActionRule)),
                accepted_history=_history(d.get("accepted_history", [])),
                rejected_history=_history(d.get("rejected_history", [])),
            )
        except ConfigError as e:
            raise SnapshotError(f"Règle invalide: {e}") from e
        except (KeyError, TypeError, ValueError) as e:
            raise SnapshotError(f"Instantané malformé: {e}") from e

        logger.info(
            "Instantané: %d articles magasin, %d articles fournisseur, %d règles",
            len(snapshot.store_records),
            len(snapshot.supplier_records),
            len(snapshot.rules),
        )
        return snapshot

    @classmethod
    def load(cls, path: str | Path) -> Snapshot:
        """
        Charge un instantané JSON.

        Raises:
            SnapshotError: Si le fichier est absent, illisible ou malformé.
        """
        path = Path(path)
        if not path.exists():
            raise SnapshotError(f"Instantané introuvable: {path}")
        try:
            with open(path, encoding="utf-8") as f:
                d = json.load(f)
        except json.JSONDecodeError as e:
            raise SnapshotError(f"JSON invalide dans {path}: {e}") from e
        except OSError as e:
            raise SnapshotError(f"Impossible de lire {path}: {e}") from e
        if not isinstance(d, dict):
            raise SnapshotError(f"Instantané invalide: {path} doit contenir un objet JSON")
        return cls.from_dict(d)

    @property
    def rules(self) -> tuple[MatchingRule, ...]:
        return (
            *self.transformation_rules,
            *self.interchanges,
            *self.master_rules,
            *self.vendor_action_rules,
        )

    def build_index(self, project_id: str | None = None) -> MatchingIndex:
        return MatchingIndex(
            self.supplier_records,
            self.interchanges,
            self.rules,
            project_id=project_id,
        )

    def rule_store(self) -> InMemoryRuleStore:
        return InMemoryRuleStore(
            self.line_code_translations,
            self.part_interchanges,
            self.vendor_action_rules,
        )

    def pair_guard(self, project_id: str | None = None) -> PairGuard:
        return PairGuard(
            self.master_rules,
            self.accepted_history,
            self.rejected_history,
            project_id=project_id,
        )
