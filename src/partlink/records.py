"""Modèle de données : enregistrements, tables de règles et historique des décisions."""

from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass
from typing import Any, Union

from partlink.config import ConfigError
from partlink.normalize import canonicalize, normalize

logger = logging.getLogger(__name__)

# Types de règles (étiquette de la variante)
RULE_PUNCTUATION = "punctuation"
RULE_INTERCHANGE_MAPPING = "interchange_mapping"
RULE_POSITIVE_MAP = "positive_map"
RULE_NEGATIVE_BLOCK = "negative_block"
RULE_VENDOR_ACTION = "vendor_action"

POSITIVE_MAP = "POSITIVE_MAP"
NEGATIVE_BLOCK = "NEGATIVE_BLOCK"
VALID_MASTER_RULE_TYPES = frozenset({POSITIVE_MAP, NEGATIVE_BLOCK})

SCOPE_GLOBAL = "GLOBAL"
SCOPE_PROJECT = "PROJECT"
VALID_SCOPES = frozenset({SCOPE_GLOBAL, SCOPE_PROJECT})

WILDCARD = "*"


def _opt_str(value: Any) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def _opt_float(value: Any) -> float | None:
    if value is None or value == "":
        return None
    try:
        result = float(value)
    except (TypeError, ValueError):
        return None
    return None if result != result else result  # NaN


@dataclass(frozen=True)
class Record:
    """
    Article d'un catalogue, figé pour la durée d'un run.

    `canonical` est la référence en majuscules sans ponctuation ; `manufacturer_part`
    est la référence privée de son préfixe code ligne quand celui-ci est valide.
    """

    id: str
    part_number: str
    canonical: str
    line_code: str | None = None
    manufacturer_part: str | None = None
    description: str | None = None
    cost: float | None = None
    category: str | None = None
    subcategory: str | None = None

    @classmethod
    def build(
        cls,
        id: str,
        part_number: str,
        *,
        line_code: str | None = None,
        manufacturer_part: str | None = None,
        description: str | None = None,
        cost: float | None = None,
        category: str | None = None,
        subcategory: str | None = None,
    ) -> Record:
        """
        Construit un enregistrement en normalisant la référence.

        Sans code ligne explicite, il est extrait des 3 premiers caractères (si valide).
        Avec un code ligne explicite, la référence fabricant est la référence privée
        de ce préfixe.
        """
        norm = normalize(part_number)
        trimmed = norm.normalized_lower.upper()
        lc = _opt_str(line_code)
        if lc is not None:
            lc = lc.upper()
            if manufacturer_part is None:
                if trimmed.startswith(lc) and len(trimmed) > len(lc):
                    manufacturer_part = trimmed[len(lc):]
                else:
                    manufacturer_part = trimmed
        else:
            lc = norm.line_code
            if manufacturer_part is None:
                manufacturer_part = norm.manufacturer_part

        return cls(
            id=str(id),
            part_number=str(part_number).strip(),
            canonical=norm.canonical,
            line_code=lc,
            manufacturer_part=_opt_str(manufacturer_part),
            description=_opt_str(description),
            cost=_opt_float(cost),
            category=_opt_str(category),
            subcategory=_opt_str(subcategory),
        )

    @classmethod
    def from_dict(cls, d: dict[str, Any]) -> Record:
        return cls.build(
            d["id"],
            d["part_number"],
            line_code=d.get("line_code"),
            manufacturer_part=d.get("manufacturer_part"),
            description=d.get("description"),
            cost=d.get("cost"),
            category=d.get("category"),
            subcategory=d.get("subcategory"),
        )


@dataclass(frozen=True)
class StoreRecord(Record):
    """Article de l'inventaire magasin."""


@dataclass(frozen=True)
class SupplierRecord(Record):
    """Article du catalogue fournisseur."""


def records_from_dicts(rows: Iterable[dict[str, Any]], cls: type[Record]) -> list[Record]:
    """
    Construit les enregistrements, en écartant ceux sans identifiant ou sans référence exploitable.
    """
    records: list[Record] = []
    for row in rows:
        if row.get("id") in (None, "") or not canonicalize(_opt_str(row.get("part_number"))):
            logger.debug("Enregistrement ignoré (référence vide): %r", row)
            continue
        records.append(cls.from_dict(row))
    return records


@dataclass(frozen=True)
class InterchangeMapping:
    """Équivalence connue entre deux références complètes (marques différentes)."""

    source_full_sku: str
    target_full_sku: str
    confidence: float = 1.0
    project_id: str | None = None

    rule_type = RULE_INTERCHANGE_MAPPING

    def applies_to(self, project_id: str | None) -> bool:
        return self.project_id is None or self.project_id == project_id


@dataclass(frozen=True)
class LineCodeTranslation:
    """Réécriture d'un code ligne avant recherche de la référence."""

    source_line_code: str
    target_line_code: str
    priority: int = 0
    project_id: str | None = None
    active: bool = True

    def applies_to(self, project_id: str | None) -> bool:
        return self.active and (self.project_id is None or self.project_id == project_id)


@dataclass(frozen=True)
class PartNumberInterchange:
    """(code ligne, référence) source -> (code ligne, référence) cible."""

    source_line_code: str
    source_part_number: str
    target_line_code: str
    target_part_number: str
    priority: int = 0
    project_id: str | None = None
    active: bool = True

    def applies_to(self, project_id: str | None) -> bool:
        return self.active and (self.project_id is None or self.project_id == project_id)


@dataclass(frozen=True)
class TransformationRule:
    """Substitution de caractères (ponctuation) inférée ou confirmée : from_text -> to_text."""

    id: str
    from_text: str
    to_text: str
    confidence: float = 0.9
    project_id: str | None = None
    line_code: str | None = None
    active: bool = True
    description: str = ""

    rule_type = RULE_PUNCTUATION

    def applies_to(self, project_id: str | None) -> bool:
        return self.active and (self.project_id is None or self.project_id == project_id)

    def apply(self, part_number: str) -> str | None:
        """Applique la substitution (littérale) puis canonise ; None si le motif est vide."""
        if not self.from_text:
            return None
        return canonicalize(part_number.replace(self.from_text, self.to_text))


@dataclass(frozen=True)
class MasterRule:
    """Règle durable issue d'une décision manuelle, consultée avant le scoring."""

    id: str
    store_part_number: str
    supplier_part_number: str | None
    master_type: str  # POSITIVE_MAP, NEGATIVE_BLOCK
    scope: str = SCOPE_GLOBAL
    confidence: float = 1.0
    enabled: bool = True
    project_id: str | None = None
    line_code: str | None = None
    created_by: str | None = None
    match_candidate_id: str | None = None

    @property
    def rule_type(self) -> str:
        return RULE_POSITIVE_MAP if self.master_type == POSITIVE_MAP else RULE_NEGATIVE_BLOCK

    def applies_to(self, project_id: str | None) -> bool:
        if not self.enabled:
            return False
        if self.scope == SCOPE_PROJECT:
            return self.project_id is not None and self.project_id == project_id
        return True


@dataclass(frozen=True)
class VendorActionRule:
    """Action opérationnelle pour un code ligne fournisseur, une catégorie et une sous-catégorie."""

    supplier_line_code: str
    category_pattern: str
    subcategory_pattern: str
    action: str
    project_id: str | None = None
    active: bool = True

    rule_type = RULE_VENDOR_ACTION

    def applies_to(self, project_id: str | None) -> bool:
        return self.active and (self.project_id is None or self.project_id == project_id)


@dataclass(frozen=True)
class MatchHistoryEntry:
    """Décision humaine terminale sur une paire (acceptée ou rejetée)."""

    store_part_number: str
    supplier_part_number: str
    project_id: str | None = None

    def key(self) -> tuple[str, str]:
        return canonicalize(self.store_part_number), canonicalize(self.supplier_part_number)

    def applies_to(self, project_id: str | None) -> bool:
        return self.project_id is None or self.project_id == project_id


MatchingRule = Union[TransformationRule, InterchangeMapping, MasterRule, VendorActionRule]


def rule_from_dict(d: dict[str, Any]) -> MatchingRule:
    """
    Construit la variante de règle correspondant à `rule_type`.

    Raises:
        ConfigError: Si le type est inconnu ou si un champ obligatoire manque.
    """
    rule_type = d.get("rule_type")
    try:
        if rule_type == RULE_PUNCTUATION:
            pattern = d.get("pattern") or {}
            return TransformationRule(
                id=str(d["id"]),
                from_text=str(pattern.get("from", d.get("from_text", ""))),
                to_text=str(pattern.get("to", d.get("to_text", ""))),
                confidence=float(d.get("confidence", 0.9)),
                project_id=d.get("project_id"),
                line_code=_opt_str(d.get("line_code")),
                active=bool(d.get("active", True)),
                description=str(d.get("description", "")),
            )
        if rule_type == RULE_INTERCHANGE_MAPPING:
            return InterchangeMapping(
                source_full_sku=str(d["source_full_sku"]),
                target_full_sku=str(d["target_full_sku"]),
                confidence=float(d.get("confidence", 1.0)),
                project_id=d.get("project_id"),
            )
        if rule_type in (RULE_POSITIVE_MAP, RULE_NEGATIVE_BLOCK):
            scope = str(d.get("scope", SCOPE_GLOBAL)).upper()
            if scope not in VALID_SCOPES:
                raise ConfigError(f"scope invalide: {scope!r}. Valides: {sorted(VALID_SCOPES)}")
            return MasterRule(
                id=str(d["id"]),
                store_part_number=str(d["store_part_number"]),
                supplier_part_number=_opt_str(d.get("supplier_part_number")),
                master_type=POSITIVE_MAP if rule_type == RULE_POSITIVE_MAP else NEGATIVE_BLOCK,
                scope=scope,
                confidence=float(d.get("confidence", 1.0)),
                enabled=bool(d.get("enabled", True)),
                project_id=d.get("project_id"),
                line_code=_opt_str(d.get("line_code")),
            )
        if rule_type == RULE_VENDOR_ACTION:
            return VendorActionRule(
                supplier_line_code=str(d["supplier_line_code"]),
                category_pattern=str(d.get("category_pattern", WILDCARD)),
                subcategory_pattern=str(d.get("subcategory_pattern", WILDCARD)),
                action=str(d["action"]),
                project_id=d.get("project_id"),
                active=bool(d.get("active", True)),
            )
    except KeyError as e:
        raise ConfigError(f"Champ manquant pour une règle {rule_type!r}: {e}") from e
    raise ConfigError(f"rule_type inconnu: {rule_type!r}")
