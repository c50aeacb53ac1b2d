"""Configuration du pipeline de matching et chargement du fichier config JSON."""

from __future__ import annotations

import json
import math
import os
from collections.abc import Mapping
from dataclasses import dataclass, field, fields, replace
from pathlib import Path
from typing import Any

DEFAULT_AFFIX_PREFIXES = ("ABC", "DTN", "BSC", "CTS", "RB", "WA", "DP")

_TRUE_VALUES = frozenset({"1", "true", "yes", "on"})


class PartLinkError(Exception):
    """Exception de base pour PartLink."""


class ConfigError(PartLinkError, ValueError):
    """Erreur de validation de la configuration."""


class ConfigFileError(PartLinkError):
    """Erreur de chargement du fichier de configuration (fichier absent, JSON invalide)."""


def _check_ratio(name: str, value: float) -> float:
    if not 0 <= value <= 1:
        raise ConfigError(f"{name} doit être entre 0 et 1 (got {value})")
    return value


def _check_non_negative(name: str, value: float) -> float:
    if value < 0:
        raise ConfigError(f"{name} doit être >= 0 (got {value})")
    return value


def _check_positive_int(name: str, value: int) -> int:
    if value < 1:
        raise ConfigError(f"{name} doit être >= 1 (got {value})")
    return value


def _flag(d: Mapping[str, Any], key: str, default: bool) -> bool:
    value = d.get(key, default)
    if not isinstance(value, bool):
        raise ConfigError(f"{key} doit être un booléen (got {value!r})")
    return value


def _prefixes(d: Mapping[str, Any]) -> tuple[str, ...]:
    value = d.get("affix_prefixes", DEFAULT_AFFIX_PREFIXES)
    if not isinstance(value, (list, tuple)) or not all(isinstance(p, str) for p in value):
        raise ConfigError(f"affix_prefixes doit être une liste de chaînes (got {value!r})")
    return tuple(value)


@dataclass
class MatchingConfig:
    """Configuration principale d'un run de matching."""

    project_id: str | None = None

    deterministic_enabled: bool = True
    fuzzy_enabled: bool = True

    fuzzy_threshold: float = 0.75
    cost_tolerance_percent: float = 5.0
    # Tolérances élargies pour les méthodes à signal plus faible
    prefix_strip_cost_tolerance: float = 10.0
    affix_cost_tolerance: float = 15.0
    fuzzy_cost_tolerance: float = 10.0

    max_candidates_per_item: int = 500
    batch_size: int = 500
    affix_prefixes: tuple[str, ...] = field(default=DEFAULT_AFFIX_PREFIXES)

    apply_history_overrides: bool = True

    pattern_min_occurrences: int = 3
    bulk_approval_threshold: int = 5

    def __post_init__(self) -> None:
        self.affix_prefixes = tuple(p.strip().upper() for p in self.affix_prefixes)
        self.validate()

    def validate(self) -> None:
        """Vérifie les bornes de chaque paramètre (lève ConfigError)."""
        _check_ratio("fuzzy_threshold", self.fuzzy_threshold)
        _check_non_negative("cost_tolerance_percent", self.cost_tolerance_percent)
        _check_non_negative("prefix_strip_cost_tolerance", self.prefix_strip_cost_tolerance)
        _check_non_negative("affix_cost_tolerance", self.affix_cost_tolerance)
        _check_non_negative("fuzzy_cost_tolerance", self.fuzzy_cost_tolerance)
        _check_positive_int("max_candidates_per_item", self.max_candidates_per_item)
        _check_positive_int("batch_size", self.batch_size)
        _check_positive_int("pattern_min_occurrences", self.pattern_min_occurrences)
        _check_positive_int("bulk_approval_threshold", self.bulk_approval_threshold)
        if not self.affix_prefixes or any(not p for p in self.affix_prefixes):
            raise ConfigError("affix_prefixes doit contenir des préfixes non vides")

    @classmethod
    def from_dict(cls, d: dict[str, Any]) -> MatchingConfig:
        try:
            return cls(
                project_id=d.get("project_id"),
                deterministic_enabled=_flag(d, "deterministic_enabled", True),
                fuzzy_enabled=_flag(d, "fuzzy_enabled", True),
                fuzzy_threshold=float(d.get("fuzzy_threshold", 0.75)),
                cost_tolerance_percent=float(d.get("cost_tolerance_percent", 5.0)),
                prefix_strip_cost_tolerance=float(d.get("prefix_strip_cost_tolerance", 10.0)),
                affix_cost_tolerance=float(d.get("affix_cost_tolerance", 15.0)),
                fuzzy_cost_tolerance=float(d.get("fuzzy_cost_tolerance", 10.0)),
                max_candidates_per_item=int(d.get("max_candidates_per_item", 500)),
                batch_size=int(d.get("batch_size", 500)),
                affix_prefixes=_prefixes(d),
                apply_history_overrides=_flag(d, "apply_history_overrides", True),
                pattern_min_occurrences=int(d.get("pattern_min_occurrences", 3)),
                bulk_approval_threshold=int(d.get("bulk_approval_threshold", 5)),
            )
        except (TypeError, ValueError) as e:
            if isinstance(e, ConfigError):
                raise
            raise ConfigError(f"Valeur de configuration invalide: {e}") from e

    @classmethod
    def load(cls, path: str | Path) -> MatchingConfig:
        """
        Charge la configuration depuis un fichier JSON.

        Raises:
            ConfigFileError: Si le fichier est absent ou le JSON invalide.
            ConfigError: Si la configuration est invalide.
        """
        path = Path(path).resolve()
        if not path.exists():
            raise ConfigFileError(f"Fichier de configuration introuvable: {path}")

        try:
            with open(path, encoding="utf-8") as f:
                d = json.load(f)
        except json.JSONDecodeError as e:
            raise ConfigFileError(f"JSON invalide dans {path}: {e}") from e
        except OSError as e:
            raise ConfigFileError(f"Impossible de lire {path}: {e}") from e

        if not isinstance(d, dict):
            raise ConfigFileError(f"Fichier de configuration invalide: {path} doit contenir un objet JSON")

        return cls.from_dict(d)

    def apply_env(self, environ: Mapping[str, str] | None = None) -> MatchingConfig:
        """
        Applique les surcharges d'environnement (MATCH_*) en place et revalide.

        Les nombres illisibles ou non finis (inf, nan) conservent la valeur
        courante. Si une surcharge est hors bornes, ConfigError est levée et
        la configuration reste inchangée.
        """
        env = os.environ if environ is None else environ

        def _bool(key: str, current: bool) -> bool:
            value = env.get(key)
            if value is None:
                return current
            return value.strip().lower() in _TRUE_VALUES

        def _num(key: str, current: float) -> float:
            value = env.get(key)
            if value is None:
                return current
            try:
                number = float(value)
            except ValueError:
                return current
            return number if math.isfinite(number) else current

        def _int(key: str, current: int) -> int:
            try:
                return int(_num(key, current))
            except (ValueError, OverflowError):
                return current

        # replace() repasse par __post_init__ : tout est validé avant mutation
        updated = replace(
            self,
            deterministic_enabled=_bool("MATCH_STAGE1_ENABLED", self.deterministic_enabled),
            fuzzy_enabled=_bool("MATCH_STAGE2_ENABLED", self.fuzzy_enabled),
            fuzzy_threshold=_num("MATCH_FUZZY_THRESHOLD", self.fuzzy_threshold),
            cost_tolerance_percent=_num("MATCH_COST_TOLERANCE_PERCENT", self.cost_tolerance_percent),
            max_candidates_per_item=_int("MATCH_MAX_CANDIDATES", self.max_candidates_per_item),
            batch_size=_int("MATCH_BATCH_SIZE", self.batch_size),
        )
        for f in fields(self):
            setattr(self, f.name, getattr(updated, f.name))
        return self

    def describe(self) -> dict[str, Any]:
        """Paramètres effectifs, pour le rapport."""
        return {
            "project_id": self.project_id,
            "deterministic_enabled": self.deterministic_enabled,
            "fuzzy_enabled": self.fuzzy_enabled,
            "fuzzy_threshold": self.fuzzy_threshold,
            "cost_tolerance_percent": self.cost_tolerance_percent,
            "max_candidates_per_item": self.max_candidates_per_item,
            "batch_size": self.batch_size,
            "affix_prefixes": ",".join(self.affix_prefixes),
        }
