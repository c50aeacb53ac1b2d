"""Normalisation des références pièces, des coûts et des descriptions."""

from __future__ import annotations

import math
import re
import unicodedata
from dataclasses import dataclass

_NON_ALNUM = re.compile(r"[^0-9A-Z]")
_LETTER = re.compile(r"[A-Z]")
_WORD_PUNCT = re.compile(r"[^\w\s]")

# Décroissance exponentielle de la similarité de coût : e^(-k * écart%)
COST_DECAY = 0.1

# Ratios typiques d'erreur d'unité (au pied / au rouleau, à l'unité / au cent...)
_UNIT_RATIOS = (
    (12.0, "per-foot vs per-dozen"),
    (50.0, "per-foot vs per-roll (50ft)"),
    (100.0, "per-unit vs per-hundred"),
    (1000.0, "per-unit vs per-thousand"),
)


@dataclass(frozen=True)
class NormalizedPart:
    """Formes comparables d'une référence brute."""

    original: str
    line_code: str | None
    manufacturer_part: str | None
    canonical: str
    normalized_lower: str


@dataclass(frozen=True)
class CostComparison:
    """Comparaison de deux coûts positifs."""

    difference: float
    percent_difference: float
    similarity: float  # 1.0 = identiques
    is_close: bool


def canonicalize(s: str | None) -> str:
    """
    Forme canonique : NFKC, strip, majuscules, suppression de tout caractère non alphanumérique.

    Examples:
        "000-2112-73" -> "000211273", "gm 8036" -> "GM8036"
    """
    if not s:
        return ""
    text = unicodedata.normalize("NFKC", str(s)).strip().upper()
    return _NON_ALNUM.sub("", text)


def extract_line_code(part_number: str | None) -> tuple[str | None, str | None]:
    """
    Sépare un code ligne (3 premiers caractères) de la référence fabricant.

    Le préfixe n'est retenu que s'il contient au moins 2 lettres et que le reste
    fait au moins 2 caractères ("A12345" et "GMC7" ne sont pas découpés).

    Returns:
        (line_code, manufacturer_part)
    """
    if not part_number or len(part_number) < 3:
        return None, part_number or None

    head = part_number[:3].upper()
    rest = part_number[3:]
    if len(_LETTER.findall(head)) >= 2 and len(rest) >= 2:
        return head, rest
    return None, part_number


def normalize(raw: str | None, *, extract: bool = True) -> NormalizedPart:
    """
    Normalise une référence brute.

    Args:
        raw: Référence telle que reçue (peut être None).
        extract: Tenter l'extraction code ligne / référence fabricant.

    Returns:
        NormalizedPart (canonical vide si la référence est vide).
    """
    original = "" if raw is None else str(raw)
    trimmed = unicodedata.normalize("NFKC", original).strip().upper()

    line_code: str | None = None
    manufacturer_part: str | None = None
    if extract and trimmed:
        line_code, manufacturer_part = extract_line_code(trimmed)

    return NormalizedPart(
        original=original,
        line_code=line_code,
        manufacturer_part=manufacturer_part,
        canonical=_NON_ALNUM.sub("", trimmed),
        normalized_lower=trimmed.lower(),
    )


def compute_transformation_signature(source: str, target: str) -> str | None:
    """
    Libellé court de la transformation de ponctuation qui mène de source à target.

    Returns:
        Par ex. "slash_to_dash", "remove_dash", "punctuation_change", ou None si
        les deux références ne sont pas équivalentes une fois canonisées.
    """
    src = source.strip().upper()
    tgt = target.strip().upper()
    if canonicalize(src) != canonicalize(tgt):
        return None

    parts: list[str] = []
    if "/" in src and "-" in tgt:
        parts.append("slash_to_dash")
    elif "-" in src and "/" in tgt:
        parts.append("dash_to_slash")

    if "-" in src and "-" not in tgt:
        parts.append("remove_dash")
    if "/" in src and "/" not in tgt:
        parts.append("remove_slash")
    if "." in src and "." not in tgt:
        parts.append("remove_dot")
    if " " in src and " " not in tgt:
        parts.append("remove_space")

    return "_".join(parts) if parts else "punctuation_change"


def compare_costs(
    cost_a: float | None,
    cost_b: float | None,
    tolerance_percent: float = 5.0,
) -> CostComparison | None:
    """
    Compare deux coûts ; None si l'un est absent ou non positif.

    L'écart relatif est calculé par rapport à la moyenne des deux coûts.
    """
    if cost_a is None or cost_b is None or cost_a <= 0 or cost_b <= 0:
        return None

    difference = abs(cost_a - cost_b)
    percent_difference = difference / ((cost_a + cost_b) / 2) * 100
    return CostComparison(
        difference=difference,
        percent_difference=percent_difference,
        similarity=math.exp(-COST_DECAY * percent_difference),
        is_close=percent_difference <= tolerance_percent,
    )


def detect_unit_mismatch(cost_a: float, cost_b: float) -> tuple[bool, float, str | None]:
    """
    Détecte une probable erreur d'unité de mesure à partir du ratio des coûts.

    Returns:
        (likely_mismatch, ratio, suggestion)
    """
    if cost_a <= 0 or cost_b <= 0:
        return False, 0.0, None

    ratio = max(cost_a, cost_b) / min(cost_a, cost_b)
    for expected, name in _UNIT_RATIOS:
        if abs(ratio - expected) / expected < 0.1:
            return True, ratio, name
    if ratio > 10:
        return True, ratio, "Unknown unit mismatch (large price difference)"
    return False, ratio, None


def tokenize_description(text: str | None) -> frozenset[str]:
    """Mots de plus de 2 caractères, en minuscules, sans ponctuation."""
    if not text:
        return frozenset()
    cleaned = _WORD_PUNCT.sub("", text.lower())
    return frozenset(t for t in cleaned.split() if len(t) > 2)
