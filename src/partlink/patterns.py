"""Détection de transformations récurrentes et suggestions d'approbation en lot."""

from __future__ import annotations

import logging
import re
from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass, field

from partlink.matching.schema import STATUS_PENDING, MatchCandidate
from partlink.normalize import canonicalize, compute_transformation_signature
from partlink.records import Record, TransformationRule

logger = logging.getLogger(__name__)

PREVIEW_SIZE = 10

# Types de règle suggérés
PATTERN_PUNCTUATION = "punctuation"
PATTERN_CASE = "case_normalization"
PATTERN_AFFIX = "affix"
PATTERN_CUSTOM = "custom"

SCOPE_SUGGESTION_GLOBAL = "global"
SCOPE_SUGGESTION_LINE = "line"

_REPLACE = re.compile(r'^Replace "(.+)" with "(.+)"$')
_REMOVE = re.compile(r'^Remove "(.+)"$')
_ADD = re.compile(r'^Add "(.+)"$')
_QUOTED = re.compile(r'"(.+?)"')


@dataclass(frozen=True)
class PatternMatch:
    """Paire appariée vue sous l'angle de sa transformation."""

    store_item_id: str
    supplier_item_id: str
    store_part_number: str
    supplier_part_number: str
    transformation_signature: str
    confidence: float
    line_code: str | None = None
    status: str = STATUS_PENDING


@dataclass
class DetectedPattern:
    signature: str
    transformation: str
    match_count: int
    confidence: float
    rule_type: str
    line_code: str | None = None
    matches: list[PatternMatch] = field(default_factory=list)

    @property
    def suggested_scope(self) -> str:
        return SCOPE_SUGGESTION_LINE if self.line_code else SCOPE_SUGGESTION_GLOBAL


@dataclass
class BulkApprovalSuggestion:
    """Suggestion consultative : rien n'est approuvé automatiquement."""

    pattern: DetectedPattern
    message: str
    affected_items: int
    preview_matches: list[PatternMatch]


def pattern_matches_from_candidates(
    candidates: Iterable[MatchCandidate],
    store_by_id: Mapping[str, Record],
    supplier_by_id: Mapping[str, Record],
) -> list[PatternMatch]:
    """
    Convertit des candidats en PatternMatch.

    La signature du candidat est utilisée si présente, sinon calculée. Les paires
    de références identiques (casse et espaces ignorés) et celles sans
    transformation de ponctuation sont ignorées.
    """
    out: list[PatternMatch] = []
    for c in candidates:
        store_item = store_by_id.get(c.store_item_id)
        supplier = supplier_by_id.get(c.target_id)
        if store_item is None or supplier is None:
            continue
        if store_item.part_number.strip().upper() == supplier.part_number.strip().upper():
            continue
        signature = c.transformation_signature or compute_transformation_signature(
            store_item.part_number, supplier.part_number
        )
        if not signature:
            continue
        out.append(
            PatternMatch(
                store_item_id=store_item.id,
                supplier_item_id=supplier.id,
                store_part_number=store_item.part_number,
                supplier_part_number=supplier.part_number,
                transformation_signature=signature,
                confidence=c.confidence,
                line_code=store_item.line_code,
                status=c.status,
            )
        )
    return out


def _ordered_chars(s: str) -> list[str]:
    return list(dict.fromkeys(s))


def analyze_transformation(source: str, target: str) -> str:
    """
    Description lisible de la transformation source -> target.

    Examples:
        "12/34" -> "12-34" : 'Replace "/" with "-"'
        "12-34" -> "1234" : 'Remove "-"'
    """
    target_chars = set(target)
    source_chars = set(source)
    removed = [c for c in _ordered_chars(source) if c not in target_chars]
    added = [c for c in _ordered_chars(target) if c not in source_chars]

    if len(removed) == 1 and len(added) == 1:
        return f'Replace "{removed[0]}" with "{added[0]}"'
    if removed and not added:
        return f'Remove "{", ".join(removed)}"'
    if added and not removed:
        return f'Add "{", ".join(added)}"'
    if source.upper() == target.upper() and source != target:
        return "Change case"
    if target.startswith(source):
        return f'Add suffix "{target[len(source):]}"'
    if target.endswith(source):
        return f'Add prefix "{target[:len(target) - len(source)]}"'
    return f'Transform "{source}" → "{target}"'


def determine_rule_type(transformation: str) -> str:
    if transformation.startswith(("Replace", "Remove")):
        return PATTERN_PUNCTUATION
    if "case" in transformation:
        return PATTERN_CASE
    if "prefix" in transformation or "suffix" in transformation:
        return PATTERN_AFFIX
    return PATTERN_CUSTOM


def detect_patterns(matches: Sequence[PatternMatch], min_occurrences: int = 3) -> list[DetectedPattern]:
    """
    Regroupe les paires par signature et garde les groupes d'au moins `min_occurrences`.

    Returns:
        Motifs triés par nombre d'occurrences décroissant (ordre de première
        apparition à égalité).
    """
    groups: dict[str, list[PatternMatch]] = {}
    for m in matches:
        groups.setdefault(m.transformation_signature, []).append(m)

    patterns: list[DetectedPattern] = []
    for signature, members in groups.items():
        if len(members) < min_occurrences:
            continue
        transformation = analyze_transformation(members[0].store_part_number, members[0].supplier_part_number)
        line_codes = {m.line_code for m in members if m.line_code}
        patterns.append(
            DetectedPattern(
                signature=signature,
                transformation=transformation,
                match_count=len(members),
                confidence=sum(m.confidence for m in members) / len(members),
                rule_type=determine_rule_type(transformation),
                line_code=next(iter(line_codes)) if len(line_codes) == 1 else None,
                matches=members,
            )
        )

    patterns.sort(key=lambda p: p.match_count, reverse=True)
    logger.info("%d motifs détectés sur %d paires", len(patterns), len(matches))
    return patterns


def apply_transformation(part_number: str, transformation: str) -> str | None:
    """
    Rejoue une transformation décrite par `analyze_transformation` (remplacement littéral).

    Returns:
        La référence transformée, ou None si la description n'est pas rejouable.
    """
    m = _REPLACE.match(transformation)
    if m:
        return part_number.replace(m.group(1), m.group(2))
    m = _REMOVE.match(transformation)
    if m:
        result = part_number
        for char in m.group(1).split(", "):
            result = result.replace(char, "")
        return result
    m = _ADD.match(transformation)
    if m:
        return part_number + m.group(1).replace(", ", "")
    if "case" in transformation:
        return part_number.upper()
    return None


def find_similar_unmatched_items(
    pattern: DetectedPattern,
    unmatched_store_items: Iterable[Record],
    supplier_items: Sequence[Record],
) -> list[PatternMatch]:
    """Articles non appariés auxquels le même motif s'appliquerait (même signature)."""
    by_canonical: dict[str, list[Record]] = {}
    by_part_number: dict[str, list[Record]] = {}
    for s in supplier_items:
        by_canonical.setdefault(s.canonical, []).append(s)
        by_part_number.setdefault(s.part_number, []).append(s)

    found: list[PatternMatch] = []
    for item in unmatched_store_items:
        if pattern.line_code and item.line_code != pattern.line_code:
            continue
        transformed = apply_transformation(item.part_number, pattern.transformation)
        if not transformed:
            continue
        suppliers = by_part_number.get(transformed) or by_canonical.get(canonicalize(transformed), [])
        for supplier in suppliers:
            signature = compute_transformation_signature(item.part_number, supplier.part_number)
            if signature == pattern.signature:
                found.append(
                    PatternMatch(
                        store_item_id=item.id,
                        supplier_item_id=supplier.id,
                        store_part_number=item.part_number,
                        supplier_part_number=supplier.part_number,
                        transformation_signature=signature,
                        confidence=pattern.confidence,
                        line_code=item.line_code,
                    )
                )
    return found


def generate_bulk_approval_suggestion(
    approved: PatternMatch,
    pending_matches: Iterable[PatternMatch],
    min_occurrences: int = 5,
) -> BulkApprovalSuggestion | None:
    """
    Propose d'approuver en lot les candidats en attente de même signature.

    Returns:
        Une suggestion (aperçu des 10 premiers), ou None sous le seuil.
    """
    similar = [
        m for m in pending_matches
        if m.status == STATUS_PENDING
        and m.transformation_signature == approved.transformation_signature
        and (m.store_item_id, m.supplier_item_id) != (approved.store_item_id, approved.supplier_item_id)
    ]
    if len(similar) < min_occurrences:
        return None

    patterns = detect_patterns([approved, *similar], 1)
    if not patterns:
        return None
    pattern = patterns[0]

    message = f'{len(similar)} autres candidats suivent le même motif : "{pattern.transformation}"'
    if pattern.line_code:
        message += f" (ligne {pattern.line_code})"
    message += ". Les approuver tous ?"

    return BulkApprovalSuggestion(
        pattern=pattern,
        message=message,
        affected_items=len(similar),
        preview_matches=similar[:PREVIEW_SIZE],
    )


def create_rule_from_pattern(
    pattern: DetectedPattern,
    rule_id: str,
    *,
    project_id: str | None = None,
) -> TransformationRule | None:
    """
    Règle de ponctuation rejouable par le matching déterministe.

    Seuls les motifs de remplacement d'un caractère ou de suppression d'un
    caractère donnent une règle ; les autres retournent None.
    """
    m = _REPLACE.match(pattern.transformation)
    if m:
        from_text, to_text = m.group(1), m.group(2)
    else:
        m = _REMOVE.match(pattern.transformation)
        if not m or ", " in m.group(1):
            return None
        from_text, to_text = m.group(1), ""

    return TransformationRule(
        id=rule_id,
        from_text=from_text,
        to_text=to_text,
        confidence=pattern.confidence,
        project_id=project_id,
        line_code=pattern.line_code,
        description=f"{pattern.transformation} ({pattern.match_count} occurrences)",
    )


def _quoted(transformation: str) -> set[str]:
    return set(_QUOTED.findall(transformation.lower()))


def _are_similar(a: DetectedPattern, b: DetectedPattern) -> bool:
    if a.rule_type != b.rule_type:
        return False
    if a.line_code and b.line_code and a.line_code != b.line_code:
        return False
    return bool(_quoted(a.transformation) & _quoted(b.transformation))


def cluster_patterns(patterns: Iterable[DetectedPattern]) -> list[list[DetectedPattern]]:
    """Regroupe les motifs proches (même type, même code ligne, caractères communs)."""
    clusters: list[list[DetectedPattern]] = []
    for pattern in patterns:
        for cluster in clusters:
            if _are_similar(pattern, cluster[0]):
                cluster.append(pattern)
                break
        else:
            clusters.append([pattern])
    return clusters
