"""Adaptateurs pandas : DataFrame -> articles, candidats et métriques -> DataFrame, exports."""

from __future__ import annotations

import json
import logging
from collections.abc import Iterable, Mapping
from pathlib import Path

import pandas as pd

from partlink.config import PartLinkError
from partlink.matching.schema import MatchCandidate, StageMetrics
from partlink.records import Record, records_from_dicts

logger = logging.getLogger(__name__)

RECORD_FIELDS = (
    "id",
    "part_number",
    "line_code",
    "manufacturer_part",
    "description",
    "cost",
    "category",
    "subcategory",
)

CANDIDATE_COLUMNS = [
    "store_item_id",
    "target_id",
    "method",
    "confidence",
    "match_stage",
    "vendor_action",
    "status",
    "cost_difference",
    "cost_similarity",
    "transformation_signature",
    "rules_applied",
    "features",
]


class ExportError(PartLinkError):
    """Erreur d'écriture d'un fichier de sortie."""


def records_from_dataframe(
    df: pd.DataFrame,
    cls: type[Record],
    *,
    columns: Mapping[str, str] | None = None,
) -> list[Record]:
    """
    Construit des articles depuis un DataFrame.

    Args:
        df: Une ligne par article.
        cls: StoreRecord ou SupplierRecord.
        columns: Renommage {colonne du DataFrame: champ}, appliqué avant lecture.

    Les valeurs manquantes (NaN) deviennent None ; les lignes sans référence sont écartées.
    """
    if columns:
        df = df.rename(columns=dict(columns))
    if "id" not in df.columns or "part_number" not in df.columns:
        raise PartLinkError("Colonnes requises absentes: id, part_number")
    present = [c for c in RECORD_FIELDS if c in df.columns]
    clean = df[present].astype(object).where(df[present].notna(), None)
    return records_from_dicts(clean.to_dict(orient="records"), cls)


def candidates_to_dataframe(candidates: Iterable[MatchCandidate]) -> pd.DataFrame:
    rows = []
    for c in candidates:
        rows.append(
            {
                "store_item_id": c.store_item_id,
                "target_id": c.target_id,
                "method": c.method,
                "confidence": round(c.confidence, 4),
                "match_stage": c.match_stage,
                "vendor_action": c.vendor_action,
                "status": c.status,
                "cost_difference": c.cost_difference,
                "cost_similarity": c.cost_similarity,
                "transformation_signature": c.transformation_signature,
                "rules_applied": ",".join(c.rules_applied),
                "features": json.dumps(c.features, sort_keys=True, default=str),
            }
        )
    return pd.DataFrame(rows, columns=CANDIDATE_COLUMNS)


def metrics_to_dataframe(metrics: Iterable[StageMetrics]) -> pd.DataFrame:
    return pd.DataFrame(
        [
            {
                "stage_number": m.stage_number,
                "stage_name": m.stage_name,
                "items_processed": m.items_processed,
                "matches_found": m.matches_found,
                "match_rate": m.match_rate,
                "avg_confidence": m.avg_confidence,
                "processing_time_ms": m.processing_time_ms,
                "rules_applied": ",".join(m.rules_applied),
            }
            for m in metrics
        ],
        columns=[
            "stage_number",
            "stage_name",
            "items_processed",
            "matches_found",
            "match_rate",
            "avg_confidence",
            "processing_time_ms",
            "rules_applied",
        ],
    )


def build_mapping_csv(
    candidates: Iterable[MatchCandidate],
    output_path: str | Path,
) -> None:
    """
    Génère mapping.csv avec store_item_id, target_id, method, confidence, vendor_action, status.
    """
    df = candidates_to_dataframe(candidates)
    df = df[["store_item_id", "target_id", "method", "confidence", "vendor_action", "status"]]
    try:
        df.to_csv(output_path, index=False, encoding="utf-8")
    except OSError as e:
        raise ExportError(f"Impossible d'écrire {output_path}: {e}") from e


def save_xlsx(
    filepath: str | Path,
    dataframes: dict[str, pd.DataFrame],
    *,
    index: bool = False,
) -> None:
    """
    Sauvegarde plusieurs DataFrames dans un fichier xlsx (une feuille par DataFrame).

    Args:
        filepath: Chemin de sortie.
        dataframes: Dict {nom_feuille: DataFrame}.
    """
    try:
        with pd.ExcelWriter(filepath, engine="openpyxl") as writer:
            for sheet_name, df in dataframes.items():
                # Excel limite les noms de feuille à 31 caractères
                safe_name = str(sheet_name)[:31]
                df.to_excel(writer, sheet_name=safe_name, index=index)
    except OSError as e:
        raise ExportError(f"Impossible d'écrire {filepath}: {e}") from e
    logger.info("Classeur écrit: %s (%d feuilles)", filepath, len(dataframes))
