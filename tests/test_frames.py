"""Tests des adaptateurs pandas et des exports."""

from pathlib import Path

import pandas as pd
import pytest

from partlink.config import PartLinkError
from partlink.frames import (
    CANDIDATE_COLUMNS,
    ExportError,
    build_mapping_csv,
    candidates_to_dataframe,
    metrics_to_dataframe,
    records_from_dataframe,
    save_xlsx,
)
from partlink.matching.schema import MatchCandidate, StageMetrics
from partlink.records import StoreRecord, SupplierRecord


def test_records_from_dataframe() -> None:
    df = pd.DataFrame(
        {
            "sku": ["s1", "s2", "s3"],
            "part_number": ["ABC-123", None, "WIX51515"],
            "cost": [10.5, 3.0, float("nan")],
            "description": ["oil filter", "x", None],
            "ignored": [1, 2, 3],
        }
    )
    records = records_from_dataframe(df, StoreRecord, columns={"sku": "id"})

    assert [r.id for r in records] == ["s1", "s3"]
    assert all(isinstance(r, StoreRecord) for r in records)
    assert records[0].cost == 10.5
    assert records[0].canonical == "ABC123"
    assert records[1].cost is None
    assert records[1].description is None
    assert records[1].line_code == "WIX"


def test_records_from_dataframe_missing_columns() -> None:
    with pytest.raises(PartLinkError):
        records_from_dataframe(pd.DataFrame({"part_number": ["A1"]}), SupplierRecord)


def test_candidates_to_dataframe() -> None:
    c = MatchCandidate("s1", "t1", "canonical", 0.987654, 1, features={"cost_match": True}, rules_applied=["r1", "r2"])
    df = candidates_to_dataframe([c])
    assert list(df.columns) == CANDIDATE_COLUMNS
    row = df.iloc[0]
    assert row["confidence"] == 0.9877
    assert row["rules_applied"] == "r1,r2"
    assert row["features"] == '{"cost_match": true}'
    assert row["vendor_action"] == "NONE"
    assert row["status"] == "PENDING"


def test_candidates_to_dataframe_empty() -> None:
    df = candidates_to_dataframe([])
    assert df.empty
    assert list(df.columns) == CANDIDATE_COLUMNS


def test_metrics_to_dataframe() -> None:
    metrics = [StageMetrics.compute(1, "Deterministic Matching", 4, [MatchCandidate("s1", "t1", "canonical", 1.0, 1)], 2.5)]
    df = metrics_to_dataframe(metrics)
    assert df.iloc[0]["stage_name"] == "Deterministic Matching"
    assert df.iloc[0]["match_rate"] == 0.25


def test_build_mapping_csv(tmp_path: Path) -> None:
    path = tmp_path / "mapping.csv"
    build_mapping_csv([MatchCandidate("s1", "t1", "fuzzy", 0.8, 2)], path)
    df = pd.read_csv(path)
    assert list(df.columns) == ["store_item_id", "target_id", "method", "confidence", "vendor_action", "status"]
    assert df.iloc[0]["method"] == "fuzzy"


def test_save_xlsx(tmp_path: Path) -> None:
    path = tmp_path / "out.xlsx"
    long_name = "A" * 40
    save_xlsx(path, {"Candidates": pd.DataFrame({"a": [1]}), long_name: pd.DataFrame({"b": [2]})})
    xl = pd.ExcelFile(path, engine="openpyxl")
    assert "Candidates" in xl.sheet_names
    assert "A" * 31 in xl.sheet_names
    xl.close()


def test_exports_raise_export_error(tmp_path: Path) -> None:
    """Un dossier de sortie absent lève ExportError, pas une OSError brute."""
    missing = tmp_path / "absent"
    with pytest.raises(ExportError, match="mapping.csv"):
        build_mapping_csv([MatchCandidate("s1", "t1", "fuzzy", 0.8, 2)], missing / "mapping.csv")
    with pytest.raises(ExportError, match="out.xlsx"):
        save_xlsx(missing / "out.xlsx", {"Candidates": pd.DataFrame({"a": [1]})})
    assert issubclass(ExportError, PartLinkError)
