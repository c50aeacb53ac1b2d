"""Test d'intégration du pipeline PartLink (ligne de commande)."""

import json
from pathlib import Path

import pandas as pd
import pytest

from partlink.cli import cmd_run, main


def _write_snapshot(path: Path) -> Path:
    snapshot = {
        "store_records": [
            {"id": "s1", "part_number": "ABC-123", "description": "oil filter", "cost": 10},
            {"id": "s2", "part_number": "WIX-51515"},
            {"id": "s3", "part_number": "ZZZ999"},
        ],
        "supplier_records": [
            {"id": "t1", "part_number": "ABC123", "line_code": "ABC", "category": "Filters", "cost": 10},
            {"id": "t2", "part_number": "FRAPH8A", "line_code": "FRA"},
        ],
        "rules": [
            {"rule_type": "interchange_mapping", "source_full_sku": "WIX-51515", "target_full_sku": "FRAPH8A"},
            {"rule_type": "vendor_action", "supplier_line_code": "ABC", "action": "LIFT"},
        ],
    }
    path.write_text(json.dumps(snapshot), encoding="utf-8")
    return path


def test_full_pipeline_dry_run(tmp_path: Path) -> None:
    """Pipeline complet en dry-run : seul mapping.csv est écrit."""
    snapshot_path = _write_snapshot(tmp_path / "snapshot.json")
    mapping_path = tmp_path / "mapping.csv"

    exit_code = cmd_run(str(snapshot_path), None, None, dry_run=True, mapping_path=str(mapping_path))

    assert exit_code == 0
    mapping_df = pd.read_csv(mapping_path)
    assert len(mapping_df) == 2
    rows = {r.store_item_id: r for r in mapping_df.itertuples()}
    assert (rows["s1"].target_id, rows["s1"].method, rows["s1"].vendor_action) == ("t1", "canonical", "LIFT")
    assert (rows["s2"].target_id, rows["s2"].method, rows["s2"].vendor_action) == ("t2", "interchange", "NONE")
    assert "status" in mapping_df.columns


def test_full_pipeline_with_output(tmp_path: Path) -> None:
    snapshot_path = _write_snapshot(tmp_path / "snapshot.json")
    out = tmp_path / "output.xlsx"

    exit_code = main(["run", "--snapshot", str(snapshot_path), "--output", str(out)])

    assert exit_code == 0
    assert (tmp_path / "mapping.csv").exists()
    xl = pd.ExcelFile(out, engine="openpyxl")
    assert xl.sheet_names == ["Candidates", "Stages", "REPORT"]
    candidates = pd.read_excel(xl, sheet_name="Candidates")
    xl.close()
    assert set(candidates["store_item_id"]) == {"s1", "s2"}


def test_batch_mode_same_mapping(tmp_path: Path) -> None:
    snapshot_path = _write_snapshot(tmp_path / "snapshot.json")
    config_path = tmp_path / "config.json"
    config_path.write_text('{"batch_size": 1}', encoding="utf-8")
    single = tmp_path / "single.csv"
    batched = tmp_path / "batched.csv"

    assert main(["run", "-s", str(snapshot_path), "--dry-run", "-m", str(single)]) == 0
    assert main(["run", "-s", str(snapshot_path), "-c", str(config_path), "--dry-run", "-b", "-m", str(batched)]) == 0

    def pairs(path: Path) -> set[tuple[str, str, str]]:
        df = pd.read_csv(path)
        return set(zip(df["store_item_id"], df["target_id"], df["method"]))

    assert pairs(single) == pairs(batched)


def test_patterns_command(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    snapshot_path = _write_snapshot(tmp_path / "snapshot.json")
    assert main(["patterns", "-s", str(snapshot_path), "--min-occurrences", "1"]) == 0
    out = capsys.readouterr().out
    assert "remove_dash" in out
    assert 'Remove "-"' in out


def test_missing_snapshot(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    exit_code = main(["run", "-s", str(tmp_path / "absent.json"), "--dry-run"])
    assert exit_code == 1
    assert "Erreur" in capsys.readouterr().err


def test_output_required(tmp_path: Path) -> None:
    snapshot_path = _write_snapshot(tmp_path / "snapshot.json")
    with pytest.raises(SystemExit):
        main(["run", "-s", str(snapshot_path)])


def test_invalid_config(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    snapshot_path = _write_snapshot(tmp_path / "snapshot.json")
    config_path = tmp_path / "config.json"
    config_path.write_text('{"fuzzy_threshold": 3}', encoding="utf-8")
    assert main(["run", "-s", str(snapshot_path), "-c", str(config_path), "--dry-run"]) == 1
    assert "fuzzy_threshold" in capsys.readouterr().err


def test_patterns_command_ignores_identical_pairs(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    snapshot_path = tmp_path / "snapshot.json"
    snapshot = {
        "store_records": [{"id": f"s{i}", "part_number": f"P100{i}"} for i in range(1, 4)],
        "supplier_records": [{"id": f"t{i}", "part_number": f"P100{i}"} for i in range(1, 4)],
    }
    snapshot_path.write_text(json.dumps(snapshot), encoding="utf-8")

    assert main(["patterns", "-s", str(snapshot_path), "--min-occurrences", "1"]) == 0
    out = capsys.readouterr().out
    assert "Aucun motif récurrent." in out
    assert "punctuation_change" not in out
