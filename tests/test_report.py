"""Tests du module report."""

import pytest

from partlink.config import MatchingConfig
from partlink.matching.schema import MatchCandidate, MatchingResult, StageMetrics
from partlink.report import build_report_df, print_report_console


@pytest.fixture
def sample_result() -> MatchingResult:
    matches = [
        MatchCandidate("s1", "t1", "master_rule", 1.0, 0),
        MatchCandidate("s2", "t2", "canonical", 0.95, 1),
        MatchCandidate("s2", "t3", "mfr_part_only", 0.75, 1),
        MatchCandidate("s3", "t4", "fuzzy", 0.8, 2),
    ]
    metrics = [
        StageMetrics.compute(0, "Master Rules", 4, matches[:1], 1.0),
        StageMetrics.compute(1, "Interchange", 4, [], 1.0),
        StageMetrics.compute(1, "Deterministic Matching", 3, matches[1:3], 2.0),
        StageMetrics.compute(2, "Fuzzy Matching", 1, matches[3:], 3.0),
    ]
    return MatchingResult(matches=matches, metrics=metrics, total_items=4)


def _value(df, key):
    return df[df["Key"] == key]["Value"].values[0]


def test_summary(sample_result: MatchingResult) -> None:
    summary = sample_result.summary
    assert summary["total_matches"] == 4
    assert summary["matched_items"] == 3
    assert summary["overall_match_rate"] == pytest.approx(0.75)
    assert (summary["stage0_matches"], summary["stage1_matches"], summary["stage2_matches"]) == (1, 2, 1)


def test_build_report_df(sample_result: MatchingResult) -> None:
    df = build_report_df(sample_result, MatchingConfig(project_id="p1"))
    assert list(df.columns) == ["Key", "Value"]
    assert _value(df, "total_items") == 4
    assert _value(df, "matched_items") == 3
    assert _value(df, "method_canonical") == 1
    assert _value(df, "method_fuzzy") == 1
    assert "stage1_Deterministic Matching" in df["Key"].values
    assert _value(df, "fuzzy_threshold") == 0.75
    assert _value(df, "project_id") == "p1"
    assert "timestamp" in df["Key"].values
    assert "version" in df["Key"].values


def test_print_report_console(sample_result: MatchingResult, capsys: pytest.CaptureFixture[str]) -> None:
    print_report_console(sample_result, MatchingConfig())
    out = capsys.readouterr().out
    assert "=== PartLink Report ===" in out
    assert "mfr_part_only" in out
    assert "75.0%" in out
