"""Génération du rapport de run (DataFrame Key/Value et résumé console)."""

from __future__ import annotations

from datetime import datetime

import pandas as pd

from partlink import __version__
from partlink.config import MatchingConfig
from partlink.matching.schema import MatchingResult


def build_report_df(
    result: MatchingResult,
    config: MatchingConfig,
) -> pd.DataFrame:
    """
    Construit le DataFrame pour l'onglet REPORT.

    Contient : résumé du run, candidats par méthode, métriques par étape,
    paramètres, horodatage, version.
    """
    rows: list[tuple[object, object]] = [("Metric", "Value")]
    rows.extend(result.summary.items())

    rows.extend([("", ""), ("Methods", "")])
    for method, count in sorted(result.counts_by_method().items()):
        rows.append((f"method_{method}", count))

    rows.extend([("", ""), ("Stages", "")])
    for m in result.metrics:
        rows.append(
            (
                f"stage{m.stage_number}_{m.stage_name}",
                f"items={m.items_processed} matches={m.matches_found} "
                f"rate={m.match_rate:.1%} avg={m.avg_confidence:.3f} time={m.processing_time_ms:.0f}ms",
            )
        )

    rows.extend([("", ""), ("Parameters", "")])
    rows.extend(config.describe().items())
    rows.extend(
        [
            ("", ""),
            ("timestamp", datetime.now().isoformat()),
            ("version", __version__),
        ]
    )
    return pd.DataFrame(rows, columns=["Key", "Value"])


def print_report_console(result: MatchingResult, config: MatchingConfig) -> None:
    """Affiche un résumé du rapport en console."""
    summary = result.summary
    print("\n=== PartLink Report ===")
    print(f"  Articles magasin:  {summary['total_items']}")
    print(f"  Candidats:         {summary['total_matches']}")
    print(f"  Articles appariés: {summary['matched_items']} ({summary['overall_match_rate']:.1%})")
    print(f"  Étape 0 (règles):  {summary['stage0_matches']}")
    print(f"  Étape 1 (exact):   {summary['stage1_matches']}")
    print(f"  Étape 2 (fuzzy):   {summary['stage2_matches']}")
    for method, count in sorted(result.counts_by_method().items()):
        print(f"    {method:<24} {count}")
    print(f"  Seuil fuzzy:       {config.fuzzy_threshold}")
    print(f"  Version:           {__version__}")
    print(f"  Timestamp:         {datetime.now().isoformat()}")
    print("=======================\n")
