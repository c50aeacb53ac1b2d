"""Interface en ligne de commande PartLink."""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path

from partlink import __version__
from partlink.config import MatchingConfig, PartLinkError
from partlink.frames import (
    build_mapping_csv,
    candidates_to_dataframe,
    metrics_to_dataframe,
    save_xlsx,
)
from partlink.matching.linker import Linker
from partlink.matching.orchestrator import BatchOrchestrator
from partlink.matching.schema import MatchingResult
from partlink.patterns import detect_patterns, pattern_matches_from_candidates
from partlink.report import build_report_df, print_report_console
from partlink.snapshot import Snapshot
from partlink.stores import InMemoryCandidateStore


def _load_config(config_path: str | None, project_id: str | None) -> MatchingConfig:
    config = MatchingConfig.load(config_path) if config_path else MatchingConfig()
    config.apply_env()
    if project_id:
        config.project_id = project_id
    return config


def _match(snapshot: Snapshot, config: MatchingConfig, *, batch: bool) -> MatchingResult:
    index = snapshot.build_index(config.project_id)
    guard = snapshot.pair_guard(config.project_id)
    rule_store = snapshot.rule_store()

    if not batch:
        linker = Linker(config, rule_store=rule_store, guard=guard)
        return linker.run(snapshot.store_records, index)

    candidate_store = InMemoryCandidateStore()
    orchestrator = BatchOrchestrator(
        snapshot.store_records,
        index,
        config,
        candidate_store,
        rule_store=rule_store,
        guard=guard,
    )
    metrics = []
    for batch_result in orchestrator.run_all():
        cursor = batch_result.cursor
        print(f"Lot: {cursor.processed}/{cursor.total} traités, {len(batch_result.candidates)} nouveaux candidats")
        metrics.extend(batch_result.metrics)
    return MatchingResult(
        matches=candidate_store.candidates,
        metrics=metrics,
        total_items=len(snapshot.store_records),
    )


def cmd_run(
    snapshot_path: str,
    config_path: str | None,
    output_path: str | None,
    *,
    dry_run: bool = False,
    batch: bool = False,
    mapping_path: str | None = None,
    project_id: str | None = None,
) -> int:
    """Exécute le pipeline PartLink sur un instantané."""
    config = _load_config(config_path, project_id)
    snapshot = Snapshot.load(snapshot_path)
    result = _match(snapshot, config, batch=batch)

    # Générer mapping.csv (--mapping prime s'il est fourni)
    map_path = (
        Path(mapping_path)
        if mapping_path
        else (Path(output_path).parent / "mapping.csv" if output_path else Path(snapshot_path).parent / "mapping.csv")
    )
    build_mapping_csv(result.matches, map_path)
    print(f"Mapping écrit: {map_path}")

    print_report_console(result, config)

    if dry_run:
        print("Mode dry-run: pas d'écriture du fichier de sortie.")
        return 0

    if not output_path:
        print("Erreur: --output requis en mode non dry-run.")
        return 1

    sheets = {
        "Candidates": candidates_to_dataframe(result.matches),
        "Stages": metrics_to_dataframe(result.metrics),
        "REPORT": build_report_df(result, config),
    }
    save_xlsx(output_path, sheets)
    print(f"Fichier de sortie: {output_path}")
    return 0


def cmd_patterns(
    snapshot_path: str,
    config_path: str | None,
    *,
    min_occurrences: int | None = None,
    project_id: str | None = None,
) -> int:
    """Lance le matching puis liste les transformations récurrentes."""
    config = _load_config(config_path, project_id)
    snapshot = Snapshot.load(snapshot_path)
    result = _match(snapshot, config, batch=False)

    store_by_id = {r.id: r for r in snapshot.store_records}
    supplier_by_id = {r.id: r for r in snapshot.supplier_records}
    matches = pattern_matches_from_candidates(result.matches, store_by_id, supplier_by_id)
    patterns = detect_patterns(matches, min_occurrences or config.pattern_min_occurrences)

    if not patterns:
        print("Aucun motif récurrent.")
        return 0
    print(f"Motifs détectés ({len(patterns)}):")
    for p in patterns:
        scope = f"ligne {p.line_code}" if p.line_code else "global"
        print(f"  - {p.signature}: {p.transformation} x{p.match_count} [{p.rule_type}, {scope}]")
    return 0


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(
        prog="partlink",
        description="Rapprochement inventaire magasin / catalogue fournisseur",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument("--verbose", "-v", action="store_true", help="Journalisation détaillée")

    subparsers = parser.add_subparsers(dest="command", help="Commandes")

    # run
    p_run = subparsers.add_parser("run", help="Exécuter le matching")
    p_run.add_argument("--snapshot", "-s", required=True, help="Instantané JSON (articles, règles, historique)")
    p_run.add_argument("--config", "-c", help="Fichier config JSON")
    p_run.add_argument("--output", "-o", help="Fichier xlsx de sortie")
    p_run.add_argument("--dry-run", action="store_true", help="Ne pas écrire le fichier de sortie")
    p_run.add_argument("--batch", "-b", action="store_true", help="Traiter par lots de batch_size")
    p_run.add_argument("--mapping", "-m", help="Chemin pour mapping.csv")
    p_run.add_argument("--project", "-p", help="Identifiant de projet")

    # patterns
    p_pat = subparsers.add_parser("patterns", help="Détecter les transformations récurrentes")
    p_pat.add_argument("--snapshot", "-s", required=True, help="Instantané JSON")
    p_pat.add_argument("--config", "-c", help="Fichier config JSON")
    p_pat.add_argument("--min-occurrences", type=int, help="Occurrences minimales d'un motif")
    p_pat.add_argument("--project", "-p", help="Identifiant de projet")

    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    try:
        if args.command == "run":
            if not args.dry_run and not args.output:
                parser.error("--output requis sauf en --dry-run")
            return cmd_run(
                args.snapshot,
                args.config,
                args.output,
                dry_run=args.dry_run,
                batch=args.batch,
                mapping_path=args.mapping,
                project_id=args.project,
            )
        if args.command == "patterns":
            return cmd_patterns(
                args.snapshot,
                args.config,
                min_occurrences=args.min_occurrences,
                project_id=args.project,
            )
    except PartLinkError as e:
        print(f"Erreur: {e}", file=sys.stderr)
        return 1

    parser.print_help()
    return 0


if __name__ == "__main__":
    sys.exit(main())
