"""
Command line interface for the anomaly medallion pipeline.

Usage:
    python -m medallion run FILE [--format FMT]
    python -m medallion stage {bronze_to_silver,silver_to_gold} [--force]
    python -m medallion export OUTPUT [--format csv|json|parquet]
    python -m medallion status [--check-service] [--detail]
    python -m medallion clear [--layer bronze|silver|gold|logs]
    python -m medallion mock-api [--port 3333]

Global options:
    --backend memory|postgres   Store backend (default: STORE_BACKEND)
    --verbose                   Debug logging
    --json                      Print reports as JSON
    --log-dir DIR               Also log to DIR/medallion.log (rotating)

With the memory backend every command starts from empty stores, so `stage`,
`export`, `status` and `clear` are only useful against postgres.

Exit codes:
    0   run finished (possibly with row/record level errors in the report)
    1   the input file could not be ingested
    2   invalid configuration
"""

import argparse
import json
import logging
import sys
from pathlib import Path

from medallion.config.settings import settings
from medallion.errors import IngestionError
from medallion.layers import LAYER_TABLES, create_layer_stores
from medallion.loaders.file_loader import FORMATS, FileLoader, records_to_dicts
from medallion.pipeline import STAGES, PipelineOrchestrator
from medallion.utils.logger import configure_logging
from schemas.report import PipelineReport


def setup_logging(verbose: bool = False) -> None:
    """Configure logging."""
    level = logging.DEBUG if verbose else getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO)
    logging.basicConfig(
        level=level,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        datefmt='%H:%M:%S',
    )


def print_report(report: PipelineReport, as_json: bool = False) -> None:
    """Print a pipeline report."""
    if as_json:
        print(json.dumps(report.model_dump(mode='json'), indent=2, ensure_ascii=False))
        return

    print(f'Run {report.run_id}: {report.status}' + (' (cancelled)' if report.cancelled else ''))
    if report.source_file:
        print(f'  Source:       {report.source_file}')
    print(f'  Parsed:       {report.rows_parsed} rows ({report.rows_rejected_at_parse} malformed)')
    print(f'  Bronze:       {report.bronze_written} written')
    print(f'  Silver:       {report.silver_produced} produced, {report.silver_rejected} rejected, '
          f'{report.silver_duplicates} duplicates')
    print(f'  Predictions:  {report.predictions_succeeded}/{report.predictions_attempted} succeeded')
    print(f'  Gold:         {report.gold_inserted} inserted, {report.gold_updated} updated, '
          f'{report.gold_failed} failed')
    if report.errors:
        print(f'  Errors ({len(report.errors)} shown):')
        for error in report.errors:
            print(f'    - {error}')


def cmd_run(args, orchestrator: PipelineOrchestrator) -> int:
    """Run the full pipeline on a file."""
    try:
        report = orchestrator.run_file(Path(args.file), args.format)
    except IngestionError as e:
        print(f'ERROR: cannot ingest {args.file}: {e}', file=sys.stderr)
        return 1
    print_report(report, args.json)
    return 0


def cmd_stage(args, orchestrator: PipelineOrchestrator) -> int:
    """Run one stage on pending records."""
    report = orchestrator.run_stage(args.name, force=args.force)
    print_report(report, args.json)
    return 0


def cmd_export(args, orchestrator: PipelineOrchestrator) -> int:
    """Export Gold anomalies to a file."""
    anomalies = orchestrator.stores.gold.find_all()
    loader = FileLoader()
    fmt = args.format or Path(args.output).suffix.lstrip('.').lower() or 'csv'
    if fmt not in FORMATS:
        print(f'ERROR: unsupported export format {fmt!r} (expected one of {FORMATS})', file=sys.stderr)
        return 2
    if not loader.load(records_to_dicts(anomalies), file_path=args.output, format=fmt):
        print(f'ERROR: export to {args.output} failed', file=sys.stderr)
        return 2
    if args.json:
        print(json.dumps(loader.get_load_stats(), indent=2))
    else:
        print(f'Exported {loader.loaded_count} anomalies to {loader.file_path}')
    return 0


def cmd_status(args, orchestrator: PipelineOrchestrator) -> int:
    """Show record counts per layer."""
    counts = orchestrator.stores.store_stats() if args.detail else orchestrator.stores.counts()
    if args.check_service:
        connector = orchestrator.gateway.connector
        counts['prediction_service'] = 'up' if connector.validate_connection() else 'down'
    if args.json:
        print(json.dumps(counts, indent=2))
    else:
        for layer, count in counts.items():
            print(f'  {layer:<8} {count}')
    return 0


def cmd_clear(args, orchestrator: PipelineOrchestrator) -> int:
    """Delete records from one or all layers."""
    deleted = orchestrator.stores.clear(args.layer)
    for layer, count in deleted.items():
        print(f'Cleared {count} records from {layer}')
    return 0


def cmd_mock_api(args) -> int:
    """Serve the mock prediction API."""
    from medallion.mock_prediction_api import serve

    serve(host=args.host, port=args.port)
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog='medallion',
        description='Anomaly medallion pipeline (Bronze -> Silver -> Gold)',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__,
    )
    parser.add_argument(
        '--backend',
        choices=['memory', 'postgres'],
        help='Store backend (default: STORE_BACKEND setting)',
    )
    parser.add_argument('--verbose', '-v', action='store_true', help='Verbose output')
    parser.add_argument('--json', action='store_true', help='Output as JSON')
    parser.add_argument(
        '--log-dir',
        type=Path,
        help='Also write a rotating log file (medallion.log) to this directory',
    )

    subparsers = parser.add_subparsers(dest='command', required=True)

    run_parser = subparsers.add_parser('run', help='Ingest a file and run every stage')
    run_parser.add_argument('file', help='CSV or Excel file')
    run_parser.add_argument('--format', help='Declared format (default: from file extension)')

    stage_parser = subparsers.add_parser('stage', help='Run a single stage')
    stage_parser.add_argument('name', choices=STAGES)
    stage_parser.add_argument(
        '--force',
        action='store_true',
        help='Re-aggregate already processed Silver records (silver_to_gold)',
    )

    export_parser = subparsers.add_parser('export', help='Export Gold anomalies')
    export_parser.add_argument('output', help='Output file (relative paths go under data/output)')
    export_parser.add_argument('--format', choices=FORMATS, help='Default: from file extension')

    status_parser = subparsers.add_parser('status', help='Show record counts per layer')
    status_parser.add_argument(
        '--check-service',
        action='store_true',
        help='Also probe the prediction service health endpoint',
    )
    status_parser.add_argument(
        '--detail',
        action='store_true',
        help='Show the backing store of each layer with its key field',
    )

    clear_parser = subparsers.add_parser('clear', help='Delete layer records')
    clear_parser.add_argument('--layer', choices=list(LAYER_TABLES), help='Default: all layers')

    mock_parser = subparsers.add_parser('mock-api', help='Serve the mock prediction API')
    mock_parser.add_argument('--host', default='127.0.0.1')
    mock_parser.add_argument('--port', type=int, default=3333)

    return parser


def main(argv=None) -> int:
    """Main CLI entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)

    setup_logging(args.verbose)
    if args.log_dir:
        configure_logging('medallion', log_dir=args.log_dir, console=False,
                          level='DEBUG' if args.verbose else None)

    if args.command == 'mock-api':
        return cmd_mock_api(args)

    problems = settings.validate_required_settings()
    if problems:
        print('ERROR: invalid configuration:', file=sys.stderr)
        for problem in problems:
            print(f'  - {problem}', file=sys.stderr)
        return 2

    orchestrator = PipelineOrchestrator(stores=create_layer_stores(args.backend))

    commands = {
        'run': cmd_run,
        'stage': cmd_stage,
        'export': cmd_export,
        'status': cmd_status,
        'clear': cmd_clear,
    }
    try:
        return commands[args.command](args, orchestrator)
    finally:
        orchestrator.gateway.close()


if __name__ == '__main__':
    sys.exit(main())
