"""
Medallion pipeline orchestration.

Sequences ingestion -> Bronze -> Silver -> (prediction) -> Gold, collects the
per-stage counters into a PipelineReport and writes one ProcessingLog per
stage. Only IngestionError escapes: every other failure is scoped to a row,
record or batch and ends up in the report.
"""

import asyncio
import logging
from dataclasses import asdict
from datetime import datetime
from pathlib import Path
from typing import Callable, Optional

from medallion.aggregators.gold_aggregator import AggregationStats, GoldAggregator
from medallion.connectors.prediction_gateway import PredictionGateway
from medallion.errors import IngestionError, PersistenceError, PipelineError
from medallion.extractors.spreadsheet_extractor import (
    ParseResult,
    SpreadsheetExtractor,
    format_from_filename,
)
from medallion.layers import LayerStores, create_layer_stores
from medallion.transformers.silver_transformer import SilverTransformer, TransformStats
from medallion.utils.async_utils import run_blocking
from medallion.utils.helpers import format_duration
from schemas.bronze import Provenance, utc_now
from schemas.report import PipelineReport, ProcessingLog

logger = logging.getLogger(__name__)

BRONZE_TO_SILVER = 'bronze_to_silver'
SILVER_TO_GOLD = 'silver_to_gold'
STAGES = (BRONZE_TO_SILVER, SILVER_TO_GOLD)


class PipelineOrchestrator:
    """Entry point for callers (CLI, HTTP handlers)."""

    def __init__(
        self,
        stores: Optional[LayerStores] = None,
        gateway: Optional[PredictionGateway] = None,
        extractor: Optional[SpreadsheetExtractor] = None,
        batch_size: Optional[int] = None,
        fallback: Optional[str] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        """
        Initialize the orchestrator.

        Args:
            stores: Layer stores (in-memory stores are created if omitted)
            gateway: Prediction gateway (configured from settings if omitted)
            extractor: Spreadsheet parser
            batch_size: Records per transformation/aggregation batch
            fallback: Scores used for failed predictions ('zero' or 'source')
            clock: Returns the current UTC time; injected for reproducible runs
        """
        self.stores = stores or create_layer_stores('memory')
        self.gateway = gateway or PredictionGateway()
        self.extractor = extractor or SpreadsheetExtractor()
        self.clock = clock or utc_now
        self.transformer = SilverTransformer(
            self.stores.bronze, self.stores.silver, batch_size=batch_size, clock=self.clock,
        )
        self.aggregator = GoldAggregator(
            self.stores.silver, self.stores.gold, self.gateway,
            batch_size=batch_size, fallback=fallback, clock=self.clock,
        )

    # ------------------------------------------------------------------
    # Async API
    # ------------------------------------------------------------------

    async def run(
        self,
        content: bytes,
        format_hint: str = 'csv',
        source_file: str = 'upload.csv',
        cancel_event: Optional[asyncio.Event] = None,
    ) -> PipelineReport:
        """
        Run the whole pipeline on one uploaded file.

        Args:
            content: Raw file bytes
            format_hint: Declared format ('csv', 'text/csv', 'xlsx', ...)
            source_file: Original file name
            cancel_event: Set to stop at the next batch boundary

        Returns:
            PipelineReport

        Raises:
            IngestionError: If the file cannot be read (nothing is written)
        """
        report = PipelineReport(source_file=source_file)
        logger.info(f'Pipeline run {report.run_id} started for {source_file}')

        parsed = self.extractor.extract(content, format_hint, source_file)
        if not self.extractor.validate_extraction(parsed):
            logger.warning(
                f'{source_file} has no description or equipment column; '
                'its rows will be rejected by the Silver layer'
            )
        await self._ingest(parsed, report)

        for stage in STAGES:
            if self._cancelled(cancel_event, report):
                break
            await self._run_stage(stage, report, force=False, cancel_event=cancel_event)

        return self._finish(report)

    async def arun_stage(
        self,
        stage: str,
        force: bool = False,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> PipelineReport:
        """
        Run one stage on whatever is pending in its source layer.

        Args:
            stage: 'bronze_to_silver' or 'silver_to_gold'
            force: silver_to_gold only, re-aggregate already processed records
            cancel_event: Set to stop at the next batch boundary
        """
        if stage not in STAGES:
            raise ValueError(f'Unknown stage {stage!r}, expected one of {STAGES}')
        report = PipelineReport()
        await self._run_stage(stage, report, force=force, cancel_event=cancel_event)
        return self._finish(report)

    # ------------------------------------------------------------------
    # Sync wrappers
    # ------------------------------------------------------------------

    def run_full(
        self,
        content: bytes,
        format_hint: str = 'csv',
        source_file: str = 'upload.csv',
    ) -> PipelineReport:
        return asyncio.run(self.run(content, format_hint, source_file))

    def run_file(self, path: Path, format_hint: Optional[str] = None) -> PipelineReport:
        """Run the pipeline on a file from disk, guessing the format from its extension."""
        path = Path(path)
        try:
            content = path.read_bytes()
        except OSError as e:
            raise IngestionError(f'Cannot read {path}: {e}', source_file=path.name) from e
        return self.run_full(content, format_hint or format_from_filename(path.name), path.name)

    def run_stage(self, stage: str, force: bool = False) -> PipelineReport:
        return asyncio.run(self.arun_stage(stage, force=force))

    # ------------------------------------------------------------------
    # Stages
    # ------------------------------------------------------------------

    async def _ingest(self, parsed: ParseResult, report: PipelineReport) -> None:
        """Write the parsed rows to Bronze; malformed rows are counted and skipped."""
        entry = await self._start_log('ingestion', target_layer='bronze', source_layer=None)
        provenance = Provenance(source_file=parsed.source_file, ingested_at=self.clock())
        header_map = parsed.header_map

        report.rows_parsed = len(parsed.rows)
        for row in parsed.rows:
            if not row.is_valid:
                report.rows_rejected_at_parse += 1
                report.add_error(f'line {row.line_number}: {row.to_error()}')
                continue
            try:
                await run_blocking(self.stores.bronze.append, row, provenance, header_map)
                report.bronze_written += 1
            except PersistenceError as e:
                report.add_error(f'line {row.line_number}: {e}')
                logger.error(f'Cannot write bronze record for line {row.line_number}: {e}')

        entry.records_processed = report.rows_parsed
        entry.records_succeeded = report.bronze_written
        entry.records_failed = report.rows_parsed - report.bronze_written
        entry.metadata = {
            **self.extractor.get_metadata(),
            'format': parsed.format,
            'headers': parsed.headers,
            'rows_rejected_at_parse': report.rows_rejected_at_parse,
        }
        await self._finish_log(entry, cancelled=False)
        logger.info(
            f'Ingested {report.bronze_written}/{report.rows_parsed} rows from {parsed.source_file}'
        )

    async def _run_stage(
        self,
        stage: str,
        report: PipelineReport,
        force: bool,
        cancel_event: Optional[asyncio.Event],
    ) -> None:
        if stage == BRONZE_TO_SILVER:
            entry = await self._start_log(stage, target_layer='silver', source_layer='bronze')
        else:
            entry = await self._start_log(stage, target_layer='gold', source_layer='silver')

        try:
            if stage == BRONZE_TO_SILVER:
                stats = await self.transformer.run(cancel_event)
                self._apply_transform_stats(stats, report, entry)
            else:
                stats = await self.aggregator.run(force=force, cancel_event=cancel_event)
                self._apply_aggregation_stats(stats, report, entry)
        except PipelineError as e:
            # A whole stage failing (e.g. store unreachable) is reported, not raised
            report.add_error(f'{stage}: {e}')
            logger.error(f'Stage {stage} failed: {e}')
            await self._finish_log(entry, cancelled=False, error_message=str(e))
            return
        except Exception as e:
            await self._finish_log(entry, cancelled=False, error_message=str(e))
            raise

        if stats.cancelled:
            report.cancelled = True
        await self._finish_log(entry, cancelled=stats.cancelled)

    @staticmethod
    def _apply_transform_stats(stats: TransformStats, report: PipelineReport, entry: ProcessingLog) -> None:
        report.silver_produced += stats.produced
        report.silver_rejected += stats.rejected
        report.silver_duplicates += stats.duplicates
        for error in stats.errors:
            report.add_error(error)

        entry.records_processed = stats.processed
        entry.records_succeeded = stats.produced + stats.duplicates
        entry.records_failed = stats.rejected + stats.failed
        entry.metadata = {k: v for k, v in asdict(stats).items() if k != 'errors'}

    @staticmethod
    def _apply_aggregation_stats(stats: AggregationStats, report: PipelineReport, entry: ProcessingLog) -> None:
        report.predictions_attempted += stats.predictions_attempted
        report.predictions_succeeded += stats.predictions_succeeded
        report.predictions_failed += stats.predictions_failed
        report.gold_inserted += stats.inserted
        report.gold_updated += stats.updated
        report.gold_failed += stats.failed
        for error in stats.errors:
            report.add_error(error)

        entry.records_processed = stats.processed
        entry.records_succeeded = stats.inserted + stats.updated
        entry.records_failed = stats.failed
        entry.metadata = {k: v for k, v in asdict(stats).items() if k != 'errors'}

    # ------------------------------------------------------------------
    # Bookkeeping
    # ------------------------------------------------------------------

    @staticmethod
    def _cancelled(cancel_event: Optional[asyncio.Event], report: PipelineReport) -> bool:
        if cancel_event is not None and cancel_event.is_set():
            report.cancelled = True
        return report.cancelled

    async def _start_log(self, job_name: str, target_layer: str, source_layer: Optional[str]) -> ProcessingLog:
        try:
            return await run_blocking(self.stores.logs.start, job_name, target_layer, source_layer)
        except PersistenceError as e:
            logger.error(f'Cannot write processing log for {job_name}: {e}')
            return ProcessingLog(job_name=job_name, target_layer=target_layer, source_layer=source_layer)

    async def _finish_log(
        self,
        entry: ProcessingLog,
        cancelled: bool,
        error_message: Optional[str] = None,
    ) -> None:
        if error_message:
            status = 'FAILED'
        elif cancelled:
            status = 'CANCELLED'
        elif entry.records_failed:
            status = 'COMPLETED_WITH_ERRORS'
        else:
            status = 'COMPLETED'
        try:
            await run_blocking(self.stores.logs.finish, entry, status, error_message)
        except PersistenceError as e:
            logger.error(f'Cannot write processing log for {entry.job_name}: {e}')

    @staticmethod
    def _finish(report: PipelineReport) -> PipelineReport:
        report.finished_at = utc_now()
        has_errors = any((
            report.rows_rejected_at_parse,
            report.silver_rejected,
            report.predictions_failed,
            report.gold_failed,
            report.errors,
        ))
        if report.cancelled:
            report.status = 'cancelled'
        elif has_errors:
            report.status = 'completed_with_errors'
        else:
            report.status = 'completed'
        logger.info(
            f'Pipeline run {report.run_id} {report.status} in '
            f'{format_duration((report.finished_at - report.started_at).total_seconds())}: '
            f'bronze={report.bronze_written} silver={report.silver_produced} '
            f'gold +{report.gold_inserted}/~{report.gold_updated} '
            f'predictions {report.predictions_succeeded}/{report.predictions_attempted}'
        )
        return report
