"""
Silver -> Gold aggregation.

Scores Silver records through the prediction gateway, applies the business
rules in `scoring` and upserts one GoldAnomaly per equipment identifier.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, Dict, List, Optional, Tuple

from medallion.aggregators import scoring
from medallion.config.settings import settings
from medallion.connectors.prediction_gateway import PredictionGateway
from medallion.errors import PersistenceError
from medallion.layers.gold import GoldStore
from medallion.layers.silver import SilverStore
from medallion.utils.async_utils import KeyedLocks, run_blocking
from medallion.utils.helpers import chunk_list
from schemas.bronze import utc_now
from schemas.gold import GoldAnomaly, ScoreConfidence
from schemas.prediction import PredictionResult
from schemas.report import MAX_REPORTED_ERRORS
from schemas.silver import SilverRecord

logger = logging.getLogger(__name__)

# Fields an update never overwrites
PRESERVED_FIELDS = ('id', 'code', 'status', 'created_at', 'origin')


@dataclass
class AggregationStats:
    """Counters for one Silver -> Gold run."""
    processed: int = 0
    inserted: int = 0
    updated: int = 0
    failed: int = 0
    predictions_attempted: int = 0
    predictions_succeeded: int = 0
    predictions_failed: int = 0
    batches: int = 0
    cancelled: bool = False
    errors: List[str] = field(default_factory=list)

    def add_error(self, message: str) -> None:
        if len(self.errors) < MAX_REPORTED_ERRORS:
            self.errors.append(message)


class GoldAggregator:
    """Upsert scored anomalies into the Gold layer."""

    def __init__(
        self,
        silver: SilverStore,
        gold: GoldStore,
        gateway: PredictionGateway,
        batch_size: Optional[int] = None,
        fallback: Optional[str] = None,
        code_prefix: Optional[str] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        """
        Initialize Gold aggregator.

        Args:
            silver: Source layer
            gold: Target layer
            gateway: Prediction service gateway
            batch_size: Records per batch (defaults to settings.PIPELINE_BATCH_SIZE)
            fallback: 'zero' or 'source' scores for failed predictions
            code_prefix: Anomaly code prefix (defaults to settings.ANOMALY_CODE_PREFIX)
            clock: Returns the current UTC time
        """
        self.silver = silver
        self.gold = gold
        self.gateway = gateway
        self.batch_size = batch_size or settings.PIPELINE_BATCH_SIZE
        self.fallback = fallback or settings.PREDICTION_FALLBACK
        if self.fallback not in ('zero', 'source'):
            raise ValueError(f'Unknown prediction fallback: {self.fallback!r}')
        self.code_prefix = code_prefix or settings.ANOMALY_CODE_PREFIX
        self.clock = clock or utc_now
        self.logger = logging.getLogger(f'{__name__}.gold')

        self._code_lock: Optional[asyncio.Lock] = None
        self._code_sequences: Dict[int, int] = {}

    # ------------------------------------------------------------------
    # Pure rules
    # ------------------------------------------------------------------

    def resolve_scores(
        self,
        record: SilverRecord,
        result: PredictionResult,
    ) -> Tuple[int, int, int, ScoreConfidence]:
        """
        Pick the sub-scores for a record.

        Returns:
            Tuple of (reliability, availability, process_safety, confidence)
        """
        if result.succeeded:
            return (
                int(result.reliability),
                int(result.availability),
                int(result.process_safety),
                ScoreConfidence.PREDICTED,
            )
        if self.fallback == 'source':
            return record.reliability, record.availability, record.process_safety, ScoreConfidence.SOURCE
        return 0, 0, 0, ScoreConfidence.NONE

    def build_anomaly(
        self,
        record: SilverRecord,
        result: PredictionResult,
        code: str,
        now: datetime,
        existing: Optional[GoldAnomaly] = None,
    ) -> GoldAnomaly:
        """
        Apply the business rules to one scored Silver record.

        Identity fields (id, code, status, created_at, origin) are carried
        over from `existing` when given.
        """
        reliability, availability, process_safety, confidence = self.resolve_scores(record, result)
        criticite = scoring.compute_criticite(reliability, availability, process_safety)
        level = scoring.classify_level(criticite)
        severity = scoring.severity_for(level)
        sla_hours = scoring.sla_hours_for(severity)

        anomaly = GoldAnomaly(
            code=code,
            title=scoring.make_title(record.description),
            description=record.description,
            equipment_id=record.equipment_id,
            equipment_name=record.equipment_description,
            section=record.section,
            system=record.system,
            reliability=reliability,
            availability=availability,
            process_safety=process_safety,
            criticite=criticite,
            criticality_level=level,
            score_confidence=confidence,
            risk_label=result.risk_level,
            risk_factors=result.risk_factors if result.succeeded else [],
            confidence=result.confidence if result.succeeded else None,
            severity=severity,
            priority=scoring.priority_for(level),
            category=scoring.categorize(record.system, record.description),
            sla_hours=sla_hours,
            detected_at=record.detected_at,
            due_date=scoring.due_date_for(record.detected_at, sla_hours),
            silver_source_id=record.id,
            created_at=now,
            updated_at=now,
        )
        if existing is not None:
            anomaly = anomaly.model_copy(update={
                name: getattr(existing, name) for name in PRESERVED_FIELDS
            })
        return anomaly

    # ------------------------------------------------------------------
    # Run
    # ------------------------------------------------------------------

    async def run(
        self,
        force: bool = False,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> AggregationStats:
        """
        Aggregate Silver records into Gold.

        Args:
            force: Re-aggregate records already marked processed
            cancel_event: Checked between batches; the in-flight batch always finishes

        Returns:
            AggregationStats
        """
        stats = AggregationStats()
        locks = KeyedLocks()
        self._code_lock = asyncio.Lock()
        self._code_sequences = {}

        loader = self.silver.find_all if force else self.silver.find_unprocessed
        records = await run_blocking(loader)
        self.logger.info(f'Aggregating {len(records)} silver records (force={force})')

        for batch in chunk_list(records, self.batch_size):
            if cancel_event is not None and cancel_event.is_set():
                self.logger.warning('Cancellation requested, stopping before next batch')
                stats.cancelled = True
                break

            results = await self.gateway.apredict(batch)
            stats.predictions_attempted += len(results)
            for result in results:
                if result.succeeded:
                    stats.predictions_succeeded += 1
                else:
                    stats.predictions_failed += 1

            await asyncio.gather(
                *[self._upsert(record, result, locks, stats) for record, result in zip(batch, results)]
            )
            stats.batches += 1
            self.logger.info(
                f'Batch {stats.batches}: {stats.inserted} inserted, {stats.updated} updated, '
                f'{stats.failed} failed'
            )

        return stats

    async def _next_code(self, year: int) -> str:
        async with self._code_lock:
            if year not in self._code_sequences:
                self._code_sequences[year] = await run_blocking(
                    self.gold.max_code_sequence, self.code_prefix, year
                )
            self._code_sequences[year] += 1
            return scoring.format_code(self.code_prefix, year, self._code_sequences[year])

    async def _upsert(
        self,
        record: SilverRecord,
        result: PredictionResult,
        locks: KeyedLocks,
        stats: AggregationStats,
    ) -> None:
        stats.processed += 1
        try:
            async with locks.lock_for(record.equipment_id):
                now = self.clock()
                existing = await run_blocking(self.gold.find_by_equipment, record.equipment_id)
                if existing is None:
                    code = await self._next_code(now.year)
                    anomaly = self.build_anomaly(record, result, code, now)
                    await run_blocking(self.gold.insert, anomaly)
                    stats.inserted += 1
                    self.logger.debug(f'Inserted {anomaly.code} for {record.equipment_id}')
                else:
                    anomaly = self.build_anomaly(record, result, existing.code, now, existing)
                    patch = anomaly.model_dump(mode='json', exclude=set(PRESERVED_FIELDS))
                    await run_blocking(self.gold.update, existing.id, patch)
                    stats.updated += 1
                    self.logger.debug(f'Updated {existing.code} for {record.equipment_id}')
        except PersistenceError as e:
            stats.failed += 1
            stats.add_error(f'silver {record.id} ({record.equipment_id}): {e}')
            self.logger.error(f'Failed to upsert gold anomaly for silver {record.id}: {e}')
            return

        try:
            await run_blocking(self.silver.mark_processed, record.id)
        except PersistenceError as e:
            stats.add_error(f'silver {record.id}: cannot mark processed: {e}')
            self.logger.error(f'Cannot mark silver record {record.id} processed: {e}')
