"""
Bronze -> Silver transformation.

Cleans and type-coerces raw anomaly rows, scores their completeness and
drops content duplicates. Batches are transformed concurrently with a barrier
between batches; a failure on one record never affects its siblings.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, List, Optional

from medallion.config.settings import settings
from medallion.errors import PersistenceError, ValidationError
from medallion.layers.bronze import BronzeStore
from medallion.layers.silver import SilverStore
from medallion.transformers.base_transformer import BaseTransformer
from medallion.utils.async_utils import KeyedLocks, run_blocking
from medallion.utils.helpers import content_hash
from medallion.utils.validators import (
    normalize_optional,
    normalize_text,
    parse_detection_date,
    parse_sub_score,
)
from schemas.bronze import BronzeRecord, utc_now
from schemas.report import MAX_REPORTED_ERRORS
from schemas.silver import MAX_SUB_SCORE, MIN_SUB_SCORE, SilverRecord

logger = logging.getLogger(__name__)

REQUIRED_WEIGHT = 0.6
OPTIONAL_WEIGHT = 0.4


@dataclass
class TransformStats:
    """Counters for one Bronze -> Silver run."""
    processed: int = 0
    produced: int = 0
    rejected: int = 0
    duplicates: int = 0
    failed: int = 0
    batches: int = 0
    cancelled: bool = False
    errors: List[str] = field(default_factory=list)

    def add_error(self, message: str) -> None:
        if len(self.errors) < MAX_REPORTED_ERRORS:
            self.errors.append(message)


def compute_fingerprint(record: SilverRecord, raw_date: Optional[str] = None) -> str:
    """
    Content hash identifying a duplicate row.

    A fallback detection date is the processing time of the run, so the raw
    date text is hashed instead to keep the fingerprint stable across runs.
    """
    if record.detection_date_fallback:
        date_part = normalize_text(raw_date)
    else:
        date_part = record.detected_at.isoformat()
    return content_hash(
        record.equipment_id.casefold(),
        record.description.casefold(),
        date_part,
        record.equipment_description.casefold(),
        record.section.casefold(),
    )


def compute_data_quality(
    equipment_id: str,
    description: str,
    date_parsed: bool,
    equipment_description: str,
    section: str,
    optional_present: List[bool],
) -> float:
    """
    Completeness score in [0, 1].

    Required fields share REQUIRED_WEIGHT equally, optional ones share
    OPTIONAL_WEIGHT equally.
    """
    required = [bool(equipment_id), bool(description), date_parsed,
                bool(equipment_description), bool(section)]
    score = REQUIRED_WEIGHT * sum(required) / len(required)
    if optional_present:
        score += OPTIONAL_WEIGHT * sum(optional_present) / len(optional_present)
    return round(score, 2)


class SilverTransformer(BaseTransformer):
    """Transform unprocessed Bronze records into Silver records."""

    def __init__(
        self,
        bronze: BronzeStore,
        silver: SilverStore,
        batch_size: Optional[int] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        """
        Initialize Silver transformer.

        Args:
            bronze: Source layer
            silver: Target layer
            batch_size: Records per concurrent batch (defaults to settings.PIPELINE_BATCH_SIZE)
            clock: Returns the processing timestamp, read once per run (defaults to UTC now)
        """
        super().__init__('silver', batch_size or settings.PIPELINE_BATCH_SIZE)
        self.bronze = bronze
        self.silver = silver
        self.clock = clock or utc_now

    def transform_record(self, record: BronzeRecord, processed_at: datetime) -> SilverRecord:
        """
        Clean one Bronze record.

        Args:
            record: Raw record
            processed_at: Fallback detection date for this run

        Returns:
            SilverRecord (not yet persisted)

        Raises:
            ValidationError: If the description or equipment id is missing
        """
        description = normalize_optional(record.description)
        if not description:
            raise ValidationError('Missing description', record_id=record.id, field='description')
        equipment_id = normalize_optional(record.equipment_id)
        if not equipment_id:
            raise ValidationError('Missing equipment identifier', record_id=record.id, field='equipment_id')

        equipment_description = normalize_optional(record.equipment_description) or ''
        section = normalize_optional(record.section) or ''
        system = normalize_optional(record.system)
        criticality_label = normalize_optional(record.criticality_raw)

        detected_at, used_fallback = parse_detection_date(record.detection_date_raw, processed_at)

        validation_errors: List[str] = []
        if used_fallback:
            validation_errors.append(
                f'detection date {record.detection_date_raw!r} unparseable, using processing time'
            )

        scores = {}
        optional_present = [bool(system)]
        for name, raw in (
            ('availability', record.availability_raw),
            ('reliability', record.reliability_raw),
            ('process_safety', record.process_safety_raw),
        ):
            score, error = parse_sub_score(raw, MIN_SUB_SCORE, MAX_SUB_SCORE)
            scores[name] = score
            optional_present.append(raw is not None and error is None)
            if error:
                validation_errors.append(f'{name}: {error}')
        optional_present.append(bool(criticality_label))

        silver = SilverRecord(
            bronze_source_id=record.id,
            equipment_id=equipment_id,
            description=description,
            equipment_description=equipment_description,
            section=section,
            system=system,
            criticality_label=criticality_label,
            detected_at=detected_at,
            detection_date_fallback=used_fallback,
            data_quality_score=compute_data_quality(
                equipment_id, description, not used_fallback,
                equipment_description, section, optional_present,
            ),
            validation_errors=validation_errors,
            fingerprint='',
            **scores,
        )
        silver.fingerprint = compute_fingerprint(silver, record.detection_date_raw)
        return silver

    def transform(self, data: List[BronzeRecord]) -> List[SilverRecord]:
        """
        Clean a list of Bronze records without persisting anything.

        Invalid records are logged and dropped.
        """
        processed_at = self.clock()
        transformed = []
        for record in data:
            try:
                transformed.append(self.transform_record(record, processed_at))
            except ValidationError as e:
                self.logger.warning(f'Rejected bronze record {record.id}: {e}')
        return transformed

    def validate_transformation(self, data: List[SilverRecord]) -> bool:
        """
        Validate transformed records have their business key and scores in range.

        Args:
            data: Transformed records

        Returns:
            True if all records are valid
        """
        for record in data:
            if not record.equipment_id or not record.description:
                self.logger.error(f'Silver record {record.id} missing required fields')
                return False
            for score in (record.availability, record.reliability, record.process_safety):
                if not MIN_SUB_SCORE <= score <= MAX_SUB_SCORE:
                    self.logger.error(f'Silver record {record.id} has out-of-range score {score}')
                    return False
        self.logger.info(f'Validated {len(data)} silver records')
        return True

    async def run(self, cancel_event: Optional[asyncio.Event] = None) -> TransformStats:
        """
        Transform every unprocessed Bronze record.

        Args:
            cancel_event: Checked between batches; the in-flight batch always finishes

        Returns:
            TransformStats
        """
        stats = TransformStats()
        processed_at = self.clock()
        locks = KeyedLocks()

        pending = await run_blocking(self.bronze.find_unprocessed)
        self.logger.info(f'Found {len(pending)} unprocessed bronze records')

        async def handle(record: BronzeRecord) -> None:
            await self._process_record(record, processed_at, locks, stats)

        stats.batches, stats.cancelled = await self.process_in_batches(pending, handle, cancel_event)
        self.logger.info(
            f'{stats.batches} batch(es): {stats.produced} produced, {stats.rejected} rejected, '
            f'{stats.duplicates} duplicates, {stats.failed} failed'
        )
        return stats

    async def _process_record(
        self,
        record: BronzeRecord,
        processed_at: datetime,
        locks: KeyedLocks,
        stats: TransformStats,
    ) -> None:
        stats.processed += 1
        try:
            silver = self.transform_record(record, processed_at)
        except ValidationError as e:
            stats.rejected += 1
            stats.add_error(f'bronze {record.id} (line {record.source_line}): {e}')
            self.logger.warning(f'Rejected bronze record {record.id}: {e}')
            await self._mark_bronze(record, stats)
            return

        try:
            async with locks.lock_for(silver.fingerprint):
                existing = await run_blocking(self.silver.find_by_fingerprint, silver.fingerprint)
                if existing is not None:
                    stats.duplicates += 1
                    self.logger.info(
                        f'Duplicate of silver record {existing.id} skipped: bronze {record.id}'
                    )
                else:
                    await run_blocking(self.silver.add, silver)
                    stats.produced += 1
        except PersistenceError as e:
            stats.failed += 1
            stats.add_error(f'bronze {record.id}: {e}')
            self.logger.error(f'Failed to store silver record for bronze {record.id}: {e}')
            return

        await self._mark_bronze(record, stats)

    async def _mark_bronze(self, record: BronzeRecord, stats: TransformStats) -> None:
        try:
            await run_blocking(self.bronze.mark_processed, record.id)
        except PersistenceError as e:
            stats.add_error(f'bronze {record.id}: cannot mark processed: {e}')
            self.logger.error(f'Cannot mark bronze record {record.id} processed: {e}')
