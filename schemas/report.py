"""
Pipeline run reporting schemas.

PipelineReport is what callers of the orchestrator get back; ProcessingLog is
the per-stage job log written to the log store.
"""

import uuid
from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from .bronze import utc_now

MAX_REPORTED_ERRORS = 50


class PipelineReport(BaseModel):
    """Per-stage counters for one pipeline run."""

    run_id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    source_file: Optional[str] = None
    status: str = 'running'
    cancelled: bool = False

    # Ingestion
    rows_parsed: int = 0
    rows_rejected_at_parse: int = 0
    bronze_written: int = 0

    # Bronze -> Silver
    silver_produced: int = 0
    silver_rejected: int = 0
    silver_duplicates: int = 0

    # Prediction
    predictions_attempted: int = 0
    predictions_succeeded: int = 0
    predictions_failed: int = 0

    # Silver -> Gold
    gold_inserted: int = 0
    gold_updated: int = 0
    gold_failed: int = 0

    errors: List[str] = Field(default_factory=list)
    started_at: datetime = Field(default_factory=utc_now)
    finished_at: Optional[datetime] = None

    def add_error(self, message: str) -> None:
        """Keep the first MAX_REPORTED_ERRORS messages."""
        if len(self.errors) < MAX_REPORTED_ERRORS:
            self.errors.append(message)


class ProcessingLog(BaseModel):
    """Job log entry for one stage run."""

    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    job_name: str
    source_layer: Optional[str] = None
    target_layer: str
    records_processed: int = 0
    records_succeeded: int = 0
    records_failed: int = 0
    status: str = 'RUNNING'
    start_time: datetime = Field(default_factory=utc_now)
    end_time: Optional[datetime] = None
    error_message: Optional[str] = None
    metadata: Dict[str, Any] = Field(default_factory=dict)
