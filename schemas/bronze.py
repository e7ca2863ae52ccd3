"""
Bronze layer schemas.

The Bronze layer is the raw landing zone: one record per ingested source row,
field values kept verbatim, plus provenance. Records are never edited after
insert; only the processed flag moves once the Silver transformer consumed them.
"""

import uuid
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from pydantic import BaseModel, Field


def _new_id() -> str:
    return str(uuid.uuid4())


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class Provenance(BaseModel):
    """Where and when a batch of rows was ingested."""

    source_file: str = Field(description="Original upload file name")
    ingested_at: datetime = Field(default_factory=utc_now, description="Ingestion timestamp (UTC)")


class BronzeRecord(BaseModel):
    """
    Raw anomaly row as received.

    Field values are the source strings (None when the column was absent or
    blank). `raw_data` keeps the full row keyed by the file's own headers.
    """

    id: str = Field(default_factory=_new_id, description="Generated primary key")
    equipment_id: Optional[str] = Field(default=None, description="Equipment identifier (may be malformed)")
    description: Optional[str] = Field(default=None, description="Free-text anomaly description")
    detection_date_raw: Optional[str] = Field(default=None, description="Unparsed detection date")
    section: Optional[str] = Field(default=None, description="Owning section / department label")
    equipment_description: Optional[str] = Field(default=None, description="Equipment label")
    system: Optional[str] = Field(default=None, description="System label")
    reliability_raw: Optional[str] = Field(default=None, description="Raw reliability/integrity sub-score")
    availability_raw: Optional[str] = Field(default=None, description="Raw availability sub-score")
    process_safety_raw: Optional[str] = Field(default=None, description="Raw process-safety sub-score")
    criticality_raw: Optional[str] = Field(default=None, description="Raw criticality / priority label")

    source_file: str = Field(description="Source file name")
    source_line: Optional[int] = Field(default=None, description="Line (CSV) or row (sheet) number in the source")
    ingested_at: datetime = Field(default_factory=utc_now, description="Ingestion timestamp (UTC)")

    processed: bool = Field(default=False, description="Consumed by the Silver transformer")
    processed_at: Optional[datetime] = Field(default=None, description="When the record was consumed")

    raw_data: Dict[str, Any] = Field(default_factory=dict, description="Original row keyed by header")
