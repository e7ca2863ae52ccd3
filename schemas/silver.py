"""
Silver layer schemas.

Cleaned, typed anomaly records. Every required field is present and the three
criticality sub-scores are integers in [1, 5].
"""

import uuid
from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field

from .bronze import utc_now

MIN_SUB_SCORE = 1
MAX_SUB_SCORE = 5


class SilverRecord(BaseModel):
    """Cleaned anomaly record derived from exactly one Bronze record."""

    id: str = Field(default_factory=lambda: str(uuid.uuid4()), description="Primary key")
    bronze_source_id: str = Field(description="FK to the originating BronzeRecord")

    equipment_id: str = Field(min_length=1, description="Trimmed equipment identifier (business key)")
    description: str = Field(min_length=1, description="Normalized anomaly description")
    equipment_description: str = Field(default='', description="Normalized equipment label")
    section: str = Field(default='', description="Normalized owning section label")
    system: Optional[str] = Field(default=None, description="Normalized system label")
    criticality_label: Optional[str] = Field(default=None, description="Source criticality label, informational")

    detected_at: datetime = Field(description="Parsed detection date or processing-time fallback")
    detection_date_fallback: bool = Field(default=False, description="True when detected_at is the fallback")

    availability: int = Field(default=MIN_SUB_SCORE, ge=MIN_SUB_SCORE, le=MAX_SUB_SCORE)
    reliability: int = Field(default=MIN_SUB_SCORE, ge=MIN_SUB_SCORE, le=MAX_SUB_SCORE)
    process_safety: int = Field(default=MIN_SUB_SCORE, ge=MIN_SUB_SCORE, le=MAX_SUB_SCORE)

    data_quality_score: float = Field(ge=0.0, le=1.0, description="Completeness indicator")
    validation_errors: List[str] = Field(default_factory=list, description="Non-fatal cleaning issues")
    fingerprint: str = Field(description="Content hash used for deduplication")

    created_at: datetime = Field(default_factory=utc_now)
    processed: bool = Field(default=False, description="Aggregated into the Gold layer")
    processed_at: Optional[datetime] = Field(default=None)

    @property
    def source_criticite(self) -> int:
        """Sum of the cleaned sub-scores."""
        return self.availability + self.reliability + self.process_safety
