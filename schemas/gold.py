"""
Gold layer schemas.

Final, business-ready anomaly records. There is at most one GoldAnomaly per
equipment identifier; later pipeline runs update it in place.
"""

import uuid
from datetime import datetime
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field

from .bronze import utc_now


class CriticalityLevel(str, Enum):
    LOW = 'Low'
    MEDIUM = 'Medium'
    HIGH = 'High'
    CRITICAL = 'Critical'


class ScoreConfidence(str, Enum):
    """Where the sub-scores of a Gold record came from."""
    PREDICTED = 'predicted'   # external prediction service
    SOURCE = 'source'         # cleaned sub-scores of the source row
    NONE = 'none'             # prediction failed, zero fallback


class GoldAnomaly(BaseModel):
    """
    Actionable anomaly record.

    `status` is owned by the workflow outside the pipeline: set to 'open' on
    insert and never touched by later upserts.
    """

    id: str = Field(default_factory=lambda: str(uuid.uuid4()), description="Primary key")
    code: str = Field(description="Human-readable code, e.g. ABO-2024-001")
    title: str = Field(description="Description truncated on a word boundary")
    description: str
    equipment_id: str = Field(min_length=1, description="Business key (one record per equipment)")
    equipment_name: str = ''
    section: str = ''
    system: Optional[str] = None

    reliability: int = Field(ge=0, le=5)
    availability: int = Field(ge=0, le=5)
    process_safety: int = Field(ge=0, le=5)
    criticite: int = Field(ge=0, le=15, description="reliability + availability + process_safety")
    criticality_level: CriticalityLevel
    score_confidence: ScoreConfidence
    risk_label: Optional[str] = Field(default=None, description="overall_risk_level from the service")
    risk_factors: List[str] = Field(default_factory=list, description="critical_factors from the service")
    confidence: Optional[float] = Field(default=None, description="overall_score from the service, None without a prediction")

    severity: str
    priority: str
    category: str
    sla_hours: int
    status: str = 'open'
    origin: str = 'csv_import'

    detected_at: datetime
    due_date: datetime
    silver_source_id: str
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)
