"""
Prediction service schemas.

Request/response models for the external scoring service (`POST /predict`)
and the per-record result the pipeline works with.
"""

from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field


class PredictionStatus(str, Enum):
    SUCCESS = 'success'
    FAILED = 'failed'


class PredictionRequest(BaseModel):
    """One element of the request array."""

    model_config = {'populate_by_name': True}

    record_id: str = Field(alias='anomaly_id', description="Silver record id")
    equipment_id: str
    description: str
    equipment_name: str = ''

    def to_payload(self) -> dict:
        return self.model_dump(by_alias=True)


class ScoreItem(BaseModel):
    score: float
    description: Optional[str] = None


class PredictionScores(BaseModel):
    reliability: ScoreItem
    availability: ScoreItem
    process_safety: ScoreItem


class RiskAssessment(BaseModel):
    overall_risk_level: Optional[str] = None
    critical_factors: List[str] = Field(default_factory=list)
    recommended_action: Optional[str] = None


class PredictionItem(BaseModel):
    """One element of the response `results` array."""

    anomaly_id: str
    status: str
    equipment_id: Optional[str] = None
    predictions: Optional[PredictionScores] = None
    risk_assessment: Optional[RiskAssessment] = None
    overall_score: Optional[float] = None


class BatchInfo(BaseModel):
    successful_predictions: int = 0
    failed_predictions: int = 0
    total_anomalies: Optional[int] = None
    processing_time_seconds: Optional[float] = None


class PredictionResponse(BaseModel):
    """
    Response envelope. Elements of `results` are validated one by one by the
    gateway so a single bad element only fails its own record.
    """

    status: str
    batch_info: BatchInfo = Field(default_factory=BatchInfo)
    results: List[dict]


class PredictionResult(BaseModel):
    """Outcome of scoring one record. Failed results carry no scores."""

    record_id: str
    equipment_id: Optional[str] = None
    status: PredictionStatus
    reliability: Optional[float] = None
    availability: Optional[float] = None
    process_safety: Optional[float] = None
    risk_level: Optional[str] = None
    risk_factors: List[str] = Field(default_factory=list, description="risk_assessment.critical_factors")
    confidence: Optional[float] = Field(default=None, description="overall_score reported by the service")
    error: Optional[str] = None

    @property
    def succeeded(self) -> bool:
        return self.status == PredictionStatus.SUCCESS

    @classmethod
    def failed(cls, record_id: str, error: str, equipment_id: Optional[str] = None) -> 'PredictionResult':
        return cls(
            record_id=record_id,
            equipment_id=equipment_id,
            status=PredictionStatus.FAILED,
            error=error,
        )
