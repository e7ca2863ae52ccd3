"""
Data schemas for the anomaly medallion layers.

This module defines Pydantic models for every record the pipeline stores or
exchanges with the prediction service.

Usage:
    from schemas import BronzeRecord, SilverRecord, GoldAnomaly
    from schemas.prediction import PredictionResult
"""

from .bronze import BronzeRecord, Provenance
from .silver import SilverRecord
from .prediction import (
    PredictionRequest,
    PredictionResponse,
    PredictionResult,
    PredictionStatus,
)
from .gold import GoldAnomaly, CriticalityLevel, ScoreConfidence
from .report import PipelineReport, ProcessingLog

__all__ = [
    'BronzeRecord',
    'Provenance',
    'SilverRecord',
    'PredictionRequest',
    'PredictionResponse',
    'PredictionResult',
    'PredictionStatus',
    'GoldAnomaly',
    'CriticalityLevel',
    'ScoreConfidence',
    'PipelineReport',
    'ProcessingLog',
]
