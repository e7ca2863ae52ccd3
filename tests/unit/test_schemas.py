"""
Unit tests for schema definitions.

Tests model structure and validation logic without touching any store.
"""

from datetime import datetime, timezone

import pytest
from pydantic import BaseModel, ValidationError

from schemas import (
    BronzeRecord,
    GoldAnomaly,
    PipelineReport,
    PredictionRequest,
    PredictionResponse,
    PredictionResult,
    ProcessingLog,
    SilverRecord,
)
from schemas.prediction import PredictionStatus
from schemas.report import MAX_REPORTED_ERRORS
from tests.conftest import make_silver_record


class TestSchemaDefinitions:
    """Test that schema definitions are valid Pydantic models."""

    @pytest.mark.parametrize("schema", [
        BronzeRecord,
        SilverRecord,
        GoldAnomaly,
        PredictionRequest,
        PredictionResponse,
        PredictionResult,
        PipelineReport,
        ProcessingLog,
    ])
    def test_schema_is_pydantic_model(self, schema):
        """Each schema should be a valid Pydantic BaseModel."""
        assert issubclass(schema, BaseModel)

    @pytest.mark.parametrize("schema", [BronzeRecord, SilverRecord, GoldAnomaly, ProcessingLog])
    def test_stored_schema_has_primary_key(self, schema):
        """Stored records carry a generated id."""
        assert 'id' in schema.model_fields
        assert schema.model_fields['id'].default_factory is not None


class TestBronzeRecord:
    """Test raw records."""

    def test_everything_optional_but_provenance(self):
        record = BronzeRecord(source_file='anomalies.csv')
        assert record.equipment_id is None
        assert record.processed is False
        assert record.ingested_at.tzinfo is not None

    def test_ids_are_unique(self):
        assert BronzeRecord(source_file='a').id != BronzeRecord(source_file='a').id


class TestSilverRecord:
    """Test cleaned records."""

    @pytest.mark.parametrize('score', [0, 6])
    def test_sub_scores_bounded(self, score):
        with pytest.raises(ValidationError):
            make_silver_record(availability=score)

    def test_required_text_not_empty(self):
        with pytest.raises(ValidationError):
            make_silver_record(equipment_id='')

    def test_quality_score_bounded(self):
        with pytest.raises(ValidationError):
            make_silver_record(data_quality_score=1.5)

    def test_json_round_trip_keeps_utc(self):
        record = make_silver_record()
        restored = SilverRecord.model_validate(record.model_dump(mode='json'))
        assert restored.detected_at == datetime(2024, 3, 15, tzinfo=timezone.utc)


class TestPredictionSchemas:
    """Test service payloads."""

    def test_request_uses_service_field_names(self):
        request = PredictionRequest(record_id='a1', equipment_id='P-1', description='Fuite')
        assert request.to_payload() == {
            'anomaly_id': 'a1', 'equipment_id': 'P-1', 'description': 'Fuite', 'equipment_name': '',
        }

    def test_request_accepts_alias(self):
        request = PredictionRequest.model_validate({'anomaly_id': 'a1', 'equipment_id': 'P', 'description': 'd'})
        assert request.record_id == 'a1'

    def test_failed_result(self):
        result = PredictionResult.failed('a1', 'timeout', equipment_id='P-1')
        assert result.status == PredictionStatus.FAILED
        assert result.succeeded is False
        assert result.reliability is None


class TestPipelineReport:
    """Test run reports."""

    def test_defaults(self):
        report = PipelineReport()
        assert report.status == 'running'
        assert report.rows_parsed == 0
        assert report.errors == []

    def test_error_list_is_capped(self):
        report = PipelineReport()
        for i in range(MAX_REPORTED_ERRORS + 10):
            report.add_error(f'error {i}')
        assert len(report.errors) == MAX_REPORTED_ERRORS
        assert report.errors[0] == 'error 0'
