"""Pytest configuration and fixtures."""
from datetime import datetime, timezone
from typing import Any, Dict, List
from unittest.mock import MagicMock

import pytest
import requests

from medallion.connectors.prediction_gateway import PredictionGateway
from medallion.layers import create_layer_stores
from medallion.mock_prediction_api import build_prediction
from medallion.pipeline import PipelineOrchestrator
from schemas.silver import SilverRecord

FIXED_NOW = datetime(2024, 6, 1, 12, 0, 0, tzinfo=timezone.utc)

CSV_HEADER = (
    "Num_equipement,Systeme,Description,Date de détéction de l'anomalie,"
    "Description de l'équipement,Section propriétaire,Fiabilité Intégrité,"
    "Disponibilté,Process Safety,Criticité"
)


def make_csv(rows: List[str], header: str = CSV_HEADER) -> bytes:
    """Build CSV upload bytes from data lines."""
    return ('\n'.join([header] + rows) + '\n').encode('utf-8')


def make_silver_record(**overrides) -> SilverRecord:
    """Valid SilverRecord with sensible defaults."""
    fields = {
        'bronze_source_id': 'bronze-1',
        'equipment_id': 'P-101',
        'description': 'Fuite huile pompe principale',
        'equipment_description': 'Pompe alimentaire',
        'section': 'MECA',
        'system': 'Pompe',
        'detected_at': datetime(2024, 3, 15, tzinfo=timezone.utc),
        'availability': 2,
        'reliability': 3,
        'process_safety': 4,
        'data_quality_score': 1.0,
        'fingerprint': 'fp-p101',
    }
    fields.update(overrides)
    return SilverRecord(**fields)


def scoring_response(payload: List[Dict[str, Any]]) -> Dict[str, Any]:
    """What the prediction service answers for a request payload."""
    results = [build_prediction(item) for item in payload]
    return {
        'status': 'completed',
        'batch_info': {'successful_predictions': len(results), 'failed_predictions': 0},
        'results': results,
    }


@pytest.fixture
def fixed_clock():
    """Clock returning a constant processing time."""
    return lambda: FIXED_NOW


@pytest.fixture
def sample_csv_bytes() -> bytes:
    """Three anomalies with French headers."""
    return make_csv([
        'P-101,Pompe,Fuite huile pompe principale,15/03/2024,Pompe alimentaire,MECA,3,2,4,9',
        'M-202,Moteur,Vibration excessive moteur,2024-03-16 08:30:00,Moteur ventilateur,ELEC,,,,',
        'T-303,Turbine,Bruit anormal rotor,not a date,Turbine vapeur,MECA,5,5,5,15',
    ])


@pytest.fixture
def memory_stores():
    """Fresh in-memory layer stores."""
    return create_layer_stores('memory')


@pytest.fixture
def scoring_connector():
    """Mock API connector answering like the mock prediction service."""
    connector = MagicMock()
    connector.authenticate.return_value = True
    connector.validate_connection.return_value = True
    connector.post.side_effect = lambda endpoint, json=None, headers=None: scoring_response(json)
    return connector


@pytest.fixture
def failing_connector():
    """Mock API connector whose service is down."""
    connector = MagicMock()
    connector.post.side_effect = requests.ConnectionError('connection refused')
    return connector


@pytest.fixture
def gateway(scoring_connector):
    """Prediction gateway backed by the scoring connector."""
    return PredictionGateway(
        api_url='http://prediction.test/predict',
        batch_size=100,
        max_concurrent_batches=2,
        score_scale=5,
        connector=scoring_connector,
    )


@pytest.fixture
def failing_gateway(failing_connector):
    """Prediction gateway whose every call fails."""
    return PredictionGateway(
        api_url='http://prediction.test/predict',
        batch_size=100,
        connector=failing_connector,
    )


@pytest.fixture
def orchestrator(memory_stores, gateway, fixed_clock):
    """Orchestrator over in-memory stores and a working prediction service."""
    return PipelineOrchestrator(
        stores=memory_stores,
        gateway=gateway,
        fallback='zero',
        clock=fixed_clock,
    )


@pytest.fixture
def mock_database_connection():
    """Mock psycopg2 connection; `conn.cursor_mock` is the cursor used inside `with`."""
    conn = MagicMock()
    cursor = MagicMock()
    cursor.rowcount = 1
    cursor.fetchone.return_value = None
    cursor.fetchall.return_value = []
    conn.cursor.return_value.__enter__.return_value = cursor
    conn.cursor_mock = cursor
    conn.commit.return_value = None
    conn.close.return_value = None
    return conn
