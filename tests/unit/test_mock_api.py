"""Unit tests for the local mock prediction service."""
import pytest

from medallion.mock_prediction_api import build_prediction, create_app, risk_level, score_anomaly
from schemas.prediction import PredictionItem, PredictionResponse


@pytest.fixture
def client():
    app = create_app()
    app.config['TESTING'] = True
    return app.test_client()


class TestScoring:
    """Test the deterministic scorer."""

    def test_scores_are_repeatable_and_in_range(self):
        first = score_anomaly('Fuite huile pompe principale')
        assert first == score_anomaly('Fuite huile pompe principale')
        assert all(1 <= s <= 5 for s in first.values())

    @pytest.mark.parametrize('total,level', [(3, 'LOW'), (4, 'MEDIUM'), (8, 'HIGH'), (11, 'CRITICAL')])
    def test_risk_level(self, total, level):
        assert risk_level(total) == level

    def test_prediction_matches_schema(self):
        item = PredictionItem.model_validate(
            build_prediction({'anomaly_id': 'a1', 'equipment_id': 'P-1', 'description': 'Fuite'})
        )
        assert item.anomaly_id == 'a1'
        assert item.status == 'success'
        assert item.predictions is not None


class TestEndpoints:
    """Test the HTTP surface."""

    def test_health(self, client):
        response = client.get('/health')
        assert response.status_code == 200
        assert response.get_json() == {'status': 'ok'}

    def test_predict(self, client):
        payload = [
            {'anomaly_id': 'a1', 'equipment_id': 'P-1', 'description': 'Fuite', 'equipment_name': 'Pompe'},
            {'equipment_id': 'P-2', 'description': 'No id'},
            {'anomaly_id': 'a3', 'equipment_id': 'P-3', 'description': 'Bruit'},
        ]
        response = client.post('/predict', json=payload)

        assert response.status_code == 200
        body = PredictionResponse.model_validate(response.get_json())
        assert body.status == 'completed'
        assert [r['anomaly_id'] for r in body.results] == ['a1', 'a3']
        assert body.batch_info.failed_predictions == 1
        assert body.batch_info.total_anomalies == 3

    @pytest.mark.parametrize('payload', [{'anomaly_id': 'a1'}, 'text'])
    def test_predict_rejects_non_array(self, client, payload):
        response = client.post('/predict', json=payload)
        assert response.status_code == 400
        assert response.get_json()['status'] == 'error'

    def test_predict_rejects_non_json(self, client):
        response = client.post('/predict', data='not json', content_type='text/plain')
        assert response.status_code == 400
