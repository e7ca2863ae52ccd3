#!/usr/bin/env python3
"""
Local stand-in for the anomaly scoring service.

Implements `POST /predict` with the same request/response shapes as the real
service, but derives scores from a hash of the description so results are
repeatable. Point the pipeline at it with:

    PREDICTION_API_URL=http://localhost:3333/predict

USAGE:
    python -m medallion mock-api --port 3333
"""

import hashlib
import logging
import time
from typing import Any, Dict

from flask import Flask, jsonify, request

logger = logging.getLogger(__name__)

DEFAULT_PORT = 3333

SCORE_DESCRIPTIONS = {
    'availability': 'Equipment uptime and operational readiness',
    'reliability': 'Equipment integrity and dependability',
    'process_safety': 'Safety risk assessment and hazard identification',
}


def score_anomaly(description: str) -> Dict[str, int]:
    """Deterministic 1-5 scores from the description text."""
    digest = hashlib.sha256(description.encode('utf-8')).digest()
    return {
        'availability': 1 + digest[0] % 5,
        'reliability': 1 + digest[1] % 5,
        'process_safety': 1 + digest[2] % 5,
    }


def risk_level(total: int) -> str:
    if total >= 11:
        return 'CRITICAL'
    if total >= 8:
        return 'HIGH'
    if total >= 4:
        return 'MEDIUM'
    return 'LOW'


def build_prediction(anomaly: Dict[str, Any]) -> Dict[str, Any]:
    """Response element for one request element."""
    scores = score_anomaly(str(anomaly.get('description', '')))
    total = sum(scores.values())
    weakest = min(scores, key=scores.get)
    return {
        'anomaly_id': anomaly.get('anomaly_id'),
        'equipment_id': anomaly.get('equipment_id'),
        'equipment_name': anomaly.get('equipment_name'),
        'status': 'success',
        'overall_score': round(total / 3, 2),
        'predictions': {
            name: {'score': score, 'description': SCORE_DESCRIPTIONS[name]}
            for name, score in scores.items()
        },
        'risk_assessment': {
            'overall_risk_level': risk_level(total),
            'critical_factors': [f'Low {name}' for name, score in scores.items() if score <= 2],
            'recommended_action': 'Immediate action required' if total >= 11 else 'Plan maintenance',
            'weakest_aspect': weakest,
        },
    }


def create_app() -> Flask:
    """Build the Flask app."""
    app = Flask(__name__)

    @app.route('/health')
    def health():
        return jsonify({'status': 'ok'})

    @app.route('/predict', methods=['POST'])
    def predict():
        started = time.time()
        anomalies = request.get_json(silent=True)
        if not isinstance(anomalies, list):
            return jsonify({'status': 'error', 'error': 'Expected a JSON array of anomalies'}), 400

        results = []
        failed = 0
        for anomaly in anomalies:
            if not isinstance(anomaly, dict) or not anomaly.get('anomaly_id'):
                failed += 1
                continue
            results.append(build_prediction(anomaly))

        logger.info(f'Scored {len(results)} anomalies ({failed} invalid)')
        elapsed = time.time() - started
        return jsonify({
            'status': 'completed',
            'batch_info': {
                'successful_predictions': len(results),
                'failed_predictions': failed,
                'total_anomalies': len(anomalies),
                'processing_time_seconds': round(elapsed, 4),
            },
            'results': results,
        })

    return app


def serve(host: str = '127.0.0.1', port: int = DEFAULT_PORT) -> None:
    """Run the development server until interrupted."""
    logger.info(f'Mock prediction API running at http://{host}:{port}/predict')
    create_app().run(host=host, port=port)


if __name__ == '__main__':
    logging.basicConfig(level=logging.INFO, format='%(asctime)s - %(levelname)s - %(message)s')
    serve()
