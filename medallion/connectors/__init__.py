"""External service connectors."""
from medallion.connectors.api_connector import APIConnector
from medallion.connectors.prediction_gateway import PredictionGateway

__all__ = ['APIConnector', 'PredictionGateway']
