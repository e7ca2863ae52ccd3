"""
Configuration settings for the anomaly medallion pipeline.
Load configuration from environment variables or a .env file.
"""
import os
from pathlib import Path
from dotenv import load_dotenv

# Variables already in the environment win over .env
_ENV_FILE = Path(__file__).resolve().parents[2] / '.env'
if _ENV_FILE.exists():
    load_dotenv(_ENV_FILE, override=False)


class Settings:
    """Pipeline settings, read once from the environment at import time."""

    PROJECT_ROOT = _ENV_FILE.parent
    DATA_DIR = PROJECT_ROOT / 'data'
    OUTPUT_DATA_DIR = DATA_DIR / 'output'

    # Logging
    LOG_LEVEL = os.getenv('LOG_LEVEL', 'INFO')
    LOG_DIR = Path(os.getenv('LOG_DIR', str(PROJECT_ROOT / 'logs')))

    # ============================================================================
    # Prediction Service Configuration (API)
    # ============================================================================
    PREDICTION_API_URL = os.getenv('PREDICTION_API_URL', 'http://localhost:3333/predict')
    PREDICTION_API_KEY = os.getenv('PREDICTION_API_KEY')
    PREDICTION_TIMEOUT = int(os.getenv('PREDICTION_TIMEOUT', '30'))
    PREDICTION_BATCH_SIZE = int(os.getenv('PREDICTION_BATCH_SIZE', '100'))
    PREDICTION_MAX_CONCURRENT_BATCHES = int(os.getenv('PREDICTION_MAX_CONCURRENT_BATCHES', '4'))
    # 5 when the service scores on 1-5, 1 when it scores on 0-1
    PREDICTION_SCORE_SCALE = int(os.getenv('PREDICTION_SCORE_SCALE', '5'))
    # 'zero' or 'source' (use the cleaned sub-scores of the record)
    PREDICTION_FALLBACK = os.getenv('PREDICTION_FALLBACK', 'zero')

    # ============================================================================
    # Pipeline Configuration
    # ============================================================================
    PIPELINE_BATCH_SIZE = int(os.getenv('PIPELINE_BATCH_SIZE', '100'))
    MAX_UPLOAD_BYTES = int(os.getenv('MAX_UPLOAD_BYTES', str(10 * 1024 * 1024)))
    ANOMALY_CODE_PREFIX = os.getenv('ANOMALY_CODE_PREFIX', 'ABO')

    # ============================================================================
    # Database Configuration
    # ============================================================================
    STORE_BACKEND = os.getenv('STORE_BACKEND', 'memory')
    DB_HOST = os.getenv('DB_HOST', 'localhost')
    DB_PORT = int(os.getenv('DB_PORT', '5432'))
    DB_NAME = os.getenv('DB_NAME', 'anomalies')
    DB_USER = os.getenv('DB_USER', 'postgres')
    DB_PASSWORD = os.getenv('DB_PASSWORD', 'postgres')

    @classmethod
    def validate_required_settings(cls) -> list[str]:
        """
        Check the settings the pipeline cannot run without.

        Returns:
            Human-readable problems, empty when the configuration is usable
        """
        problems = []

        if not cls.PREDICTION_API_URL:
            problems.append('PREDICTION_API_URL')
        if cls.PREDICTION_FALLBACK not in ('zero', 'source'):
            problems.append('PREDICTION_FALLBACK (expected zero or source)')
        if cls.PREDICTION_SCORE_SCALE not in (1, 5):
            problems.append('PREDICTION_SCORE_SCALE (expected 1 or 5)')
        if cls.STORE_BACKEND not in ('memory', 'postgres'):
            problems.append('STORE_BACKEND (expected memory or postgres)')
        if cls.PIPELINE_BATCH_SIZE < 1 or cls.PREDICTION_BATCH_SIZE < 1:
            problems.append('PIPELINE_BATCH_SIZE / PREDICTION_BATCH_SIZE must be positive')

        return problems


settings = Settings()
