"""Logging configuration for the anomaly pipeline."""
import logging
import logging.handlers
from pathlib import Path
from typing import Optional

from medallion.config.settings import settings


def configure_logging(
    name: str,
    log_dir: Optional[Path] = None,
    console: bool = True,
    level: Optional[str] = None,
) -> logging.Logger:
    """
    Configure logging for a module or package.

    Args:
        name: Logger name (typically __name__ or 'medallion')
        log_dir: Directory for the rotating log file (defaults to settings.LOG_DIR)
        console: Also attach a console handler (leave off when the root logger already has one)
        level: Level name (defaults to settings.LOG_LEVEL)

    Returns:
        Configured logger instance
    """
    logger = logging.getLogger(name)
    logger.setLevel((level or settings.LOG_LEVEL).upper())

    # Handlers are attached once per logger
    if logger.handlers:
        return logger

    formatter = logging.Formatter(
        '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )

    if console:
        console_handler = logging.StreamHandler()
        console_handler.setFormatter(formatter)
        logger.addHandler(console_handler)

    log_dir = Path(log_dir or settings.LOG_DIR)
    log_dir.mkdir(parents=True, exist_ok=True)
    file_handler = logging.handlers.RotatingFileHandler(
        log_dir / f'{name}.log',
        maxBytes=10485760,  # 10MB
        backupCount=5,
        encoding='utf-8',
    )
    file_handler.setFormatter(formatter)
    logger.addHandler(file_handler)

    return logger
