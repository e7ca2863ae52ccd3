"""Base class for upload parsers."""
from abc import ABC, abstractmethod
from typing import Any, Dict, Optional
import logging
from datetime import datetime, timezone

from medallion.errors import IngestionError

logger = logging.getLogger(__name__)


class BaseExtractor(ABC):
    """
    Turns the bytes of one uploaded file into rows.

    Subclasses parse; the base class owns the upload guards shared by every
    format and the bookkeeping of the last parse.
    """

    def __init__(self, name: str, max_bytes: int = 0):
        """
        Args:
            name: Name of the extractor (for logging)
            max_bytes: Largest accepted upload, 0 for no limit
        """
        self.name = name
        self.max_bytes = max_bytes
        self.logger = logging.getLogger(f'{__name__}.{name}')
        self.source_file: Optional[str] = None
        self.extracted_at: Optional[datetime] = None
        self.row_count = 0
        self.malformed_count = 0

    @abstractmethod
    def extract(self, content: bytes, format_hint: str, source_file: str) -> Any:
        """
        Parse one upload.

        Raises:
            IngestionError: If the file as a whole cannot be read
        """
        pass

    @abstractmethod
    def validate_extraction(self, result: Any) -> bool:
        """True when the parsed file exposes the columns the pipeline needs."""
        pass

    def check_upload(self, content: bytes, source_file: str) -> None:
        """
        Reject uploads no parser could use.

        Raises:
            IngestionError: If the content is blank or over max_bytes
        """
        if not content or not content.strip():
            raise IngestionError('File is empty', source_file=source_file)
        if self.max_bytes and len(content) > self.max_bytes:
            raise IngestionError(
                f'File too large: {len(content)} bytes (limit {self.max_bytes})',
                source_file=source_file,
            )

    def log_extraction(self, source_file: str, row_count: int, malformed_count: int = 0) -> None:
        self.source_file = source_file
        self.extracted_at = datetime.now(timezone.utc)
        self.row_count = row_count
        self.malformed_count = malformed_count
        self.logger.info(f'{source_file}: {row_count} rows parsed, {malformed_count} malformed')

    def get_metadata(self) -> Dict[str, Any]:
        """Summary of the last parse."""
        return {
            'extractor': self.name,
            'source_file': self.source_file,
            'extracted_at': self.extracted_at.isoformat() if self.extracted_at else None,
            'row_count': self.row_count,
            'malformed_count': self.malformed_count,
        }
