"""
Error taxonomy for the anomaly pipeline.

Only IngestionError is fatal and escapes the orchestrator. Every other error
is scoped to a row, a record or a prediction batch and is absorbed into the
PipelineReport counters.
"""
from typing import Optional


class PipelineError(Exception):
    """Base class for all pipeline errors."""


class IngestionError(PipelineError):
    """The source file cannot be read at all (encoding, archive, header)."""

    def __init__(self, message: str, source_file: Optional[str] = None):
        super().__init__(message)
        self.source_file = source_file


class RowParseError(PipelineError):
    """A single source row is malformed."""

    def __init__(self, message: str, line_number: Optional[int] = None):
        super().__init__(message)
        self.line_number = line_number


class ValidationError(PipelineError):
    """A Bronze record is missing a field required by the Silver layer."""

    def __init__(self, message: str, record_id: Optional[str] = None, field: Optional[str] = None):
        super().__init__(message)
        self.record_id = record_id
        self.field = field


class PredictionServiceError(PipelineError):
    """The prediction service call for one batch failed."""

    def __init__(self, message: str, batch_size: int = 0, status_code: Optional[int] = None):
        super().__init__(message)
        self.batch_size = batch_size
        self.status_code = status_code


class PersistenceError(PipelineError):
    """A store operation on a single record failed."""

    def __init__(self, message: str, record_id: Optional[str] = None):
        super().__init__(message)
        self.record_id = record_id
