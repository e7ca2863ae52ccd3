"""Base class for exporters of layer records."""
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence

from pydantic import BaseModel
import logging


def records_to_dicts(records: Sequence[BaseModel]) -> List[Dict[str, Any]]:
    """Dump pydantic records to JSON-safe dictionaries."""
    return [r.model_dump(mode='json') for r in records]


class BaseLoader(ABC):
    """
    Writes record dictionaries somewhere outside the stores.

    Relative destinations resolve under `output_dir`. Counters describe the
    most recent successful load only.
    """

    def __init__(self, name: str, output_dir: Path):
        self.name = name
        self.output_dir = Path(output_dir)
        self.logger = logging.getLogger(f'{__name__}.{name}')
        self.loaded_count = 0
        self.destination: Optional[str] = None

    @abstractmethod
    def load(self, data: List[Dict[str, Any]], file_path: Optional[str] = None, **kwargs) -> bool:
        """Write records; False when the destination could not be written."""
        pass

    def resolve_path(self, file_path: Optional[str]) -> Path:
        if not file_path:
            raise ValueError('file_path is required')
        path = Path(file_path)
        return path if path.is_absolute() else self.output_dir / path

    def record_success(self, count: int, destination: Path) -> None:
        self.loaded_count = count
        self.destination = str(destination)
        self.logger.info(f'Exported {count} records to {destination}')

    def validate_load(self, record_count: int) -> bool:
        """True when the last load wrote `record_count` records."""
        return self.loaded_count == record_count

    def get_load_stats(self) -> Dict[str, Any]:
        return {
            'loader': self.name,
            'loaded_count': self.loaded_count,
            'file_path': self.destination,
        }
