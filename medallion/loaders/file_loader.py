"""Export layer records to CSV, JSON or Parquet files."""
from typing import Any, Dict, List, Optional
import json
from pathlib import Path

import pandas as pd

from medallion.config.settings import settings
from medallion.loaders.base_loader import BaseLoader, records_to_dicts

FORMATS = ('csv', 'json', 'parquet')

__all__ = ['FORMATS', 'FileLoader', 'records_to_dicts']


class FileLoader(BaseLoader):
    """Write records (e.g. Gold anomalies) to a file."""

    def __init__(self, output_dir: Optional[Path] = None):
        """
        Args:
            output_dir: Base directory for relative paths (defaults to settings.OUTPUT_DATA_DIR)
        """
        super().__init__('file', output_dir or settings.OUTPUT_DATA_DIR)

    @property
    def file_path(self) -> Optional[str]:
        return self.destination

    def load(
        self,
        data: List[Dict[str, Any]],
        file_path: Optional[str] = None,
        format: str = 'csv',
        **kwargs,
    ) -> bool:
        """
        Write records to a file.

        Args:
            data: Record dictionaries (see records_to_dicts)
            file_path: Output file path (relative to output_dir if not absolute)
            format: 'csv', 'json' or 'parquet'
            **kwargs: Passed to the pandas writer

        Returns:
            True if the file was written. An empty record list writes an
            empty file (CSV/JSON) so downstream jobs see a fresh export.
        """
        path = self.resolve_path(file_path)
        if format not in FORMATS:
            raise ValueError(f'Unsupported format: {format} (expected one of {FORMATS})')

        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            if format == 'json':
                with open(path, 'w', encoding='utf-8') as f:
                    json.dump(data, f, indent=2, ensure_ascii=False, default=str)
            elif format == 'csv':
                self._to_frame(data).to_csv(path, index=False, encoding='utf-8', **kwargs)
            else:
                self._to_frame(data).to_parquet(path, index=False, **kwargs)
        except (OSError, ValueError, ImportError) as e:
            self.logger.error(f'Export to {path} failed: {e}')
            return False

        self.record_success(len(data), path)
        return True

    @staticmethod
    def _to_frame(data: List[Dict[str, Any]]) -> pd.DataFrame:
        df = pd.DataFrame(data)
        # Nested values (lists, dicts) are written as JSON text
        for column in df.columns:
            if df[column].map(lambda v: isinstance(v, (list, dict))).any():
                df[column] = df[column].map(
                    lambda v: json.dumps(v, ensure_ascii=False) if isinstance(v, (list, dict)) else v
                )
        return df
