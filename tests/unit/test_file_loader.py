"""Unit tests for the file exporter."""
import json

import pandas as pd
import pytest

from medallion.loaders.file_loader import FileLoader, records_to_dicts
from tests.conftest import make_silver_record


@pytest.fixture
def records():
    return records_to_dicts([
        make_silver_record(equipment_id='P-101', fingerprint='fp-1', validation_errors=['availability: x']),
        make_silver_record(equipment_id='M-202', fingerprint='fp-2'),
    ])


class TestFileLoader:
    """Test exporting records."""

    def test_loader_initialization(self, tmp_path):
        loader = FileLoader(output_dir=tmp_path)
        assert loader.name == 'file'
        assert loader.loaded_count == 0

    def test_records_to_dicts_is_json_safe(self, records):
        assert isinstance(records[0]['detected_at'], str)
        json.dumps(records)

    def test_csv_export(self, tmp_path, records):
        loader = FileLoader(output_dir=tmp_path)
        assert loader.load(records, 'exports/silver.csv', format='csv') is True

        df = pd.read_csv(tmp_path / 'exports' / 'silver.csv')
        assert list(df['equipment_id']) == ['P-101', 'M-202']
        assert json.loads(df['validation_errors'][0]) == ['availability: x']
        assert loader.validate_load(2) is True
        assert loader.get_load_stats()['file_path'].endswith('silver.csv')

    def test_json_export(self, tmp_path, records):
        target = tmp_path / 'silver.json'
        loader = FileLoader(output_dir=tmp_path / 'unused')
        assert loader.load(records, str(target), format='json') is True

        with open(target, encoding='utf-8') as f:
            assert json.load(f) == records

    def test_parquet_export(self, tmp_path, records):
        loader = FileLoader(output_dir=tmp_path)
        assert loader.load(records, 'silver.parquet', format='parquet') is True
        df = pd.read_parquet(tmp_path / 'silver.parquet')
        assert len(df) == 2

    def test_requires_path_and_known_format(self, tmp_path, records):
        loader = FileLoader(output_dir=tmp_path)
        with pytest.raises(ValueError):
            loader.load(records, None)
        with pytest.raises(ValueError):
            loader.load(records, 'out.xml', format='xml')

    def test_write_failure_returns_false(self, tmp_path, records):
        blocker = tmp_path / 'blocker'
        blocker.write_text('not a directory')
        loader = FileLoader(output_dir=tmp_path)

        assert loader.load(records, 'blocker/out.csv') is False
        assert loader.loaded_count == 0
