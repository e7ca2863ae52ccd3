"""Unit tests for the layer stores."""
import threading
from datetime import datetime, timezone

import pytest

from medallion.extractors.row_view import HeaderMap
from medallion.extractors.spreadsheet_extractor import ParsedRow
from medallion.layers import LAYER_TABLES, create_layer_stores
from medallion.stores import InMemoryStore, PostgresStore
from schemas.bronze import Provenance
from schemas.gold import CriticalityLevel, GoldAnomaly, ScoreConfidence
from tests.conftest import make_silver_record

PROVENANCE = Provenance(
    source_file='anomalies.csv',
    ingested_at=datetime(2024, 6, 1, 12, 0, tzinfo=timezone.utc),
)


def make_gold(code='ABO-2024-001', equipment_id='P-101', **overrides) -> GoldAnomaly:
    fields = {
        'code': code,
        'title': 'Fuite',
        'description': 'Fuite',
        'equipment_id': equipment_id,
        'reliability': 3,
        'availability': 2,
        'process_safety': 4,
        'criticite': 9,
        'criticality_level': CriticalityLevel.HIGH,
        'score_confidence': ScoreConfidence.PREDICTED,
        'severity': 'high',
        'priority': 'P2',
        'category': 'hydraulic',
        'sla_hours': 24,
        'detected_at': datetime(2024, 3, 15, tzinfo=timezone.utc),
        'due_date': datetime(2024, 3, 16, tzinfo=timezone.utc),
        'silver_source_id': 'silver-1',
    }
    fields.update(overrides)
    return GoldAnomaly(**fields)


class TestCreateLayerStores:
    """Test backend selection."""

    def test_memory_backend(self):
        stores = create_layer_stores('memory')
        assert isinstance(stores.gold.store, InMemoryStore)
        assert stores.gold.store.key_field == 'equipment_id'
        assert stores.silver.store.key_field == 'fingerprint'
        assert stores.counts() == {'bronze': 0, 'silver': 0, 'gold': 0, 'logs': 0}

    def test_postgres_backend(self, mock_database_connection):
        stores = create_layer_stores('postgres', conn=mock_database_connection)
        assert isinstance(stores.bronze.store, PostgresStore)
        assert stores.bronze.store.table_name == LAYER_TABLES['bronze'][0]
        assert stores.logs.store.conn is mock_database_connection

    def test_shared_connection_serializes_all_layers(self, mock_database_connection):
        stores = create_layer_stores('postgres', conn=mock_database_connection)
        acquired = []

        with stores.bronze.store._lock:
            other = threading.Thread(
                target=lambda: acquired.append(stores.silver.store._lock.acquire(blocking=False))
            )
            other.start()
            other.join()

        assert acquired == [False]
        assert stores.gold.store._lock is stores.logs.store._lock

    def test_own_connections_get_own_locks(self):
        stores = create_layer_stores('postgres')
        assert stores.bronze.store._lock is not stores.silver.store._lock

    def test_unknown_backend(self):
        with pytest.raises(ValueError):
            create_layer_stores('sqlite')

    def test_clear_one_layer(self, memory_stores):
        memory_stores.silver.add(make_silver_record())
        memory_stores.gold.insert(make_gold())
        assert memory_stores.clear('silver') == {'silver': 1}
        assert memory_stores.counts()['gold'] == 1

    def test_clear_unknown_layer(self, memory_stores):
        with pytest.raises(ValueError):
            memory_stores.clear('platinum')


class TestBronzeStore:
    """Test the raw landing zone."""

    def test_append_keeps_raw_values(self, memory_stores):
        row = ParsedRow(
            line_number=2,
            values={'Num_equipement': ' P-101 ', 'Description': 'Fuite', 'Disponibilté': 'null'},
            extra=['surplus'],
        )
        record = memory_stores.bronze.append(row, PROVENANCE)

        stored = memory_stores.bronze.get(record.id)
        assert stored.equipment_id == 'P-101'
        assert stored.availability_raw is None
        assert stored.source_file == 'anomalies.csv'
        assert stored.source_line == 2
        assert stored.raw_data['Num_equipement'] == ' P-101 '
        assert stored.raw_data['__extra__'] == ['surplus']
        assert stored.processed is False

    def test_append_with_shared_header_map(self, memory_stores):
        headers = ['numEquipement', 'Description anomalie']
        row = ParsedRow(line_number=3, values={'numEquipement': 'M-1', 'Description anomalie': 'Bruit'})
        record = memory_stores.bronze.append(row, PROVENANCE, HeaderMap(headers))
        assert record.equipment_id == 'M-1'
        assert record.description == 'Bruit'

    def test_mark_processed_only_moves_flag(self, memory_stores):
        row = ParsedRow(line_number=2, values={'Num_equipement': 'P-1', 'Description': 'Fuite'})
        record = memory_stores.bronze.append(row, PROVENANCE)

        memory_stores.bronze.mark_processed(record.id)

        stored = memory_stores.bronze.get(record.id)
        assert stored.processed is True
        assert stored.processed_at is not None
        assert stored.description == 'Fuite'
        assert memory_stores.bronze.find_unprocessed() == []


class TestSilverStore:
    """Test Silver persistence."""

    def test_round_trip_and_fingerprint_lookup(self, memory_stores):
        record = make_silver_record()
        memory_stores.silver.add(record)

        found = memory_stores.silver.find_by_fingerprint('fp-p101')
        assert found.model_dump() == record.model_dump()
        assert found.source_criticite == 9
        assert memory_stores.silver.find_by_fingerprint('other') is None

    def test_mark_processed(self, memory_stores):
        first = memory_stores.silver.add(make_silver_record())
        second = memory_stores.silver.add(make_silver_record(fingerprint='fp-2'))
        memory_stores.silver.mark_processed(first.id)
        assert [r.id for r in memory_stores.silver.find_unprocessed()] == [second.id]


class TestGoldStore:
    """Test Gold persistence."""

    def test_insert_and_find_by_equipment(self, memory_stores):
        anomaly = memory_stores.gold.insert(make_gold())
        found = memory_stores.gold.find_by_equipment('P-101')
        assert found.id == anomaly.id
        assert found.criticality_level == CriticalityLevel.HIGH
        assert memory_stores.gold.find_by_equipment('P-999') is None

    def test_update_applies_patch(self, memory_stores):
        anomaly = memory_stores.gold.insert(make_gold())
        updated = memory_stores.gold.update(anomaly.id, {'reliability': 5, 'criticite': 11})
        assert updated.reliability == 5
        assert updated.code == anomaly.code

    def test_max_code_sequence(self, memory_stores):
        assert memory_stores.gold.max_code_sequence('ABO', 2024) == 0
        memory_stores.gold.insert(make_gold('ABO-2024-002', 'P-1'))
        memory_stores.gold.insert(make_gold('ABO-2024-011', 'P-2'))
        memory_stores.gold.insert(make_gold('ABO-2023-099', 'P-3'))
        memory_stores.gold.insert(make_gold('XYZ-2024-500', 'P-4'))
        assert memory_stores.gold.max_code_sequence('ABO', 2024) == 11
        assert memory_stores.gold.max_code_sequence('ABO', 2023) == 99


class TestProcessingLogStore:
    """Test the job log."""

    def test_start_and_finish(self, memory_stores):
        entry = memory_stores.logs.start('bronze_to_silver', 'silver', 'bronze')
        entry.records_processed = 3
        entry.records_succeeded = 2
        entry.records_failed = 1

        finished = memory_stores.logs.finish(entry, 'COMPLETED_WITH_ERRORS', 'one row rejected')

        assert finished.status == 'COMPLETED_WITH_ERRORS'
        assert finished.end_time is not None
        stored = memory_stores.logs.find_all()
        assert len(stored) == 1
        assert stored[0].records_failed == 1
        assert stored[0].source_layer == 'bronze'
