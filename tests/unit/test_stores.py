"""Unit tests for record stores."""
import psycopg2
import pytest

from medallion.errors import PersistenceError
from medallion.stores import InMemoryStore, PostgresStore


class TestInMemoryStore:
    """Test the in-process store."""

    def test_create_and_get(self):
        store = InMemoryStore('gold', key_field='equipment_id')
        store.create({'id': 'a', 'equipment_id': 'P-1'})
        assert store.get('a') == {'id': 'a', 'equipment_id': 'P-1'}
        assert store.get('missing') is None
        assert store.count() == 1

    def test_records_are_copied(self):
        """Mutating a returned record does not change the stored one."""
        store = InMemoryStore('bronze')
        source = {'id': 'a', 'raw_data': {'x': '1'}}
        store.create(source)
        source['raw_data']['x'] = 'changed'
        fetched = store.get('a')
        fetched['raw_data']['x'] = 'changed again'
        assert store.get('a')['raw_data'] == {'x': '1'}

    def test_duplicate_id_rejected(self):
        store = InMemoryStore('bronze')
        store.create({'id': 'a'})
        with pytest.raises(PersistenceError):
            store.create({'id': 'a'})

    def test_missing_id_rejected(self):
        with pytest.raises(PersistenceError):
            InMemoryStore('bronze').create({'value': 1})

    def test_update_merges_patch(self):
        store = InMemoryStore('silver')
        store.create({'id': 'a', 'processed': False, 'description': 'Fuite'})
        updated = store.update('a', {'processed': True, 'id': 'other'})
        assert updated == {'id': 'a', 'processed': True, 'description': 'Fuite'}
        assert store.get('a')['processed'] is True

    def test_update_unknown_record(self):
        with pytest.raises(PersistenceError):
            InMemoryStore('silver').update('nope', {'processed': True})

    def test_find_by_key_returns_latest(self):
        store = InMemoryStore('gold', key_field='equipment_id')
        store.create({'id': 'a', 'equipment_id': 'P-1', 'n': 1})
        store.create({'id': 'b', 'equipment_id': 'P-2', 'n': 2})
        store.create({'id': 'c', 'equipment_id': 'P-1', 'n': 3})
        assert store.find_by_key('P-1')['id'] == 'c'
        assert store.find_by_key('P-9') is None

    def test_find_by_key_without_key_field(self):
        with pytest.raises(PersistenceError):
            InMemoryStore('bronze').find_by_key('x')

    def test_find_unprocessed_in_insertion_order(self):
        store = InMemoryStore('bronze')
        for record_id, processed in [('a', False), ('b', True), ('c', False)]:
            store.create({'id': record_id, 'processed': processed})
        assert [r['id'] for r in store.find_unprocessed()] == ['a', 'c']

    def test_clear(self):
        store = InMemoryStore('bronze')
        store.create({'id': 'a'})
        store.create({'id': 'b'})
        assert store.clear() == 2
        assert store.count() == 0
        assert store.get_store_stats() == {'store': 'bronze', 'key_field': None, 'count': 0}


class TestPostgresStore:
    """Test the PostgreSQL store against a mocked connection."""

    def test_invalid_table_name(self, mock_database_connection):
        with pytest.raises(ValueError):
            PostgresStore('gold', 'gold; DROP TABLE x', conn=mock_database_connection)

    def test_create_inserts_payload_and_commits(self, mock_database_connection):
        store = PostgresStore('gold', 'gold_anomalies', key_field='equipment_id',
                              conn=mock_database_connection)
        record_id = store.create({'id': 'a', 'equipment_id': 'P-1', 'processed': False})

        assert record_id == 'a'
        cursor = mock_database_connection.cursor_mock
        statements = [c.args[0] for c in cursor.execute.call_args_list]
        assert statements[0].startswith('CREATE TABLE IF NOT EXISTS gold_anomalies')
        assert statements[-1].startswith('INSERT INTO gold_anomalies')
        params = cursor.execute.call_args_list[-1].args[1]
        assert params[:3] == ('a', 'P-1', False)
        mock_database_connection.commit.assert_called()

    def test_schema_created_once(self, mock_database_connection):
        store = PostgresStore('bronze', 'bronze_anomalies', conn=mock_database_connection)
        store.create({'id': 'a'})
        store.create({'id': 'b'})
        statements = [c.args[0] for c in mock_database_connection.cursor_mock.execute.call_args_list]
        assert sum(1 for s in statements if s.startswith('CREATE TABLE')) == 1

    def test_duplicate_insert_rolls_back(self, mock_database_connection):
        mock_database_connection.cursor_mock.rowcount = 0
        store = PostgresStore('bronze', 'bronze_anomalies', conn=mock_database_connection)

        with pytest.raises(PersistenceError, match='duplicate'):
            store.create({'id': 'a'})
        mock_database_connection.rollback.assert_called_once()

    def test_database_error_becomes_persistence_error(self, mock_database_connection):
        store = PostgresStore('bronze', 'bronze_anomalies', conn=mock_database_connection)
        store._schema_ready = True
        mock_database_connection.cursor_mock.execute.side_effect = psycopg2.OperationalError('gone')

        with pytest.raises(PersistenceError) as exc_info:
            store.create({'id': 'a'})
        assert exc_info.value.record_id == 'a'
        mock_database_connection.rollback.assert_called_once()
        mock_database_connection.commit.assert_not_called()

    def test_update_merges_current_payload(self, mock_database_connection):
        cursor = mock_database_connection.cursor_mock
        cursor.fetchone.return_value = ({'id': 'a', 'equipment_id': 'P-1', 'processed': False},)
        store = PostgresStore('silver', 'silver_anomalies', key_field='equipment_id',
                              conn=mock_database_connection)

        merged = store.update('a', {'processed': True})

        assert merged == {'id': 'a', 'equipment_id': 'P-1', 'processed': True}
        sql, params = cursor.execute.call_args_list[-1].args
        assert sql.startswith('UPDATE silver_anomalies')
        assert params[0] == 'P-1'
        assert params[1] is True
        assert params[3] == 'a'

    def test_update_unknown_record(self, mock_database_connection):
        store = PostgresStore('silver', 'silver_anomalies', conn=mock_database_connection)
        with pytest.raises(PersistenceError):
            store.update('nope', {'processed': True})

    def test_find_by_key_orders_by_latest(self, mock_database_connection):
        cursor = mock_database_connection.cursor_mock
        cursor.fetchone.return_value = ({'id': 'c', 'equipment_id': 'P-1'},)
        store = PostgresStore('gold', 'gold_anomalies', key_field='equipment_id',
                              conn=mock_database_connection)

        assert store.find_by_key('P-1')['id'] == 'c'
        sql, params = cursor.execute.call_args_list[-1].args
        assert 'ORDER BY seq DESC LIMIT 1' in sql
        assert params == ('P-1',)

    def test_find_unprocessed(self, mock_database_connection):
        cursor = mock_database_connection.cursor_mock
        cursor.fetchall.return_value = [({'id': 'a'},), ({'id': 'b'},)]
        store = PostgresStore('bronze', 'bronze_anomalies', conn=mock_database_connection)

        assert [r['id'] for r in store.find_unprocessed()] == ['a', 'b']
        assert 'WHERE NOT processed' in cursor.execute.call_args_list[-1].args[0]

    def test_count_and_clear(self, mock_database_connection):
        cursor = mock_database_connection.cursor_mock
        cursor.fetchone.return_value = (3,)
        cursor.rowcount = 3
        store = PostgresStore('bronze', 'bronze_anomalies', conn=mock_database_connection)

        assert store.count() == 3
        assert store.clear() == 3

    def test_close(self, mock_database_connection):
        store = PostgresStore('bronze', 'bronze_anomalies', conn=mock_database_connection)
        store.close()
        mock_database_connection.close.assert_called_once()
        assert store.conn is None
