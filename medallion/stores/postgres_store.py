"""Record store backed by PostgreSQL (one table per layer, JSONB payload)."""
import re
import threading
from contextlib import contextmanager
from typing import Any, Dict, Iterator, List, Optional

import psycopg2
from psycopg2.extras import Json

from medallion.config.settings import settings
from medallion.errors import PersistenceError
from medallion.stores.base_store import RecordStore

_TABLE_NAME = re.compile(r'^[a-z_][a-z0-9_]*$')


class PostgresStore(RecordStore):
    """
    Store records as JSONB rows.

    Table layout:
        id          TEXT PRIMARY KEY
        seq         BIGSERIAL (insertion order)
        record_key  TEXT, indexed (value of key_field)
        processed   BOOLEAN
        payload     JSONB (the full record)

    Payloads must be JSON-serializable (layers dump models with mode='json').
    """

    def __init__(
        self,
        name: str,
        table_name: str,
        key_field: Optional[str] = None,
        conn: Any = None,
        lock: Any = None,
    ):
        """
        Initialize PostgreSQL store.

        Args:
            name: Name of the store (for logging)
            table_name: Backing table, created on first use
            key_field: Field used as business key by find_by_key
            conn: Existing psycopg2 connection (a new one is opened from settings if omitted)
            lock: Lock guarding `conn`; stores sharing a connection must share it
        """
        super().__init__(name, key_field)
        if not _TABLE_NAME.match(table_name):
            raise ValueError(f'Invalid table name: {table_name!r}')
        self.table_name = table_name
        self.conn = conn
        self._lock = lock if lock is not None else threading.RLock()
        self._schema_ready = False

    def _connect(self) -> None:
        """Connect to the database."""
        try:
            self.conn = psycopg2.connect(
                host=settings.DB_HOST,
                port=settings.DB_PORT,
                database=settings.DB_NAME,
                user=settings.DB_USER,
                password=settings.DB_PASSWORD,
            )
            self.logger.info(f'Connected to database {settings.DB_NAME}')
        except psycopg2.Error as e:
            self.logger.error(f'Database connection failed: {str(e)}')
            raise PersistenceError(f'Database connection failed: {e}') from e

    def close(self) -> None:
        """Close database connection."""
        if self.conn is not None:
            self.conn.close()
            self.conn = None
            self.logger.info('Disconnected from database')

    @contextmanager
    def _transaction(self, record_id: Optional[str] = None) -> Iterator[Any]:
        """Cursor inside one committed transaction; database errors become PersistenceError."""
        with self._lock:
            if self.conn is None:
                self._connect()
            try:
                with self.conn.cursor() as cursor:
                    if not self._schema_ready:
                        self._ensure_schema(cursor)
                    yield cursor
                self.conn.commit()
            except psycopg2.Error as e:
                self.conn.rollback()
                self.logger.error(f'{self.table_name}: {str(e)}')
                raise PersistenceError(f'{self.table_name}: {e}', record_id=record_id) from e
            except PersistenceError:
                self.conn.rollback()
                raise

    def _ensure_schema(self, cursor: Any) -> None:
        cursor.execute(
            f'CREATE TABLE IF NOT EXISTS {self.table_name} ('
            'id TEXT PRIMARY KEY, '
            'seq BIGSERIAL, '
            'record_key TEXT, '
            'processed BOOLEAN NOT NULL DEFAULT FALSE, '
            'payload JSONB NOT NULL)'
        )
        cursor.execute(
            f'CREATE INDEX IF NOT EXISTS {self.table_name}_record_key_idx '
            f'ON {self.table_name} (record_key)'
        )
        self._schema_ready = True

    def _key_of(self, record: Dict[str, Any]) -> Optional[str]:
        if self.key_field is None:
            return None
        value = record.get(self.key_field)
        return None if value is None else str(value)

    def create(self, record: Dict[str, Any]) -> str:
        record_id = record.get('id')
        if not record_id:
            raise PersistenceError(f'{self.name}: record has no id')
        with self._transaction(record_id) as cursor:
            cursor.execute(
                f'INSERT INTO {self.table_name} (id, record_key, processed, payload) '
                'VALUES (%s, %s, %s, %s) ON CONFLICT (id) DO NOTHING',
                (record_id, self._key_of(record), bool(record.get('processed')), Json(record)),
            )
            if cursor.rowcount == 0:
                raise PersistenceError(f'{self.name}: duplicate id {record_id}', record_id=record_id)
        return record_id

    def update(self, record_id: str, patch: Dict[str, Any]) -> Dict[str, Any]:
        with self._transaction(record_id) as cursor:
            cursor.execute(
                f'SELECT payload FROM {self.table_name} WHERE id = %s FOR UPDATE',
                (record_id,),
            )
            row = cursor.fetchone()
            if row is None:
                raise PersistenceError(f'{self.name}: no record {record_id}', record_id=record_id)
            merged = {**row[0], **patch, 'id': record_id}
            cursor.execute(
                f'UPDATE {self.table_name} SET record_key = %s, processed = %s, payload = %s '
                'WHERE id = %s',
                (self._key_of(merged), bool(merged.get('processed')), Json(merged), record_id),
            )
        return merged

    def get(self, record_id: str) -> Optional[Dict[str, Any]]:
        with self._transaction(record_id) as cursor:
            cursor.execute(f'SELECT payload FROM {self.table_name} WHERE id = %s', (record_id,))
            row = cursor.fetchone()
        return row[0] if row else None

    def find_by_key(self, key: str) -> Optional[Dict[str, Any]]:
        if self.key_field is None:
            raise PersistenceError(f'{self.name}: store has no key field')
        with self._transaction() as cursor:
            cursor.execute(
                f'SELECT payload FROM {self.table_name} WHERE record_key = %s '
                'ORDER BY seq DESC LIMIT 1',
                (key,),
            )
            row = cursor.fetchone()
        return row[0] if row else None

    def find_unprocessed(self) -> List[Dict[str, Any]]:
        with self._transaction() as cursor:
            cursor.execute(
                f'SELECT payload FROM {self.table_name} WHERE NOT processed ORDER BY seq'
            )
            rows = cursor.fetchall()
        return [row[0] for row in rows]

    def find_all(self) -> List[Dict[str, Any]]:
        with self._transaction() as cursor:
            cursor.execute(f'SELECT payload FROM {self.table_name} ORDER BY seq')
            rows = cursor.fetchall()
        return [row[0] for row in rows]

    def count(self) -> int:
        with self._transaction() as cursor:
            cursor.execute(f'SELECT COUNT(*) FROM {self.table_name}')
            row = cursor.fetchone()
        return int(row[0]) if row else 0

    def clear(self) -> int:
        with self._transaction() as cursor:
            cursor.execute(f'DELETE FROM {self.table_name}')
            deleted = cursor.rowcount
        self.logger.info(f'Cleared {deleted} records from {self.table_name}')
        return deleted
