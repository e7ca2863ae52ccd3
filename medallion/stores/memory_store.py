"""In-process record store (default backend and test double)."""
import copy
import threading
from typing import Any, Dict, List, Optional

from medallion.errors import PersistenceError
from medallion.stores.base_store import RecordStore


class InMemoryStore(RecordStore):
    """
    Thread-safe dictionary-backed store.

    Records are deep-copied on the way in and out so callers never share
    mutable state with the store.
    """

    def __init__(self, name: str, key_field: Optional[str] = None):
        super().__init__(name, key_field)
        self._records: Dict[str, Dict[str, Any]] = {}
        self._lock = threading.Lock()

    def create(self, record: Dict[str, Any]) -> str:
        record_id = record.get('id')
        if not record_id:
            raise PersistenceError(f'{self.name}: record has no id')
        with self._lock:
            if record_id in self._records:
                raise PersistenceError(f'{self.name}: duplicate id {record_id}', record_id=record_id)
            self._records[record_id] = copy.deepcopy(record)
        return record_id

    def update(self, record_id: str, patch: Dict[str, Any]) -> Dict[str, Any]:
        with self._lock:
            current = self._records.get(record_id)
            if current is None:
                raise PersistenceError(f'{self.name}: no record {record_id}', record_id=record_id)
            current.update(copy.deepcopy(patch))
            current['id'] = record_id
            return copy.deepcopy(current)

    def get(self, record_id: str) -> Optional[Dict[str, Any]]:
        with self._lock:
            record = self._records.get(record_id)
            return copy.deepcopy(record) if record is not None else None

    def find_by_key(self, key: str) -> Optional[Dict[str, Any]]:
        if self.key_field is None:
            raise PersistenceError(f'{self.name}: store has no key field')
        with self._lock:
            match = None
            for record in self._records.values():
                if record.get(self.key_field) == key:
                    match = record
            return copy.deepcopy(match) if match is not None else None

    def find_all(self) -> List[Dict[str, Any]]:
        with self._lock:
            return [copy.deepcopy(r) for r in self._records.values()]

    def count(self) -> int:
        with self._lock:
            return len(self._records)

    def clear(self) -> int:
        with self._lock:
            deleted = len(self._records)
            self._records.clear()
        self.logger.info(f'Cleared {deleted} records from {self.name}')
        return deleted
