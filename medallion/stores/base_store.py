"""Base store class for layer persistence."""
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional
import logging

logger = logging.getLogger(__name__)


class RecordStore(ABC):
    """
    Abstract key-addressable record store.

    Records are plain dictionaries with an 'id' entry. Each store has one
    business key field (e.g. 'equipment_id' for Gold) used by find_by_key,
    and records may carry a 'processed' flag used by find_unprocessed.
    """

    def __init__(self, name: str, key_field: Optional[str] = None):
        """
        Initialize the store.

        Args:
            name: Name of the store (for logging)
            key_field: Field used as business key by find_by_key
        """
        self.name = name
        self.key_field = key_field
        self.logger = logging.getLogger(f'{__name__}.{name}')

    @abstractmethod
    def create(self, record: Dict[str, Any]) -> str:
        """
        Insert a new record.

        Returns:
            The record id

        Raises:
            PersistenceError: If the record cannot be written
        """
        pass

    @abstractmethod
    def update(self, record_id: str, patch: Dict[str, Any]) -> Dict[str, Any]:
        """
        Apply a partial update to an existing record.

        Returns:
            The updated record

        Raises:
            PersistenceError: If the record does not exist or cannot be written
        """
        pass

    @abstractmethod
    def get(self, record_id: str) -> Optional[Dict[str, Any]]:
        pass

    @abstractmethod
    def find_by_key(self, key: str) -> Optional[Dict[str, Any]]:
        """Most recently written record whose key field equals `key`."""
        pass

    @abstractmethod
    def find_all(self) -> List[Dict[str, Any]]:
        """All records in insertion order."""
        pass

    @abstractmethod
    def count(self) -> int:
        pass

    @abstractmethod
    def clear(self) -> int:
        """
        Delete every record.

        Returns:
            Number of records deleted
        """
        pass

    def find_unprocessed(self) -> List[Dict[str, Any]]:
        """Records whose 'processed' flag is not set, in insertion order."""
        return [r for r in self.find_all() if not r.get('processed')]

    def get_store_stats(self) -> Dict[str, Any]:
        """Get statistics about the store."""
        return {
            'store': self.name,
            'key_field': self.key_field,
            'count': self.count(),
        }
