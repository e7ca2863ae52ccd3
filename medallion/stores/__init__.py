"""Record store backends."""
from medallion.stores.base_store import RecordStore
from medallion.stores.memory_store import InMemoryStore
from medallion.stores.postgres_store import PostgresStore

__all__ = ['RecordStore', 'InMemoryStore', 'PostgresStore']
