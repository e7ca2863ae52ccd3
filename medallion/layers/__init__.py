"""Layer stores (Bronze, Silver, Gold and the processing log)."""
import threading
from dataclasses import dataclass
from typing import Any, Dict, Optional

from medallion.config.settings import settings
from medallion.layers.bronze import BronzeStore
from medallion.layers.gold import GoldStore
from medallion.layers.processing_log import ProcessingLogStore
from medallion.layers.silver import SilverStore
from medallion.stores.base_store import RecordStore
from medallion.stores.memory_store import InMemoryStore
from medallion.stores.postgres_store import PostgresStore

LAYER_TABLES = {
    'bronze': ('bronze_anomalies', None),
    'silver': ('silver_anomalies', SilverStore.KEY_FIELD),
    'gold': ('gold_anomalies', GoldStore.KEY_FIELD),
    'logs': ('processing_logs', None),
}


@dataclass
class LayerStores:
    """The stores one pipeline works against."""
    bronze: BronzeStore
    silver: SilverStore
    gold: GoldStore
    logs: ProcessingLogStore

    def counts(self) -> Dict[str, int]:
        return {
            'bronze': self.bronze.count(),
            'silver': self.silver.count(),
            'gold': self.gold.count(),
            'logs': self.logs.count(),
        }

    def store_stats(self) -> Dict[str, Dict[str, Any]]:
        """Backing store name, key field and count for every layer."""
        return {name: getattr(self, name).store.get_store_stats() for name in LAYER_TABLES}

    def clear(self, layer: Optional[str] = None) -> Dict[str, int]:
        """Delete all records of one layer, or of every layer when layer is None."""
        names = [layer] if layer else list(LAYER_TABLES)
        unknown = [n for n in names if n not in LAYER_TABLES]
        if unknown:
            raise ValueError(f'Unknown layer(s): {unknown}')
        return {name: getattr(self, name).clear() for name in names}


def create_layer_stores(backend: Optional[str] = None, conn: Any = None) -> LayerStores:
    """
    Build the layer stores for a backend.

    Args:
        backend: 'memory' or 'postgres' (defaults to settings.STORE_BACKEND)
        conn: psycopg2 connection shared by the postgres stores (opened lazily if omitted)

    Returns:
        LayerStores
    """
    backend = backend or settings.STORE_BACKEND
    # One transaction at a time on a shared connection
    conn_lock = threading.RLock() if conn is not None else None

    def build(layer: str) -> RecordStore:
        table_name, key_field = LAYER_TABLES[layer]
        if backend == 'memory':
            return InMemoryStore(layer, key_field=key_field)
        if backend == 'postgres':
            return PostgresStore(layer, table_name, key_field=key_field, conn=conn, lock=conn_lock)
        raise ValueError(f'Unknown store backend: {backend!r}')

    return LayerStores(
        bronze=BronzeStore(build('bronze')),
        silver=SilverStore(build('silver')),
        gold=GoldStore(build('gold')),
        logs=ProcessingLogStore(build('logs')),
    )


__all__ = [
    'BronzeStore', 'SilverStore', 'GoldStore', 'ProcessingLogStore',
    'LayerStores', 'create_layer_stores',
]
