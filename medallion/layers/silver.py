"""Silver layer: cleaned, typed, deduplicated anomaly records."""
from typing import List, Optional

from medallion.stores.base_store import RecordStore
from schemas.bronze import utc_now
from schemas.silver import SilverRecord


class SilverStore:
    """Typed facade over the Silver record store (keyed by content fingerprint)."""

    KEY_FIELD = 'fingerprint'

    def __init__(self, store: RecordStore):
        self.store = store

    def add(self, record: SilverRecord) -> SilverRecord:
        self.store.create(record.model_dump(mode='json'))
        return record

    def find_by_fingerprint(self, fingerprint: str) -> Optional[SilverRecord]:
        data = self.store.find_by_key(fingerprint)
        return SilverRecord.model_validate(data) if data else None

    def mark_processed(self, record_id: str) -> None:
        """Flag a record as aggregated into Gold."""
        self.store.update(record_id, {
            'processed': True,
            'processed_at': utc_now().isoformat(),
        })

    def get(self, record_id: str) -> Optional[SilverRecord]:
        data = self.store.get(record_id)
        return SilverRecord.model_validate(data) if data else None

    def find_unprocessed(self) -> List[SilverRecord]:
        return [SilverRecord.model_validate(d) for d in self.store.find_unprocessed()]

    def find_all(self) -> List[SilverRecord]:
        return [SilverRecord.model_validate(d) for d in self.store.find_all()]

    def count(self) -> int:
        return self.store.count()

    def clear(self) -> int:
        return self.store.clear()
