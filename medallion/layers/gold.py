"""Gold layer: one actionable anomaly per equipment identifier."""
import re
from typing import Any, Dict, List, Optional

from medallion.stores.base_store import RecordStore
from schemas.gold import GoldAnomaly


class GoldStore:
    """Typed facade over the Gold record store (keyed by equipment id)."""

    KEY_FIELD = 'equipment_id'

    def __init__(self, store: RecordStore):
        self.store = store

    def find_by_equipment(self, equipment_id: str) -> Optional[GoldAnomaly]:
        data = self.store.find_by_key(equipment_id)
        return GoldAnomaly.model_validate(data) if data else None

    def insert(self, anomaly: GoldAnomaly) -> GoldAnomaly:
        self.store.create(anomaly.model_dump(mode='json'))
        return anomaly

    def update(self, anomaly_id: str, patch: Dict[str, Any]) -> GoldAnomaly:
        """
        Apply a partial update.

        Args:
            anomaly_id: Gold record id
            patch: Fields to overwrite (JSON-safe values)

        Returns:
            The updated anomaly
        """
        return GoldAnomaly.model_validate(self.store.update(anomaly_id, patch))

    def max_code_sequence(self, prefix: str, year: int) -> int:
        """Highest NNN among existing codes '<prefix>-<year>-NNN' (0 when none)."""
        pattern = re.compile(rf'^{re.escape(prefix)}-{year}-(\d+)$')
        highest = 0
        for record in self.store.find_all():
            match = pattern.match(str(record.get('code', '')))
            if match:
                highest = max(highest, int(match.group(1)))
        return highest

    def get(self, anomaly_id: str) -> Optional[GoldAnomaly]:
        data = self.store.get(anomaly_id)
        return GoldAnomaly.model_validate(data) if data else None

    def find_all(self) -> List[GoldAnomaly]:
        return [GoldAnomaly.model_validate(d) for d in self.store.find_all()]

    def count(self) -> int:
        return self.store.count()

    def clear(self) -> int:
        return self.store.clear()
