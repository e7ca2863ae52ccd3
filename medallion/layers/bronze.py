"""Bronze layer: append-only landing zone for raw source rows."""
import logging
from typing import List, Optional

from medallion.extractors.row_view import (
    AVAILABILITY, CRITICALITY, DESCRIPTION, DETECTION_DATE, EQUIPMENT_DESCRIPTION,
    EQUIPMENT_ID, PROCESS_SAFETY, RELIABILITY, SECTION, SYSTEM, HeaderMap, RowView,
)
from medallion.extractors.spreadsheet_extractor import EXTRA_COLUMNS_KEY, ParsedRow
from medallion.stores.base_store import RecordStore
from schemas.bronze import BronzeRecord, Provenance, utc_now

logger = logging.getLogger(__name__)


class BronzeStore:
    """Typed facade over the Bronze record store."""

    def __init__(self, store: RecordStore):
        self.store = store

    def append(
        self,
        row: ParsedRow,
        provenance: Provenance,
        header_map: Optional[HeaderMap] = None,
    ) -> BronzeRecord:
        """
        Land one parsed row.

        Args:
            row: Parsed source row
            provenance: Source file and ingestion time shared by the batch
            header_map: Header resolution for the file (built from the row if omitted)

        Returns:
            The stored BronzeRecord
        """
        view = RowView(row.values, header_map)
        raw_data = dict(row.values)
        if row.extra:
            raw_data[EXTRA_COLUMNS_KEY] = list(row.extra)

        record = BronzeRecord(
            equipment_id=view.get(EQUIPMENT_ID),
            description=view.get(DESCRIPTION),
            detection_date_raw=view.get(DETECTION_DATE),
            section=view.get(SECTION),
            equipment_description=view.get(EQUIPMENT_DESCRIPTION),
            system=view.get(SYSTEM),
            reliability_raw=view.get(RELIABILITY),
            availability_raw=view.get(AVAILABILITY),
            process_safety_raw=view.get(PROCESS_SAFETY),
            criticality_raw=view.get(CRITICALITY),
            source_file=provenance.source_file,
            source_line=row.line_number,
            ingested_at=provenance.ingested_at,
            raw_data=raw_data,
        )
        self.store.create(record.model_dump(mode='json'))
        return record

    def mark_processed(self, record_id: str) -> None:
        """Flag a record as consumed. Content fields are never touched."""
        self.store.update(record_id, {
            'processed': True,
            'processed_at': utc_now().isoformat(),
        })

    def get(self, record_id: str) -> Optional[BronzeRecord]:
        data = self.store.get(record_id)
        return BronzeRecord.model_validate(data) if data else None

    def find_unprocessed(self) -> List[BronzeRecord]:
        return [BronzeRecord.model_validate(d) for d in self.store.find_unprocessed()]

    def find_all(self) -> List[BronzeRecord]:
        return [BronzeRecord.model_validate(d) for d in self.store.find_all()]

    def count(self) -> int:
        return self.store.count()

    def clear(self) -> int:
        return self.store.clear()
