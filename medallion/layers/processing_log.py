"""Job log of stage runs."""
from typing import List, Optional

from medallion.stores.base_store import RecordStore
from schemas.bronze import utc_now
from schemas.report import ProcessingLog


class ProcessingLogStore:
    """Writes one ProcessingLog per stage run."""

    def __init__(self, store: RecordStore):
        self.store = store

    def start(self, job_name: str, target_layer: str, source_layer: Optional[str] = None) -> ProcessingLog:
        entry = ProcessingLog(job_name=job_name, source_layer=source_layer, target_layer=target_layer)
        self.store.create(entry.model_dump(mode='json'))
        return entry

    def finish(
        self,
        entry: ProcessingLog,
        status: str,
        error_message: Optional[str] = None,
    ) -> ProcessingLog:
        """
        Close a log entry with its final counters.

        Args:
            entry: Entry returned by start(), counters already filled in
            status: COMPLETED, COMPLETED_WITH_ERRORS, FAILED or CANCELLED
            error_message: Optional summary of what went wrong
        """
        entry.status = status
        entry.end_time = utc_now()
        entry.error_message = error_message
        data = self.store.update(entry.id, entry.model_dump(mode='json'))
        return ProcessingLog.model_validate(data)

    def find_all(self) -> List[ProcessingLog]:
        return [ProcessingLog.model_validate(d) for d in self.store.find_all()]

    def count(self) -> int:
        return self.store.count()

    def clear(self) -> int:
        return self.store.clear()
