"""Base class for layer-to-layer transformations."""
from abc import ABC, abstractmethod
from typing import Any, Awaitable, Callable, List, Optional, Sequence, Tuple
import asyncio
import logging

from medallion.utils.helpers import chunk_list

logger = logging.getLogger(__name__)


class BaseTransformer(ABC):
    """
    Moves records from a source layer to a target layer.

    `transform` is the pure, store-free conversion; subclasses persist through
    `process_in_batches`, which runs one batch concurrently and waits for it
    before starting the next.
    """

    def __init__(self, name: str, batch_size: int):
        """
        Args:
            name: Name of the transformer (for logging)
            batch_size: Records per concurrent batch
        """
        if batch_size < 1:
            raise ValueError(f'batch_size must be positive, got {batch_size}')
        self.name = name
        self.batch_size = batch_size
        self.logger = logging.getLogger(f'{__name__}.{name}')

    @abstractmethod
    def transform(self, data: List[Any]) -> List[Any]:
        """Convert source-layer records; invalid inputs are dropped."""
        pass

    @abstractmethod
    def validate_transformation(self, data: List[Any]) -> bool:
        pass

    async def process_in_batches(
        self,
        records: Sequence[Any],
        handler: Callable[[Any], Awaitable[None]],
        cancel_event: Optional[asyncio.Event] = None,
    ) -> Tuple[int, bool]:
        """
        Await `handler` for every record, batch by batch.

        Args:
            records: Records to process, in order
            handler: Coroutine function handling one record; must not raise
            cancel_event: Checked before each batch

        Returns:
            Tuple of (batches completed, whether the run was cancelled)
        """
        batches = 0
        for batch in chunk_list(records, self.batch_size):
            if cancel_event is not None and cancel_event.is_set():
                self.logger.warning(f'Cancellation requested after {batches} batch(es)')
                return batches, True
            await asyncio.gather(*[handler(record) for record in batch])
            batches += 1
            self.logger.debug(f'Batch {batches} done ({len(batch)} records)')
        return batches, False
