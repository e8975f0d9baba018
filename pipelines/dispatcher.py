"""Ordered, one-at-a-time delivery of record batches to the store.

Records are accumulated into fixed-size batches. Each full batch becomes a
delivery task that first awaits the delivery submitted before it, so the
store sees at most one insert at a time and always in submission order,
while record production keeps running on the event loop.
"""

import asyncio
import logging
from collections import deque
from typing import Any, Awaitable, Callable, Deque, List, Optional

from .records import ProteinRecord

logger = logging.getLogger(__name__)

InsertBatch = Callable[[List[ProteinRecord]], Awaitable[Any]]


class BatchDispatcher:
    """Accumulates accepted records and delivers them in ordered batches."""

    def __init__(self,
                 insert_batch: InsertBatch,
                 batch_size: int = 100,
                 max_pending: int = 0):
        """Initialize dispatcher.

        Args:
            insert_batch: Coroutine function writing one batch to the store
            batch_size: Number of records per batch
            max_pending: Maximum number of undelivered batches before
                ``wait_for_capacity`` suspends the producer; 0 is unbounded
        """
        if batch_size < 1:
            raise ValueError("Batch size must be positive")
        if max_pending < 0:
            raise ValueError("max_pending cannot be negative")

        self.insert_batch = insert_batch
        self.batch_size = batch_size
        self.max_pending = max_pending

        self._batch: List[ProteinRecord] = []
        # the single in-flight slot: every new delivery awaits this one
        self._in_flight: Optional[asyncio.Task] = None
        self._deliveries: Deque[asyncio.Task] = deque()
        self._failure: Optional[BaseException] = None
        self._submitted = 0

        self.batches_delivered = 0
        self.records_delivered = 0

    @property
    def pending(self) -> int:
        """Number of submitted batches not yet applied to the store."""
        return len(self._deliveries)

    @property
    def buffered(self) -> int:
        """Number of records waiting in the current, unsubmitted batch."""
        return len(self._batch)

    def offer(self, record: ProteinRecord) -> Optional[asyncio.Task]:
        """Append a record, submitting the batch once it reaches the bound.

        Returns:
            The delivery task when a batch was submitted, otherwise None
        """
        self._raise_if_failed()
        self._batch.append(record)

        if len(self._batch) >= self.batch_size:
            return self._submit()
        return None

    async def flush_remainder(self) -> None:
        """Submit the partial batch and wait for every delivery so far.

        An empty remainder produces no insert call.
        """
        self._raise_if_failed()
        self._submit()
        await self._in_flight

    async def wait_for_capacity(self) -> None:
        """Suspend while ``max_pending`` undelivered batches are queued."""
        if not self.max_pending:
            return

        while len(self._deliveries) >= self.max_pending:
            oldest = self._deliveries[0]
            await asyncio.wait({oldest})
            self._raise_if_failed()

    async def abort(self) -> None:
        """Cancel pending deliveries and drop the buffered batch."""
        deliveries = list(self._deliveries)
        for task in deliveries:
            task.cancel()
        if deliveries:
            await asyncio.gather(*deliveries, return_exceptions=True)

        dropped = len(self._batch)
        self._batch = []
        logger.warning(f"Dispatcher aborted: {len(deliveries)} pending batches cancelled, "
                       f"{dropped} buffered records dropped")

    def _submit(self) -> asyncio.Task:
        batch, self._batch = self._batch, []
        self._submitted += 1

        previous = self._in_flight
        task = asyncio.ensure_future(self._deliver(previous, batch, self._submitted))
        task.add_done_callback(self._on_delivery_done)

        self._in_flight = task
        self._deliveries.append(task)
        return task

    async def _deliver(self, previous: Optional[asyncio.Task],
                       batch: List[ProteinRecord], sequence: int) -> None:
        if previous is not None:
            # a failed predecessor fails this delivery too, so nothing after
            # the failure point reaches the store
            await previous

        if not batch:
            return

        logger.debug(f"Inserting batch {sequence} ({len(batch)} records)")
        await self.insert_batch(batch)

        self.batches_delivered += 1
        self.records_delivered += len(batch)

    def _on_delivery_done(self, task: asyncio.Task) -> None:
        self._deliveries.remove(task)

        if task.cancelled():
            return

        exc = task.exception()
        if exc is not None and self._failure is None:
            logger.error(f"Batch delivery failed: {exc}")
            self._failure = exc

    def _raise_if_failed(self) -> None:
        if self._failure is not None:
            raise self._failure
