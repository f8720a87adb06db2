"""Batch controller: drives resolve -> assemble -> persist cycles over the in-flight queue.

State machine:

- IDLE -> RESOLVING when a flush is triggered with a non-empty queue and no
  cycle active. Triggers while a cycle is active are ignored.
- RESOLVING -> ASSEMBLING on a successful orphan lookup, else RETRYING.
- ASSEMBLING -> PERSISTING unconditionally.
- PERSISTING -> SETTLING when every bulk item succeeded, else RETRYING.
- SETTLING waits ``settle_delay`` so the store reflects the write, then
  acknowledges upstream and returns to IDLE with the queue and working
  documents cleared.
- RETRYING waits ``retry_delay`` and re-enters RESOLVING with the queue and
  working documents untouched. There is no retry limit.
"""

import asyncio
import inspect
import logging
from enum import Enum

from postfix_aggregator.assembler import DocumentAssembler
from postfix_aggregator.config import Config
from postfix_aggregator.metrics import Metrics
from postfix_aggregator.models import AggregateDocument, CanonicalEvent
from postfix_aggregator.resolver import OrphanResolver
from postfix_aggregator.store import DocumentStore, StoreError
from postfix_aggregator.writer import PersistenceWriter

logger = logging.getLogger(__name__)


class CycleState(Enum):
    IDLE = "idle"
    RESOLVING = "resolving"
    ASSEMBLING = "assembling"
    PERSISTING = "persisting"
    SETTLING = "settling"
    RETRYING = "retrying"


class BatchController:
    """Owns the in-flight queue and working document set of one pipeline."""

    def __init__(self, store: DocumentStore, config: Config,
                 metrics: Metrics | None = None, sleep=asyncio.sleep):
        self.queue: list[CanonicalEvent] = []
        self.docs: dict[str, AggregateDocument] = {}
        self.state = CycleState.IDLE
        self.active = False
        self.attempts = 0
        self._resolved = 0
        self._retry_delay = config.retry_delay
        self._settle_delay = config.settle_delay
        self._metrics = metrics or Metrics()
        self._sleep = sleep
        self._resolver = OrphanResolver(store, self.docs, config.collection, config.search_size)
        self._assembler = DocumentAssembler(self.docs)
        self._writer = PersistenceWriter(store, config.collection)

    @property
    def metrics(self) -> Metrics:
        return self._metrics

    async def flush(self, on_settled=None) -> bool:
        """Run one flush cycle to completion, retrying until it succeeds.

        *on_settled* (plain or coroutine function) is called once the write
        has settled. Returns False without doing anything when a cycle is
        already active.
        """
        if self.active:
            logger.info("Flush already active, ignoring trigger")
            return False

        if not self.queue:
            logger.debug("No events queued, nothing to flush")
            await self._acknowledge(on_settled)
            return True

        self.active = True
        self._resolved = 0
        try:
            while not await self._run_cycle():
                self.state = CycleState.RETRYING
                self._metrics.cycle_failed()
                logger.info("Retrying flush of %d events in %.0fs",
                            len(self.queue), self._retry_delay)
                await self._sleep(self._retry_delay)

            self.queue.clear()
            self.docs.clear()
            self.attempts = 0

            self.state = CycleState.SETTLING
            logger.info("Giving the store %.0fs to settle", self._settle_delay)
            await self._sleep(self._settle_delay)
            await self._acknowledge(on_settled)
            try:
                self._metrics.save()
            except OSError as e:
                logger.error("Saving metrics failed: %s", e)
        finally:
            self.state = CycleState.IDLE
            self.active = False
        return True

    async def _run_cycle(self) -> bool:
        self.attempts += 1

        self.state = CycleState.RESOLVING
        try:
            self._resolved += await self._resolver.resolve(self.queue)
        except (StoreError, OSError) as e:
            logger.error("Orphan resolution failed (attempt %d): %s", self.attempts, e)
            return False

        self.state = CycleState.ASSEMBLING
        touched = self._assembler.assemble(self.queue)
        logger.debug("Assembled %d events into %d documents", len(self.queue), touched)

        self.state = CycleState.PERSISTING
        updates = sum(1 for d in self.docs.values() if d.storage_id)
        try:
            response = await self._writer.write(self.docs)
        except (StoreError, OSError) as e:
            logger.error("Saving documents failed (attempt %d): %s", self.attempts, e)
            return False

        self._metrics.cycle_succeeded(
            created=len(self.docs) - updates,
            updated=updates,
            resolved=self._resolved,
            shape_errors=self._assembler.reset(),
        )
        logger.info("Saved %d documents (%d updated) in %dms",
                    len(response.items), updates, response.took_ms)
        return True

    @staticmethod
    async def _acknowledge(on_settled) -> None:
        """Tell upstream it may advance. A failed acknowledgment is retried by the next one."""
        if on_settled is None:
            return
        try:
            result = on_settled()
            if inspect.isawaitable(result):
                await result
        except OSError as e:
            logger.error("Acknowledging upstream failed: %s", e)
