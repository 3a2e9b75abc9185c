"""Simulated cloud backend for offline kiosks and demos."""
import asyncio
import logging
import random
from typing import Optional

from hatchsync.errors import TransportError
from hatchsync.transport.base import RemoteTransport, SyncBatch, TransportResult

logger = logging.getLogger(__name__)


class DemoTransport(RemoteTransport):
    """
    Accepts batches after a short random delay and fails a small fraction of them.

    Used by the dispatcher exactly like HttpTransport.
    """

    def __init__(
        self,
        failure_rate: float = 0.05,
        min_latency: float = 0.1,
        max_latency: float = 0.3,
        rng: Optional[random.Random] = None,
    ):
        self.failure_rate = failure_rate
        self.min_latency = min_latency
        self.max_latency = max_latency
        self._rng = rng or random.Random()
        self.batches_received = 0

    async def send(self, batch: SyncBatch) -> TransportResult:
        await asyncio.sleep(self._rng.uniform(self.min_latency, self.max_latency))
        if self._rng.random() < self.failure_rate:
            return TransportResult(
                success=False, error=TransportError("Simulated cloud sync failure")
            )
        self.batches_received += 1
        logger.debug("Demo backend accepted %s (%d records)", batch.batch_id, len(batch))
        return TransportResult(success=True, provider_batch_id=batch.batch_id)
