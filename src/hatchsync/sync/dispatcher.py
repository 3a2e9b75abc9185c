"""
Moves one bounded batch from the outbox to the remote endpoint.

Flow for a single dispatch attempt:
  1. Refuse if another attempt is running ("already in progress")
  2. Refuse if the breaker is offline, unless forced by an explicit sync
  3. Select up to batch_size eligible records, oldest first
  4. Nothing selected -> "nothing to sync", transport is not contacted
  5. Write the in-flight marker, send the batch (bounded by send_timeout)
  6. Success -> all records synced; failure -> all records failed, retry_count + 1
  7. Append one SyncLog row; a TransportError also trips the breaker

Nothing raised inside an attempt escapes dispatch(): every failure is turned
into a DispatchResult and, where a batch was involved, a SyncLog row.
"""
import asyncio
import logging
import time
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Optional

from hatchsync.errors import RemoteRejection, StoreError, TransportError
from hatchsync.outbox.store import EventStore, now_millis
from hatchsync.sync.breaker import CircuitBreaker
from hatchsync.transport.base import RemoteTransport, SyncBatch, TransportResult, make_batch

logger = logging.getLogger(__name__)


class DispatchOutcome(str, Enum):
    SYNCED = "synced"
    FAILED = "failed"
    NOTHING_TO_SYNC = "nothing_to_sync"
    IN_PROGRESS = "in_progress"
    OFFLINE = "offline"
    STORE_ERROR = "store_error"


@dataclass
class DispatchResult:
    outcome: DispatchOutcome
    message: str = ""
    batch_id: Optional[str] = None
    record_count: int = 0
    error: Optional[str] = None

    @property
    def success(self) -> bool:
        return self.outcome in (DispatchOutcome.SYNCED, DispatchOutcome.NOTHING_TO_SYNC)


@dataclass
class SyncMetrics:
    batches_attempted: int = 0
    batches_succeeded: int = 0
    batches_failed: int = 0
    records_synced: int = 0
    last_duration_ms: int = 0


class SyncDispatcher:
    """Single-flight batch dispatcher. One instance per process."""

    def __init__(
        self,
        store: EventStore,
        transport: RemoteTransport,
        breaker: CircuitBreaker,
        *,
        batch_size: int = 100,
        max_retry_attempts: int = 3,
        send_timeout: float = 5.0,
        clock: Callable[[], float] = time.monotonic,
        clock_millis: Callable[[], int] = now_millis,
    ):
        if batch_size < 1:
            raise ValueError("batch_size must be at least 1")
        self.store = store
        self.transport = transport
        self.breaker = breaker
        self.batch_size = batch_size
        self.max_retry_attempts = max_retry_attempts
        self.send_timeout = send_timeout
        self.metrics = SyncMetrics()
        self.last_sync_time = 0
        self._clock = clock
        self._clock_millis = clock_millis
        self._last_attempt_at: Optional[float] = None
        self._lock = asyncio.Lock()

    @property
    def dispatching(self) -> bool:
        return self._lock.locked()

    def seconds_since_last_attempt(self) -> Optional[float]:
        """None if no batch has been sent yet."""
        if self._last_attempt_at is None:
            return None
        return self._clock() - self._last_attempt_at

    async def dispatch(self, force: bool = False) -> DispatchResult:
        """
        Run one dispatch attempt.

        Args:
            force: Ignore the offline breaker (explicit "sync now").
        """
        # locked() and the uncontended acquire below run without yielding,
        # so two triggers can never both get past this point.
        if self._lock.locked():
            return DispatchResult(DispatchOutcome.IN_PROGRESS, message="Sync already in progress")

        async with self._lock:
            if not force and not self.breaker.is_online:
                logger.info("Offline mode - skipping sync")
                return DispatchResult(DispatchOutcome.OFFLINE, message="Skipping - offline")
            return await self._run_batch()

    # ─── Internal helpers ─────────────────────────────────────────────────────

    async def _run_batch(self) -> DispatchResult:
        try:
            records = self.store.select_batch(self.batch_size, self.max_retry_attempts)
        except StoreError as exc:
            logger.error("Could not read outbox: %s", exc)
            return DispatchResult(DispatchOutcome.STORE_ERROR, error=str(exc))

        if not records:
            logger.debug("Nothing to sync")
            return DispatchResult(DispatchOutcome.NOTHING_TO_SYNC, message="No data to sync")

        batch = make_batch(records)
        try:
            self.store.mark_in_flight(list(batch.record_ids), batch.batch_id)
        except StoreError as exc:
            logger.error("Could not mark batch %s in flight: %s", batch.batch_id, exc)
            return DispatchResult(
                DispatchOutcome.STORE_ERROR,
                batch_id=batch.batch_id,
                record_count=len(batch),
                error=str(exc),
            )

        started = self._clock()
        self._last_attempt_at = started
        self.last_sync_time = self._clock_millis()
        self.metrics.batches_attempted += 1

        logger.info("Starting sync batch %s with %d records", batch.batch_id, len(batch))
        result = await self._send(batch)
        duration_ms = int((self._clock() - started) * 1000)
        self.metrics.last_duration_ms = duration_ms

        if result.success:
            return self._on_success(batch, result, duration_ms)
        return self._on_failure(batch, result.error, duration_ms)

    async def _send(self, batch: SyncBatch) -> TransportResult:
        """Call the transport, converting timeouts and stray exceptions to TransportError."""
        try:
            result = await asyncio.wait_for(self.transport.send(batch), timeout=self.send_timeout)
        except asyncio.TimeoutError:
            return TransportResult(
                success=False,
                error=TransportError(f"Sync timed out after {self.send_timeout}s"),
            )
        except (TransportError, RemoteRejection) as exc:
            return TransportResult(success=False, error=exc)
        except Exception as exc:
            return TransportResult(success=False, error=TransportError(str(exc) or repr(exc)))

        if not result.success and result.error is None:
            result.error = TransportError("Transport reported failure without detail")
        return result

    def _on_success(self, batch: SyncBatch, result: TransportResult, duration_ms: int) -> DispatchResult:
        ids = list(batch.record_ids)
        try:
            self.store.mark_synced(ids)
        except StoreError as exc:
            # The endpoint has the batch; the records stay selectable and
            # will be delivered again on the next tick.
            logger.error(
                "Batch %s delivered but could not be marked synced: %s", batch.batch_id, exc
            )
            self._append_log(
                batch,
                success=False,
                duration_ms=duration_ms,
                error_message=f"delivered, local update failed: {exc}",
                provider_batch_id=result.provider_batch_id,
            )
            self.breaker.record_success()
            return DispatchResult(
                DispatchOutcome.STORE_ERROR,
                batch_id=batch.batch_id,
                record_count=len(batch),
                error=str(exc),
            )

        self.breaker.record_success()
        self.metrics.batches_succeeded += 1
        self.metrics.records_synced += len(batch)
        self._append_log(
            batch,
            success=True,
            duration_ms=duration_ms,
            provider_batch_id=result.provider_batch_id,
        )
        logger.info("Sync batch %s completed successfully", batch.batch_id)
        return DispatchResult(
            DispatchOutcome.SYNCED,
            message="Sync completed",
            batch_id=batch.batch_id,
            record_count=len(batch),
        )

    def _on_failure(self, batch: SyncBatch, error: Exception, duration_ms: int) -> DispatchResult:
        self.metrics.batches_failed += 1
        try:
            self.store.mark_failed(list(batch.record_ids))
        except StoreError as exc:
            logger.error("Could not record failure of batch %s: %s", batch.batch_id, exc)

        self._append_log(batch, success=False, duration_ms=duration_ms, error_message=str(error))
        if isinstance(error, TransportError):
            self.breaker.trip()
        logger.warning("Sync batch %s failed: %s", batch.batch_id, error)
        return DispatchResult(
            DispatchOutcome.FAILED,
            message="Sync failed",
            batch_id=batch.batch_id,
            record_count=len(batch),
            error=str(error),
        )

    def _append_log(
        self,
        batch: SyncBatch,
        *,
        success: bool,
        duration_ms: int,
        error_message: Optional[str] = None,
        provider_batch_id: Optional[str] = None,
    ) -> None:
        try:
            self.store.append_sync_log(
                batch.batch_id,
                record_count=len(batch),
                success=success,
                duration_ms=duration_ms,
                error_message=error_message,
                provider_batch_id=provider_batch_id,
            )
        except StoreError as exc:
            logger.error("Could not write sync log for %s: %s", batch.batch_id, exc)
