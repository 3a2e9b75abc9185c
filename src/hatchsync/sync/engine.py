"""
The one object a process builds to own the outbox.

Holds the store, breaker, dispatcher, scheduler and enqueuer together with
the configuration they were built from. There is no module-level engine
state: tests build as many independent engines as they like.
"""
import json
import time
from typing import Any, Callable, List, Optional

from hatchsync.config import Settings, get_settings
from hatchsync.models.activity import ActivityLog
from hatchsync.models.sync import SyncLog, SyncStats, SyncStatus
from hatchsync.outbox.enqueuer import Enqueuer
from hatchsync.outbox.store import EventStore, now_millis
from hatchsync.sync.breaker import CircuitBreaker
from hatchsync.sync.dispatcher import DispatchResult, SyncDispatcher
from hatchsync.sync.scheduler import SyncScheduler
from hatchsync.transport import RemoteTransport, build_transport


class CloudSyncEngine:
    """Public face of the sync subsystem."""

    def __init__(
        self,
        settings: Settings,
        db_engine,
        transport: Optional[RemoteTransport] = None,
        *,
        clock: Callable[[], float] = time.monotonic,
        clock_millis: Callable[[], int] = now_millis,
    ):
        """
        Args:
            settings: Static configuration, read once.
            db_engine: SQLAlchemy engine for the outbox database.
            transport: Remote transport. Defaults to build_transport(settings).
            clock: Monotonic seconds, for the breaker and tick spacing.
            clock_millis: Epoch milliseconds, for record and sync timestamps.
        """
        self.settings = settings
        self.store = EventStore(db_engine, clock_millis=clock_millis)
        self.transport = transport or build_transport(settings)
        self.breaker = CircuitBreaker(settings.breaker_cooldown_seconds, clock=clock)
        self.dispatcher = SyncDispatcher(
            self.store,
            self.transport,
            self.breaker,
            batch_size=settings.batch_size,
            max_retry_attempts=settings.max_retry_attempts,
            send_timeout=settings.transport_timeout_seconds,
            clock=clock,
            clock_millis=clock_millis,
        )
        self.scheduler = SyncScheduler(
            self.dispatcher,
            tick_seconds=settings.tick_seconds,
            sync_interval_seconds=settings.sync_interval_seconds,
        )
        self.enqueuer = Enqueuer(self.store, on_enqueued=self.scheduler.trigger)

    # ─── Lifecycle ────────────────────────────────────────────────────────────

    def start(self) -> None:
        """Recover interrupted batches, then start the scheduler. Call inside the event loop."""
        self.store.recover_in_flight()
        self.scheduler.start()

    def shutdown(self) -> None:
        self.scheduler.shutdown()

    # ─── Inbound ──────────────────────────────────────────────────────────────

    def enqueue(self, owner_id: Optional[str], kind: str, payload: Any) -> int:
        return self.enqueuer.enqueue(owner_id, kind, payload)

    def log_event(self, owner_id: Optional[str], activity_type: str, details: Any) -> int:
        """Record an activity in the local feed and queue it for the cloud.

        Both rows are written in one transaction. Returns the outbox record id.
        """
        return self.enqueuer.log_activity(owner_id, activity_type, details)

    async def sync_now(self) -> DispatchResult:
        """Explicit sync: runs even while the breaker is offline."""
        return await self.dispatcher.dispatch(force=True)

    # ─── Observability ────────────────────────────────────────────────────────

    def get_status(self) -> SyncStatus:
        return SyncStatus(
            is_online=self.breaker.is_online,
            dispatching=self.dispatcher.dispatching,
            last_sync_time=self.dispatcher.last_sync_time,
            sync_interval=self.settings.sync_interval_seconds,
        )

    def get_sync_stats(self) -> SyncStats:
        return self.store.stats(self.settings.max_retry_attempts)

    def recent_sync_logs(self, limit: int = 20) -> List[SyncLog]:
        return self.store.recent_sync_logs(limit)

    def get_recent_activity(self, limit: int = 50) -> List[dict]:
        return [_activity_dict(a) for a in self.store.recent_activity(limit)]


def _activity_dict(entry: ActivityLog) -> dict:
    return {
        "id": entry.id,
        "owner_id": entry.owner_id,
        "activity_type": entry.activity_type,
        "details": json.loads(entry.details_json),
        "timestamp": entry.timestamp_millis,
    }


def build_sync_engine(settings: Optional[Settings] = None, db_engine=None) -> CloudSyncEngine:
    """Wire an engine from settings, the shared DB engine and the configured transport."""
    from hatchsync.db.engine import create_db_engine, get_engine

    if settings is None:
        settings = get_settings()
        db_engine = db_engine or get_engine()
    elif db_engine is None:
        db_engine = create_db_engine(settings.database_url, timeout=settings.store_timeout_seconds)
    return CloudSyncEngine(settings, db_engine)
