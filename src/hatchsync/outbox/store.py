"""
Durable SQLite-backed outbox store.

Every status/retry_count transition for a batch is applied in a single
session commit, so a crash can never leave half a batch "synced" and the
other half "pending".

Write-ahead marker: before a batch is handed to the transport its records
get in_flight_batch_id set (one commit). mark_synced()/mark_failed() clear
it in the same commit that changes the status. A marker still present on
startup therefore means "sent, outcome unknown"; recover_in_flight() makes
those rows selectable again so they are re-sent (at-least-once).
"""
import logging
import time
from contextlib import contextmanager
from typing import Iterator, List, Optional, Sequence

from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session, and_, col, func, or_, select

from hatchsync.errors import StoreError
from hatchsync.models.activity import ActivityLog
from hatchsync.models.event import EventRecord, EventStatus
from hatchsync.models.sync import SyncLog, SyncStats

logger = logging.getLogger(__name__)


def now_millis() -> int:
    return int(time.time() * 1000)


class EventStore:
    """Owns every read and write against the outbox tables."""

    def __init__(self, engine, clock_millis=now_millis):
        """
        Args:
            engine: SQLAlchemy engine (see hatchsync.db.engine.create_db_engine).
            clock_millis: Callable returning epoch milliseconds. Injected in tests.
        """
        self.engine = engine
        self._clock_millis = clock_millis

    @contextmanager
    def _session(self) -> Iterator[Session]:
        try:
            with Session(self.engine) as s:
                yield s
        except SQLAlchemyError as exc:
            raise StoreError(f"outbox store failure: {exc}") from exc

    # ─── Event records ────────────────────────────────────────────────────────

    def insert(self, owner_id: str, kind: str, payload_json: str) -> EventRecord:
        """Insert one pending record and return it with its assigned id."""
        record = EventRecord(
            owner_id=owner_id,
            kind=kind,
            payload_json=payload_json,
            created_at_millis=self._clock_millis(),
            status=EventStatus.PENDING.value,
            retry_count=0,
        )
        with self._session() as s:
            s.add(record)
            s.commit()
            s.refresh(record)
        return record

    def insert_with_activity(self, owner_id: str, kind: str, payload_json: str) -> EventRecord:
        """Insert a pending record and its activity-feed row in one commit.

        Either both rows exist afterwards or neither does.
        """
        now = self._clock_millis()
        record = EventRecord(
            owner_id=owner_id,
            kind=kind,
            payload_json=payload_json,
            created_at_millis=now,
            status=EventStatus.PENDING.value,
            retry_count=0,
        )
        activity = ActivityLog(
            owner_id=owner_id,
            activity_type=kind,
            details_json=payload_json,
            timestamp_millis=now,
        )
        with self._session() as s:
            s.add(activity)
            s.add(record)
            s.commit()
            s.refresh(record)
        return record

    def get(self, record_id: int) -> Optional[EventRecord]:
        with self._session() as s:
            return s.get(EventRecord, record_id)

    def select_batch(self, limit: int, max_retry_attempts: int) -> List[EventRecord]:
        """
        Return up to `limit` eligible records, oldest (lowest id) first.

        Eligible: status "pending", or status "failed" with
        retry_count < max_retry_attempts. Synced rows and failed rows past
        the ceiling are never returned.
        """
        stmt = (
            select(EventRecord)
            .where(
                or_(
                    EventRecord.status == EventStatus.PENDING.value,
                    and_(
                        EventRecord.status == EventStatus.FAILED.value,
                        EventRecord.retry_count < max_retry_attempts,
                    ),
                )
            )
            .order_by(col(EventRecord.id))
            .limit(limit)
        )
        with self._session() as s:
            return list(s.exec(stmt).all())

    def mark_in_flight(self, ids: Sequence[int], batch_id: str) -> None:
        """Tag records with the batch that is about to be sent."""
        with self._session() as s:
            for record in self._load(s, ids):
                record.in_flight_batch_id = batch_id
                s.add(record)
            s.commit()

    def mark_synced(self, ids: Sequence[int]) -> None:
        """Flip every record in the batch to synced in one transaction."""
        with self._session() as s:
            for record in self._load(s, ids):
                if record.status == EventStatus.SYNCED.value:
                    continue
                record.status = EventStatus.SYNCED.value
                record.in_flight_batch_id = None
                s.add(record)
            s.commit()

    def mark_failed(self, ids: Sequence[int]) -> None:
        """Mark every record in the batch failed and bump retry_count by exactly one."""
        with self._session() as s:
            for record in self._load(s, ids):
                if record.status == EventStatus.SYNCED.value:
                    continue
                record.status = EventStatus.FAILED.value
                record.retry_count += 1
                record.in_flight_batch_id = None
                s.add(record)
            s.commit()

    def recover_in_flight(self) -> int:
        """
        Clear markers left behind by an interrupted dispatch.

        Rows that were pending stay pending and rows that were failed stay
        failed with their retry_count intact; either way they are selectable
        again and will be re-sent. Returns the number of rows recovered.
        """
        with self._session() as s:
            stale = s.exec(
                select(EventRecord).where(
                    col(EventRecord.in_flight_batch_id).is_not(None)
                )
            ).all()
            # Markers are only ever set on pending/failed rows, and the commit
            # that would have made them synced also clears the marker, so a
            # marked row was never acknowledged locally.
            for record in stale:
                record.in_flight_batch_id = None
                s.add(record)
            s.commit()
            recovered = len(stale)
        if recovered:
            logger.warning(
                "Recovered %d record(s) from an interrupted sync; they will be re-sent",
                recovered,
            )
        return recovered

    def stats(self, max_retry_attempts: int) -> SyncStats:
        """Counts of total/synced/pending/failed records plus terminal failures."""
        with self._session() as s:
            rows = s.exec(
                select(EventRecord.status, func.count(col(EventRecord.id)))
                .group_by(EventRecord.status)
            ).all()
            terminal = s.exec(
                select(func.count(col(EventRecord.id))).where(
                    EventRecord.status == EventStatus.FAILED.value,
                    EventRecord.retry_count >= max_retry_attempts,
                )
            ).one()

        counts = {status: count for status, count in rows}
        return SyncStats(
            total=sum(counts.values()),
            synced=counts.get(EventStatus.SYNCED.value, 0),
            pending=counts.get(EventStatus.PENDING.value, 0),
            failed=counts.get(EventStatus.FAILED.value, 0),
            terminal_failed=terminal,
        )

    # ─── Sync log ─────────────────────────────────────────────────────────────

    def append_sync_log(
        self,
        batch_id: str,
        *,
        record_count: int,
        success: bool,
        duration_ms: int,
        error_message: Optional[str] = None,
        provider_batch_id: Optional[str] = None,
    ) -> SyncLog:
        entry = SyncLog(
            batch_id=batch_id,
            record_count=record_count,
            success=success,
            error_message=error_message,
            duration_ms=duration_ms,
            provider_batch_id=provider_batch_id,
        )
        with self._session() as s:
            s.add(entry)
            s.commit()
            s.refresh(entry)
        return entry

    def recent_sync_logs(self, limit: int = 20) -> List[SyncLog]:
        with self._session() as s:
            return list(
                s.exec(
                    select(SyncLog).order_by(col(SyncLog.id).desc()).limit(limit)
                ).all()
            )

    # ─── Activity feed ────────────────────────────────────────────────────────

    def recent_activity(self, limit: int = 50) -> List[ActivityLog]:
        """Newest first."""
        with self._session() as s:
            return list(
                s.exec(
                    select(ActivityLog)
                    .order_by(
                        col(ActivityLog.timestamp_millis).desc(),
                        col(ActivityLog.id).desc(),
                    )
                    .limit(limit)
                ).all()
            )

    # ─── Internal helpers ─────────────────────────────────────────────────────

    @staticmethod
    def _load(s: Session, ids: Sequence[int]) -> List[EventRecord]:
        if not ids:
            return []
        return list(
            s.exec(select(EventRecord).where(col(EventRecord.id).in_(list(ids)))).all()
        )
