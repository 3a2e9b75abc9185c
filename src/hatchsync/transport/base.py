"""Remote transport contract and the batch envelope sent over it."""
import json
import time
import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Dict, Optional, Sequence, Tuple

from hatchsync.models.event import EventRecord


@dataclass(frozen=True)
class RecordSnapshot:
    """Immutable copy of the EventRecord fields that go over the wire."""

    id: int
    owner_id: str
    kind: str
    payload_json: str
    created_at_millis: int

    @classmethod
    def from_record(cls, record: EventRecord) -> "RecordSnapshot":
        return cls(
            id=record.id,
            owner_id=record.owner_id,
            kind=record.kind,
            payload_json=record.payload_json,
            created_at_millis=record.created_at_millis,
        )


@dataclass(frozen=True)
class SyncBatch:
    batch_id: str
    timestamp_millis: int
    records: Tuple[RecordSnapshot, ...]

    @property
    def record_ids(self) -> Tuple[int, ...]:
        return tuple(r.id for r in self.records)

    def __len__(self) -> int:
        return len(self.records)


@dataclass
class TransportResult:
    success: bool
    provider_batch_id: Optional[str] = None
    error: Optional[Exception] = None  # TransportError or RemoteRejection


def new_batch_id() -> str:
    """Time-derived prefix plus a random suffix, so ids never repeat."""
    return f"batch_{int(time.time() * 1000)}_{uuid.uuid4().hex[:8]}"


def make_batch(records: Sequence[EventRecord], batch_id: Optional[str] = None) -> SyncBatch:
    """Snapshot records (ascending id) into a new SyncBatch."""
    snapshots = tuple(
        sorted((RecordSnapshot.from_record(r) for r in records), key=lambda s: s.id)
    )
    return SyncBatch(
        batch_id=batch_id or new_batch_id(),
        timestamp_millis=int(time.time() * 1000),
        records=snapshots,
    )


def build_envelope(batch: SyncBatch) -> Dict[str, Any]:
    """JSON body POSTed to the cloud endpoint."""
    return {
        "batchId": batch.batch_id,
        "timestamp": batch.timestamp_millis,
        "records": [
            {
                "id": r.id,
                "ownerId": r.owner_id,
                "kind": r.kind,
                "payload": json.loads(r.payload_json),
                "createdAtMillis": r.created_at_millis,
            }
            for r in batch.records
        ],
    }


class RemoteTransport(ABC):
    """Delivers one batch to the remote endpoint."""

    @abstractmethod
    async def send(self, batch: SyncBatch) -> TransportResult:
        """
        Deliver the batch.

        Implementations report failure through TransportResult.error rather
        than raising, but the dispatcher tolerates raised exceptions too.
        """
