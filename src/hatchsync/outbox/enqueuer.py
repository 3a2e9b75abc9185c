"""Outbox enqueuer: the only write path for new event records."""
import json
import logging
from typing import Any, Callable, Optional

from hatchsync.errors import ValidationError
from hatchsync.outbox.store import EventStore

logger = logging.getLogger(__name__)

SYSTEM_OWNER = "system"


def serialize_payload(payload: Any) -> str:
    """Serialize a payload to JSON text or raise ValidationError."""
    try:
        return json.dumps(payload, allow_nan=False, separators=(",", ":"))
    except (TypeError, ValueError) as exc:
        raise ValidationError(f"payload is not JSON-serializable: {exc}") from exc


class Enqueuer:
    """
    Validates application events and persists them as pending records.

    Durability, not immediacy, is the guarantee: once enqueue() returns the
    event is on disk. The on_enqueued hook (normally SyncScheduler.trigger)
    only asks for an early dispatch and is never allowed to fail the caller.
    """

    def __init__(self, store: EventStore, on_enqueued: Optional[Callable[[], Any]] = None):
        self.store = store
        self.on_enqueued = on_enqueued

    def enqueue(self, owner_id: Optional[str], kind: str, payload: Any) -> int:
        """
        Persist one event and return its record id.

        Raises:
            ValidationError: kind is empty or payload is not serializable.
                Nothing is written in that case.
            StoreError: the record could not be written.
        """
        owner, kind, payload_json = _prepare(owner_id, kind, payload)
        record = self.store.insert(owner, kind, payload_json)
        logger.debug("Enqueued %s event %d for %s", record.kind, record.id, owner)

        self._kick()
        return record.id

    def log_activity(self, owner_id: Optional[str], activity_type: str, details: Any) -> int:
        """Like enqueue(), but also records the event in the local activity feed.

        The outbox row and the feed row are written in the same transaction.
        """
        owner, activity_type, details_json = _prepare(owner_id, activity_type, details)
        record = self.store.insert_with_activity(owner, activity_type, details_json)
        logger.debug("Logged %s activity %d for %s", record.kind, record.id, owner)

        self._kick()
        return record.id

    def _kick(self) -> None:
        if self.on_enqueued is None:
            return
        try:
            self.on_enqueued()
        except Exception as exc:
            logger.warning("Could not request immediate sync: %s", exc)


def _prepare(owner_id: Optional[str], kind: str, payload: Any):
    if not isinstance(kind, str) or not kind.strip():
        raise ValidationError("kind must be a non-empty string")
    payload_json = serialize_payload(payload)
    owner = str(owner_id) if owner_id not in (None, "") else SYSTEM_OWNER
    return owner, kind.strip(), payload_json
