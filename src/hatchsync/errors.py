"""Error taxonomy shared by the outbox, the transports and the dispatcher."""
from typing import Optional


class HatchSyncError(RuntimeError):
    """Base class for all hatchsync errors."""


class ValidationError(HatchSyncError, ValueError):
    """Raised synchronously by enqueue() for malformed input. Never persisted."""


class TransportError(HatchSyncError):
    """Connectivity failure or timeout talking to the remote endpoint.

    Trips the offline breaker; the batch's records are retried.
    """


class RemoteRejection(HatchSyncError):
    """The endpoint was reachable but explicitly rejected the batch."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class StoreError(HatchSyncError):
    """Local durable-store I/O failure."""
