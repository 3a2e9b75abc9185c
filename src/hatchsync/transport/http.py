"""
Async wrapper around a requests POST to the Zylon cloud sync endpoint.

requests is synchronous; the call runs on a single worker thread so it
doesn't block the asyncio event loop. The dispatcher bounds the await with
asyncio.wait_for, but a timed-out await leaves the POST running on that
thread. Until it finishes, send() fails fast instead of opening a second
request, so at most one request is ever outstanding against the endpoint.
"""
import asyncio
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Any, Dict, Optional, Tuple

import requests

from hatchsync.errors import RemoteRejection, TransportError
from hatchsync.transport.base import RemoteTransport, SyncBatch, TransportResult, build_envelope

SYNC_PATH = "/api/v1/hatch-os/sync"

# Statuses that mean "try again later" rather than "this batch is bad"
_RETRYABLE_STATUSES = {408, 429}


class HttpTransport(RemoteTransport):
    """POSTs batch envelopes with a bearer API key and the client version header."""

    def __init__(
        self,
        base_url: str,
        api_key: str,
        client_version: str = "1.0.0",
        timeout: float = 5.0,
        session: Optional[requests.Session] = None,
    ):
        """
        Args:
            timeout: Overall budget in seconds. The connect and read
                timeouts handed to requests are both kept below it.
        """
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.client_version = client_version
        self.timeout = timeout
        self._session = session or requests.Session()
        self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="hatchsync-http")
        self._pending: Optional[Future] = None

    @property
    def request_timeout(self) -> Tuple[float, float]:
        """(connect, read) timeouts for requests."""
        return (self.timeout * 0.4, self.timeout * 0.8)

    @property
    def busy(self) -> bool:
        return self._pending is not None and not self._pending.done()

    @property
    def endpoint(self) -> str:
        return f"{self.base_url}{SYNC_PATH}"

    def headers(self) -> Dict[str, str]:
        return {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
            "X-Hatch-Version": self.client_version,
        }

    async def send(self, batch: SyncBatch) -> TransportResult:
        if self.busy:
            return TransportResult(
                success=False,
                error=TransportError("Previous sync request is still in flight"),
            )
        self._pending = self._executor.submit(self._send_sync, batch)
        return await asyncio.wrap_future(self._pending)

    def _send_sync(self, batch: SyncBatch) -> TransportResult:
        try:
            response = self._session.post(
                self.endpoint,
                json=build_envelope(batch),
                headers=self.headers(),
                timeout=self.request_timeout,
            )
        except requests.Timeout as exc:
            return TransportResult(success=False, error=TransportError(f"Timed out after {self.timeout}s: {exc}"))
        except requests.RequestException as exc:
            return TransportResult(
                success=False,
                error=TransportError(f"Network error - offline mode activated: {exc}"),
            )

        if response.status_code >= 400:
            message = f"HTTP {response.status_code}: {_error_message(response)}"
            if response.status_code >= 500 or response.status_code in _RETRYABLE_STATUSES:
                return TransportResult(success=False, error=TransportError(message))
            return TransportResult(
                success=False,
                error=RemoteRejection(message, status_code=response.status_code),
            )

        body = _json_or_empty(response)
        acked = body.get("batchId")
        if acked is not None and acked != batch.batch_id:
            return TransportResult(
                success=False,
                error=RemoteRejection(
                    f"Endpoint acknowledged batch {acked!r}, expected {batch.batch_id!r}",
                    status_code=response.status_code,
                ),
            )
        return TransportResult(
            success=True,
            provider_batch_id=str(body.get("providerBatchId") or acked or batch.batch_id),
        )


def _json_or_empty(response) -> Dict[str, Any]:
    try:
        body = response.json()
    except ValueError:
        return {}
    return body if isinstance(body, dict) else {}


def _error_message(response) -> str:
    return _json_or_empty(response).get("message") or "Unknown error"
