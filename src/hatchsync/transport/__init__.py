from hatchsync.config import Settings
from hatchsync.transport.base import RemoteTransport, SyncBatch, TransportResult
from hatchsync.transport.demo import DemoTransport
from hatchsync.transport.http import HttpTransport

DEMO_API_KEY = "demo_api_key"


def build_transport(settings: Settings) -> RemoteTransport:
    """DemoTransport when running with the demo key (or demo_mode), else HttpTransport."""
    if settings.demo_mode or settings.cloud_api_key == DEMO_API_KEY:
        return DemoTransport(failure_rate=settings.demo_failure_rate)
    return HttpTransport(
        base_url=settings.cloud_base_url,
        api_key=settings.cloud_api_key,
        client_version=settings.client_version,
        timeout=settings.transport_timeout_seconds,
    )


__all__ = [
    "DEMO_API_KEY",
    "DemoTransport",
    "HttpTransport",
    "RemoteTransport",
    "SyncBatch",
    "TransportResult",
    "build_transport",
]
