"""Shared test fixtures."""
import asyncio
from typing import Generator, List, Optional

import pytest
from sqlalchemy.pool import StaticPool
from sqlmodel import Session, SQLModel, create_engine

# Import all models so SQLModel.metadata knows about them
from hatchsync.models.activity import ActivityLog  # noqa: F401
from hatchsync.models.event import EventRecord  # noqa: F401
from hatchsync.models.sync import SyncLog  # noqa: F401
from hatchsync.config import Settings
from hatchsync.outbox.store import EventStore
from hatchsync.transport.base import RemoteTransport, SyncBatch, TransportResult


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeMillis:
    """Epoch-millis clock that ticks by one on every read."""

    def __init__(self, start: int = 1_700_000_000_000):
        self.now = start

    def __call__(self) -> int:
        self.now += 1
        return self.now


class RecordingTransport(RemoteTransport):
    """
    Remote mock that keeps every batch it was handed.

    outcomes: consumed one per send; each is a TransportResult or an
    exception to raise. Once exhausted every send succeeds.
    gate: when set to an asyncio.Event, send() blocks on it after
    recording the batch and setting `started`.
    """

    def __init__(self, outcomes: Optional[list] = None):
        self.batches: List[SyncBatch] = []
        self.outcomes = list(outcomes or [])
        self.gate: Optional[asyncio.Event] = None
        self.started = asyncio.Event()

    async def send(self, batch: SyncBatch) -> TransportResult:
        self.batches.append(batch)
        self.started.set()
        if self.gate is not None:
            await self.gate.wait()
        outcome = self.outcomes.pop(0) if self.outcomes else None
        if isinstance(outcome, Exception):
            raise outcome
        if outcome is None:
            return TransportResult(success=True, provider_batch_id=batch.batch_id)
        return outcome

    @property
    def sent_ids(self) -> List[List[int]]:
        return [list(b.record_ids) for b in self.batches]


def make_settings(**overrides) -> Settings:
    values = dict(
        database_url="sqlite://",
        cloud_api_key="test-key",
        batch_size=100,
        sync_interval_seconds=2.0,
        tick_seconds=2.0,
        max_retry_attempts=3,
        transport_timeout_seconds=5.0,
        breaker_cooldown_seconds=30.0,
    )
    values.update(overrides)
    return Settings(_env_file=None, **values)


@pytest.fixture(name="engine")
def engine_fixture():
    """In-memory SQLite engine. Tables recreated fresh for each test."""
    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    SQLModel.metadata.create_all(engine)
    yield engine
    SQLModel.metadata.drop_all(engine)


@pytest.fixture(name="test_session")
def test_session_fixture(engine) -> Generator[Session, None, None]:
    """Provides a DB session connected to in-memory SQLite."""
    with Session(engine) as session:
        yield session


@pytest.fixture(name="clock")
def clock_fixture() -> FakeClock:
    return FakeClock()


@pytest.fixture(name="clock_millis")
def clock_millis_fixture() -> FakeMillis:
    return FakeMillis()


@pytest.fixture(name="store")
def store_fixture(engine, clock_millis) -> EventStore:
    return EventStore(engine, clock_millis=clock_millis)


@pytest.fixture(name="transport")
def transport_fixture() -> RecordingTransport:
    return RecordingTransport()


@pytest.fixture(name="settings_factory")
def settings_factory_fixture():
    """make_settings(**overrides) -> Settings with test defaults and no .env."""
    return make_settings


@pytest.fixture(name="make_transport")
def make_transport_fixture():
    """RecordingTransport class, for tests that need scripted outcomes."""
    return RecordingTransport
