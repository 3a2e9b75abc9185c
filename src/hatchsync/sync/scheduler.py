"""
APScheduler tick for the outbox dispatcher.

The interval job fires every `tick_seconds`; a tick only dispatches when at
least `sync_interval_seconds` have passed since the last attempted send.
trigger() is the on-demand path used after every enqueue and by explicit
"sync now" requests. Both collapse into the dispatcher's single in-flight
attempt rather than queueing.
"""
import asyncio
import logging
from typing import Optional, Set

from apscheduler.schedulers.asyncio import AsyncIOScheduler

from hatchsync.sync.dispatcher import DispatchResult, SyncDispatcher

logger = logging.getLogger(__name__)

JOB_ID = "outbox_sync"


class SyncScheduler:
    """Drives SyncDispatcher on a fixed cadence and on demand."""

    def __init__(
        self,
        dispatcher: SyncDispatcher,
        *,
        tick_seconds: float = 2.0,
        sync_interval_seconds: float = 2.0,
    ):
        self.dispatcher = dispatcher
        self.tick_seconds = tick_seconds
        self.sync_interval_seconds = sync_interval_seconds
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._tasks: Set[asyncio.Task] = set()

        self.scheduler = AsyncIOScheduler()
        self.scheduler.add_job(
            self.tick,
            trigger="interval",
            seconds=tick_seconds,
            id=JOB_ID,
            replace_existing=True,
            max_instances=1,
            coalesce=True,
        )

    @property
    def running(self) -> bool:
        return self.scheduler.running

    def start(self) -> None:
        """Start ticking. Must be called from inside the running event loop."""
        self._loop = asyncio.get_running_loop()
        self.scheduler.start()
        logger.info(
            "Sync scheduler started (tick every %.1fs, interval %.1fs)",
            self.tick_seconds,
            self.sync_interval_seconds,
        )

    def shutdown(self) -> None:
        if self.scheduler.running:
            self.scheduler.shutdown(wait=False)
        for task in list(self._tasks):
            task.cancel()

    async def tick(self) -> Optional[DispatchResult]:
        """
        Scheduled job body. Returns None when the tick was a no-op.

        Catches all exceptions so the scheduler stays alive.
        """
        if self.dispatcher.dispatching:
            return None
        elapsed = self.dispatcher.seconds_since_last_attempt()
        if elapsed is not None and elapsed < self.sync_interval_seconds:
            return None
        try:
            return await self.dispatcher.dispatch()
        except Exception:
            logger.exception("Scheduled sync failed")
            return None

    def trigger(self) -> bool:
        """
        Ask for an immediate dispatch without waiting for it.

        Returns False when a dispatch is already running or there is no
        event loop to run one on. Safe to call from worker threads.
        """
        if self.dispatcher.dispatching:
            return False
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            loop = self._loop
            if loop is None or loop.is_closed():
                return False
            loop.call_soon_threadsafe(self._spawn)
            return True
        self._spawn()
        return True

    def _spawn(self) -> None:
        task = asyncio.get_running_loop().create_task(self._run_triggered())
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _run_triggered(self) -> None:
        try:
            await self.dispatcher.dispatch()
        except Exception:
            logger.exception("On-demand sync failed")
