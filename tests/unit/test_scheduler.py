"""Tests for APScheduler job configuration and the sync tick / trigger paths."""
import asyncio
import threading
from unittest.mock import AsyncMock, MagicMock

import pytest
from apscheduler.schedulers.asyncio import AsyncIOScheduler

from hatchsync.sync.dispatcher import DispatchOutcome, DispatchResult
from hatchsync.sync.scheduler import JOB_ID, SyncScheduler


def _dispatcher(dispatching=False, since_last=None):
    dispatcher = MagicMock()
    dispatcher.dispatching = dispatching
    dispatcher.seconds_since_last_attempt.return_value = since_last
    dispatcher.dispatch = AsyncMock(return_value=DispatchResult(DispatchOutcome.SYNCED))
    return dispatcher


class TestSchedulerJob:
    def test_wraps_asyncio_scheduler(self):
        scheduler = SyncScheduler(_dispatcher())
        assert isinstance(scheduler.scheduler, AsyncIOScheduler)

    def test_sync_job_registered(self):
        scheduler = SyncScheduler(_dispatcher())
        job_ids = [job.id for job in scheduler.scheduler.get_jobs()]
        assert JOB_ID in job_ids

    def test_sync_job_is_interval(self):
        scheduler = SyncScheduler(_dispatcher(), tick_seconds=2.0)
        job = scheduler.scheduler.get_job(JOB_ID)
        assert job.trigger.__class__.__name__ == "IntervalTrigger"
        assert job.trigger.interval.total_seconds() == 2.0

    def test_job_never_overlaps(self):
        scheduler = SyncScheduler(_dispatcher())
        job = scheduler.scheduler.get_job(JOB_ID)
        assert job.max_instances == 1
        assert job.coalesce is True

    def test_scheduler_not_running_on_creation(self):
        scheduler = SyncScheduler(_dispatcher())
        assert not scheduler.running

    @pytest.mark.asyncio
    async def test_start_and_shutdown(self):
        scheduler = SyncScheduler(_dispatcher())
        scheduler.start()
        assert scheduler.running
        scheduler.shutdown()
        await asyncio.sleep(0)
        assert not scheduler.running


class TestTick:
    @pytest.mark.asyncio
    async def test_first_tick_dispatches(self):
        dispatcher = _dispatcher(since_last=None)
        result = await SyncScheduler(dispatcher).tick()
        assert result.outcome == DispatchOutcome.SYNCED
        dispatcher.dispatch.assert_awaited_once_with()

    @pytest.mark.asyncio
    async def test_skips_before_interval_elapsed(self):
        dispatcher = _dispatcher(since_last=1.0)
        assert await SyncScheduler(dispatcher, sync_interval_seconds=2.0).tick() is None
        dispatcher.dispatch.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_dispatches_after_interval(self):
        dispatcher = _dispatcher(since_last=2.0)
        await SyncScheduler(dispatcher, sync_interval_seconds=2.0).tick()
        dispatcher.dispatch.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_noop_while_dispatching(self):
        dispatcher = _dispatcher(dispatching=True)
        assert await SyncScheduler(dispatcher).tick() is None
        dispatcher.dispatch.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_exception_does_not_propagate(self):
        dispatcher = _dispatcher()
        dispatcher.dispatch.side_effect = RuntimeError("boom")
        assert await SyncScheduler(dispatcher).tick() is None


class TestTrigger:
    def test_without_event_loop_returns_false(self):
        dispatcher = _dispatcher()
        assert SyncScheduler(dispatcher).trigger() is False
        dispatcher.dispatch.assert_not_called()

    @pytest.mark.asyncio
    async def test_noop_while_dispatching(self):
        dispatcher = _dispatcher(dispatching=True)
        assert SyncScheduler(dispatcher).trigger() is False
        await asyncio.sleep(0)
        dispatcher.dispatch.assert_not_called()

    @pytest.mark.asyncio
    async def test_spawns_dispatch_without_waiting(self):
        dispatcher = _dispatcher()
        scheduler = SyncScheduler(dispatcher)
        assert scheduler.trigger() is True
        dispatcher.dispatch.assert_not_awaited()
        await asyncio.sleep(0.01)
        dispatcher.dispatch.assert_awaited_once_with()

    @pytest.mark.asyncio
    async def test_from_worker_thread_after_start(self):
        dispatcher = _dispatcher()
        scheduler = SyncScheduler(dispatcher)
        scheduler.start()
        try:
            results = []
            thread = threading.Thread(target=lambda: results.append(scheduler.trigger()))
            thread.start()
            thread.join()
            await asyncio.sleep(0.01)
            assert results == [True]
            dispatcher.dispatch.assert_awaited_once()
        finally:
            scheduler.shutdown()

    @pytest.mark.asyncio
    async def test_triggered_failure_is_logged_not_raised(self):
        dispatcher = _dispatcher()
        dispatcher.dispatch.side_effect = RuntimeError("boom")
        scheduler = SyncScheduler(dispatcher)
        scheduler.trigger()
        await asyncio.sleep(0.01)
        dispatcher.dispatch.assert_awaited_once()
