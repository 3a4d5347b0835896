"""Tests for BackgroundScheduler: APScheduler-driven periodic sync."""

import asyncio

import pytest

from stepwatch.core.events import BACKGROUND_SYNC_COMPLETE, BACKGROUND_SYNC_RETRY, EventBus
from stepwatch.poller.background import WorkResult
from stepwatch.poller.scheduler import JOB_ID, RETRY_JOB_ID, BackgroundScheduler


class ScriptedWorker:
    """Returns queued results from do_work()."""

    def __init__(self, *results: WorkResult):
        self.results = list(results)
        self.calls = 0

    def do_work(self, now=None) -> WorkResult:
        self.calls += 1
        return self.results.pop(0) if self.results else WorkResult.SUCCESS


class TestRetryDelay:
    def test_exponential_with_interval_cap(self):
        scheduler = BackgroundScheduler(ScriptedWorker(), interval_minutes=15, retry_base_seconds=30)
        delays = [scheduler.retry_delay(n) for n in range(1, 8)]
        assert delays == [30, 60, 120, 240, 480, 900, 900]


@pytest.mark.smoke
class TestRunOnce:
    async def test_success_resets_retry_count(self):
        bus = EventBus()
        names = []
        bus.on_all(lambda e: names.append(e.name))

        worker = ScriptedWorker(WorkResult.RETRY, WorkResult.RETRY, WorkResult.SUCCESS)
        scheduler = BackgroundScheduler(worker, event_bus=bus)

        assert await scheduler.run_once() == WorkResult.RETRY
        assert await scheduler.run_once() == WorkResult.RETRY
        assert scheduler.retry_count == 2
        assert await scheduler.run_once() == WorkResult.SUCCESS
        assert scheduler.retry_count == 0
        assert names == [BACKGROUND_SYNC_RETRY, BACKGROUND_SYNC_RETRY, BACKGROUND_SYNC_COMPLETE]

    async def test_start_registers_interval_job_and_retry(self):
        worker = ScriptedWorker(WorkResult.RETRY)
        scheduler = BackgroundScheduler(worker, interval_minutes=15, flex_minutes=5)
        scheduler.start()
        try:
            assert scheduler.apscheduler is not None
            assert scheduler.apscheduler.running
            assert scheduler.apscheduler.get_job(JOB_ID) is not None

            await scheduler.run_once()
            assert scheduler.apscheduler.get_job(RETRY_JOB_ID) is not None
        finally:
            scheduler.shutdown()
        # AsyncIOScheduler needs an event loop tick to finalize state
        await asyncio.sleep(0)
        assert not scheduler.apscheduler.running

    def test_apscheduler_none_before_start(self):
        assert BackgroundScheduler(ScriptedWorker()).apscheduler is None
