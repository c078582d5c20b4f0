"""Tests for the debounced cloud write job."""

import asyncio

import pytest
from apscheduler.schedulers.asyncio import AsyncIOScheduler

from yearbird.core.scheduler import CLOUD_WRITE_JOB_ID, schedule_cloud_write


@pytest.fixture(name="target")
async def target_fixture():
    scheduler = AsyncIOScheduler()
    scheduler.start()
    yield scheduler
    scheduler.shutdown(wait=False)


class TestScheduleCloudWrite:
    async def test_reschedule_replaces_pending_job(self, target):
        async def write():
            pass

        schedule_cloud_write(write, delay_seconds=60, target=target)
        first_run = target.get_job(CLOUD_WRITE_JOB_ID).next_run_time
        schedule_cloud_write(write, delay_seconds=120, target=target)

        jobs = target.get_jobs()
        assert len(jobs) == 1
        assert jobs[0].next_run_time > first_run

    async def test_burst_of_edits_writes_once(self, target):
        """Only the last scheduled write runs."""
        calls = []

        async def write():
            calls.append(True)

        for _ in range(5):
            schedule_cloud_write(write, delay_seconds=0.05, target=target)
        await asyncio.sleep(0.5)

        assert calls == [True]
        assert target.get_job(CLOUD_WRITE_JOB_ID) is None
