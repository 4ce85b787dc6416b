"""
Scheduler Tests.

WHY: The redelivery job is the only thing that picks up outbox events
left pending by a crash, so it must be registered on start and the
scheduler must stop cleanly on shutdown.
"""

import pytest

from app.services.scheduler import (
    OUTBOX_JOB_ID,
    get_scheduler,
    get_scheduler_status,
    shutdown_scheduler,
    start_scheduler,
)


class TestScheduler:
    @pytest.mark.asyncio
    async def test_start_registers_redelivery_job(self, dispatcher):
        await start_scheduler(dispatcher)
        try:
            status = get_scheduler_status()
            assert status["running"] is True
            assert [job["id"] for job in status["jobs"]] == [OUTBOX_JOB_ID]
            assert get_scheduler().get_job(OUTBOX_JOB_ID).func == dispatcher.redeliver_pending
        finally:
            await shutdown_scheduler()

        assert get_scheduler() is None
        assert get_scheduler_status() == {"running": False, "jobs": []}

    @pytest.mark.asyncio
    async def test_start_twice_keeps_one_scheduler(self, dispatcher):
        await start_scheduler(dispatcher)
        try:
            first = get_scheduler()
            await start_scheduler(dispatcher)
            assert get_scheduler() is first
        finally:
            await shutdown_scheduler()

    @pytest.mark.asyncio
    async def test_shutdown_without_start(self):
        await shutdown_scheduler()
        assert get_scheduler() is None
