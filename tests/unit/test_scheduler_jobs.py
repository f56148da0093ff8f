"""
Unit tests for the housekeeping scheduler.
"""

from datetime import timedelta
from unittest.mock import Mock, patch

import pytest
import pytest_asyncio

from src.models.bulk import ItemResult
from src.operations.orchestrator import set_orchestrator
from src.scheduler.jobs import SchedulerManager


@pytest_asyncio.fixture
async def scheduler_manager():
    manager = SchedulerManager()
    yield manager
    manager.stop()


@pytest.mark.asyncio
async def test_start_registers_purge_job(scheduler_manager):
    scheduler_manager.start()

    status = scheduler_manager.get_job_status()

    assert list(status) == ["purge_bulk_operations"]
    assert status["purge_bulk_operations"]["next_run"] is not None


@pytest.mark.asyncio
async def test_trigger_job(scheduler_manager):
    assert scheduler_manager.trigger_job("purge_bulk_operations") is False

    scheduler_manager.start()

    assert scheduler_manager.trigger_job("purge_bulk_operations") is True
    assert scheduler_manager.trigger_job("missing") is False


@pytest.mark.asyncio
async def test_purge_job_drops_expired_operations(scheduler_manager, orchestrator, make_descriptor):
    set_orchestrator(orchestrator)
    try:
        descriptor = make_descriptor(target_ids=("1",))
        report = await orchestrator.validate(descriptor)
        operation = await orchestrator.tracker.create(descriptor, report)
        await orchestrator.tracker.report(operation.id, ItemResult.succeeded("1", 2, ["status"]))
        orchestrator.tracker._operations[operation.id].completed_at -= timedelta(hours=100)

        purged = await scheduler_manager._purge_operations_job()

        assert purged == 1
        assert len(orchestrator.tracker) == 0
    finally:
        set_orchestrator(None)


@pytest.mark.asyncio
async def test_purge_job_never_raises(scheduler_manager):
    broken = Mock()
    broken.tracker.purge_expired.side_effect = RuntimeError("boom")

    with patch("src.scheduler.jobs.get_orchestrator", return_value=broken):
        assert await scheduler_manager._purge_operations_job() == 0
