"""Tests for the export job registry."""

import pytest
from datetime import datetime, timedelta
from unittest.mock import MagicMock

from clipforge.models.export import ExportJob, ExportStatus
from clipforge.services.export_registry import ExportRegistry, JobNotFoundError


def make_job(job_id="job1", **kwargs):
    return ExportJob(id=job_id, output_path=f"/exports/{job_id}.mp4", **kwargs)


@pytest.fixture
def registry():
    return ExportRegistry()


class TestRegistryBasics:
    """Tests for adding, reading and removing jobs."""

    @pytest.mark.asyncio
    async def test_add_and_get(self, registry):
        await registry.add(make_job())

        job = await registry.get("job1")
        assert job.id == "job1"
        assert job.status == ExportStatus.PREPARING
        assert "job1" in registry
        assert len(registry) == 1

    @pytest.mark.asyncio
    async def test_get_unknown(self, registry):
        assert await registry.get("nope") is None

    @pytest.mark.asyncio
    async def test_get_returns_snapshot(self, registry):
        """Mutating a returned job does not touch the registry."""
        await registry.add(make_job())

        job = await registry.get("job1")
        job.status = ExportStatus.COMPLETE

        assert (await registry.get("job1")).status == ExportStatus.PREPARING

    @pytest.mark.asyncio
    async def test_remove(self, registry):
        await registry.add(make_job())

        removed = await registry.remove("job1")

        assert removed.id == "job1"
        assert "job1" not in registry
        assert await registry.remove("job1") is None

    @pytest.mark.asyncio
    async def test_list_newest_first(self, registry):
        now = datetime.now()
        await registry.add(make_job("old", created_at=now - timedelta(minutes=5)))
        await registry.add(make_job("new", created_at=now))

        jobs = await registry.list()

        assert [j.id for j in jobs] == ["new", "old"]

    @pytest.mark.asyncio
    async def test_list_by_status(self, registry):
        await registry.add(make_job("a"))
        await registry.add(make_job("b"))
        await registry.transition("b", ExportStatus.FAILED, error="boom")

        failed = await registry.list(status=ExportStatus.FAILED)

        assert [j.id for j in failed] == ["b"]
        assert failed[0].error == "boom"


class TestRegistryTransitions:
    """Tests for status transitions."""

    @pytest.mark.asyncio
    async def test_happy_path(self, registry):
        await registry.add(make_job())
        process = MagicMock()

        assert await registry.start_rendering("job1", process)
        assert registry._jobs["job1"].process is process
        assert await registry.transition("job1", ExportStatus.COMPLETE)

        job = await registry.get("job1")
        assert job.status == ExportStatus.COMPLETE
        assert registry._jobs["job1"].process is None

    @pytest.mark.asyncio
    async def test_updates_timestamp(self, registry):
        created = datetime.now() - timedelta(hours=1)
        await registry.add(make_job(updated_at=created))

        await registry.transition("job1", ExportStatus.FAILED, error="x")

        assert (await registry.get("job1")).updated_at > created

    @pytest.mark.asyncio
    async def test_refuses_invalid_transition(self, registry):
        await registry.add(make_job())

        assert not await registry.transition("job1", ExportStatus.COMPLETE)
        assert (await registry.get("job1")).status == ExportStatus.PREPARING

    @pytest.mark.asyncio
    async def test_unknown_job(self, registry):
        assert not await registry.transition("nope", ExportStatus.FAILED)
        assert not await registry.start_rendering("nope", MagicMock())

    @pytest.mark.asyncio
    async def test_cancelled_is_final(self, registry):
        """A late supervisor report cannot overwrite a cancellation."""
        await registry.add(make_job())
        await registry.start_rendering("job1", MagicMock())
        await registry.cancel("job1")

        assert not await registry.transition("job1", ExportStatus.FAILED, error="killed")
        assert not await registry.transition("job1", ExportStatus.COMPLETE)

        job = await registry.get("job1")
        assert job.status == ExportStatus.CANCELLED
        assert job.error is None

    @pytest.mark.asyncio
    async def test_start_rendering_after_cancel(self, registry):
        await registry.add(make_job())
        await registry.cancel("job1")

        assert not await registry.start_rendering("job1", MagicMock())
        assert registry._jobs["job1"].process is None


class TestRegistryCancel:
    """Tests for cancel."""

    @pytest.mark.asyncio
    async def test_cancel_rendering_returns_process(self, registry):
        await registry.add(make_job())
        process = MagicMock()
        await registry.start_rendering("job1", process)

        cancelled, job, handed_back = await registry.cancel("job1")

        assert cancelled
        assert job.status == ExportStatus.CANCELLED
        assert job.output_path == "/exports/job1.mp4"
        assert handed_back is process
        assert registry._jobs["job1"].process is None

    @pytest.mark.asyncio
    async def test_cancel_preparing(self, registry):
        await registry.add(make_job())

        cancelled, job, process = await registry.cancel("job1")

        assert cancelled
        assert process is None

    @pytest.mark.asyncio
    async def test_cancel_twice(self, registry):
        await registry.add(make_job())
        await registry.cancel("job1")

        cancelled, job, process = await registry.cancel("job1")

        assert not cancelled
        assert job.status == ExportStatus.CANCELLED
        assert process is None

    @pytest.mark.asyncio
    async def test_cancel_complete(self, registry):
        await registry.add(make_job())
        await registry.start_rendering("job1", MagicMock())
        await registry.transition("job1", ExportStatus.COMPLETE)

        cancelled, job, _ = await registry.cancel("job1")

        assert not cancelled
        assert job.status == ExportStatus.COMPLETE

    @pytest.mark.asyncio
    async def test_cancel_unknown(self, registry):
        with pytest.raises(JobNotFoundError, match="Export job not found: nope"):
            await registry.cancel("nope")


class TestRegistryStats:
    """Tests for live_job_ids and get_stats."""

    @pytest.mark.asyncio
    async def test_live_jobs(self, registry):
        await registry.add(make_job("preparing"))
        await registry.add(make_job("rendering"))
        await registry.add(make_job("done"))
        await registry.start_rendering("rendering", MagicMock())
        await registry.transition("done", ExportStatus.FAILED)

        assert sorted(await registry.live_job_ids()) == ["preparing", "rendering"]

    @pytest.mark.asyncio
    async def test_stats(self, registry):
        await registry.add(make_job("a"))
        await registry.add(make_job("b"))
        await registry.transition("b", ExportStatus.FAILED)

        stats = await registry.get_stats()

        assert stats == {"total": 2, "by_status": {"preparing": 1, "failed": 1}}
