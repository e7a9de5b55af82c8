"""Tests for the background export runner"""

import asyncio

import pytest

from export_service.core.logging import export_id_var
from export_service.services.export_runner import ExportRunner


class TestExportRunner:
    """Test ExportRunner scheduling and cancellation"""

    @pytest.mark.asyncio
    async def test_submit_runs_task(self) -> None:
        runner = ExportRunner(max_concurrent=2)
        ran = []

        async def work() -> None:
            ran.append(export_id_var.get())

        runner.submit("job-1", work)
        await runner.join(timeout=1)

        assert ran == ["job-1"]
        assert runner.get_active_count() == 0
        assert not runner.is_active("job-1")

    @pytest.mark.asyncio
    async def test_concurrency_is_bounded(self) -> None:
        runner = ExportRunner(max_concurrent=2)
        release = asyncio.Event()
        running = 0
        peak = 0

        async def work() -> None:
            nonlocal running, peak
            running += 1
            peak = max(peak, running)
            await release.wait()
            running -= 1

        for i in range(5):
            runner.submit(f"job-{i}", work)

        await asyncio.sleep(0.05)
        stats = runner.get_stats()
        assert stats["executing"] == 2
        assert stats["waiting"] == 3
        assert stats["scheduled"] == 5

        release.set()
        await runner.join(timeout=1)

        assert peak == 2

    @pytest.mark.asyncio
    async def test_cancel_interrupts_task(self) -> None:
        runner = ExportRunner()
        started = asyncio.Event()
        cancelled = asyncio.Event()

        async def work() -> None:
            started.set()
            try:
                await asyncio.sleep(10)
            except asyncio.CancelledError:
                cancelled.set()
                raise

        runner.submit("job-1", work)
        await started.wait()

        assert runner.cancel("job-1") is True
        await runner.join(timeout=1)

        assert cancelled.is_set()
        assert runner.cancel("job-1") is False

    @pytest.mark.asyncio
    async def test_cancel_unknown_job(self) -> None:
        assert ExportRunner().cancel("missing") is False

    @pytest.mark.asyncio
    async def test_crash_is_contained(self) -> None:
        runner = ExportRunner()

        async def work() -> None:
            raise ValueError("boom")

        task = runner.submit("job-1", work)
        await runner.join(timeout=1)

        assert task.done()
        assert task.exception() is None

    @pytest.mark.asyncio
    async def test_stop_cancels_everything(self) -> None:
        runner = ExportRunner()

        async def work() -> None:
            await asyncio.sleep(10)

        runner.submit("job-1", work)
        runner.submit("job-2", work)
        await asyncio.sleep(0)

        await runner.stop()

        assert runner.accepting is False
        assert runner.active_job_ids() == []
        with pytest.raises(RuntimeError):
            runner.submit("job-3", work)

    @pytest.mark.asyncio
    async def test_join_timeout(self) -> None:
        runner = ExportRunner()

        async def work() -> None:
            await asyncio.sleep(10)

        runner.submit("job-1", work)

        with pytest.raises(asyncio.TimeoutError):
            await runner.join(timeout=0.05)

        await runner.stop()
