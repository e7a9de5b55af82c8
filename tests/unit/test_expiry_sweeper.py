"""Tests for the periodic expiry sweeper"""

import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest

from export_service.services.expiry_sweeper import ExpirySweeper


@pytest.fixture
def export_service() -> MagicMock:
    service = MagicMock()
    service.expire_stale_exports = AsyncMock(return_value=3)
    return service


class TestExpirySweeper:
    """Test ExpirySweeper lifecycle"""

    @pytest.mark.asyncio
    async def test_sweep_once(self, export_service: MagicMock) -> None:
        sweeper = ExpirySweeper(export_service, interval=60)

        assert await sweeper.sweep_once() == 3
        assert sweeper.last_expired_count == 3
        export_service.expire_stale_exports.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_runs_periodically(self, export_service: MagicMock) -> None:
        sweeper = ExpirySweeper(export_service, interval=0.01)

        await sweeper.start()
        await asyncio.sleep(0.1)
        await sweeper.stop()

        assert export_service.expire_stale_exports.await_count >= 2
        assert not sweeper.running

    @pytest.mark.asyncio
    async def test_failed_sweep_keeps_running(self, export_service: MagicMock) -> None:
        calls = []

        async def flaky() -> int:
            calls.append(1)
            if len(calls) == 1:
                raise RuntimeError("boom")
            return 0

        export_service.expire_stale_exports = AsyncMock(side_effect=flaky)
        sweeper = ExpirySweeper(export_service, interval=0.01)

        await sweeper.start()
        await asyncio.sleep(0.05)

        assert sweeper.running
        await sweeper.stop()
        assert export_service.expire_stale_exports.await_count >= 2

    @pytest.mark.asyncio
    async def test_start_twice_is_harmless(self, export_service: MagicMock) -> None:
        sweeper = ExpirySweeper(export_service, interval=60)

        await sweeper.start()
        task = sweeper._task
        await sweeper.start()

        assert sweeper._task is task
        await sweeper.stop()

    @pytest.mark.asyncio
    async def test_stop_when_not_running(self, export_service: MagicMock) -> None:
        await ExpirySweeper(export_service).stop()
