import asyncio
from unittest.mock import AsyncMock

import pytest

from agentgate.scheduler.unban_scheduler import ScheduledUnban, UnbanScheduler


@pytest.mark.asyncio
async def test_schedule_immediate_invokes_execute() -> None:
    scheduler = UnbanScheduler()
    unban = AsyncMock()

    await scheduler.schedule("chat", "42", 0, unban, reason="done")

    unban.assert_awaited_once_with("42", "chat", "done")
    assert scheduler.runner_task is None
    await scheduler.shutdown()


@pytest.mark.asyncio
async def test_schedule_and_cancel_pending_job() -> None:
    scheduler = UnbanScheduler()
    unban = AsyncMock()

    await scheduler.schedule("chat", "77", 5, unban)
    assert ("chat", "77") in scheduler.pending_keys
    assert scheduler.is_pending("chat", "77")

    assert await scheduler.cancel("chat", "77") is True
    assert await scheduler.cancel("chat", "77") is False
    assert not scheduler.is_pending("chat", "77")

    await scheduler.shutdown()
    unban.assert_not_awaited()


@pytest.mark.asyncio
async def test_due_job_runs_in_background() -> None:
    scheduler = UnbanScheduler()
    unban = AsyncMock()

    await scheduler.schedule("chat", "5", 0.01, unban)
    await asyncio.sleep(0.1)

    unban.assert_awaited_once()
    assert not scheduler.is_pending("chat", "5")
    await scheduler.shutdown()


@pytest.mark.asyncio
async def test_jobs_run_in_due_order() -> None:
    scheduler = UnbanScheduler()
    order: list[str] = []

    async def unban(participant_id: str, chat_id: str, reason: str) -> None:
        order.append(participant_id)

    await scheduler.schedule("chat", "late", 0.08, unban)
    await scheduler.schedule("chat", "early", 0.02, unban)
    await asyncio.sleep(0.2)

    assert order == ["early", "late"]
    await scheduler.shutdown()


@pytest.mark.asyncio
async def test_rescheduling_replaces_pending_job() -> None:
    scheduler = UnbanScheduler()
    first = AsyncMock()
    second = AsyncMock()

    await scheduler.schedule("chat", "9", 0.02, first)
    await scheduler.schedule("chat", "9", 0.04, second)
    await asyncio.sleep(0.15)

    first.assert_not_awaited()
    second.assert_awaited_once()
    await scheduler.shutdown()


@pytest.mark.asyncio
async def test_execute_logs_failures_without_raising() -> None:
    scheduler = UnbanScheduler()
    unban = AsyncMock(side_effect=RuntimeError("platform down"))

    await scheduler.execute(ScheduledUnban(chat_id="chat", participant_id="1", unban=unban))

    unban.assert_awaited_once_with("1", "chat", "Temporary removal expired.")


@pytest.mark.asyncio
async def test_shutdown_is_idempotent() -> None:
    scheduler = UnbanScheduler()
    await scheduler.schedule("chat", "1", 10, AsyncMock())

    await scheduler.shutdown()
    await scheduler.shutdown()

    assert scheduler.heap == []
    assert scheduler.pending_keys == {}
    assert scheduler.runner_task is None


def test_scheduled_unban_key() -> None:
    payload = ScheduledUnban(chat_id="c", participant_id="p", unban=AsyncMock())
    assert payload.key == ("c", "p")
