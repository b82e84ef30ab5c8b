"""
Delayed unban scheduler.

Temporary removal from a chat is expressed as a ban followed by an unban a
few seconds later; this scheduler runs those deferred unbans. One background
task sleeps until the earliest job in a min-heap is due. Rescheduling the same
(chat, participant) pair replaces the pending job.
"""

from __future__ import annotations

import asyncio
import heapq
from dataclasses import dataclass
from typing import Awaitable, Callable, Dict, Tuple

from agentgate.util.logger import get_logger

logger = get_logger("unban_scheduler")

UnbanCallable = Callable[[str, str, str], Awaitable[None]]


@dataclass(slots=True)
class ScheduledUnban:
    """
    A pending unban.

    Attributes:
        chat_id: Chat the participant is banned from.
        participant_id: Participant to unban.
        unban: Coroutine function called as ``unban(participant_id, chat_id, reason)``.
        reason: Reason passed to the platform.
    """
    chat_id: str
    participant_id: str
    unban: UnbanCallable
    reason: str = "Temporary removal expired."

    @property
    def key(self) -> Tuple[str, str]:
        return (self.chat_id, self.participant_id)


class UnbanScheduler:
    """
    Min-heap scheduler for delayed unbans with cancellation and graceful shutdown.

    Attributes:
        heap: ``(run_at, job_id, payload)`` tuples ordered by due time.
        pending_keys: Maps (chat_id, participant_id) to its live job id.
        cancelled_ids: Job ids to skip when they reach the top of the heap.
    """

    def __init__(self) -> None:
        self.heap: list[tuple[float, int, ScheduledUnban]] = []
        self.pending_keys: Dict[Tuple[str, str], int] = {}
        self.cancelled_ids: set[int] = set()
        self.counter: int = 0
        self.runner_task: asyncio.Task[None] | None = None
        self.condition: asyncio.Condition = asyncio.Condition()

    def ensure_runner(self) -> None:
        if self.runner_task is None or self.runner_task.done():
            self.runner_task = asyncio.get_running_loop().create_task(self.run(), name="agentgate-unban-scheduler")

    async def schedule(
        self,
        chat_id: str,
        participant_id: str,
        delay_seconds: float,
        unban: UnbanCallable,
        *,
        reason: str = "Temporary removal expired.",
    ) -> None:
        """
        Schedule an unban, or run it now when ``delay_seconds`` is not positive.

        An existing pending unban for the same participant and chat is replaced.
        """
        payload = ScheduledUnban(chat_id=str(chat_id), participant_id=str(participant_id), unban=unban, reason=reason)

        if delay_seconds <= 0:
            await self.execute(payload)
            return

        run_at = asyncio.get_running_loop().time() + delay_seconds

        async with self.condition:
            self.ensure_runner()
            previous = self.pending_keys.get(payload.key)
            if previous is not None:
                self.cancelled_ids.add(previous)

            self.counter += 1
            job_id = self.counter
            heapq.heappush(self.heap, (run_at, job_id, payload))
            self.pending_keys[payload.key] = job_id
            self.condition.notify_all()

    async def cancel(self, chat_id: str, participant_id: str) -> bool:
        """Cancel a pending unban. Returns False when none was scheduled."""
        async with self.condition:
            job_id = self.pending_keys.pop((str(chat_id), str(participant_id)), None)
            if job_id is None:
                return False

            self.cancelled_ids.add(job_id)
            self.condition.notify_all()
            return True

    def is_pending(self, chat_id: str, participant_id: str) -> bool:
        return (str(chat_id), str(participant_id)) in self.pending_keys

    async def shutdown(self) -> None:
        """Stop the runner and drop every pending job. Safe to call more than once."""
        async with self.condition:
            if self.runner_task:
                self.runner_task.cancel()
            self.heap.clear()
            self.pending_keys.clear()
            self.cancelled_ids.clear()
            self.condition.notify_all()

        if self.runner_task:
            try:
                await self.runner_task
            except asyncio.CancelledError:
                pass
            finally:
                self.runner_task = None

    async def run(self) -> None:
        loop = asyncio.get_running_loop()
        while True:
            async with self.condition:
                while self.heap and self.heap[0][1] in self.cancelled_ids:
                    _, job_id, _ = heapq.heappop(self.heap)
                    self.cancelled_ids.discard(job_id)

                if not self.heap:
                    await self.condition.wait()
                    continue

                run_at, _, _ = self.heap[0]
                delay = run_at - loop.time()

                if delay > 0:
                    try:
                        await asyncio.wait_for(self.condition.wait(), timeout=delay)
                    except asyncio.TimeoutError:
                        pass
                    continue

                _, job_id, payload = heapq.heappop(self.heap)
                if self.pending_keys.get(payload.key) == job_id:
                    del self.pending_keys[payload.key]

            await self.execute(payload)

    async def execute(self, payload: ScheduledUnban) -> None:
        """Run one unban. Failures are logged so the runner keeps going."""
        try:
            await payload.unban(payload.participant_id, payload.chat_id, payload.reason)
            logger.info("[UNBAN] Lifted removal of %s in %s", payload.participant_id, payload.chat_id)
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            logger.error("[UNBAN] Failed to unban %s in %s: %s", payload.participant_id, payload.chat_id, exc)
