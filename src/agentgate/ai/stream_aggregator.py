"""Aggregation of incremental token feeds into partial updates and one final text.

The aggregator drives a :class:`~agentgate.ai.token_source.TokenSource`
under a deadline and always returns a single
:class:`~agentgate.datatypes.stream_datatypes.GenerationOutcome`:

- COMPLETED: the source reached ``STREAM_END`` (or closed) and the text is the
  exact concatenation of every token fragment.
- TIMED_OUT: the deadline expired first.
- STREAM_ERROR: the source raised; the accumulated text is preserved.

Partial updates are throttled by length: the observer is called each time the
accumulated text crosses another multiple of ``partial_every`` characters.
"""

from __future__ import annotations

import asyncio
import inspect
import time
from typing import Awaitable, Callable, List

from agentgate.ai.token_source import TokenSource
from agentgate.datatypes.agent_datatypes import AgentProfile
from agentgate.datatypes.stream_datatypes import (
    GenerationOutcome,
    GenerationStatus,
    StreamEnd,
    TokenEvent,
)
from agentgate.util.logger import get_logger

logger = get_logger("stream_aggregator")

PartialCallback = Callable[[str], Awaitable[None] | None]


class _Progress:
    """Mutable accumulation state shared between the consumer and the caller."""

    __slots__ = ("fragments", "length", "bucket", "ended", "skipped")

    def __init__(self) -> None:
        self.fragments: List[str] = []
        self.length = 0
        self.bucket = 0
        self.ended = False
        self.skipped = 0

    @property
    def text(self) -> str:
        return "".join(self.fragments)


class StreamAggregator:
    def __init__(
        self,
        source: TokenSource,
        *,
        partial_every: int = 20,
        default_timeout: float = 180.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if partial_every <= 0:
            raise ValueError("partial_every must be positive")
        self.source = source
        self.partial_every = partial_every
        self.default_timeout = default_timeout
        self.clock = clock

    async def generate(
        self,
        prompt: str,
        agent: AgentProfile,
        timeout: float | None = None,
        *,
        instructions: str | None = None,
        on_partial: PartialCallback | None = None,
    ) -> GenerationOutcome:
        """Run one generation call and return its outcome.

        Parameters
        ----------
        prompt:
            User-facing prompt (context plus current message).
        agent:
            Agent whose profile and credential drive the call.
        timeout:
            Deadline in seconds; defaults to ``default_timeout``.
        instructions:
            Mode instructions forwarded to the source (moderation vs chat).
        on_partial:
            Optional observer called with the accumulated text on each
            throttled update. Failures in the observer are logged and ignored.
        """
        deadline = self.default_timeout if timeout is None else timeout
        progress = _Progress()
        started = self.clock()

        try:
            async with asyncio.timeout(deadline) as scope:
                await self._consume(progress, prompt, agent, instructions, on_partial)
        except TimeoutError as exc:
            elapsed = self.clock() - started
            if scope.expired():
                logger.warning(
                    "[STREAM] Generation for agent %s timed out after %.1fs (%d chars received)",
                    agent.agent_id, elapsed, progress.length,
                )
                return GenerationOutcome(
                    status=GenerationStatus.TIMED_OUT,
                    partial_text=progress.text,
                    error=f"timed out after {deadline:g}s",
                    elapsed=elapsed,
                )
            return self._stream_error(agent, progress, exc, elapsed)
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            return self._stream_error(agent, progress, exc, self.clock() - started)

        elapsed = self.clock() - started
        if progress.skipped:
            logger.warning("[STREAM] Skipped %d malformed events for agent %s", progress.skipped, agent.agent_id)
        logger.debug("[STREAM] Agent %s completed %d chars in %.2fs", agent.agent_id, progress.length, elapsed)
        return GenerationOutcome(status=GenerationStatus.COMPLETED, text=progress.text, elapsed=elapsed)

    async def _consume(
        self,
        progress: _Progress,
        prompt: str,
        agent: AgentProfile,
        instructions: str | None,
        on_partial: PartialCallback | None,
    ) -> None:
        feed = self.source.stream(prompt, agent, instructions)
        try:
            async for event in feed:
                if isinstance(event, StreamEnd):
                    progress.ended = True
                    break

                if not isinstance(event, TokenEvent) or not isinstance(event.token, str):
                    progress.skipped += 1
                    logger.debug("[STREAM] Skipping malformed event %r", event)
                    continue

                if not event.token:
                    continue

                progress.fragments.append(event.token)
                progress.length += len(event.token)

                bucket = progress.length // self.partial_every
                if bucket > progress.bucket:
                    progress.bucket = bucket
                    if on_partial is not None:
                        await self._notify(on_partial, progress.text)
        finally:
            aclose = getattr(feed, "aclose", None)
            if aclose is not None:
                await aclose()

        if not progress.ended:
            logger.info("[STREAM] Token feed for agent %s closed without an end marker", agent.agent_id)

    @staticmethod
    async def _notify(on_partial: PartialCallback, text: str) -> None:
        try:
            result = on_partial(text)
            if inspect.isawaitable(result):
                await result
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            logger.warning("[STREAM] Partial update observer failed: %s", exc)

    @staticmethod
    def _stream_error(agent: AgentProfile, progress: _Progress, exc: BaseException, elapsed: float) -> GenerationOutcome:
        logger.error(
            "[STREAM] Token feed for agent %s failed after %d chars: %s",
            agent.agent_id, progress.length, exc,
        )
        return GenerationOutcome(
            status=GenerationStatus.STREAM_ERROR,
            partial_text=progress.text,
            error=str(exc) or type(exc).__name__,
            elapsed=elapsed,
        )
