"""Token source protocol consumed by the stream aggregator."""

from __future__ import annotations

from typing import AsyncIterator, Protocol

from agentgate.datatypes.agent_datatypes import AgentProfile


class TokenSource(Protocol):
    def stream(
        self,
        prompt: str,
        agent: AgentProfile,
        instructions: str | None = None,
    ) -> AsyncIterator[object]:
        """Yield ``TokenEvent`` items and finish with ``STREAM_END``.

        Transport failures are raised from the iterator.
        """
        ...
