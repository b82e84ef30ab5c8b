"""
Token stream and generation outcome types.

A token source yields :class:`TokenEvent` items and finishes with the
:data:`STREAM_END` sentinel. Anything else it yields is treated as a malformed
event and skipped by the aggregator.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from agentgate.errors import GenerationTimeoutError, StreamError


@dataclass(frozen=True, slots=True)
class TokenEvent:
    token: str
    completed: bool = False


class StreamEnd:
    """Explicit end-of-stream marker."""

    __slots__ = ()

    def __repr__(self) -> str:
        return "STREAM_END"


STREAM_END = StreamEnd()


class GenerationStatus(Enum):
    COMPLETED = "completed"
    TIMED_OUT = "timed_out"
    STREAM_ERROR = "stream_error"

    def __str__(self) -> str:
        return self.value


@dataclass(frozen=True, slots=True)
class GenerationOutcome:
    """Single result of a deadline-bounded generation call.

    Attributes:
        status: How the generation ended.
        text: Final text; only meaningful when ``status`` is COMPLETED.
        partial_text: Text accumulated before a timeout or stream error.
        error: Human readable failure description, if any.
        elapsed: Seconds spent in the call.
    """
    status: GenerationStatus
    text: str = ""
    partial_text: str = ""
    error: str | None = None
    elapsed: float = 0.0

    @property
    def ok(self) -> bool:
        return self.status is GenerationStatus.COMPLETED

    def unwrap(self) -> str:
        """Return the final text or raise the matching gateway error."""
        match self.status:
            case GenerationStatus.COMPLETED:
                return self.text
            case GenerationStatus.TIMED_OUT:
                raise GenerationTimeoutError(self.elapsed, self.partial_text)
            case _:
                raise StreamError(self.error or "token stream failed", self.partial_text)
