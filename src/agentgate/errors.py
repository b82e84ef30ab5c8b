"""Exception hierarchy for the gateway core.

Each error is recovered at the component that produced it and converted into
an outcome value; none of them is allowed to end a message-handling task.
"""

from __future__ import annotations


class AgentGateError(Exception):
    """Base exception for all gateway errors."""

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}


class StreamError(AgentGateError):
    """The token feed failed mid-generation.

    ``partial_text`` holds whatever had been accumulated before the failure.
    """

    def __init__(self, message: str, partial_text: str = "", details: dict | None = None):
        super().__init__(message, details)
        self.partial_text = partial_text


class GenerationTimeoutError(AgentGateError, TimeoutError):
    """A generation call exceeded its deadline."""

    def __init__(self, timeout: float, partial_text: str = ""):
        super().__init__(f"Generation did not finish within {timeout:g}s", {"timeout": timeout})
        self.timeout = timeout
        self.partial_text = partial_text


class VerdictParseError(AgentGateError):
    """Classifier output could not be decoded into a verdict."""

    def __init__(self, message: str, raw: str = ""):
        super().__init__(message, {"raw": raw[:200]})
        self.raw = raw


class PersistenceError(AgentGateError):
    """A document store read or write failed."""


class PermissionCheckError(AgentGateError):
    """An admin or membership lookup against the chat platform failed."""
