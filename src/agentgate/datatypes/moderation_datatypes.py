"""
Verdict types produced by the moderation classifier.

Parsing never hands raw dictionaries to callers: a decode attempt yields either
:class:`ParseOk` carrying a :class:`Verdict` or :class:`ParseFailure` carrying
the error.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from agentgate.errors import VerdictParseError


class VerdictAction(Enum):
    """Moderation outcome for a single message."""

    NONE = "none"
    WARN = "warn"
    BAN = "ban"

    def __str__(self) -> str:
        return self.value

    @classmethod
    def from_label(cls, label: str) -> "VerdictAction | None":
        """Map a classifier action label onto a verdict action.

        ``ignore`` is the classifier's spelling of "no action". Unknown labels
        return None so the caller can treat them as a parse failure.
        """
        normalized = label.strip().lower()
        if normalized in ("ignore", "none"):
            return cls.NONE
        if normalized == "warn":
            return cls.WARN
        if normalized == "ban":
            return cls.BAN
        return None


@dataclass(frozen=True, slots=True)
class Verdict:
    action: VerdictAction
    reason: str = ""
    subject_id: str | None = None

    @property
    def is_violation(self) -> bool:
        return self.action is not VerdictAction.NONE

    @classmethod
    def no_action(cls, reason: str = "", subject_id: str | None = None) -> "Verdict":
        return cls(VerdictAction.NONE, reason, subject_id)


@dataclass(frozen=True, slots=True)
class ParseOk:
    verdict: Verdict


@dataclass(frozen=True, slots=True)
class ParseFailure:
    error: VerdictParseError


ParseResult = ParseOk | ParseFailure
