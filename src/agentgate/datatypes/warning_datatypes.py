"""
Warning ledger data structures.

A WarningRecord tracks the violations of one participant in one chat. Its
escalation state is derived from the number of non-expired warnings and the
ban flag; see :class:`agentgate.moderation.warning_ledger.WarningLedger`.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List


class LedgerState(Enum):
    """Escalation state of a (participant, chat) warning record."""

    CLEAN = "clean"
    WARNED = "warned"
    MUTE_PENDING = "mute_pending"
    KICK_PENDING = "kick_pending"
    BANNED = "banned"

    def __str__(self) -> str:
        return self.value


class ThresholdAction(Enum):
    """What the ledger did in response to a warning."""

    RECORDED = "recorded"
    MUTED = "muted"
    MUTE_FAILED = "mute_failed"
    KICKED = "kicked"
    KICK_FAILED = "kick_failed"
    BANNED = "banned"
    BAN_FAILED = "ban_failed"
    ALREADY_BANNED = "already_banned"
    WARNINGS_RESET = "warnings_reset"
    FAILED = "failed"

    def __str__(self) -> str:
        return self.value

    @property
    def sanction_failed(self) -> bool:
        return self in (ThresholdAction.MUTE_FAILED, ThresholdAction.KICK_FAILED, ThresholdAction.BAN_FAILED)


@dataclass(slots=True)
class WarningEvent:
    reason: str
    timestamp: float
    issuer_id: str

    def to_dict(self) -> Dict[str, Any]:
        return {"reason": self.reason, "timestamp": self.timestamp, "issuer_id": self.issuer_id}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "WarningEvent":
        return cls(
            reason=str(data.get("reason", "")),
            timestamp=float(data["timestamp"]),
            issuer_id=str(data.get("issuer_id", "")),
        )


@dataclass(slots=True)
class WarningRecord:
    """Violations of one participant in one chat.

    Attributes:
        participant_id: Sanctioned participant.
        chat_id: Chat the warnings were issued in.
        warnings: Non-expired warnings, oldest first.
        last_warning_date: Unix time of the newest warning, if any.
        is_banned: Whether the ledger considers the participant banned.
        ban_date: Unix time the ban was recorded.
        ban_reason: Reason stored with the ban.
        username: Last known handle, used in chat notices.
    """
    participant_id: str
    chat_id: str
    warnings: List[WarningEvent] = field(default_factory=list)
    last_warning_date: float | None = None
    is_banned: bool = False
    ban_date: float | None = None
    ban_reason: str | None = None
    username: str | None = None

    @property
    def warning_count(self) -> int:
        return len(self.warnings)

    @property
    def doc_key(self) -> str:
        return f"{self.participant_id}:{self.chat_id}"

    def reset(self) -> None:
        self.warnings.clear()
        self.last_warning_date = None
        self.is_banned = False
        self.ban_date = None
        self.ban_reason = None

    def to_document(self) -> Dict[str, Any]:
        return {
            "participant_id": self.participant_id,
            "chat_id": self.chat_id,
            "warnings": [w.to_dict() for w in self.warnings],
            "warning_count": self.warning_count,
            "last_warning_date": self.last_warning_date,
            "is_banned": self.is_banned,
            "ban_date": self.ban_date,
            "ban_reason": self.ban_reason,
            "username": self.username,
        }

    @classmethod
    def from_document(cls, participant_id: str, chat_id: str, doc: Dict[str, Any]) -> "WarningRecord":
        return cls(
            participant_id=participant_id,
            chat_id=chat_id,
            warnings=[WarningEvent.from_dict(w) for w in doc.get("warnings") or []],
            last_warning_date=doc.get("last_warning_date"),
            is_banned=bool(doc.get("is_banned", False)),
            ban_date=doc.get("ban_date"),
            ban_reason=doc.get("ban_reason"),
            username=doc.get("username"),
        )


@dataclass(slots=True)
class WarningResult:
    """Outcome of a ledger operation, reported back to the caller."""
    state: LedgerState
    action: ThresholdAction
    warning_count: int
    notice: str | None = None


@dataclass(slots=True)
class WarningInfo:
    warning_count: int
    last_warning_date: float | None
    is_banned: bool
    ban_date: float | None
    ban_reason: str | None
    recent_warnings: List[WarningEvent] = field(default_factory=list)
