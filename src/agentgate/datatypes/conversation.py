"""
Conversation data structures.

A conversation is identified by the (participant, chat, agent) triple and holds
an ordered message window plus a cumulative, append-only summary of the
messages that were condensed out of that window.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List


class Role(Enum):
    """Author of a conversation message."""

    USER = "user"
    ASSISTANT = "assistant"
    SYSTEM = "system"

    def __str__(self) -> str:
        return self.value

    @property
    def label(self) -> str:
        return self.value.capitalize()


@dataclass(frozen=True, slots=True)
class ConversationKey:
    participant_id: str
    chat_id: str
    agent_id: str

    @property
    def doc_key(self) -> str:
        return f"{self.participant_id}:{self.chat_id}:{self.agent_id}"

    def __str__(self) -> str:
        return self.doc_key


@dataclass(slots=True)
class Message:
    """A single stored message.

    Attributes:
        role: Who authored the message.
        content: Trimmed message text; never empty.
        timestamp: Unix time the message was recorded.
    """
    role: Role
    content: str
    timestamp: float

    def to_dict(self) -> Dict[str, Any]:
        return {"role": self.role.value, "content": self.content, "timestamp": self.timestamp}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Message":
        return cls(
            role=Role(data["role"]),
            content=str(data["content"]),
            timestamp=float(data.get("timestamp", 0.0)),
        )


@dataclass(slots=True)
class Conversation:
    key: ConversationKey
    messages: List[Message] = field(default_factory=list)
    summary: str = ""
    last_active: float = 0.0

    def to_document(self) -> Dict[str, Any]:
        return {
            "participant_id": self.key.participant_id,
            "chat_id": self.key.chat_id,
            "agent_id": self.key.agent_id,
            "messages": [m.to_dict() for m in self.messages],
            "summary": self.summary,
            "last_active": self.last_active,
        }

    @classmethod
    def from_document(cls, key: ConversationKey, doc: Dict[str, Any]) -> "Conversation":
        return cls(
            key=key,
            messages=[Message.from_dict(m) for m in doc.get("messages") or []],
            summary=str(doc.get("summary") or ""),
            last_active=float(doc.get("last_active") or 0.0),
        )
