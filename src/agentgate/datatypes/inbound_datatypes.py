"""Platform-neutral representation of an inbound chat message."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from agentgate.datatypes.agent_datatypes import AgentProfile
from agentgate.datatypes.conversation import ConversationKey


class ChatType(Enum):
    PRIVATE = "private"
    GROUP = "group"
    SUPERGROUP = "supergroup"
    CHANNEL = "channel"

    def __str__(self) -> str:
        return self.value


@dataclass(slots=True)
class InboundMessage:
    """A message received from a chat platform for one agent.

    ``addressed`` is False for group messages that do not mention or reply to
    the agent; those are moderated but not answered.
    """
    participant_id: str
    participant_handle: str
    chat_id: str
    chat_title: str
    chat_type: ChatType
    message_id: str
    text: str
    agent: AgentProfile
    addressed: bool = True

    @property
    def is_group(self) -> bool:
        return self.chat_type in (ChatType.GROUP, ChatType.SUPERGROUP)

    @property
    def conversation_key(self) -> ConversationKey:
        return ConversationKey(self.participant_id, self.chat_id, self.agent.agent_id)
