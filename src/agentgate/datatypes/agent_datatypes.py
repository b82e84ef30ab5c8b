"""Agent profiles: per-agent credentials and behaviour loaded from configuration."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict


@dataclass(frozen=True, slots=True)
class AgentProfile:
    """A configured conversational agent.

    Attributes:
        agent_id: Stable identifier, part of every conversation key.
        name: Display name.
        role: Short role line placed at the top of the system prompt.
        description: What the agent does.
        instructions: Standing instructions appended to the system prompt.
        model: Model name sent to the completion endpoint.
        base_url: OpenAI-compatible endpoint; None uses the global setting.
        api_key: Credential for this agent; None uses the global setting.
    """
    agent_id: str
    name: str
    role: str = ""
    description: str = ""
    instructions: str = ""
    model: str | None = None
    base_url: str | None = None
    api_key: str | None = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "AgentProfile":
        agent_id = str(data.get("id") or data.get("agent_id") or "").strip()
        if not agent_id:
            raise ValueError("agent entry is missing an 'id'")
        return cls(
            agent_id=agent_id,
            name=str(data.get("name") or agent_id),
            role=str(data.get("role") or ""),
            description=str(data.get("description") or ""),
            instructions=str(data.get("instructions") or ""),
            model=data.get("model") or None,
            base_url=data.get("base_url") or None,
            api_key=data.get("api_key") or None,
        )
