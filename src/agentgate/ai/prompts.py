"""System prompt composition for chat and moderation modes."""

from __future__ import annotations

from agentgate.datatypes.agent_datatypes import AgentProfile

CHAT_MODE_INSTRUCTIONS = (
    "You are chatting with a person. Respond in natural, conversational language. "
    "Do not answer in JSON or any other structured format unless explicitly asked."
)

MODERATION_INSTRUCTIONS = (
    "You are a group chat moderator. Analyze the message for spam, harassment, hate speech, "
    "explicit content or other clear rule violations.\n"
    "Respond ONLY with the requested JSON format and nothing else:\n"
    '{"action": "ignore" | "warn" | "ban", "reason": "<short explanation>", "user_id": "<user id>"}\n'
    "Use 'warn' for minor or first-time violations and 'ban' only for severe ones. "
    "If uncertain, use the 'ignore' action."
)

MODERATION_MARKER = "MODERATION_ANALYSIS"


def build_system_prompt(agent: AgentProfile, mode_instructions: str | None = None) -> str:
    """Compose the system prompt for ``agent``.

    The agent's role, description and standing instructions come first,
    followed by the mode instructions (chat mode when none are given).
    """
    sections = [
        agent.role or f"You are {agent.name}.",
        f"Description: {agent.description}" if agent.description else "",
        f"Instructions: {agent.instructions}" if agent.instructions else "",
        mode_instructions or CHAT_MODE_INSTRUCTIONS,
    ]
    return "\n\n".join(section for section in sections if section)


def build_moderation_prompt(chat_title: str, participant_handle: str, participant_id: str, text: str) -> str:
    return (
        f"{MODERATION_MARKER}\n"
        f"Group: {chat_title}\n"
        f"User: @{participant_handle} (user_id: {participant_id})\n"
        f"Message: {text}"
    )


def chat_type_prefix(chat_type: str) -> str:
    return f"[This message is from a {chat_type}]"
