"""
Moderation decision engine.

Classifies one group message into a :class:`Verdict`. Admins are exempt and
never reach the classifier. Every failure fails open: a timeout, a stream
error or undecodable output all produce a no-action verdict whose reason
records what went wrong.
"""

from __future__ import annotations

from agentgate.ai.prompts import MODERATION_INSTRUCTIONS, build_moderation_prompt
from agentgate.ai.stream_aggregator import StreamAggregator
from agentgate.datatypes.agent_datatypes import AgentProfile
from agentgate.datatypes.moderation_datatypes import ParseFailure, ParseOk, Verdict
from agentgate.moderation.authorization import MessageAuthorization
from agentgate.moderation.moderation_parsing import parse_verdict
from agentgate.util.logger import get_logger

logger = get_logger("moderation_engine")


class ModerationEngine:
    def __init__(self, aggregator: StreamAggregator, *, timeout: float | None = None) -> None:
        self.aggregator = aggregator
        self.timeout = timeout

    async def classify(
        self,
        message: str,
        participant_id: str,
        participant_handle: str,
        chat_id: str,
        chat_title: str,
        agent: AgentProfile,
        *,
        authorization: MessageAuthorization | None = None,
    ) -> Verdict:
        """Return the moderation verdict for ``message``.

        Parameters
        ----------
        authorization:
            Per-message authorization context. When given and the participant
            is an admin, the classifier is skipped.
        """
        if authorization is not None and await authorization.is_admin():
            logger.debug("[MODERATION] %s is an admin in %s; skipping classification", participant_id, chat_id)
            return Verdict.no_action("sender is an administrator", participant_id)

        prompt = build_moderation_prompt(chat_title, participant_handle, participant_id, message)
        outcome = await self.aggregator.generate(
            prompt,
            agent,
            self.timeout,
            instructions=MODERATION_INSTRUCTIONS,
        )
        if not outcome.ok:
            logger.warning("[MODERATION] Classifier unavailable for %s in %s: %s", participant_id, chat_id, outcome.error)
            return Verdict.no_action(f"classifier unavailable: {outcome.status}", participant_id)

        match parse_verdict(outcome.text):
            case ParseOk(verdict=verdict):
                # The subject is always the sender; the model's user_id is advisory
                if verdict.subject_id not in (None, participant_id):
                    logger.debug("[MODERATION] Classifier named subject %s for sender %s", verdict.subject_id, participant_id)
                result = Verdict(verdict.action, verdict.reason, participant_id)
            case ParseFailure(error=error):
                result = Verdict.no_action(f"parse error: {error.message}", participant_id)

        logger.info("[MODERATION] Verdict for %s in %s: %s (%s)", participant_id, chat_id, result.action, result.reason)
        return result
