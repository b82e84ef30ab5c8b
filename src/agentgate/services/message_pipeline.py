"""
Message pipeline: the path of one inbound message through the gateway.

    dedup -> (groups) moderation -> warning ledger -> sanction notice
    otherwise: memory context -> streamed reply -> memory

Every message that is not suppressed as a duplicate and is addressed to the
agent ends with exactly one terminal response: the generated reply, a
sanction notice or an apology. Group messages that are not addressed to the
agent are only moderated and get a response only when they are sanctioned.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from enum import Enum
from typing import Any

from agentgate.ai.prompts import chat_type_prefix
from agentgate.ai.stream_aggregator import StreamAggregator
from agentgate.configuration.gateway_settings import GatewaySettings
from agentgate.datatypes.conversation import Role
from agentgate.datatypes.inbound_datatypes import InboundMessage
from agentgate.datatypes.moderation_datatypes import Verdict, VerdictAction
from agentgate.datatypes.stream_datatypes import GenerationStatus
from agentgate.datatypes.warning_datatypes import WarningResult
from agentgate.dedup.deduplicator import Deduplicator
from agentgate.errors import PersistenceError
from agentgate.memory.memory_manager import MemoryManager
from agentgate.moderation.authorization import MessageAuthorization
from agentgate.moderation.moderation_engine import ModerationEngine
from agentgate.moderation.warning_ledger import WarningLedger
from agentgate.platform.interfaces import Messenger, PermissionChecker
from agentgate.storage.repositories import AgentMetricsRepo
from agentgate.util.logger import get_logger

logger = get_logger("message_pipeline")

PROCESSING_PLACEHOLDER = "Processing your message..."
TYPING_PLACEHOLDER = "Typing..."
PARTIAL_SUFFIX = "..."
EMPTY_REPLY_FALLBACK = "Please try again."
TIMEOUT_APOLOGY = "⚠️ Sorry, the response is taking too long. Please try again with a simpler query or try later."
GENERIC_APOLOGY = "⚠️ Sorry, I'm having trouble processing your request right now."


class ResponseKind(Enum):
    SUPPRESSED = "suppressed"
    MODERATED = "moderated"
    REPLY = "reply"
    PARTIAL_REPLY = "partial_reply"
    SANCTION_NOTICE = "sanction_notice"
    APOLOGY = "apology"

    def __str__(self) -> str:
        return self.value


@dataclass(slots=True)
class PipelineOutcome:
    kind: ResponseKind
    text: str | None = None
    delivered: bool = False
    verdict: Verdict | None = None
    warning: WarningResult | None = None


class _Responder:
    """Owns the single chat response of one message.

    A placeholder may be posted and edited any number of times; :meth:`finish`
    writes the terminal text once, editing the placeholder or posting a new
    message when editing is impossible.
    """

    def __init__(self, messenger: Messenger, chat_id: str) -> None:
        self.messenger = messenger
        self.chat_id = chat_id
        self.handle: Any = None
        self.finished = False
        self._shown: str | None = None

    async def open(self, text: str) -> None:
        try:
            self.handle = await self.messenger.send(self.chat_id, text)
            self._shown = text
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            logger.warning("[PIPELINE] Could not post placeholder in %s: %s", self.chat_id, exc)

    async def update(self, text: str) -> None:
        if self.finished or self.handle is None or text == self._shown:
            return
        try:
            await self.messenger.edit(self.handle, text)
            self._shown = text
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            logger.debug("[PIPELINE] Partial edit failed in %s: %s", self.chat_id, exc)

    async def finish(self, text: str) -> bool:
        if self.finished:
            logger.warning("[PIPELINE] Terminal response already sent in %s; dropping %r", self.chat_id, text[:40])
            return False
        self.finished = True

        if self.handle is not None:
            try:
                await self.messenger.edit(self.handle, text)
                return True
            except asyncio.CancelledError:
                raise
            except Exception as exc:
                logger.warning("[PIPELINE] Final edit failed in %s (%s); sending a new message", self.chat_id, exc)

        try:
            await self.messenger.send(self.chat_id, text)
            return True
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            logger.error("[PIPELINE] Could not deliver response in %s: %s", self.chat_id, exc)
            return False


class MessagePipeline:
    def __init__(
        self,
        *,
        settings: GatewaySettings,
        deduplicator: Deduplicator,
        memory: MemoryManager,
        aggregator: StreamAggregator,
        moderation: ModerationEngine,
        ledger: WarningLedger,
        messenger: Messenger,
        permissions: PermissionChecker,
        metrics: AgentMetricsRepo | None = None,
    ) -> None:
        self.settings = settings
        self.deduplicator = deduplicator
        self.memory = memory
        self.aggregator = aggregator
        self.moderation = moderation
        self.ledger = ledger
        self.messenger = messenger
        self.permissions = permissions
        self.metrics = metrics

    async def handle(self, message: InboundMessage) -> PipelineOutcome:
        """Process one inbound message end to end. Never raises except on cancellation."""
        if self.deduplicator.should_suppress(message.participant_id, message.message_id, message.text):
            return PipelineOutcome(ResponseKind.SUPPRESSED)

        responder = _Responder(self.messenger, message.chat_id)
        try:
            return await self._process(message, responder)
        except asyncio.CancelledError:
            raise
        except Exception:
            logger.exception("[PIPELINE] Unhandled error for message %s in %s", message.message_id, message.chat_id)
            delivered = await responder.finish(GENERIC_APOLOGY) if not responder.finished else False
            return PipelineOutcome(ResponseKind.APOLOGY, GENERIC_APOLOGY, delivered)

    async def _process(self, message: InboundMessage, responder: _Responder) -> PipelineOutcome:
        authorization = MessageAuthorization(self.permissions, message.participant_id, message.chat_id)

        if message.is_group:
            verdict = await self.moderation.classify(
                message.text,
                message.participant_id,
                message.participant_handle,
                message.chat_id,
                message.chat_title,
                message.agent,
                authorization=authorization,
            )
            if verdict.is_violation:
                return await self._sanction(message, verdict, authorization, responder)
            if not message.addressed:
                return PipelineOutcome(ResponseKind.MODERATED, verdict=verdict)

        return await self._reply(message, responder)

    async def _sanction(
        self,
        message: InboundMessage,
        verdict: Verdict,
        authorization: MessageAuthorization,
        responder: _Responder,
    ) -> PipelineOutcome:
        reason = verdict.reason or "Violation of group rules"
        if verdict.action is VerdictAction.BAN:
            result = await self.ledger.ban_now(
                message.participant_id,
                message.chat_id,
                reason,
                message.agent.agent_id,
                username=message.participant_handle,
            )
        else:
            result = await self.ledger.add_warning(
                message.participant_id,
                message.chat_id,
                reason,
                message.agent.agent_id,
                authorization=authorization,
                username=message.participant_handle,
            )

        notice = result.notice or f"⚠️ Warning to @{message.participant_handle}: {reason}"
        delivered = await responder.finish(notice)
        return PipelineOutcome(ResponseKind.SANCTION_NOTICE, notice, delivered, verdict=verdict, warning=result)

    async def _reply(self, message: InboundMessage, responder: _Responder) -> PipelineOutcome:
        key = message.conversation_key
        context = await self.memory.build_context(key, self.settings.CONTEXT_TOKEN_BUDGET)
        await self.memory.record_message(key, Role.USER, message.text)

        current = f"{chat_type_prefix(str(message.chat_type))}\n{message.text}"
        prompt = f"{context}\n\n{current}" if context else current

        await responder.open(PROCESSING_PLACEHOLDER)
        await responder.update(TYPING_PLACEHOLDER)

        async def on_partial(text: str) -> None:
            await responder.update(text + PARTIAL_SUFFIX)

        outcome = await self.aggregator.generate(
            prompt,
            message.agent,
            self.settings.generation_timeout,
            on_partial=on_partial,
        )

        match outcome.status:
            case GenerationStatus.COMPLETED:
                reply = outcome.text.strip()
                if reply:
                    await self.memory.record_message(key, Role.ASSISTANT, reply)
                    await self._record_metrics(message.agent.agent_id, outcome.elapsed)
                text, kind = reply or EMPTY_REPLY_FALLBACK, ResponseKind.REPLY
            case GenerationStatus.TIMED_OUT:
                if outcome.partial_text:
                    logger.info(
                        "[PIPELINE] Discarding %d partial chars after timeout for %s",
                        len(outcome.partial_text), key,
                    )
                text, kind = TIMEOUT_APOLOGY, ResponseKind.APOLOGY
            case _:
                partial = outcome.partial_text.strip()
                if partial:
                    text, kind = partial, ResponseKind.PARTIAL_REPLY
                else:
                    text, kind = GENERIC_APOLOGY, ResponseKind.APOLOGY

        delivered = await responder.finish(text)
        return PipelineOutcome(kind, text, delivered)

    async def _record_metrics(self, agent_id: str, elapsed: float) -> None:
        if self.metrics is None:
            return
        try:
            await self.metrics.record_response(agent_id, elapsed)
        except PersistenceError as exc:
            logger.warning("[PIPELINE] Failed to update metrics for agent %s: %s", agent_id, exc)

    async def handle_member_join(self, participant_id: str, chat_id: str) -> WarningResult:
        """Reset a previously banned participant who was re-added to a group."""
        authorization = MessageAuthorization(self.permissions, participant_id, chat_id)
        return await self.ledger.reinstate_if_member(participant_id, chat_id, authorization=authorization)
