"""
Process-scoped registry of gateway components.

:class:`GatewayRuntime` is built once at startup from the configuration and
the platform capabilities, then handed to the listeners that need it. It owns
the deduplicator cache, the store, the scheduler and every core component, and
shuts them down in reverse order.
"""

from __future__ import annotations

from dataclasses import dataclass

from agentgate.ai.openai_source import OpenAIClientPool, OpenAITokenSource
from agentgate.ai.stream_aggregator import StreamAggregator
from agentgate.ai.token_source import TokenSource
from agentgate.configuration.app_configuration import AppConfig
from agentgate.configuration.gateway_settings import GatewaySettings
from agentgate.datatypes.agent_datatypes import AgentProfile
from agentgate.dedup.deduplicator import Deduplicator
from agentgate.memory.memory_manager import MemoryManager
from agentgate.memory.summarizer import OpenAISummarizer, Summarizer
from agentgate.moderation.moderation_engine import ModerationEngine
from agentgate.moderation.warning_ledger import SanctionExecutor, WarningLedger
from agentgate.platform.interfaces import Messenger, PermissionChecker
from agentgate.scheduler.unban_scheduler import UnbanScheduler
from agentgate.services.message_pipeline import MessagePipeline
from agentgate.storage.db_connection import ConnectionManager
from agentgate.storage.db_schema import SchemaManager
from agentgate.storage.document_store import DocumentStore, SQLiteDocumentStore
from agentgate.storage.repositories import AgentMetricsRepo, ConversationRepo, WarningRepo
from agentgate.util.logger import get_logger

logger = get_logger("runtime")


@dataclass
class GatewayRuntime:
    settings: GatewaySettings
    agents: dict[str, AgentProfile]
    deduplicator: Deduplicator
    store: DocumentStore
    scheduler: UnbanScheduler
    aggregator: StreamAggregator
    memory: MemoryManager
    moderation: ModerationEngine
    ledger: WarningLedger
    metrics: AgentMetricsRepo
    pipeline: MessagePipeline
    connections: ConnectionManager | None = None
    client_pool: OpenAIClientPool | None = None
    default_agent_id: str | None = None

    @classmethod
    def assemble(
        cls,
        settings: GatewaySettings,
        agents: list[AgentProfile],
        *,
        store: DocumentStore,
        messenger: Messenger,
        permissions: PermissionChecker,
        token_source: TokenSource,
        summarizer: Summarizer | None = None,
        default_agent_id: str | None = None,
    ) -> "GatewayRuntime":
        """Wire the core components over already-built collaborators."""
        deduplicator = Deduplicator(settings.dedup_ttl, settings.dedup_text_window)
        scheduler = UnbanScheduler()
        aggregator = StreamAggregator(
            token_source,
            partial_every=settings.PARTIAL_UPDATE_CHARS,
            default_timeout=settings.generation_timeout,
        )
        memory = MemoryManager(
            ConversationRepo(store),
            summarizer,
            trigger_count=settings.SUMMARIZE_TRIGGER_COUNT,
            keep_count=settings.SUMMARIZE_KEEP_COUNT,
            default_token_budget=settings.CONTEXT_TOKEN_BUDGET,
        )
        moderation = ModerationEngine(aggregator, timeout=settings.generation_timeout)
        sanctions = SanctionExecutor(
            messenger,
            scheduler,
            mute_seconds=settings.MUTE_DURATION_SECONDS,
            kick_unban_delay=settings.KICK_UNBAN_DELAY_SECONDS,
        )
        ledger = WarningLedger(
            WarningRepo(store),
            sanctions,
            messenger,
            permissions,
            temp_mute_threshold=settings.TEMP_MUTE_THRESHOLD,
            kick_threshold=settings.KICK_THRESHOLD,
            ban_threshold=settings.BAN_THRESHOLD,
            retention_seconds=settings.warning_retention_seconds,
        )
        metrics = AgentMetricsRepo(store)
        pipeline = MessagePipeline(
            settings=settings,
            deduplicator=deduplicator,
            memory=memory,
            aggregator=aggregator,
            moderation=moderation,
            ledger=ledger,
            messenger=messenger,
            permissions=permissions,
            metrics=metrics,
        )
        return cls(
            settings=settings,
            agents={agent.agent_id: agent for agent in agents},
            deduplicator=deduplicator,
            store=store,
            scheduler=scheduler,
            aggregator=aggregator,
            memory=memory,
            moderation=moderation,
            ledger=ledger,
            metrics=metrics,
            pipeline=pipeline,
            default_agent_id=default_agent_id,
        )

    @classmethod
    async def from_config(
        cls,
        config: AppConfig,
        messenger: Messenger,
        permissions: PermissionChecker,
    ) -> "GatewayRuntime":
        """Open the database and build the runtime with the OpenAI-backed adapters.

        Raises:
            ValueError: On invalid configuration or when no agent is configured.
        """
        settings = config.gateway_settings
        agents = config.agents
        if not agents:
            raise ValueError("no agents configured")

        connections = ConnectionManager()
        await connections.open(config.database_path)
        await SchemaManager.initialize_schema(connections.connection)

        pool = OpenAIClientPool(config.ai_settings)
        default_agent = config.default_agent
        runtime = cls.assemble(
            settings,
            agents,
            store=SQLiteDocumentStore(connections),
            messenger=messenger,
            permissions=permissions,
            token_source=OpenAITokenSource(pool),
            summarizer=OpenAISummarizer(pool),
            default_agent_id=default_agent.agent_id if default_agent else None,
        )
        runtime.connections = connections
        runtime.client_pool = pool
        logger.info("[RUNTIME] Gateway ready with %d agent(s)", len(agents))
        return runtime

    @property
    def default_agent(self) -> AgentProfile:
        if self.default_agent_id and self.default_agent_id in self.agents:
            return self.agents[self.default_agent_id]
        return next(iter(self.agents.values()))

    async def shutdown(self) -> None:
        """Stop background work and release resources. Errors are logged, not raised."""
        for name, step in (
            ("scheduler", self.scheduler.shutdown),
            ("memory", self.memory.drain),
        ):
            try:
                await step()
            except Exception:
                logger.exception("[RUNTIME] Error while shutting down %s", name)

        if self.client_pool is not None:
            await self.client_pool.close()
        if self.connections is not None:
            await self.connections.close()
        logger.info("[RUNTIME] Shutdown complete")
