"""
Tests for the message listener and gateway command cogs.
"""

from types import SimpleNamespace
from unittest.mock import AsyncMock, Mock

import discord
import pytest
from fakes import FakeMessenger, FakePermissions, ScriptedSource

from agentgate.bot.gateway_cmds import GatewayCommandsCog
from agentgate.bot.message_listener import MessageListenerCog
from agentgate.configuration.gateway_settings import GatewaySettings
from agentgate.datatypes.agent_datatypes import AgentProfile
from agentgate.datatypes.conversation import ConversationKey, Role
from agentgate.datatypes.inbound_datatypes import ChatType
from agentgate.runtime import GatewayRuntime
from agentgate.storage.document_store import InMemoryDocumentStore

AGENT = AgentProfile(agent_id="gate", name="Gate")
BOT_USER = SimpleNamespace(id=99)


def make_message(content="hello", guild=None, mentions=(), reference=None, bot=False):
    return SimpleNamespace(
        id=555,
        author=SimpleNamespace(id=7, bot=bot, name="bob"),
        clean_content=content,
        guild=guild,
        channel=SimpleNamespace(id=10, name="general"),
        mentions=list(mentions),
        reference=reference,
    )


def make_listener():
    runtime = SimpleNamespace(default_agent=AGENT, pipeline=Mock())
    runtime.pipeline.handle = AsyncMock(return_value=SimpleNamespace(kind="reply"))
    runtime.pipeline.handle_member_join = AsyncMock(return_value=SimpleNamespace(notice=None))
    return MessageListenerCog(SimpleNamespace(user=BOT_USER), runtime), runtime


class TestMessageListenerCog:
    def test_direct_message_is_private_and_addressed(self):
        cog, _ = make_listener()
        inbound = cog.build_inbound(make_message())

        assert inbound.chat_type is ChatType.PRIVATE
        assert inbound.addressed is True
        assert inbound.chat_id == "10"
        assert inbound.participant_id == "7"
        assert inbound.participant_handle == "bob"
        assert inbound.message_id == "555"
        assert inbound.agent is AGENT

    def test_guild_mention_is_addressed(self):
        cog, _ = make_listener()
        inbound = cog.build_inbound(make_message(guild=SimpleNamespace(name="Guild"), mentions=[BOT_USER]))

        assert inbound.chat_type is ChatType.GROUP
        assert inbound.addressed is True
        assert inbound.chat_title == "Guild #general"

    def test_guild_message_without_mention_is_not_addressed(self):
        cog, _ = make_listener()
        inbound = cog.build_inbound(make_message(guild=SimpleNamespace(name="Guild")))
        assert inbound.addressed is False

    def test_reply_to_bot_is_addressed(self):
        cog, _ = make_listener()
        replied = Mock(spec=discord.Message)
        replied.author = SimpleNamespace(id=BOT_USER.id)
        message = make_message(guild=SimpleNamespace(name="Guild"), reference=SimpleNamespace(resolved=replied))

        assert cog.is_addressed(message) is True

    def test_bots_and_empty_messages_are_ignored(self):
        cog, _ = make_listener()
        assert cog.build_inbound(make_message(bot=True)) is None
        assert cog.build_inbound(make_message(content="   ")) is None

    @pytest.mark.asyncio
    async def test_on_message_hands_off_to_pipeline(self):
        cog, runtime = make_listener()
        await cog.on_message(make_message())
        runtime.pipeline.handle.assert_awaited_once()
        assert runtime.pipeline.handle.await_args.args[0].text == "hello"

    @pytest.mark.asyncio
    async def test_on_message_skips_bots(self):
        cog, runtime = make_listener()
        await cog.on_message(make_message(bot=True))
        runtime.pipeline.handle.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_member_join_checks_every_text_channel(self):
        cog, runtime = make_listener()
        guild = SimpleNamespace(text_channels=[SimpleNamespace(id=1), SimpleNamespace(id=2)])

        await cog.on_member_join(SimpleNamespace(id=7, guild=guild))

        calls = [c.args for c in runtime.pipeline.handle_member_join.await_args_list]
        assert calls == [("7", "1"), ("7", "2")]


def make_runtime():
    return GatewayRuntime.assemble(
        GatewaySettings(),
        [AGENT],
        store=InMemoryDocumentStore(),
        messenger=FakeMessenger(),
        permissions=FakePermissions(),
        token_source=ScriptedSource([]),
    )


def make_moderator(elevated=True):
    member = Mock(spec=discord.Member)
    member.id = 1
    member.guild_permissions = SimpleNamespace(administrator=elevated, manage_guild=False, moderate_members=False)
    return member


def make_ctx(author):
    return SimpleNamespace(author=author, channel_id=10, respond=AsyncMock())


class TestGatewayCommandsCog:
    @pytest.mark.asyncio
    async def test_memory_shows_history(self):
        runtime = make_runtime()
        key = ConversationKey("7", "10", "gate")
        await runtime.memory.record_message(key, Role.USER, "hello")
        await runtime.memory.record_message(key, Role.ASSISTANT, "hi bob")
        cog = GatewayCommandsCog(SimpleNamespace(), runtime)
        ctx = make_ctx(SimpleNamespace(id=7))

        await GatewayCommandsCog.memory.callback(cog, ctx)

        text = ctx.respond.await_args.args[0]
        assert "**User:** hello" in text
        assert "**Assistant:** hi bob" in text

    @pytest.mark.asyncio
    async def test_memory_reset_clears(self):
        runtime = make_runtime()
        key = ConversationKey("7", "10", "gate")
        await runtime.memory.record_message(key, Role.USER, "hello")
        cog = GatewayCommandsCog(SimpleNamespace(), runtime)

        await GatewayCommandsCog.memory_reset.callback(cog, make_ctx(SimpleNamespace(id=7)))

        assert await runtime.memory.get_history(key) == []

    @pytest.mark.asyncio
    async def test_warnings_requires_moderator(self):
        cog = GatewayCommandsCog(SimpleNamespace(), make_runtime())
        ctx = make_ctx(make_moderator(elevated=False))

        await GatewayCommandsCog.warnings.callback(cog, ctx, SimpleNamespace(id=42, display_name="spammer"))

        assert "moderator" in ctx.respond.await_args.args[0]

    @pytest.mark.asyncio
    async def test_warnings_embed_and_clear(self):
        runtime = make_runtime()
        await runtime.ledger.add_warning("42", "10", "spam", "gate")
        cog = GatewayCommandsCog(SimpleNamespace(), runtime)
        target = SimpleNamespace(id=42, display_name="spammer", mention="<@42>")

        ctx = make_ctx(make_moderator())
        await GatewayCommandsCog.warnings.callback(cog, ctx, target)
        embed = ctx.respond.await_args.kwargs["embed"]
        assert embed.title == "Warnings for spammer"
        assert embed.fields[0].value == "1/5"

        ctx = make_ctx(make_moderator())
        await GatewayCommandsCog.warnings_clear.callback(cog, ctx, target)
        assert "cleared" in ctx.respond.await_args.args[0]
        assert await runtime.ledger.get_warning_count("42", "10") == 0
