"""Message listener Cog.

Converts Discord messages into :class:`InboundMessage` objects and hands them
to the message pipeline. Member joins trigger the reinstatement check for
participants the warning ledger still considers banned.
"""

import discord
from discord.ext import commands

from agentgate.datatypes.inbound_datatypes import ChatType, InboundMessage
from agentgate.runtime import GatewayRuntime
from agentgate.util.logger import get_logger

logger = get_logger("message_listener_cog")


class MessageListenerCog(commands.Cog):
    """Cog responsible for routing incoming messages into the gateway."""

    def __init__(self, discord_bot_instance, runtime: GatewayRuntime):
        self.bot = discord_bot_instance
        self.runtime = runtime
        logger.info("Message listener cog loaded")

    @staticmethod
    def chat_type_of(message: discord.Message) -> ChatType:
        if message.guild is None:
            return ChatType.PRIVATE
        return ChatType.GROUP

    def is_addressed(self, message: discord.Message) -> bool:
        """Return True for DMs, mentions of the bot and replies to the bot."""
        if message.guild is None:
            return True

        me = self.bot.user
        if me is None:
            return False
        if any(user.id == me.id for user in message.mentions):
            return True

        reference = message.reference
        resolved = getattr(reference, "resolved", None) if reference else None
        return isinstance(resolved, discord.Message) and resolved.author.id == me.id

    def build_inbound(self, message: discord.Message) -> InboundMessage | None:
        """Translate a Discord message, or return None when it should be ignored."""
        if message.author.bot:
            return None

        content = (message.clean_content or "").strip()
        if not content:
            return None

        channel = message.channel
        title = getattr(channel, "name", None) or "Direct Message"
        if message.guild is not None:
            title = f"{message.guild.name} #{title}"

        return InboundMessage(
            participant_id=str(message.author.id),
            participant_handle=message.author.name,
            chat_id=str(channel.id),
            chat_title=title,
            chat_type=self.chat_type_of(message),
            message_id=str(message.id),
            text=content,
            agent=self.runtime.default_agent,
            addressed=self.is_addressed(message),
        )

    @commands.Cog.listener(name="on_message")
    async def on_message(self, message: discord.Message):
        inbound = self.build_inbound(message)
        if inbound is None:
            return

        logger.debug("Received message from %s in %s: %s", inbound.participant_handle, inbound.chat_id, inbound.text[:80])
        outcome = await self.runtime.pipeline.handle(inbound)
        logger.debug("Message %s handled: %s", inbound.message_id, outcome.kind)

    @commands.Cog.listener(name="on_member_join")
    async def on_member_join(self, member: discord.Member):
        for channel in member.guild.text_channels:
            result = await self.runtime.pipeline.handle_member_join(str(member.id), str(channel.id))
            if result.notice:
                logger.info("Reinstated %s in channel %s", member.id, channel.id)


def setup(discord_bot_instance, runtime: GatewayRuntime):
    """Register the MessageListenerCog with the bot."""
    discord_bot_instance.add_cog(MessageListenerCog(discord_bot_instance, runtime))
