"""
Gateway slash commands.

- ``/memory``: show your conversation memory with the agent in this channel.
- ``/memory-reset``: clear that memory.
- ``/warnings``: show a member's warning record (moderators only).
- ``/warnings-clear``: reset a member's warnings (moderators only).
"""

import datetime

import discord
from discord import Option
from discord.ext import commands

from agentgate.datatypes.conversation import ConversationKey
from agentgate.platform.discord_adapter import clip, has_elevated_permissions
from agentgate.runtime import GatewayRuntime
from agentgate.util.logger import get_logger

logger = get_logger("gateway_cmds_cog")

HISTORY_LIMIT = 10


def _format_timestamp(value: float | None) -> str:
    if value is None:
        return "never"
    return datetime.datetime.fromtimestamp(value, tz=datetime.timezone.utc).strftime("%Y-%m-%d %H:%M UTC")


class GatewayCommandsCog(commands.Cog):
    def __init__(self, discord_bot_instance, runtime: GatewayRuntime):
        self.bot = discord_bot_instance
        self.runtime = runtime

    def _key(self, ctx: discord.ApplicationContext) -> ConversationKey:
        return ConversationKey(str(ctx.author.id), str(ctx.channel_id), self.runtime.default_agent.agent_id)

    @commands.slash_command(name="memory", description="Show what the assistant remembers of your conversation here.")
    async def memory(self, ctx: discord.ApplicationContext) -> None:
        history = await self.runtime.memory.get_history(self._key(ctx), limit=HISTORY_LIMIT)
        if not history:
            await ctx.respond("No conversation memory yet.", ephemeral=True)
            return

        lines = [f"**{message.role.label}:** {message.content}" for message in history]
        await ctx.respond(clip("\n\n".join(lines)), ephemeral=True)

    @commands.slash_command(name="memory-reset", description="Forget your conversation with the assistant in this channel.")
    async def memory_reset(self, ctx: discord.ApplicationContext) -> None:
        await self.runtime.memory.clear(self._key(ctx))
        await ctx.respond("Conversation memory cleared.", ephemeral=True)

    @commands.slash_command(name="warnings", description="Show the warning record of a member in this channel.")
    async def warnings(
        self,
        ctx: discord.ApplicationContext,
        user: Option(discord.Member, "The member to inspect.", required=True),  # type: ignore
    ) -> None:
        if not has_elevated_permissions(ctx.author):
            await ctx.respond("You need moderator permissions to view warnings.", ephemeral=True)
            return

        info = await self.runtime.ledger.get_warning_info(str(user.id), str(ctx.channel_id))
        embed = discord.Embed(
            title=f"Warnings for {user.display_name}",
            color=discord.Color.orange() if info.warning_count else discord.Color.green(),
        )
        embed.add_field(name="Active warnings", value=f"{info.warning_count}/{self.runtime.settings.BAN_THRESHOLD}")
        embed.add_field(name="Last warning", value=_format_timestamp(info.last_warning_date))
        if info.is_banned:
            embed.add_field(name="Banned", value=f"{_format_timestamp(info.ban_date)}: {info.ban_reason}", inline=False)
        for event in info.recent_warnings:
            embed.add_field(name=_format_timestamp(event.timestamp), value=clip(event.reason)[:1024], inline=False)
        await ctx.respond(embed=embed, ephemeral=True)

    @commands.slash_command(name="warnings-clear", description="Reset the warnings of a member in this channel.")
    async def warnings_clear(
        self,
        ctx: discord.ApplicationContext,
        user: Option(discord.Member, "The member whose warnings to clear.", required=True),  # type: ignore
    ) -> None:
        if not has_elevated_permissions(ctx.author):
            await ctx.respond("You need moderator permissions to clear warnings.", ephemeral=True)
            return

        cleared = await self.runtime.ledger.clear_warnings(str(user.id), str(ctx.channel_id))
        if cleared:
            logger.info("%s cleared warnings of %s in %s", ctx.author.id, user.id, ctx.channel_id)
            await ctx.respond(f"Warnings for {user.mention} have been cleared.", ephemeral=True)
        else:
            await ctx.respond("Could not clear warnings right now. Please try again later.", ephemeral=True)


def setup(discord_bot_instance, runtime: GatewayRuntime):
    discord_bot_instance.add_cog(GatewayCommandsCog(discord_bot_instance, runtime))
