"""
Discord implementation of the gateway's platform capabilities.

Chat ids are Discord channel ids. Sanctions and permission checks resolve the
channel's guild and act on the guild member; warnings are therefore tracked
per channel.
"""

from __future__ import annotations

from datetime import datetime
from typing import Union

import discord

from agentgate.errors import PermissionCheckError
from agentgate.util.logger import get_logger

logger = get_logger("discord_adapter")

DISCORD_MESSAGE_LIMIT = 2000


def has_elevated_permissions(member: Union[discord.User, discord.Member]) -> bool:
    """
    Check if a member has moderator-level privileges (administrator, manage guild, or moderate members).

    Args:
        member (discord.User | discord.Member): The member to evaluate.

    Returns:
        bool: True if the member has elevated permissions, False otherwise.
    """
    if not isinstance(member, discord.Member):
        return False

    perms = member.guild_permissions
    return any(getattr(perms, attr, False) for attr in ("administrator", "manage_guild", "moderate_members"))


def clip(text: str) -> str:
    """Fit ``text`` into a single Discord message."""
    if len(text) <= DISCORD_MESSAGE_LIMIT:
        return text
    return text[: DISCORD_MESSAGE_LIMIT - 3] + "..."


async def resolve_channel(bot: discord.Client, chat_id: str) -> discord.abc.Messageable:
    channel = bot.get_channel(int(chat_id))
    if channel is None:
        channel = await bot.fetch_channel(int(chat_id))
    return channel


async def resolve_guild(bot: discord.Client, chat_id: str) -> discord.Guild | None:
    channel = await resolve_channel(bot, chat_id)
    return getattr(channel, "guild", None)


class DiscordMessenger:
    """Outbound messaging and sanctions through a py-cord client."""

    def __init__(self, bot: discord.Client) -> None:
        self.bot = bot

    async def send(self, chat_id: str, text: str) -> discord.Message:
        channel = await resolve_channel(self.bot, chat_id)
        return await channel.send(clip(text))

    async def edit(self, handle: discord.Message, text: str) -> None:
        await handle.edit(content=clip(text))

    async def _guild(self, chat_id: str) -> discord.Guild:
        guild = await resolve_guild(self.bot, chat_id)
        if guild is None:
            raise ValueError(f"channel {chat_id} does not belong to a guild")
        return guild

    async def restrict(self, participant_id: str, chat_id: str, until: datetime) -> None:
        guild = await self._guild(chat_id)
        member = guild.get_member(int(participant_id)) or await guild.fetch_member(int(participant_id))
        await member.timeout(until, reason="Repeated warnings")
        logger.info("[DISCORD] Timed out %s in %s until %s", participant_id, guild.id, until.isoformat())

    async def ban(self, participant_id: str, chat_id: str, reason: str | None = None) -> None:
        guild = await self._guild(chat_id)
        await guild.ban(discord.Object(id=int(participant_id)), reason=reason)
        logger.info("[DISCORD] Banned %s from %s: %s", participant_id, guild.id, reason)

    async def unban(self, participant_id: str, chat_id: str, reason: str | None = None) -> None:
        guild = await self._guild(chat_id)
        try:
            await guild.unban(discord.Object(id=int(participant_id)), reason=reason)
        except discord.NotFound:
            logger.warning("[DISCORD] Could not unban %s: not in the ban list of %s", participant_id, guild.id)
            return
        logger.info("[DISCORD] Unbanned %s from %s", participant_id, guild.id)


class DiscordPermissionChecker:
    """Admin and membership lookups. Direct-message channels have no admins and one member."""

    def __init__(self, bot: discord.Client) -> None:
        self.bot = bot

    async def _member(self, participant_id: str, chat_id: str) -> discord.Member | None:
        try:
            guild = await resolve_guild(self.bot, chat_id)
            if guild is None:
                return None
            member = guild.get_member(int(participant_id))
            if member is None:
                member = await guild.fetch_member(int(participant_id))
            return member
        except discord.NotFound:
            return None
        except (discord.HTTPException, ValueError) as exc:
            raise PermissionCheckError(f"member lookup for {participant_id} in {chat_id} failed: {exc}") from exc

    async def is_admin(self, participant_id: str, chat_id: str) -> bool:
        member = await self._member(participant_id, chat_id)
        return member is not None and has_elevated_permissions(member)

    async def is_member(self, participant_id: str, chat_id: str) -> bool:
        try:
            guild = await resolve_guild(self.bot, chat_id)
        except discord.HTTPException as exc:
            raise PermissionCheckError(f"channel lookup for {chat_id} failed: {exc}") from exc
        if guild is None:
            return True
        return await self._member(participant_id, chat_id) is not None
