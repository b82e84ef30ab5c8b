"""
Capabilities the gateway core consumes from a chat platform.

Implementations raise on failure; the core decides how to recover. Permission
lookups raise :class:`~agentgate.errors.PermissionCheckError`.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Protocol


class Messenger(Protocol):
    async def send(self, chat_id: str, text: str) -> Any:
        """Post ``text`` and return a handle usable with :meth:`edit`."""
        ...

    async def edit(self, handle: Any, text: str) -> None: ...

    async def restrict(self, participant_id: str, chat_id: str, until: datetime) -> None:
        """Prevent the participant from posting until ``until``."""
        ...

    async def ban(self, participant_id: str, chat_id: str, reason: str | None = None) -> None: ...

    async def unban(self, participant_id: str, chat_id: str, reason: str | None = None) -> None: ...


class PermissionChecker(Protocol):
    async def is_admin(self, participant_id: str, chat_id: str) -> bool: ...

    async def is_member(self, participant_id: str, chat_id: str) -> bool: ...
