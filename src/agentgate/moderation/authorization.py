"""Per-message authorization context.

One :class:`MessageAuthorization` is created for each inbound message and
shared by the moderation engine and the warning ledger, so the platform is
asked at most once per message whether the sender is an admin or a member.
Failed lookups default to False.
"""

from __future__ import annotations

import asyncio

from agentgate.errors import PermissionCheckError
from agentgate.platform.interfaces import PermissionChecker
from agentgate.util.logger import get_logger

logger = get_logger("authorization")


class MessageAuthorization:
    def __init__(self, checker: PermissionChecker, participant_id: str, chat_id: str) -> None:
        self.checker = checker
        self.participant_id = participant_id
        self.chat_id = chat_id
        self._admin: bool | None = None
        self._member: bool | None = None

    async def is_admin(self) -> bool:
        if self._admin is None:
            self._admin = await self._check("is_admin")
        return self._admin

    async def is_member(self) -> bool:
        if self._member is None:
            self._member = await self._check("is_member")
        return self._member

    async def _check(self, predicate: str) -> bool:
        try:
            return bool(await getattr(self.checker, predicate)(self.participant_id, self.chat_id))
        except asyncio.CancelledError:
            raise
        except PermissionCheckError as exc:
            logger.warning("[AUTH] %s check failed for %s in %s: %s", predicate, self.participant_id, self.chat_id, exc)
        except Exception as exc:
            logger.error("[AUTH] Unexpected %s failure for %s in %s: %s", predicate, self.participant_id, self.chat_id, exc)
        return False
