"""
Warning ledger: escalation of repeated violations into sanctions.

Each (participant, chat) pair moves through::

    CLEAN -> WARNED -> MUTE_PENDING -> KICK_PENDING -> BANNED

driven by the number of non-expired warnings. Crossing a threshold applies the
matching sanction once: a temporary mute, a temporary removal (ban followed by
a scheduled unban) or a ban. Warnings older than the retention window are
swept on every read and write.

Expiry clears the ledger's own ban flag once the count drops below the ban
threshold, but never lifts a platform ban; that is left to an administrator.

A participant the ledger considers banned who is seen as a chat member again
was re-added by an administrator: the record is reset and a notice is posted.
"""

from __future__ import annotations

import asyncio
import time
from datetime import datetime, timezone
from typing import Callable, List

from agentgate.datatypes.warning_datatypes import (
    LedgerState,
    ThresholdAction,
    WarningEvent,
    WarningInfo,
    WarningRecord,
    WarningResult,
)
from agentgate.errors import PersistenceError
from agentgate.moderation.authorization import MessageAuthorization
from agentgate.platform.interfaces import Messenger, PermissionChecker
from agentgate.scheduler.unban_scheduler import UnbanScheduler
from agentgate.storage.repositories import WarningRepo
from agentgate.util.keyed_lock import KeyedLock
from agentgate.util.logger import get_logger

logger = get_logger("warning_ledger")

RECENT_WARNINGS = 3
REINSTATED_NOTICE = (
    "⚠️ Warning history has been reset for a previously banned user who has been re-added to the group."
)


def _format_duration(seconds: float) -> str:
    if seconds % 3600 == 0:
        hours = int(seconds // 3600)
        return "1 hour" if hours == 1 else f"{hours} hours"
    minutes = max(int(seconds // 60), 1)
    return "1 minute" if minutes == 1 else f"{minutes} minutes"


class SanctionExecutor:
    """Applies platform sanctions through a :class:`Messenger`.

    Errors propagate to the caller, which records the failure. Nothing is
    retried.
    """

    def __init__(
        self,
        messenger: Messenger,
        scheduler: UnbanScheduler,
        *,
        mute_seconds: float = 3600,
        kick_unban_delay: float = 5,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.messenger = messenger
        self.scheduler = scheduler
        self.mute_seconds = mute_seconds
        self.kick_unban_delay = kick_unban_delay
        self.clock = clock

    async def mute(self, participant_id: str, chat_id: str) -> datetime:
        until = datetime.fromtimestamp(self.clock() + self.mute_seconds, tz=timezone.utc)
        await self.messenger.restrict(participant_id, chat_id, until)
        return until

    async def remove(self, participant_id: str, chat_id: str, reason: str) -> None:
        """Remove the participant while letting them rejoin: ban now, unban shortly after."""
        await self.messenger.ban(participant_id, chat_id, reason)
        await self.scheduler.schedule(
            chat_id,
            participant_id,
            self.kick_unban_delay,
            self.messenger.unban,
            reason="Temporary removal finished; the user may rejoin.",
        )

    async def ban(self, participant_id: str, chat_id: str, reason: str) -> None:
        await self.scheduler.cancel(chat_id, participant_id)
        await self.messenger.ban(participant_id, chat_id, reason)


class WarningLedger:
    """Escalation state machine over persisted warning records.

    Parameters
    ----------
    repo:
        Warning record persistence.
    sanctions:
        Executes mute, removal and ban.
    messenger:
        Used for the reinstatement notice.
    permissions:
        Membership lookups when no per-message authorization is supplied.
    temp_mute_threshold, kick_threshold, ban_threshold:
        Warning counts at which each sanction applies.
    retention_seconds:
        Age after which a warning expires.
    clock:
        Wall-clock source (unix seconds).
    """

    def __init__(
        self,
        repo: WarningRepo,
        sanctions: SanctionExecutor,
        messenger: Messenger,
        permissions: PermissionChecker | None = None,
        *,
        temp_mute_threshold: int = 3,
        kick_threshold: int = 4,
        ban_threshold: int = 5,
        retention_seconds: float = 30 * 86400,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.repo = repo
        self.sanctions = sanctions
        self.messenger = messenger
        self.permissions = permissions
        self.temp_mute_threshold = temp_mute_threshold
        self.kick_threshold = kick_threshold
        self.ban_threshold = ban_threshold
        self.retention_seconds = retention_seconds
        self.clock = clock
        self._locks = KeyedLock()

    # ------------------------------------------------------------------
    # State helpers
    # ------------------------------------------------------------------

    def state_of(self, record: WarningRecord) -> LedgerState:
        count = record.warning_count
        if record.is_banned or count >= self.ban_threshold:
            return LedgerState.BANNED
        if count >= self.kick_threshold:
            return LedgerState.KICK_PENDING
        if count >= self.temp_mute_threshold:
            return LedgerState.MUTE_PENDING
        if count > 0:
            return LedgerState.WARNED
        return LedgerState.CLEAN

    def _sweep(self, record: WarningRecord) -> bool:
        """Drop expired warnings. Returns True if the record changed."""
        cutoff = self.clock() - self.retention_seconds
        kept = [w for w in record.warnings if w.timestamp > cutoff]
        changed = len(kept) != len(record.warnings)
        if changed:
            logger.info(
                "[LEDGER] Expired %d warnings for %s in %s",
                len(record.warnings) - len(kept), record.participant_id, record.chat_id,
            )
            record.warnings = kept
            record.last_warning_date = kept[-1].timestamp if kept else None

            # Only an expiry can lift the flag; direct bans carry no warnings
            if record.is_banned and record.warning_count < self.ban_threshold:
                logger.warning(
                    "[LEDGER] Ban flag for %s in %s cleared by expiry; any platform ban stays in place",
                    record.participant_id, record.chat_id,
                )
                record.is_banned = False
                record.ban_date = None
                record.ban_reason = None
        return changed

    async def _load_swept(self, participant_id: str, chat_id: str) -> WarningRecord:
        record = await self.repo.load(participant_id, chat_id)
        if self._sweep(record):
            await self.repo.save(record)
        return record

    async def _post(self, chat_id: str, text: str) -> bool:
        try:
            await self.messenger.send(chat_id, text)
            return True
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            logger.error("[LEDGER] Failed to post notice in %s: %s", chat_id, exc)
            return False

    def _authorization(
        self, participant_id: str, chat_id: str, authorization: MessageAuthorization | None
    ) -> MessageAuthorization | None:
        if authorization is not None:
            return authorization
        if self.permissions is not None:
            return MessageAuthorization(self.permissions, participant_id, chat_id)
        return None

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    async def add_warning(
        self,
        participant_id: str,
        chat_id: str,
        reason: str,
        issuer_id: str,
        *,
        authorization: MessageAuthorization | None = None,
        username: str | None = None,
    ) -> WarningResult:
        """Record a violation and apply the sanction for the new warning count.

        The returned result carries the new state, the action taken and the
        notice that should be posted to the chat.
        """
        async with self._locks.hold((participant_id, chat_id)):
            try:
                record = await self.repo.load(participant_id, chat_id)
            except PersistenceError as exc:
                logger.error("[LEDGER] Cannot load warnings for %s in %s: %s", participant_id, chat_id, exc)
                return WarningResult(LedgerState.CLEAN, ThresholdAction.FAILED, 0)

            self._sweep(record)
            if username:
                record.username = username

            if record.is_banned:
                if not await self._reinstate(record, self._authorization(participant_id, chat_id, authorization)):
                    await self._save(record)
                    return WarningResult(LedgerState.BANNED, ThresholdAction.ALREADY_BANNED, record.warning_count)

            now = self.clock()
            record.warnings.append(WarningEvent(reason=reason, timestamp=now, issuer_id=str(issuer_id)))
            record.last_warning_date = now

            action, sanction_notice = await self._apply_thresholds(record)
            await self._save(record)

        handle = record.username or participant_id
        notice = f"⚠️ Warning to @{handle}: {reason} ({record.warning_count}/{self.ban_threshold})"
        if sanction_notice:
            notice = f"{notice}\n{sanction_notice}"

        logger.info(
            "[LEDGER] Warning %d for %s in %s: %s",
            record.warning_count, participant_id, chat_id, action,
        )
        return WarningResult(self.state_of(record), action, record.warning_count, notice)

    async def _apply_thresholds(self, record: WarningRecord) -> tuple[ThresholdAction, str | None]:
        count = record.warning_count
        participant_id, chat_id = record.participant_id, record.chat_id

        if count >= self.ban_threshold:
            ban_reason = f"Exceeded maximum warning threshold ({self.ban_threshold})"
            try:
                await self.sanctions.ban(participant_id, chat_id, ban_reason)
            except asyncio.CancelledError:
                raise
            except Exception as exc:
                logger.error("[LEDGER] Ban of %s in %s failed: %s", participant_id, chat_id, exc)
                return ThresholdAction.BAN_FAILED, None
            record.is_banned = True
            record.ban_date = self.clock()
            record.ban_reason = ban_reason
            return ThresholdAction.BANNED, f"🚫 User has been banned from this group after receiving {count} warnings."

        if count >= self.kick_threshold:
            try:
                await self.sanctions.remove(participant_id, chat_id, f"Reached {count} warnings")
            except asyncio.CancelledError:
                raise
            except Exception as exc:
                logger.error("[LEDGER] Removal of %s from %s failed: %s", participant_id, chat_id, exc)
                return ThresholdAction.KICK_FAILED, None
            return ThresholdAction.KICKED, (
                f"⚠️ User has been removed from this group after receiving {count} warnings. "
                f"They can rejoin but will be banned after {self.ban_threshold} warnings."
            )

        if count >= self.temp_mute_threshold:
            try:
                await self.sanctions.mute(participant_id, chat_id)
            except asyncio.CancelledError:
                raise
            except Exception as exc:
                logger.error("[LEDGER] Mute of %s in %s failed: %s", participant_id, chat_id, exc)
                return ThresholdAction.MUTE_FAILED, None
            duration = _format_duration(self.sanctions.mute_seconds)
            return ThresholdAction.MUTED, f"🔇 User has been muted for {duration} after receiving {count} warnings."

        return ThresholdAction.RECORDED, None

    async def _save(self, record: WarningRecord) -> None:
        try:
            await self.repo.save(record)
        except PersistenceError as exc:
            logger.error("[LEDGER] Failed to persist warnings for %s in %s: %s", record.participant_id, record.chat_id, exc)

    async def _reinstate(self, record: WarningRecord, authorization: MessageAuthorization | None) -> bool:
        """Reset a banned record if the participant is a member again."""
        if authorization is None or not await authorization.is_member():
            return False
        logger.info("[LEDGER] %s is back in %s; resetting warning history", record.participant_id, record.chat_id)
        record.reset()
        await self._post(record.chat_id, REINSTATED_NOTICE)
        return True

    async def reinstate_if_member(
        self,
        participant_id: str,
        chat_id: str,
        *,
        authorization: MessageAuthorization | None = None,
    ) -> WarningResult:
        """Reset a banned participant who has been re-added to the chat.

        Intended for member-join events.
        """
        async with self._locks.hold((participant_id, chat_id)):
            try:
                record = await self.repo.load(participant_id, chat_id)
            except PersistenceError as exc:
                logger.error("[LEDGER] Cannot load warnings for %s in %s: %s", participant_id, chat_id, exc)
                return WarningResult(LedgerState.CLEAN, ThresholdAction.FAILED, 0)

            changed = self._sweep(record)
            if record.is_banned and await self._reinstate(record, self._authorization(participant_id, chat_id, authorization)):
                await self._save(record)
                return WarningResult(LedgerState.CLEAN, ThresholdAction.WARNINGS_RESET, 0, REINSTATED_NOTICE)
            if changed:
                await self._save(record)
            return WarningResult(self.state_of(record), ThresholdAction.RECORDED, record.warning_count)

    async def ban_now(self, participant_id: str, chat_id: str, reason: str, issuer_id: str, *, username: str | None = None) -> WarningResult:
        """Ban immediately, as for a severe violation, and mark the record banned."""
        async with self._locks.hold((participant_id, chat_id)):
            try:
                record = await self.repo.load(participant_id, chat_id)
            except PersistenceError as exc:
                logger.error("[LEDGER] Cannot load warnings for %s in %s: %s", participant_id, chat_id, exc)
                record = WarningRecord(participant_id=participant_id, chat_id=chat_id)

            self._sweep(record)
            if username:
                record.username = username
            if record.is_banned:
                return WarningResult(LedgerState.BANNED, ThresholdAction.ALREADY_BANNED, record.warning_count)

            try:
                await self.sanctions.ban(participant_id, chat_id, reason)
            except asyncio.CancelledError:
                raise
            except Exception as exc:
                logger.error("[LEDGER] Direct ban of %s in %s failed: %s", participant_id, chat_id, exc)
                return WarningResult(self.state_of(record), ThresholdAction.BAN_FAILED, record.warning_count)

            now = self.clock()
            record.is_banned = True
            record.ban_date = now
            record.ban_reason = reason
            await self._save(record)

        logger.info("[LEDGER] %s banned from %s by %s: %s", participant_id, chat_id, issuer_id, reason)
        handle = record.username or participant_id
        return WarningResult(
            LedgerState.BANNED,
            ThresholdAction.BANNED,
            record.warning_count,
            f"🚫 User @{handle} has been banned due to: {reason}",
        )

    async def clear_warnings(self, participant_id: str, chat_id: str) -> bool:
        """Administrative reset of a participant's warnings and ban flag."""
        async with self._locks.hold((participant_id, chat_id)):
            try:
                record = await self.repo.load(participant_id, chat_id)
                record.reset()
                await self.repo.save(record)
            except PersistenceError as exc:
                logger.error("[LEDGER] Failed to clear warnings for %s in %s: %s", participant_id, chat_id, exc)
                return False
        logger.info("[LEDGER] Cleared warnings for %s in %s", participant_id, chat_id)
        return True

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def get_warning_count(self, participant_id: str, chat_id: str) -> int:
        async with self._locks.hold((participant_id, chat_id)):
            try:
                record = await self._load_swept(participant_id, chat_id)
            except PersistenceError as exc:
                logger.error("[LEDGER] Failed to read warnings for %s in %s: %s", participant_id, chat_id, exc)
                return 0
        return record.warning_count

    async def get_warning_info(self, participant_id: str, chat_id: str) -> WarningInfo:
        async with self._locks.hold((participant_id, chat_id)):
            try:
                record = await self._load_swept(participant_id, chat_id)
            except PersistenceError as exc:
                logger.error("[LEDGER] Failed to read warnings for %s in %s: %s", participant_id, chat_id, exc)
                record = WarningRecord(participant_id=participant_id, chat_id=chat_id)

        recent: List[WarningEvent] = list(reversed(record.warnings[-RECENT_WARNINGS:]))
        return WarningInfo(
            warning_count=record.warning_count,
            last_warning_date=record.last_warning_date,
            is_banned=record.is_banned,
            ban_date=record.ban_date,
            ban_reason=record.ban_reason,
            recent_warnings=recent,
        )

    async def get_state(self, participant_id: str, chat_id: str) -> LedgerState:
        async with self._locks.hold((participant_id, chat_id)):
            try:
                record = await self._load_swept(participant_id, chat_id)
            except PersistenceError as exc:
                logger.error("[LEDGER] Failed to read warnings for %s in %s: %s", participant_id, chat_id, exc)
                return LedgerState.CLEAN
        return self.state_of(record)
