"""Suppression of replayed and rapidly repeated inbound messages.

Two independent checks are applied per participant:

1. A (participant, message id) pair seen within the TTL is a replay.
2. The same text from the same participant within a short sub-window is a
   double send, even when the platform assigned it a new message id. Text
   entries are keyed by the first characters of the message.

Entries expire lazily on every call. Both tables are kept in insertion order,
so a sweep only pops expired entries from the front.
"""

from __future__ import annotations

import time
from collections import OrderedDict
from typing import Callable, Tuple

from agentgate.util.logger import get_logger

logger = get_logger("deduplicator")

TEXT_KEY_CHARS = 20


class Deduplicator:
    """Process-local duplicate detector.

    Parameters
    ----------
    ttl_seconds:
        How long a (participant, message id) entry suppresses replays.
    text_window_seconds:
        How long an identical text from the same participant is suppressed.
    clock:
        Monotonic time source, injectable for tests.
    """

    def __init__(
        self,
        ttl_seconds: float = 10.0,
        text_window_seconds: float = 3.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.ttl = ttl_seconds
        self.text_window = min(text_window_seconds, ttl_seconds)
        self.clock = clock
        self._ids: OrderedDict[Tuple[str, str], float] = OrderedDict()
        self._texts: OrderedDict[Tuple[str, str], Tuple[str, float]] = OrderedDict()

    def should_suppress(self, participant_id: str, message_id: str, text: str | None = None) -> bool:
        """Return True if this message is a duplicate and must be dropped.

        The first sighting of a message is recorded and returns False.
        """
        now = self.clock()
        self._sweep(now)

        participant_id = str(participant_id)
        id_key = (participant_id, str(message_id))
        if id_key in self._ids:
            logger.debug("[DEDUP] Replay of message %s from %s suppressed", message_id, participant_id)
            return True
        self._ids[id_key] = now

        normalized = (text or "").strip()
        if not normalized:
            return False

        text_key = (participant_id, normalized[:TEXT_KEY_CHARS])
        previous = self._texts.get(text_key)
        if previous is not None and previous[0] == normalized and now - previous[1] < self.text_window:
            logger.debug("[DEDUP] Repeated text from %s within %.1fs suppressed", participant_id, self.text_window)
            return True

        self._texts.pop(text_key, None)
        self._texts[text_key] = (normalized, now)
        return False

    def _sweep(self, now: float) -> None:
        while self._ids:
            key, seen_at = next(iter(self._ids.items()))
            if now - seen_at < self.ttl:
                break
            del self._ids[key]

        while self._texts:
            key, (_, seen_at) = next(iter(self._texts.items()))
            if now - seen_at < self.text_window:
                break
            del self._texts[key]

    def clear(self) -> None:
        self._ids.clear()
        self._texts.clear()

    def __len__(self) -> int:
        return len(self._ids)
