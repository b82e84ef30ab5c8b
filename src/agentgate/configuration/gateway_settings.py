"""Typed view of the gateway tuning options.

Every option can be set in the ``gateway`` section of ``app_config.yml`` and
overridden by an environment variable of the same upper-case name.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, fields
from typing import Any, Mapping


@dataclass(frozen=True, slots=True)
class GatewaySettings:
    TEMP_MUTE_THRESHOLD: int = 3
    KICK_THRESHOLD: int = 4
    BAN_THRESHOLD: int = 5
    WARNING_EXPIRATION_DAYS: float = 30
    DEDUP_TTL_MS: int = 10_000
    DEDUP_TEXT_WINDOW_MS: int = 3_000
    SUMMARIZE_TRIGGER_COUNT: int = 30
    SUMMARIZE_KEEP_COUNT: int = 5
    GENERATION_TIMEOUT_MS: int = 180_000
    CONTEXT_TOKEN_BUDGET: int = 2_000
    MUTE_DURATION_SECONDS: int = 3_600
    KICK_UNBAN_DELAY_SECONDS: float = 5
    PARTIAL_UPDATE_CHARS: int = 20

    def __post_init__(self) -> None:
        if not 0 < self.TEMP_MUTE_THRESHOLD <= self.KICK_THRESHOLD <= self.BAN_THRESHOLD:
            raise ValueError(
                "warning thresholds must satisfy 0 < TEMP_MUTE_THRESHOLD <= KICK_THRESHOLD <= BAN_THRESHOLD, "
                f"got {self.TEMP_MUTE_THRESHOLD}/{self.KICK_THRESHOLD}/{self.BAN_THRESHOLD}"
            )
        if self.SUMMARIZE_KEEP_COUNT < 0 or self.SUMMARIZE_KEEP_COUNT >= self.SUMMARIZE_TRIGGER_COUNT:
            raise ValueError("SUMMARIZE_KEEP_COUNT must be non-negative and below SUMMARIZE_TRIGGER_COUNT")
        if self.PARTIAL_UPDATE_CHARS <= 0:
            raise ValueError("PARTIAL_UPDATE_CHARS must be positive")
        if self.CONTEXT_TOKEN_BUDGET <= 0 or self.GENERATION_TIMEOUT_MS <= 0 or self.DEDUP_TTL_MS <= 0:
            raise ValueError("budgets, timeouts and TTLs must be positive")

    # Derived units used by the components
    @property
    def warning_retention_seconds(self) -> float:
        return float(self.WARNING_EXPIRATION_DAYS) * 86_400

    @property
    def generation_timeout(self) -> float:
        return self.GENERATION_TIMEOUT_MS / 1000

    @property
    def dedup_ttl(self) -> float:
        return self.DEDUP_TTL_MS / 1000

    @property
    def dedup_text_window(self) -> float:
        return self.DEDUP_TEXT_WINDOW_MS / 1000

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any] | None, environ: Mapping[str, str] | None = None) -> "GatewaySettings":
        """Build settings from a config mapping, letting ``environ`` override it.

        Keys are matched case-insensitively so ``ban_threshold`` in YAML maps
        onto ``BAN_THRESHOLD``. Unknown keys are ignored.

        Raises:
            ValueError: If a value cannot be converted or the result is inconsistent.
        """
        environ = os.environ if environ is None else environ
        source = {str(k).upper(): v for k, v in (data or {}).items()}
        values: dict[str, Any] = {}
        for f in fields(cls):
            raw = environ.get(f.name, source.get(f.name))
            if raw is None or raw == "":
                continue
            caster = int if f.type in ("int", int) else float
            try:
                values[f.name] = caster(raw)
            except (TypeError, ValueError) as exc:
                raise ValueError(f"invalid value for {f.name}: {raw!r}") from exc
        return cls(**values)
