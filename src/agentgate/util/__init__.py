"""
Utility helpers for AgentGate.

- **logger.py**: centralized logging with coloured prompt_toolkit console output,
  a per-session log file and suppression of chatty third-party loggers.
- **keyed_lock.py**: per-key asyncio locks used to serialize read-modify-write
  cycles on conversations and warning records.
"""
