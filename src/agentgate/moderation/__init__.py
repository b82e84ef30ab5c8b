"""
Moderation for group chats.

- **authorization.py**: per-message memoized admin and membership checks.
- **moderation_parsing.py**: strict, schema-validated decoding of classifier output.
- **moderation_engine.py**: builds the classification prompt and returns a verdict.
- **warning_ledger.py**: escalation of warnings into mute, removal and ban.
"""
