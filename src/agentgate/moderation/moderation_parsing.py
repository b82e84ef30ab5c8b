"""Strict decoding of classifier output into a :class:`Verdict`."""

from __future__ import annotations

import json
import re
from typing import Any

import jsonschema
from jsonschema import ValidationError

from agentgate.datatypes.moderation_datatypes import ParseFailure, ParseOk, ParseResult, Verdict, VerdictAction
from agentgate.errors import VerdictParseError
from agentgate.util.logger import get_logger

logger = get_logger("moderation_parsing")

VERDICT_SCHEMA: dict = {
    "type": "object",
    "properties": {
        "action": {"type": "string"},
        "reason": {"type": "string"},
        "user_id": {"type": ["string", "integer"]},
    },
    "required": ["action"],
    "additionalProperties": False,
}

_CODE_FENCE = re.compile(r"^```[A-Za-z]*\s*\n?(.*?)\n?```$", re.DOTALL)


def _extract_json_payload(raw: str) -> Any:
    """Decode ``raw`` as JSON, tolerating one surrounding markdown code fence."""
    text = raw.strip()
    fenced = _CODE_FENCE.match(text)
    if fenced:
        text = fenced.group(1).strip()
    try:
        return json.loads(text)
    except json.JSONDecodeError as exc:
        raise VerdictParseError(f"invalid JSON: {exc.msg}", raw) from exc


def parse_verdict(raw: str) -> ParseResult:
    """Parse classifier text into ``ParseOk(verdict)`` or ``ParseFailure(error)``."""
    logger.debug("[PARSE] Parsing verdict (%d chars)", len(raw or ""))
    try:
        payload = _extract_json_payload(raw or "")

        try:
            jsonschema.validate(instance=payload, schema=VERDICT_SCHEMA)
        except ValidationError as exc:
            raise VerdictParseError(f"schema validation failed: {exc.message}", raw) from exc

        action = VerdictAction.from_label(payload["action"])
        if action is None:
            raise VerdictParseError(f"unrecognized action {payload['action']!r}", raw)
    except VerdictParseError as exc:
        logger.warning("[PARSE] Rejected classifier output: %s", exc.message)
        return ParseFailure(exc)

    subject = payload.get("user_id")
    return ParseOk(
        Verdict(
            action=action,
            reason=str(payload.get("reason", "")).strip(),
            subject_id=str(subject) if subject is not None else None,
        )
    )
