"""Tests for the moderation decision engine and per-message authorization."""

import pytest
from fakes import FakePermissions, ScriptedSource

from agentgate.ai.prompts import MODERATION_INSTRUCTIONS, MODERATION_MARKER
from agentgate.ai.stream_aggregator import StreamAggregator
from agentgate.datatypes.moderation_datatypes import VerdictAction
from agentgate.moderation.authorization import MessageAuthorization
from agentgate.moderation.moderation_engine import ModerationEngine


def make_engine(events, **kwargs):
    source = ScriptedSource(events, **kwargs)
    return ModerationEngine(StreamAggregator(source), timeout=5), source


async def classify(engine, agent, authorization=None):
    return await engine.classify(
        "buy cheap followers now",
        "42",
        "spammer",
        "chat-1",
        "Test Group",
        agent,
        authorization=authorization,
    )


@pytest.mark.asyncio
async def test_warn_verdict_targets_sender(agent):
    engine, source = make_engine(['{"action": "warn", "reason": "spam", "user_id": "999"}'])

    verdict = await classify(engine, agent)

    assert verdict.action is VerdictAction.WARN
    assert verdict.reason == "spam"
    assert verdict.subject_id == "42"
    call = source.calls[0]
    assert call["instructions"] == MODERATION_INSTRUCTIONS
    assert call["prompt"].startswith(MODERATION_MARKER)
    assert "User: @spammer (user_id: 42)" in call["prompt"]
    assert "Group: Test Group" in call["prompt"]
    assert call["prompt"].endswith("Message: buy cheap followers now")


@pytest.mark.asyncio
async def test_streamed_fragments_are_joined_before_parsing(agent):
    engine, _ = make_engine(['{"action": ', '"ban", "reason": ', '"scam link"}'])
    verdict = await classify(engine, agent)
    assert verdict.action is VerdictAction.BAN
    assert verdict.reason == "scam link"


@pytest.mark.asyncio
async def test_ignore_is_no_action(agent):
    engine, _ = make_engine(['{"action": "ignore", "reason": "harmless"}'])
    verdict = await classify(engine, agent)
    assert verdict.action is VerdictAction.NONE
    assert not verdict.is_violation


@pytest.mark.asyncio
async def test_unparseable_output_fails_open(agent):
    engine, _ = make_engine(["Sure! This message looks like spam."])
    verdict = await classify(engine, agent)
    assert verdict.action is VerdictAction.NONE
    assert verdict.reason.startswith("parse error:")


@pytest.mark.asyncio
async def test_stream_error_fails_open(agent):
    engine, _ = make_engine(['{"action": "ban"', ConnectionError("boom")])
    verdict = await classify(engine, agent)
    assert verdict.action is VerdictAction.NONE
    assert verdict.reason == "classifier unavailable: stream_error"


@pytest.mark.asyncio
async def test_timeout_fails_open(agent):
    source = ScriptedSource(['{"action": "ban"}'], delay=0.2)
    engine = ModerationEngine(StreamAggregator(source), timeout=0.05)
    verdict = await classify(engine, agent)
    assert verdict.action is VerdictAction.NONE
    assert verdict.reason == "classifier unavailable: timed_out"


@pytest.mark.asyncio
async def test_admin_skips_classifier(agent):
    engine, source = make_engine(['{"action": "ban"}'])
    permissions = FakePermissions(admins={"42"})
    authorization = MessageAuthorization(permissions, "42", "chat-1")

    verdict = await classify(engine, agent, authorization)

    assert verdict.action is VerdictAction.NONE
    assert verdict.reason == "sender is an administrator"
    assert source.calls == []


@pytest.mark.asyncio
async def test_failed_admin_check_is_treated_as_non_admin(agent):
    engine, source = make_engine(['{"action": "warn", "reason": "spam"}'])
    authorization = MessageAuthorization(FakePermissions(broken=True), "42", "chat-1")

    verdict = await classify(engine, agent, authorization)

    assert verdict.action is VerdictAction.WARN
    assert len(source.calls) == 1


class TestMessageAuthorization:
    @pytest.mark.asyncio
    async def test_lookups_are_memoized(self):
        permissions = FakePermissions(admins={"1"}, members={"1"})
        authorization = MessageAuthorization(permissions, "1", "c")

        assert await authorization.is_admin() is True
        assert await authorization.is_admin() is True
        assert await authorization.is_member() is True
        assert await authorization.is_member() is True

        assert permissions.calls == [("is_admin", "1", "c"), ("is_member", "1", "c")]

    @pytest.mark.asyncio
    async def test_failures_default_to_false_and_are_cached(self):
        permissions = FakePermissions(broken=True)
        authorization = MessageAuthorization(permissions, "1", "c")

        assert await authorization.is_member() is False
        assert await authorization.is_member() is False
        assert len(permissions.calls) == 1
