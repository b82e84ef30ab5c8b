"""
Pytest configuration and fixtures for AgentGate tests.
"""

import sys
from pathlib import Path

import pytest

# Add src directory to path so imports work
src_path = Path(__file__).parent.parent / "src"
sys.path.insert(0, str(src_path))
sys.path.insert(0, str(Path(__file__).parent))

from agentgate.datatypes.agent_datatypes import AgentProfile  # noqa: E402
from fakes import FakeClock, FakeMessenger, FakePermissions  # noqa: E402


@pytest.fixture()
def agent() -> AgentProfile:
    return AgentProfile(agent_id="gate", name="Gate", role="You are Gate.", model="test-model")


@pytest.fixture()
def clock() -> FakeClock:
    return FakeClock(start=1_700_000_000.0)


@pytest.fixture()
def messenger() -> FakeMessenger:
    return FakeMessenger()


@pytest.fixture()
def permissions() -> FakePermissions:
    return FakePermissions()
