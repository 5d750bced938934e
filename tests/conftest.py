"""Shared fixtures for ccb tests."""

import pytest

from ccb.models import Decision, HookRequest

PROVIDER_ENV_VARS = (
    "ANTHROPIC_API_KEY",
    "ANTHROPIC_BASE_URL",
    "OPENAI_API_KEY",
    "OPENAI_BASE_URL",
    "CCB_PROXY_API_KEY",
    "CCB_PROXY_BASE_URL",
)


@pytest.fixture(autouse=True)
def ccb_home(tmp_path, monkeypatch):
    """Isolated state directory and no provider credentials from the real env."""
    home = tmp_path / "ccb-home"
    monkeypatch.setenv("CCB_CONFIG_DIR", str(home))
    for var in PROVIDER_ENV_VARS:
        monkeypatch.delenv(var, raising=False)
    return home


@pytest.fixture
def make_request():
    """Factory for HookRequest objects."""
    def _create(tool_name="Bash", tool_input=None, cwd="/home/dev/project", session_id="session-123"):
        return HookRequest(
            session_id=session_id,
            transcript_path="/tmp/transcript.jsonl",
            tool_name=tool_name,
            tool_input=tool_input if tool_input is not None else {"command": "make deploy"},
            cwd=cwd,
        )
    return _create


class FakeReasoningClient:
    """Records calls and returns a fixed decision or raises a fixed error."""

    def __init__(self, decision=None, error=None):
        self.decision = decision or Decision.allow("looks fine")
        self.error = error
        self.calls = []

    def decide(self, tool_name, tool_input):
        self.calls.append((tool_name, dict(tool_input)))
        if self.error is not None:
            raise self.error
        return self.decision


@pytest.fixture
def fake_client():
    """Factory for FakeReasoningClient objects."""
    def _create(decision=None, error=None):
        return FakeReasoningClient(decision=decision, error=error)
    return _create
