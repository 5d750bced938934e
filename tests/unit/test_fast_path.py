"""Unit tests for the fast-path classifier."""

import pytest

from ccb import fast_path
from ccb.models import DecisionSource, Verdict


class TestReadOnlyTools:

    @pytest.mark.parametrize("tool", sorted(fast_path.READ_ONLY_TOOLS))
    def test_allowed(self, tool):
        decision = fast_path.classify(tool, {})
        assert decision.verdict == Verdict.ALLOW
        assert decision.reason == f"{tool} is a safe read-only operation"
        assert decision.source == DecisionSource.FAST_PATH

    def test_input_is_not_inspected(self):
        decision = fast_path.classify("Read", {"file_path": "/etc/shadow"})
        assert decision.verdict == Verdict.ALLOW


class TestSafeWriteTools:

    @pytest.mark.parametrize("tool", sorted(fast_path.SAFE_WRITE_TOOLS))
    def test_allowed(self, tool):
        decision = fast_path.classify(tool, {"file_path": "src/app.py"})
        assert decision.verdict == Verdict.ALLOW
        assert decision.reason == f"{tool} is a safe development operation"


class TestAlwaysAsk:

    def test_exit_plan_mode_asks(self):
        decision = fast_path.classify("ExitPlanMode", {"plan": "rewrite everything"})
        assert decision.verdict == Verdict.ASK
        assert decision.reason == fast_path.ALWAYS_ASK_REASON
        assert not decision.is_cacheable


class TestFallThrough:

    @pytest.mark.parametrize("tool", ["Bash", "mcp__github__create_issue", "KillShell", "read", "Unknown"])
    def test_returns_none(self, tool):
        assert fast_path.classify(tool, {"command": "ls"}) is None

    def test_tool_input_optional(self):
        assert fast_path.classify("Bash") is None

    def test_rule_sets_are_disjoint(self):
        assert not fast_path.READ_ONLY_TOOLS & fast_path.SAFE_WRITE_TOOLS
        assert not fast_path.ALWAYS_ASK_TOOLS & (fast_path.READ_ONLY_TOOLS | fast_path.SAFE_WRITE_TOOLS)
