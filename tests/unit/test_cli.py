"""CLI tests via click's CliRunner.

The reasoning client is replaced by a scripted stand-in so hook runs that
reach the model tier stay offline.
"""

import json
from unittest.mock import patch

import pytest
from click.testing import CliRunner

from ccb.cache import DecisionCache
from ccb.cli import main
from ccb.errors import ProviderError
from ccb.models import Decision
from ccb.prompts import SYSTEM_PROMPT

PROTECTED_BRANCHES = ("main", "master", "production", "develop", "staging")


class ScriptedClient:
    """Answers like a well-behaved model for a handful of known commands."""

    instances = []

    def __init__(self, config, use_claude_cli=False):
        self.use_claude_cli = use_claude_cli
        self.calls = []
        ScriptedClient.instances.append(self)

    def decide(self, tool_name, tool_input):
        self.calls.append((tool_name, tool_input))
        command = tool_input.get("command", "")
        if command == "explode":
            raise ProviderError("Reasoning request timed out after 30s")
        if command.startswith("rm -rf /"):
            return Decision.deny("Recursive deletion of the filesystem root")
        words = command.split()
        if "push" in words and ("-f" in words or "--force" in words) and words[-1] in PROTECTED_BRANCHES:
            return Decision.deny(f"Force-push to protected branch {words[-1]}")
        return Decision.allow("Normal development workflow")


@pytest.fixture
def runner():
    return CliRunner()


@pytest.fixture
def scripted():
    ScriptedClient.instances = []
    with patch("ccb.orchestrator.ReasoningClient", ScriptedClient):
        yield ScriptedClient


def _hook_input(tool_name="Bash", tool_input=None, cwd="/home/dev/project", **extra):
    data = {
        "session_id": "sess-1",
        "transcript_path": "/tmp/transcript.jsonl",
        "tool_name": tool_name,
        "tool_input": tool_input if tool_input is not None else {"command": "ls"},
        "cwd": cwd,
    }
    data.update(extra)
    return json.dumps(data)


def _verdict(result):
    return json.loads(result.stdout)["hookSpecificOutput"]


class TestAutoApproveTools:

    def test_read_allowed_on_fast_path(self, runner, scripted):
        result = runner.invoke(main, ["auto-approve-tools"], input=_hook_input("Read", {"file_path": "/etc/hosts"}))
        assert result.exit_code == 0
        out = _verdict(result)
        assert out["hookEventName"] == "PreToolUse"
        assert out["permissionDecision"] == "allow"
        assert "read-only" in out["permissionDecisionReason"]
        assert scripted.instances == []

    def test_exit_plan_mode_asks(self, runner, scripted):
        result = runner.invoke(main, ["auto-approve-tools"], input=_hook_input("ExitPlanMode", {"plan": "p"}))
        assert _verdict(result)["permissionDecision"] == "ask"

    @pytest.mark.parametrize("command,expected", [
        ("rm -rf /", "deny"),
        ("git push -f origin main", "deny"),
        ("git push --force origin production", "deny"),
        ("git push -f origin feature-x", "allow"),
        ("npm test", "allow"),
    ])
    def test_model_verdicts(self, runner, scripted, command, expected):
        result = runner.invoke(main, ["auto-approve-tools"], input=_hook_input(tool_input={"command": command}))
        assert result.exit_code == 0, result.stderr
        assert _verdict(result)["permissionDecision"] == expected

    def test_second_run_served_from_cache(self, runner, scripted):
        payload = _hook_input(tool_input={"command": "make build"})
        first = runner.invoke(main, ["auto-approve-tools"], input=payload)
        second = runner.invoke(main, ["auto-approve-tools"], input=payload)
        assert _verdict(first)["permissionDecisionReason"] == "Normal development workflow"
        assert _verdict(second)["permissionDecisionReason"] == "Normal development workflow (cached)"
        assert len(scripted.instances) == 1

    def test_approval_log_written(self, runner, scripted, ccb_home):
        runner.invoke(main, ["auto-approve-tools"], input=_hook_input(tool_input={"command": "rm -rf /"}))
        rows = [json.loads(line) for line in (ccb_home / "approval.jsonl").read_text().splitlines()]
        assert len(rows) == 1
        assert rows[0]["decision"] == "deny"
        assert rows[0]["session_id"] == "sess-1"

    def test_use_claude_cli_flag_forwarded(self, runner, scripted):
        runner.invoke(main, ["auto-approve-tools", "--use-claude-cli"], input=_hook_input())
        assert scripted.instances[0].use_claude_cli is True

    def test_missing_cwd_defaults_to_process_cwd(self, runner, scripted, ccb_home, tmp_path, monkeypatch):
        monkeypatch.chdir(tmp_path)
        payload = json.loads(_hook_input(tool_input={"command": "rm -rf /"}))
        del payload["cwd"]
        runner.invoke(main, ["auto-approve-tools"], input=json.dumps(payload))
        assert str(tmp_path) in DecisionCache().stats()

    @pytest.mark.parametrize("stdin,message", [
        ("", "no input received"),
        ("not json at all", "not valid JSON"),
        ("[1, 2]", "expected a JSON object"),
        (json.dumps({"tool_input": {}}), "tool_name"),
        (json.dumps({"tool_name": "Bash", "tool_input": "ls"}), "tool_input"),
    ])
    def test_malformed_input(self, runner, scripted, stdin, message):
        result = runner.invoke(main, ["auto-approve-tools"], input=stdin)
        assert result.exit_code == 1
        assert result.stdout == ""
        assert result.stderr.startswith("Error processing hook input:")
        assert message in result.stderr
        assert len(result.stderr.strip().splitlines()) == 1

    def test_provider_failure(self, runner, scripted, ccb_home):
        result = runner.invoke(main, ["auto-approve-tools"], input=_hook_input(tool_input={"command": "explode"}))
        assert result.exit_code == 1
        assert result.stdout == ""
        assert "timed out" in result.stderr
        assert not (ccb_home / "approval.jsonl").exists()

    def test_corrupt_config_still_decides(self, runner, ccb_home):
        ccb_home.mkdir(parents=True)
        (ccb_home / "config.json").write_bytes(b"\xff\xfe garbage")
        result = runner.invoke(main, ["auto-approve-tools"], input=_hook_input("Read", {"file_path": "a.py"}))
        assert result.exit_code == 0, result.stderr
        assert _verdict(result)["permissionDecision"] == "allow"

    def test_corrupt_cache_still_decides(self, runner, scripted, ccb_home):
        ccb_home.mkdir(parents=True)
        (ccb_home / "approval_cache.json").write_bytes(b'{"\xff\xfe": {}}')
        result = runner.invoke(main, ["auto-approve-tools"], input=_hook_input(tool_input={"command": "rm -rf /"}))
        assert result.exit_code == 0, result.stderr
        assert _verdict(result)["permissionDecision"] == "deny"
        assert DecisionCache().stats() == {"/home/dev/project": 1}

    def test_lone_surrogate_in_tool_input(self, runner, scripted, ccb_home):
        # json.dumps escapes the surrogate, so stdin is plain ASCII JSON
        payload = _hook_input(tool_input={"command": "echo \ud800"})
        first = runner.invoke(main, ["auto-approve-tools"], input=payload)
        second = runner.invoke(main, ["auto-approve-tools"], input=payload)
        assert first.exit_code == 0, first.stderr
        assert second.exit_code == 0, second.stderr
        assert _verdict(first)["permissionDecision"] == "allow"
        rows = [json.loads(line) for line in (ccb_home / "approval.jsonl").read_text().splitlines()]
        assert rows[0]["inputs"]["command"] == "echo \ud800"

    def test_no_credentials_fails_model_path(self, runner):
        result = runner.invoke(main, ["auto-approve-tools"], input=_hook_input(tool_input={"command": "make"}))
        assert result.exit_code == 1
        assert result.stdout == ""
        assert "No authentication method" in result.stderr

    def test_no_credentials_fine_for_fast_path(self, runner):
        result = runner.invoke(main, ["auto-approve-tools"], input=_hook_input("Glob", {"pattern": "**/*.py"}))
        assert result.exit_code == 0
        assert _verdict(result)["permissionDecision"] == "allow"


class TestCacheCommands:

    def test_clear_cache(self, runner, ccb_home):
        DecisionCache().put("Bash", {"command": "ls"}, "/p", "allow", "ok")
        result = runner.invoke(main, ["clear-cache"])
        assert result.exit_code == 0
        assert "Approval cache cleared" in result.stdout
        assert json.loads((ccb_home / "approval_cache.json").read_text()) == {}

    def test_cache_stats_empty(self, runner):
        result = runner.invoke(main, ["cache-stats"])
        assert result.exit_code == 0
        assert "Approval cache is empty" in result.stdout

    def test_cache_stats(self, runner):
        cache = DecisionCache()
        cache.put("Bash", {"command": "ls"}, "/p", "allow", "ok")
        cache.put("Bash", {"command": "pwd"}, "/p", "allow", "ok")
        result = runner.invoke(main, ["cache-stats"])
        assert result.exit_code == 0
        assert "/p" in result.stdout
        assert "Total" in result.stdout


class TestDoctor:

    def test_no_credentials(self, runner):
        result = runner.invoke(main, ["doctor"])
        assert result.exit_code == 1
        assert "Configuration" in result.stdout
        assert "No authentication method" in result.stdout

    def test_anthropic_credentials(self, runner, monkeypatch):
        monkeypatch.setenv("ANTHROPIC_API_KEY", "sk-ant-test")
        result = runner.invoke(main, ["doctor"])
        assert result.exit_code == 0
        assert "anthropic" in result.stdout
        assert "prompt-embedded" in result.stdout
        assert "sk-ant-test" not in result.stdout


class TestPromptCommands:

    def test_show_builtin(self, runner):
        result = runner.invoke(main, ["prompt", "show"])
        assert result.exit_code == 0
        assert "Source: built-in" in result.stdout
        assert "DEFAULT TO ALLOW" in result.stdout

    def test_reset_yes(self, runner, ccb_home):
        result = runner.invoke(main, ["prompt", "reset", "-y"])
        assert result.exit_code == 0
        assert (ccb_home / "system-prompt.md").read_text() == SYSTEM_PROMPT

    def test_reset_cancelled(self, runner, ccb_home):
        result = runner.invoke(main, ["prompt", "reset"], input="n\n")
        assert result.exit_code == 0
        assert "Cancelled" in result.stdout
        assert not (ccb_home / "system-prompt.md").exists()

    def test_reset_already_default(self, runner, ccb_home):
        ccb_home.mkdir(parents=True)
        (ccb_home / "system-prompt.md").write_text(SYSTEM_PROMPT)
        result = runner.invoke(main, ["prompt", "reset"])
        assert "already the built-in default" in result.stdout

    def test_show_custom(self, runner, ccb_home):
        ccb_home.mkdir(parents=True)
        (ccb_home / "system-prompt.md").write_text("Only allow ls.")
        result = runner.invoke(main, ["prompt", "show"])
        assert "Only allow ls." in result.stdout


def test_version(runner):
    result = runner.invoke(main, ["--version"])
    assert result.exit_code == 0
    assert "0.3.0" in result.stdout
