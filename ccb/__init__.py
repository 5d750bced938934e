"""
Claude Code Boost - intelligent auto-approval for Claude Code tool calls.

Runs as a PreToolUse hook. Each tool request goes through a layered
decision pipeline:
  1. Fast path: static allow/ask rules, no I/O
  2. Decision cache: prior verdicts scoped to the working directory
  3. Reasoning model: remote LLM with a structured-output contract
Every final decision is appended to an audit log.
"""

__version__ = "0.3.0"

__all__ = [
    "__version__",
]
