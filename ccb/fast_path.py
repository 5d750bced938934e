"""Fast-path classifier: static tool-name rules, zero I/O.

Evaluated before the decision cache. First matching rule wins:
  1. Tools that always need a human checkpoint -> ask
  2. Read-only tools -> allow
  3. Safe development write tools -> allow
  4. Anything else -> None (fall through to the cache)

>>> classify("Read", {"file_path": "/etc/hosts"}).reason
'Read is a safe read-only operation'
>>> classify("ExitPlanMode", {}).verdict.value
'ask'
>>> classify("Bash", {"command": "ls"}) is None
True
"""

from typing import Any, Mapping, Optional

from ccb.models import Decision, DecisionSource

# Plan approval must always reach the user, whatever the cache or model says
ALWAYS_ASK_TOOLS = frozenset({
    "ExitPlanMode",
})

READ_ONLY_TOOLS = frozenset({
    "Read",
    "LS",
    "Glob",
    "Grep",
    "WebFetch",
    "WebSearch",
    "NotebookRead",
    "TodoWrite",
    "Task",
})

SAFE_WRITE_TOOLS = frozenset({
    "Write",
    "Edit",
    "MultiEdit",
    "NotebookEdit",
})

ALWAYS_ASK_REASON = "Plan changes require explicit user confirmation"


def classify(tool_name: str, tool_input: Optional[Mapping[str, Any]] = None) -> Optional[Decision]:
    """Return a fast-path decision, or None when the tool needs a closer look.

    ``tool_input`` is accepted for interface symmetry with the other tiers;
    no current rule inspects it.
    """
    if tool_name in ALWAYS_ASK_TOOLS:
        return Decision.ask(ALWAYS_ASK_REASON, source=DecisionSource.FAST_PATH)

    if tool_name in READ_ONLY_TOOLS:
        return Decision.allow(f"{tool_name} is a safe read-only operation", source=DecisionSource.FAST_PATH)

    if tool_name in SAFE_WRITE_TOOLS:
        return Decision.allow(f"{tool_name} is a safe development operation", source=DecisionSource.FAST_PATH)

    return None
