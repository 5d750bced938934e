"""Request, decision and persisted-record models.

Pure data, no I/O. Field aliases keep the camelCase keys used in the
on-disk cache and the hook output document.

>>> Decision.allow("fine").verdict
<Verdict.ALLOW: 'allow'>
>>> Decision.ask("check").is_cacheable
False
"""

import os
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from ccb.errors import InputError


def utc_now_iso() -> str:
    """ISO-8601 UTC timestamp with millisecond precision and a Z suffix.

    >>> utc_now_iso().endswith("Z")
    True
    """
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


class Verdict(str, Enum):
    ALLOW = "allow"
    DENY = "deny"
    ASK = "ask"


class DecisionSource(str, Enum):
    FAST_PATH = "fast_path"
    CACHE = "cache"
    MODEL = "model"


class Decision(BaseModel):
    """A verdict plus the human-readable reason shown to the user."""

    model_config = ConfigDict(frozen=True)

    verdict: Verdict
    reason: str
    source: DecisionSource = DecisionSource.MODEL

    @classmethod
    def allow(cls, reason: str, source: DecisionSource = DecisionSource.MODEL) -> "Decision":
        return cls(verdict=Verdict.ALLOW, reason=reason, source=source)

    @classmethod
    def deny(cls, reason: str, source: DecisionSource = DecisionSource.MODEL) -> "Decision":
        return cls(verdict=Verdict.DENY, reason=reason, source=source)

    @classmethod
    def ask(cls, reason: str, source: DecisionSource = DecisionSource.MODEL) -> "Decision":
        return cls(verdict=Verdict.ASK, reason=reason, source=source)

    @property
    def is_cacheable(self) -> bool:
        """Only definite verdicts are stored; ask is re-evaluated every time."""
        return self.verdict in (Verdict.ALLOW, Verdict.DENY)


# ---------------------------------------------------------------------------
# Hook input
# ---------------------------------------------------------------------------


class HookRequest(BaseModel):
    """One PreToolUse request, normalized from the stdin envelope."""

    model_config = ConfigDict(frozen=True, extra="ignore")

    session_id: str = ""
    transcript_path: str = ""
    tool_name: str
    tool_input: dict[str, Any]
    cwd: str = ""

    @field_validator("tool_name")
    @classmethod
    def _tool_name_not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("tool_name must not be empty")
        return value

    @classmethod
    def from_envelope(cls, data: Any, cwd: Optional[str] = None) -> "HookRequest":
        """Validate a decoded envelope. Raises InputError on any schema problem.

        The envelope's own ``cwd`` wins; otherwise the given ``cwd`` or the
        process working directory is used.

        >>> req = HookRequest.from_envelope(
        ...     {"session_id": "s1", "transcript_path": "/t", "tool_name": "Read",
        ...      "tool_input": {"file_path": "/etc/hosts"}}, cwd="/proj")
        >>> req.tool_name, req.cwd
        ('Read', '/proj')
        """
        if not isinstance(data, dict):
            raise InputError(f"expected a JSON object, got {type(data).__name__}")
        payload = dict(data)
        if not payload.get("cwd"):
            payload["cwd"] = cwd or os.getcwd()
        try:
            return cls.model_validate(payload)
        except ValidationError as e:
            problems = "; ".join(
                f"{'.'.join(str(p) for p in err['loc']) or 'input'}: {err['msg']}"
                for err in e.errors()
            )
            raise InputError(f"invalid hook input: {problems}") from e


# ---------------------------------------------------------------------------
# Hook output
# ---------------------------------------------------------------------------


class HookSpecificOutput(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    hook_event_name: Literal["PreToolUse"] = Field("PreToolUse", alias="hookEventName")
    permission_decision: Optional[Verdict] = Field(None, alias="permissionDecision")
    permission_decision_reason: str = Field("", alias="permissionDecisionReason")


class HookOutput(BaseModel):
    """The single JSON document written to stdout."""

    model_config = ConfigDict(populate_by_name=True)

    hook_specific_output: HookSpecificOutput = Field(alias="hookSpecificOutput")

    @classmethod
    def from_decision(cls, decision: Optional[Decision], reason: str = "") -> "HookOutput":
        """Build output for a decision. ``None`` means no opinion.

        >>> HookOutput.from_decision(Decision.deny("nope")).to_json()
        '{"hookSpecificOutput":{"hookEventName":"PreToolUse","permissionDecision":"deny","permissionDecisionReason":"nope"}}'
        """
        return cls(
            hook_specific_output=HookSpecificOutput(
                permission_decision=decision.verdict if decision else None,
                permission_decision_reason=decision.reason if decision else reason,
            )
        )

    def to_json(self) -> str:
        return self.model_dump_json(by_alias=True, exclude_none=True)


# ---------------------------------------------------------------------------
# Persisted records
# ---------------------------------------------------------------------------


class CacheEntry(BaseModel):
    """A cached definite verdict. ``ask`` is rejected at validation time."""

    model_config = ConfigDict(populate_by_name=True)

    tool_name: str = Field(alias="toolName")
    tool_input: dict[str, Any] = Field(alias="toolInput")
    decision: Literal["allow", "deny"]
    reason: str
    timestamp: str

    def to_decision(self) -> Decision:
        return Decision(
            verdict=Verdict(self.decision),
            reason=self.reason,
            source=DecisionSource.CACHE,
        )


class LogEntry(BaseModel):
    """One line of the approval audit log."""

    datetime: str
    tool: str
    inputs: dict[str, Any]
    reason: str
    decision: str
    cwd: str
    session_id: str

    @classmethod
    def for_decision(cls, request: HookRequest, decision: Decision) -> "LogEntry":
        return cls(
            datetime=utc_now_iso(),
            tool=request.tool_name,
            inputs=request.tool_input,
            reason=decision.reason,
            decision=decision.verdict.value,
            cwd=request.cwd,
            session_id=request.session_id,
        )
