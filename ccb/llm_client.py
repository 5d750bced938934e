"""Reasoning client: asks a remote model for an allow/deny/ask verdict.

Provider selection happens once, at construction, over a closed set of
provider configurations:

    ProxyProvider            managed proxy (OpenAI wire format)
    OpenAICompatibleProvider any OpenAI-compatible endpoint
    AnthropicProvider        Anthropic Messages API
    ClaudeCliProvider        local ``claude -p`` (explicit opt-in only)

Without an explicit ``authMethod`` the first provider with a credential
wins, in PROVIDER_PRECEDENCE order. Within a slot, config.json beats the
environment.

Providers that support native structured output get the decision schema as
a response format; the others get it appended to the system prompt. Both
paths share ``decode_decision``, and any response that does not decode is a
ProviderError. There is no silent default verdict.
"""

import json
import logging
import os
import re
import shutil
import subprocess
from dataclasses import dataclass
from typing import Any, ClassVar, Mapping, Optional, Protocol, Union

import anthropic
import openai
from pydantic import BaseModel, ConfigDict, ValidationError

from ccb.config import DEFAULT_TIMEOUT, AuthMethod, Config, load_config
from ccb.errors import ConfigurationError, ProviderError
from ccb.models import Decision, DecisionSource, Verdict
from ccb.prompts import build_user_prompt, load_system_prompt, with_schema_instruction

logger = logging.getLogger(__name__)

PROXY_BASE_URL = "https://litellm.yifan.dev/v1/"
MAX_TOKENS = 1000

DECISION_SCHEMA = {
    "type": "object",
    "properties": {
        "decision": {
            "type": "string",
            "enum": ["allow", "deny", "ask"],
            "description": "allow to auto-approve, deny to block, ask to defer to the user",
        },
        "reason": {
            "type": "string",
            "description": "Human-readable explanation for the decision",
        },
    },
    "required": ["decision", "reason"],
    "additionalProperties": False,
}


# ---------------------------------------------------------------------------
# Provider configurations
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ProxyProvider:
    api_key: str
    base_url: str = PROXY_BASE_URL

    auth_method: ClassVar[AuthMethod] = AuthMethod.PROXY
    default_model: ClassVar[str] = "gpt-5-mini"
    supports_structured_output: ClassVar[bool] = True


@dataclass(frozen=True)
class OpenAICompatibleProvider:
    api_key: str
    base_url: Optional[str] = None

    auth_method: ClassVar[AuthMethod] = AuthMethod.OPENAI_COMPATIBLE
    default_model: ClassVar[str] = "gpt-4o-mini"
    supports_structured_output: ClassVar[bool] = True


@dataclass(frozen=True)
class AnthropicProvider:
    api_key: str

    auth_method: ClassVar[AuthMethod] = AuthMethod.ANTHROPIC
    default_model: ClassVar[str] = "claude-sonnet-4-20250514"
    supports_structured_output: ClassVar[bool] = False


@dataclass(frozen=True)
class ClaudeCliProvider:
    binary: str = "claude"

    auth_method: ClassVar[AuthMethod] = AuthMethod.CLAUDE_CLI
    default_model: ClassVar[str] = "haiku"
    supports_structured_output: ClassVar[bool] = False


Provider = Union[ProxyProvider, OpenAICompatibleProvider, AnthropicProvider, ClaudeCliProvider]

PROVIDER_PRECEDENCE = (
    AuthMethod.PROXY,
    AuthMethod.OPENAI_COMPATIBLE,
    AuthMethod.ANTHROPIC,
)


def _first(*values: Optional[str]) -> Optional[str]:
    for value in values:
        if value and value.strip():
            return value.strip()
    return None


def _proxy_slot(config: Config, env: Mapping[str, str]) -> Optional[Provider]:
    key = _first(config.proxy_api_key, env.get("CCB_PROXY_API_KEY"))
    if not key:
        return None
    return ProxyProvider(api_key=key, base_url=_first(env.get("CCB_PROXY_BASE_URL")) or PROXY_BASE_URL)


def _openai_slot(config: Config, env: Mapping[str, str]) -> Optional[Provider]:
    key = _first(config.openai_api_key, env.get("OPENAI_API_KEY"))
    if not key:
        return None
    return OpenAICompatibleProvider(api_key=key, base_url=_first(config.base_url, env.get("OPENAI_BASE_URL")))


def _anthropic_slot(config: Config, env: Mapping[str, str]) -> Optional[Provider]:
    key = _first(config.api_key, env.get("ANTHROPIC_API_KEY"))
    if not key:
        return None
    return AnthropicProvider(api_key=key)


def _claude_cli_slot(config: Config, env: Mapping[str, str]) -> Optional[Provider]:
    binary = shutil.which("claude")
    if not binary:
        return None
    return ClaudeCliProvider(binary=binary)


_SLOTS = {
    AuthMethod.PROXY: _proxy_slot,
    AuthMethod.OPENAI_COMPATIBLE: _openai_slot,
    AuthMethod.ANTHROPIC: _anthropic_slot,
    AuthMethod.CLAUDE_CLI: _claude_cli_slot,
}


def resolve_provider(
    config: Config,
    environ: Optional[Mapping[str, str]] = None,
    use_claude_cli: bool = False,
) -> Provider:
    """Pick the provider for this process. Raises ConfigurationError if none.

    >>> resolve_provider(Config(apiKey="sk-ant", openaiApiKey="sk-oai"), environ={}).auth_method.value
    'openai-compatible'
    >>> resolve_provider(Config(), environ={"ANTHROPIC_API_KEY": "sk-ant"}).auth_method.value
    'anthropic'
    """
    env = os.environ if environ is None else environ
    pinned = AuthMethod.CLAUDE_CLI if use_claude_cli else config.auth_method

    if pinned is not None:
        provider = _SLOTS[pinned](config, env)
        if provider is None:
            raise ConfigurationError(
                f"authMethod '{pinned.value}' is configured but no credential for it was found"
            )
        return provider

    for method in PROVIDER_PRECEDENCE:
        provider = _SLOTS[method](config, env)
        if provider is not None:
            return provider

    raise ConfigurationError(
        "No authentication method available. Set proxyApiKey/CCB_PROXY_API_KEY, "
        "openaiApiKey/OPENAI_API_KEY or apiKey/ANTHROPIC_API_KEY in config.json or the environment"
    )


# ---------------------------------------------------------------------------
# Response decoding
# ---------------------------------------------------------------------------


class ModelDecision(BaseModel):
    model_config = ConfigDict(extra="ignore")

    decision: Verdict
    reason: str


_FENCE_RE = re.compile(r"```[a-zA-Z]*\s*\n(.*?)\n?\s*```", re.DOTALL)


def strip_code_fence(text: str) -> str:
    """Unwrap a fenced code block if the model added one.

    >>> strip_code_fence('```json\\n{"a": 1}\\n```')
    '{"a": 1}'
    >>> strip_code_fence('{"a": 1}')
    '{"a": 1}'
    """
    stripped = text.strip()
    match = _FENCE_RE.search(stripped)
    if match:
        return match.group(1).strip()
    return stripped


def decode_decision(content: Optional[str]) -> Decision:
    """Decode and validate a model response. Raises ProviderError on any mismatch.

    >>> decode_decision('{"decision": "deny", "reason": "wipes disk"}').verdict.value
    'deny'
    """
    text = strip_code_fence(content or "")
    if not text:
        raise ProviderError("Empty response from reasoning model")

    try:
        data = json.loads(text)
    except json.JSONDecodeError as e:
        raise ProviderError(f"Failed to parse JSON response: {e}. Content: {text[:200]!r}") from e

    try:
        parsed = ModelDecision.model_validate(data)
    except ValidationError as e:
        problems = ", ".join(err["msg"] for err in e.errors())
        raise ProviderError(f"Response does not match decision schema: {problems}. Content: {text[:200]!r}") from e

    return Decision(verdict=parsed.decision, reason=parsed.reason, source=DecisionSource.MODEL)


# ---------------------------------------------------------------------------
# Transports
# ---------------------------------------------------------------------------


class Transport(Protocol):
    def complete(self, system_prompt: str, user_prompt: str, model: str,
                 json_schema: Optional[dict] = None) -> str:
        ...


class OpenAITransport:
    """Chat completions over the openai SDK (proxy and OpenAI-compatible)."""

    def __init__(self, api_key: str, base_url: Optional[str] = None, timeout: float = DEFAULT_TIMEOUT):
        self.timeout = timeout
        self._client = openai.OpenAI(api_key=api_key, base_url=base_url, timeout=timeout, max_retries=0)

    def complete(self, system_prompt: str, user_prompt: str, model: str,
                 json_schema: Optional[dict] = None) -> str:
        request: dict[str, Any] = {
            "model": model,
            "max_completion_tokens": MAX_TOKENS,
            "messages": [
                {"role": "system", "content": system_prompt},
                {"role": "user", "content": user_prompt},
            ],
        }
        if json_schema is not None:
            request["response_format"] = {
                "type": "json_schema",
                "json_schema": {"name": "tool_decision", "strict": True, "schema": json_schema},
            }

        try:
            response = self._client.chat.completions.create(**request)
        except openai.APITimeoutError as e:
            raise ProviderError(f"Reasoning request timed out after {self.timeout:.0f}s") from e
        except openai.OpenAIError as e:
            raise ProviderError(f"Failed to query API: {e}") from e

        content = response.choices[0].message.content if response.choices else None
        if not content:
            raise ProviderError("No response content from API")
        return content


class AnthropicTransport:
    """Messages API over the anthropic SDK."""

    def __init__(self, api_key: str, timeout: float = DEFAULT_TIMEOUT):
        self.timeout = timeout
        self._client = anthropic.Anthropic(api_key=api_key, timeout=timeout, max_retries=0)

    def complete(self, system_prompt: str, user_prompt: str, model: str,
                 json_schema: Optional[dict] = None) -> str:
        try:
            response = self._client.messages.create(
                model=model,
                max_tokens=MAX_TOKENS,
                system=[{"type": "text", "text": system_prompt, "cache_control": {"type": "ephemeral"}}],
                messages=[{"role": "user", "content": user_prompt}],
            )
        except anthropic.APITimeoutError as e:
            raise ProviderError(f"Reasoning request timed out after {self.timeout:.0f}s") from e
        except anthropic.AnthropicError as e:
            raise ProviderError(f"Failed to query Claude API: {e}") from e

        text = "".join(
            getattr(block, "text", "") for block in response.content
            if getattr(block, "type", None) == "text"
        )
        if not text.strip():
            raise ProviderError("Unexpected response type from Claude API")
        return text


class ClaudeCliTransport:
    """One-shot ``claude -p`` subprocess. Hooks are disabled in the child."""

    def __init__(self, binary: str = "claude", timeout: float = DEFAULT_TIMEOUT):
        self.binary = binary
        self.timeout = timeout

    def complete(self, system_prompt: str, user_prompt: str, model: str,
                 json_schema: Optional[dict] = None) -> str:
        try:
            result = subprocess.run(
                [self.binary, "-p", "--output-format", "json", "--model", model],
                input=f"{system_prompt}\n\n{user_prompt}",
                capture_output=True,
                text=True,
                timeout=self.timeout,
                env={**os.environ, "DISABLE_HOOKS": "1"},
            )
        except subprocess.TimeoutExpired as e:
            raise ProviderError(f"Claude CLI timed out after {self.timeout:.0f}s") from e
        except OSError as e:
            raise ProviderError(f"Unable to run Claude CLI: {e}") from e

        if result.returncode != 0:
            raise ProviderError(f"Claude CLI exited with code {result.returncode}: {result.stderr.strip()[:200]}")

        try:
            wrapper = json.loads(result.stdout.strip())
        except json.JSONDecodeError as e:
            raise ProviderError(f"Failed to parse Claude CLI output: {e}") from e

        content = wrapper.get("result") if isinstance(wrapper, dict) else None
        if not isinstance(content, str) or not content.strip():
            raise ProviderError("Claude CLI output has no result text")
        return content


def build_transport(provider: Provider, timeout: float = DEFAULT_TIMEOUT) -> Transport:
    if isinstance(provider, (ProxyProvider, OpenAICompatibleProvider)):
        return OpenAITransport(provider.api_key, base_url=provider.base_url, timeout=timeout)
    if isinstance(provider, AnthropicProvider):
        return AnthropicTransport(provider.api_key, timeout=timeout)
    if isinstance(provider, ClaudeCliProvider):
        return ClaudeCliTransport(provider.binary, timeout=timeout)
    raise ConfigurationError(f"Unsupported provider: {provider!r}")


# ---------------------------------------------------------------------------
# Client
# ---------------------------------------------------------------------------


class ReasoningClient:
    """Resolves a provider once, then answers ``decide`` calls through it."""

    def __init__(
        self,
        config: Optional[Config] = None,
        environ: Optional[Mapping[str, str]] = None,
        use_claude_cli: bool = False,
        transport: Optional[Transport] = None,
    ):
        self.config = config or load_config()
        self.provider = resolve_provider(self.config, environ=environ, use_claude_cli=use_claude_cli)
        self.model = self.config.model or self.provider.default_model
        self.transport = transport or build_transport(self.provider, timeout=self.config.timeout)

        system_prompt, self.prompt_source = load_system_prompt()
        if not self.provider.supports_structured_output:
            system_prompt = with_schema_instruction(system_prompt, DECISION_SCHEMA)
        self.system_prompt = system_prompt

        logger.debug(
            "Reasoning provider: %s, model: %s, prompt: %s",
            self.auth_method.value, self.model, self.prompt_source,
        )

    @property
    def auth_method(self) -> AuthMethod:
        return self.provider.auth_method

    def decide(self, tool_name: str, tool_input: Mapping[str, Any]) -> Decision:
        """Ask the model for a verdict. Raises ProviderError on any failure."""
        user_prompt = build_user_prompt(tool_name, tool_input)
        schema = DECISION_SCHEMA if self.provider.supports_structured_output else None
        content = self.transport.complete(self.system_prompt, user_prompt, self.model, schema)
        logger.debug("%s RAW: %s", self.auth_method.value, content.strip()[:500])
        return decode_decision(content)
