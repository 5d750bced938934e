"""
Configuration and state-directory layout for ccb.

Everything lives in one per-installation directory ($CCB_CONFIG_DIR or
~/.ccb): config.json, the decision cache, the approval log, the optional
diagnostic log and an optional custom system prompt.

An invalid config.json never fails the hook; it degrades to defaults with
a warning.
"""

import json
import logging
import os
from enum import Enum
from pathlib import Path
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError

logger = logging.getLogger(__name__)

CONFIG_FILE = "config.json"
CACHE_FILE = "approval_cache.json"
APPROVAL_LOG_FILE = "approval.jsonl"
DEBUG_LOG_FILE = "ccb.log"
PROMPT_FILE = "system-prompt.md"

DEFAULT_TIMEOUT = 30.0


class AuthMethod(str, Enum):
    PROXY = "proxy"
    OPENAI_COMPATIBLE = "openai-compatible"
    ANTHROPIC = "anthropic"
    CLAUDE_CLI = "claude-cli"


class Config(BaseModel):
    """Contents of config.json. Keys are camelCase on disk."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    log: bool = True
    cache: bool = True
    model: Optional[str] = None
    auth_method: Optional[AuthMethod] = Field(None, alias="authMethod")
    api_key: Optional[str] = Field(None, alias="apiKey")
    openai_api_key: Optional[str] = Field(None, alias="openaiApiKey")
    base_url: Optional[str] = Field(None, alias="baseUrl")
    proxy_api_key: Optional[str] = Field(None, alias="proxyApiKey")
    timeout: float = Field(DEFAULT_TIMEOUT, gt=0)
    general_log: bool = Field(False, alias="generalLog")
    log_level: Literal["debug", "info", "warning", "error"] = Field("info", alias="logLevel")


def get_config_dir() -> Path:
    """Return the state directory, honouring CCB_CONFIG_DIR."""
    override = os.environ.get("CCB_CONFIG_DIR")
    if override:
        return Path(override)
    return Path.home() / ".ccb"


def ensure_config_dir() -> Path:
    config_dir = get_config_dir()
    config_dir.mkdir(parents=True, exist_ok=True)
    return config_dir


def get_config_path() -> Path:
    return get_config_dir() / CONFIG_FILE


def get_cache_path() -> Path:
    return get_config_dir() / CACHE_FILE


def get_log_path() -> Path:
    return get_config_dir() / APPROVAL_LOG_FILE


def get_debug_log_path() -> Path:
    return get_config_dir() / DEBUG_LOG_FILE


def get_prompt_path() -> Path:
    return get_config_dir() / PROMPT_FILE


def load_config(path: Optional[Path] = None) -> Config:
    """Load config.json, falling back to defaults on any problem.

    >>> load_config(Path("/nonexistent/config.json")).log
    True
    """
    target = path or get_config_path()
    if not target.exists():
        return Config()

    try:
        data = json.loads(target.read_text(encoding="utf-8"))
    except (ValueError, RecursionError):
        logger.warning("Invalid JSON or encoding in %s. Using defaults.", target)
        return Config()
    except OSError as e:
        logger.warning("Unable to read %s (%s). Using defaults.", target, e)
        return Config()

    try:
        return Config.model_validate(data)
    except ValidationError as e:
        problems = ", ".join(err["msg"] for err in e.errors())
        logger.warning("Invalid config.json format. Using defaults. Errors: %s", problems)
        return Config()


def save_config(config: Config, path: Optional[Path] = None) -> Path:
    target = path or get_config_path()
    target.parent.mkdir(parents=True, exist_ok=True)
    data = config.model_dump(mode="json", by_alias=True, exclude_none=True)
    target.write_text(json.dumps(data, indent=2), encoding="utf-8")
    return target
