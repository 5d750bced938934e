"""Optional diagnostic log (ccb.log) with secret redaction.

Enabled by ``generalLog`` in config.json. Tool inputs routinely carry
passwords and API keys inside shell commands, so every record passing
through the file handler is redacted first.
"""

import logging
import re

from ccb.config import Config, get_debug_log_path

_HANDLER_NAME = "ccb-debug-log"

_LEVELS = {
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "warning": logging.WARNING,
    "error": logging.ERROR,
}

_CONFIG_SECRET_KEYS = ("apiKey", "openaiApiKey", "proxyApiKey")

# (pattern, replacement) applied in order
_REDACTIONS = [
    # config.json credentials, as logged from a dumped Config
    (re.compile(r'("(?:%s)"\s*:\s*")[^"]*(")' % "|".join(_CONFIG_SECRET_KEYS)), r'\1***\2'),
    (re.compile(r'(://[^:/\s]+:)[^@\s]+(@)'), r'\1***\2'),
    # NAME=value for any variable ending in a sensitive suffix (CCB_PROXY_API_KEY, PGPASSWORD, ...)
    (re.compile(r'(\b[A-Z0-9_]*(?:PASSWORD|PWD|API_KEY|SECRET|SECRET_ACCESS_KEY|TOKEN)\s*=\s*)[^\s"\']+', re.IGNORECASE), r'\1***'),
    (re.compile(r'(--(?:password|token|secret|api-key|apikey)[\s=])(?:"[^"]*"|\'[^\']*\'|\S+)', re.IGNORECASE), r'\1***'),
    (re.compile(r'(Bearer\s+)\S+', re.IGNORECASE), r'\1***'),
    (re.compile(r'\bAKIA[0-9A-Z]{16}\b'), '***'),
    (re.compile(r'\bsk-[a-zA-Z0-9_-]{20,}\b'), '***'),
]


def redact(msg: str) -> str:
    """Mask credentials in a log message.

    >>> redact("PGPASSWORD=hunter2 psql")
    'PGPASSWORD=*** psql'
    >>> redact("CCB_PROXY_API_KEY=px-123 ccb doctor")
    'CCB_PROXY_API_KEY=*** ccb doctor'
    >>> redact('{"openaiApiKey":"oa-1","model":"gpt-4o-mini"}')
    '{"openaiApiKey":"***","model":"gpt-4o-mini"}'
    >>> redact("curl -H 'Authorization: Bearer abc.def'")
    "curl -H 'Authorization: Bearer ***"
    >>> redact("postgres://admin:s3cret@db/app")
    'postgres://admin:***@db/app'
    >>> redact("git status")
    'git status'
    """
    for pattern, replacement in _REDACTIONS:
        msg = pattern.sub(replacement, msg)
    return msg


class RedactingFilter(logging.Filter):
    """Rewrites each record's message with secrets masked."""

    def filter(self, record: logging.LogRecord) -> bool:
        try:
            record.msg = redact(record.getMessage())
            record.args = None
        except Exception:
            pass
        return True


def configure_debug_log(config: Config) -> logging.Handler | None:
    """Attach the ccb.log file handler to the ``ccb`` logger if enabled.

    Idempotent. Returns the handler, or None when disabled or when the
    file cannot be opened (diagnostics must never break a hook run).
    """
    if not config.general_log:
        return None

    root = logging.getLogger("ccb")
    for existing in root.handlers:
        if existing.get_name() == _HANDLER_NAME:
            return existing

    try:
        path = get_debug_log_path()
        path.parent.mkdir(parents=True, exist_ok=True)
        handler = logging.FileHandler(path, encoding="utf-8", errors="backslashreplace")
    except OSError:
        return None

    level = _LEVELS[config.log_level]
    handler.set_name(_HANDLER_NAME)
    handler.setLevel(level)
    handler.addFilter(RedactingFilter())
    handler.setFormatter(logging.Formatter(
        "%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    ))
    root.addHandler(handler)
    if root.level == logging.NOTSET or root.level > level:
        root.setLevel(level)
    return handler
