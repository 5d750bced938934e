"""Error taxonomy for the decision pipeline.

Only InputError, ConfigurationError and ProviderError may terminate a hook
invocation. CacheError and LogError are raised and caught inside their own
modules so cache or audit-log trouble never reaches the host.
"""


class CCBError(Exception):
    """Base class for all ccb errors."""


class InputError(CCBError):
    """The hook input envelope is malformed or unparseable."""


class ConfigurationError(CCBError):
    """No usable reasoning-provider credential is configured."""


class ProviderError(CCBError):
    """The reasoning provider failed, timed out, or returned unparseable content."""


class CacheError(CCBError):
    """The decision cache could not be read or written."""


class LogError(CCBError):
    """An approval log entry could not be written."""
