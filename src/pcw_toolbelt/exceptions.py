"""Exceptions raised by the rule engine and its loaders."""

from __future__ import annotations


class RuleEngineError(Exception):
    """Base exception for all rule engine errors."""

    pass


class RuleLoadError(RuleEngineError):
    """
    Raised when bundled rules cannot be loaded.

    Bundled rules ship with the package, so a missing rules directory or an
    unreadable or malformed bundled file means the installation is broken.
    Workspace and remote sources never raise this; they are skipped instead.
    """

    def __init__(self, message: str, context: str | None = None, path: str | None = None):
        self.context = context
        self.path = path
        super().__init__(message)


class RuleSetFormatError(RuleEngineError):
    """Raised when a decoded rule file is neither a rule set object nor a rule array."""

    def __init__(self, message: str, source: str | None = None):
        self.source = source
        super().__init__(message)


class ConfigurationError(RuleEngineError):
    """Raised when the bundled engine settings file is invalid or unreadable."""

    pass


class PatternTimeoutError(RuleEngineError):
    """Raised when regex matching exceeds the timeout threshold."""

    def __init__(self, message: str, rule_id: str, timeout_seconds: float):
        self.rule_id = rule_id
        self.timeout_seconds = timeout_seconds
        super().__init__(message)
