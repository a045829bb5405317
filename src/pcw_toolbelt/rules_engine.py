"""
Context-aware rule engine for WordPress, Elementor, WooCommerce and React code.

This module ties the pipeline together: it detects the framework context of a
file, obtains the merged rule set for that context from the rule cache, and
matches every rule against the content to produce positioned issues.

Features:
- Signature-based context detection (no parsing)
- Bundled, workspace and remote rule sources merged by rule identity
- Regex timeout protection (ReDoS prevention)
- JavaScript-style rule patterns translated to Python ``re``
- Existence rules for structural requirements ("must declare get_title()")

Example:
    >>> engine = RuleEngine()
    >>> result = engine.audit_file_sync(
    ...     "includes/plugin.php",
    ...     "add_action('init', 'x');\\neval($code);",
    ...     workspace_root="/path/to/repo",
    ... )
    >>> for issue in result.issues:
    ...     print(f"{issue.line}:{issue.column} {issue.severity}: {issue.rule.message}")
"""

from __future__ import annotations

import asyncio
import logging
import re
import signal
import threading
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Callable, Iterable, Iterator

import httpx

from pcw_toolbelt.context_detector import ContextDetector
from pcw_toolbelt.exceptions import (
    ConfigurationError,
    PatternTimeoutError,
    RuleEngineError,
    RuleLoadError,
    RuleSetFormatError,
)
from pcw_toolbelt.models import AuditResult, FixResult, FrameworkContext, Issue, MergedRuleSet, Rule
from pcw_toolbelt.rule_cache import RuleCache
from pcw_toolbelt.rule_sources import RuleSourceLoader
from pcw_toolbelt.settings import EngineSettings, load_engine_settings, resolve_rules_dir

__all__ = [
    "ConfigurationError",
    "PatternTimeoutError",
    "RuleEngine",
    "RuleEngineError",
    "RuleLoadError",
    "RuleSetFormatError",
    "audit_content",
    "compile_js_pattern",
    "timeout_context",
]

logger = logging.getLogger(__name__)

MISSING_MATCH_TEXT = "(missing)"

# Default pattern timeout in seconds (ReDoS protection)
DEFAULT_PATTERN_TIMEOUT: float = 5.0


# =============================================================================
# Timeout Context Manager (ReDoS Protection)
# =============================================================================


class TimeoutException(Exception):
    """Raised when an operation times out."""

    pass


@contextmanager
def timeout_context(seconds: float) -> Iterator[None]:
    """
    Context manager for timeout protection on Unix systems.

    Uses SIGALRM for timeout. Signals can only be installed from the main
    thread, so on Windows, in worker threads or with a non-positive limit the
    operation runs without timeout protection.

    Args:
        seconds: Maximum execution time in seconds.

    Yields:
        None

    Raises:
        TimeoutException: If the operation exceeds the timeout.

    Example:
        >>> with timeout_context(5.0):
        ...     matches = list(pattern.finditer(content))
    """

    def timeout_handler(signum: int, frame: Any) -> None:
        raise TimeoutException(f"Operation timed out after {seconds} seconds")

    use_signal = (
        seconds > 0
        and hasattr(signal, "SIGALRM")
        and threading.current_thread() is threading.main_thread()
    )
    if not use_signal:
        yield
        return

    old_handler = signal.signal(signal.SIGALRM, timeout_handler)
    signal.setitimer(signal.ITIMER_REAL, seconds)
    try:
        yield
    finally:
        signal.setitimer(signal.ITIMER_REAL, 0)
        signal.signal(signal.SIGALRM, old_handler)


# =============================================================================
# Pattern Helpers
# =============================================================================


JS_FLAG_MAP = {
    "i": re.IGNORECASE,
    "m": re.MULTILINE,
    "s": re.DOTALL,
}

# g (global), u (unicode) and y (sticky) have no compile-time equivalent
JS_IGNORED_FLAGS = frozenset("guy")

_JS_NAMED_GROUP = re.compile(r"(?<!\\)\(\?<(?![=!])")
_JS_NAMED_BACKREF = re.compile(r"\\k<([A-Za-z_][A-Za-z0-9_]*)>")


def translate_js_flags(flags: str | None, default: str = "gm") -> tuple[int, bool]:
    """
    Convert JavaScript regex flag letters.

    Args:
        flags: Flag letters such as ``"gi"``; ``default`` is used when None
            or empty.
        default: Flags assumed when none are given.

    Returns:
        Tuple of (``re`` flags, whether the ``g`` flag is set).
    """
    letters = flags or default
    re_flags = 0
    for letter in letters:
        if letter in JS_FLAG_MAP:
            re_flags |= JS_FLAG_MAP[letter]
        elif letter not in JS_IGNORED_FLAGS:
            logger.debug(f"Ignoring unknown regex flag '{letter}'")
    return re_flags, "g" in letters


def compile_js_pattern(pattern: str, flags: int = 0) -> re.Pattern[str]:
    """
    Compile a rule pattern written for JavaScript ``RegExp``.

    Named groups ``(?<name>...)`` and back-references ``\\k<name>`` are
    rewritten to Python syntax; everything else is passed through.

    Raises:
        re.error: If the pattern is not a valid regular expression.
    """
    translated = _JS_NAMED_GROUP.sub("(?P<", pattern)
    translated = _JS_NAMED_BACKREF.sub(r"(?P=\1)", translated)
    return re.compile(translated, flags)


def _line_number_at_pos(content: str, pos: int) -> int:
    """Return 1-based line number for character position."""
    return content.count("\n", 0, pos) + 1


def _column_at_pos(content: str, pos: int) -> int:
    """Return 1-based column number for character position."""
    last_newline = content.rfind("\n", 0, pos)
    return pos - last_newline if last_newline >= 0 else pos + 1


def _match_rule(
    content: str,
    rule: Rule,
    compiled: re.Pattern[str],
    pattern_timeout: float,
) -> list[Issue]:
    """
    Execute one rule against content with timeout protection.

    Raises:
        PatternTimeoutError: If matching exceeds the timeout threshold.
    """
    try:
        with timeout_context(pattern_timeout):
            if rule.must_exist:
                found = compiled.search(content) is not None
                matches: list[re.Match[str]] = []
            else:
                found = True
                matches = list(compiled.finditer(content))
    except TimeoutException:
        raise PatternTimeoutError(
            f"Pattern matching timed out after {pattern_timeout}s",
            rule_id=rule.identity,
            timeout_seconds=pattern_timeout,
        )

    if rule.must_exist:
        if found:
            return []
        return [
            Issue(
                line=1,
                column=1,
                rule=rule,
                matched_text=MISSING_MATCH_TEXT,
                suggestion=rule.suggestion,
                fix=rule.fix,
            )
        ]

    return [
        Issue(
            line=_line_number_at_pos(content, match.start()),
            column=_column_at_pos(content, match.start()),
            rule=rule,
            matched_text=match.group(0),
            suggestion=rule.suggestion,
            fix=rule.fix,
        )
        for match in matches
    ]


def audit_content(
    content: str,
    rules: Iterable[Rule],
    pattern_timeout: float = DEFAULT_PATTERN_TIMEOUT,
) -> list[Issue]:
    """
    Match rules against content.

    Forbidden-pattern rules produce one issue per match. Existence rules
    (``must_exist``) produce a single issue at line 1, column 1 with matched
    text ``"(missing)"`` when their pattern does not occur anywhere.

    Issues are returned in rule order, then text order. A rule with an invalid
    regex or a pattern that times out is skipped for this call only.

    Args:
        content: File content to audit.
        rules: Effective rules, usually ``MergedRuleSet.rules``.
        pattern_timeout: Time limit in seconds for matching one rule.

    Returns:
        List of issues; empty when nothing matched.

    Example:
        >>> rule = Rule(id="no-eval", pattern=r"eval\\(", message="Avoid eval()", severity="error")
        >>> [(i.line, i.column) for i in audit_content("eval(x); eval(y);", [rule])]
        [(1, 1), (1, 10)]
    """
    issues: list[Issue] = []

    for rule in rules:
        try:
            compiled = compile_js_pattern(rule.pattern, re.MULTILINE)
        except re.error as e:
            logger.warning(
                f"Skipping rule '{rule.identity}' with invalid pattern: {e}",
                extra={"rule_id": rule.identity, "source": rule.source},
            )
            continue

        try:
            issues.extend(_match_rule(content, rule, compiled, pattern_timeout))
        except PatternTimeoutError as e:
            logger.warning(f"Pattern timeout for rule {e.rule_id}: {e}")

    return issues


# =============================================================================
# RuleEngine Class
# =============================================================================


class RuleEngine:
    """
    Orchestrates context detection, rule loading and auditing.

    One long-lived instance owns the detector, the source loader and the rule
    cache. Create it once per host (editor session, MCP server) and call
    ``clear_cache()`` when rule files or the workspace configuration change.

    Attributes:
        rules_dir: Directory holding the bundled rule sets and config.yaml.
        settings: Engine settings loaded from config.yaml.
        detector: Framework context detector.
        loader: Rule source loader.
        cache: Merged rule set cache.

    Example:
        >>> engine = RuleEngine()
        >>> context = engine.detect_context(content)
        >>> rules = engine.load_rules_sync(context, workspace_root="/repo")
        >>> issues = engine.audit_content(content, rules.rules)
    """

    def __init__(
        self,
        rules_dir: str | Path | None = None,
        settings: EngineSettings | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        """
        Initialize the RuleEngine.

        Args:
            rules_dir: Bundled rules directory; resolved from the environment
                and package location when None.
            settings: Engine settings; read from ``<rules_dir>/config.yaml``
                when None.
            transport: Optional httpx transport for remote feeds and standards
                documents (tests).

        Raises:
            ConfigurationError: If config.yaml is invalid.
        """
        self.rules_dir = Path(rules_dir) if rules_dir is not None else resolve_rules_dir()
        self.settings = settings if settings is not None else load_engine_settings(self.rules_dir)
        self.transport = transport

        self.detector = ContextDetector()
        self.loader = RuleSourceLoader(
            self.rules_dir,
            workspace_rules_dir=self.settings.workspace_rules_dir,
            remote_timeout=self.settings.remote_timeout_seconds,
            transport=transport,
        )
        self.cache = RuleCache(self.loader)

        logger.info(
            "RuleEngine initialized",
            extra={
                "rules_dir": str(self.rules_dir),
                "pattern_timeout": self.settings.pattern_timeout_seconds,
                "workspace_rules_dir": self.settings.workspace_rules_dir,
            },
        )

    # -------------------------------------------------------------------------
    # Detection
    # -------------------------------------------------------------------------

    def detect_context(self, content: str) -> FrameworkContext:
        """Return the first framework context whose signature matches."""
        return self.detector.detect_context(content)

    def detect_all_contexts(self, content: str) -> list[FrameworkContext]:
        """Return every framework context whose signature matches."""
        return self.detector.detect_all_contexts(content)

    def get_available_contexts(self) -> list[FrameworkContext]:
        """Return the contexts that have a detection signature."""
        return self.detector.get_available_contexts()

    # -------------------------------------------------------------------------
    # Rules
    # -------------------------------------------------------------------------

    async def load_rules(
        self,
        context: FrameworkContext | str,
        workspace_root: str | Path | None = None,
    ) -> MergedRuleSet | None:
        """
        Return the merged rules for a context.

        Args:
            context: Framework context or its string value.
            workspace_root: Workspace root, or None for the global scope.

        Returns:
            MergedRuleSet, or None for ``unknown``.

        Raises:
            ValueError: If ``context`` is not a known context name.
            RuleLoadError: If the bundled rules cannot be loaded.
        """
        context = FrameworkContext(context)
        if context == FrameworkContext.UNKNOWN:
            return None
        return await self.cache.get_or_build(context, workspace_root)

    def audit_content(self, content: str, rules: Iterable[Rule]) -> list[Issue]:
        """Match rules against content using the configured pattern timeout."""
        return audit_content(content, rules, self.settings.pattern_timeout_seconds)

    async def audit_file(
        self,
        file_id: str,
        content: str,
        workspace_root: str | Path | None = None,
    ) -> AuditResult:
        """
        Audit one file.

        Content whose context is ``unknown`` yields an empty result without
        loading any rules.

        Args:
            file_id: Caller-supplied file identifier (usually a path).
            content: File content.
            workspace_root: Workspace root, or None for the global scope.

        Returns:
            AuditResult with the detected context and its issues.

        Raises:
            RuleLoadError: If the bundled rules cannot be loaded.
        """
        context = self.detect_context(content)
        if context == FrameworkContext.UNKNOWN:
            logger.debug(f"No framework context detected for {file_id}")
            return AuditResult(category=context, file=file_id)

        merged = await self.load_rules(context, workspace_root)
        issues = self.audit_content(content, merged.rules if merged else ())

        result = AuditResult(category=context, file=file_id, issues=issues)
        logger.info(
            f"Audit complete for {file_id}",
            extra={
                "file": file_id,
                "context": context.value,
                "issue_count": len(issues),
                "severity_counts": result.severity_counts(),
            },
        )
        return result

    def apply_fixes(
        self,
        content: str,
        rules: Iterable[Rule],
        confirm: Callable[[Rule], bool] | None = None,
    ) -> FixResult:
        """
        Apply the auto-fixes of ``rules`` to content.

        Remote fixes follow the ``confirm_remote_fixes`` setting; see
        ``pcw_toolbelt.tools.fixer.apply_fixes``.
        """
        from pcw_toolbelt.tools.fixer import apply_fixes

        return apply_fixes(
            content,
            rules,
            confirm=confirm,
            confirm_remote=self.settings.confirm_remote_fixes,
            pattern_timeout=self.settings.pattern_timeout_seconds,
        )

    # -------------------------------------------------------------------------
    # Cache and introspection
    # -------------------------------------------------------------------------

    def clear_cache(self) -> None:
        """
        Drop every merged rule set.

        Call this when bundled, workspace or remote rules may have changed;
        the next request rebuilds from all sources.
        """
        self.cache.clear()

    def get_stats(self) -> dict[str, Any]:
        """
        Get statistics about the engine.

        Returns:
            Dictionary with directories, settings and cache size.
        """
        return {
            "rules_dir": str(self.rules_dir),
            "contexts": [c.value for c in self.get_available_contexts()],
            "cached_rule_sets": len(self.cache),
            "workspace_rules_dir": self.settings.workspace_rules_dir,
            "remote_timeout_seconds": self.settings.remote_timeout_seconds,
            "confirm_remote_fixes": self.settings.confirm_remote_fixes,
            "pattern_timeout_seconds": self.settings.pattern_timeout_seconds,
        }

    # -------------------------------------------------------------------------
    # Synchronous wrappers
    # -------------------------------------------------------------------------

    def load_rules_sync(
        self,
        context: FrameworkContext | str,
        workspace_root: str | Path | None = None,
    ) -> MergedRuleSet | None:
        """Synchronous wrapper for load_rules. Not usable inside a running event loop."""
        return asyncio.run(self.load_rules(context, workspace_root))

    def audit_file_sync(
        self,
        file_id: str,
        content: str,
        workspace_root: str | Path | None = None,
    ) -> AuditResult:
        """Synchronous wrapper for audit_file. Not usable inside a running event loop."""
        return asyncio.run(self.audit_file(file_id, content, workspace_root))
