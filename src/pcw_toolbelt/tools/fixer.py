"""
Auto-fix application for rule violations.

Rules may carry a ``fix.replace`` descriptor: a regex, a replacement string
and optional JavaScript-style flags. This module applies those descriptors to
file content and hands the result to a text-editing sink.

Features:
- Sequential fixes in rule order, each seeing the previous output
- JavaScript replacement tokens (``$&``, ``$1``, ``$<name>``, ``$$``)
- Confirmation gate for fixes that arrived from remote feeds
- Pluggable sinks (on-disk writer provided)
"""

from __future__ import annotations

import logging
import re
from pathlib import Path
from typing import TYPE_CHECKING, Callable, Iterable, Protocol

from pcw_toolbelt.models import FixResult, FrameworkContext, Rule, RuleOrigin
from pcw_toolbelt.rules_engine import (
    DEFAULT_PATTERN_TIMEOUT,
    TimeoutException,
    compile_js_pattern,
    timeout_context,
    translate_js_flags,
)

if TYPE_CHECKING:
    from pcw_toolbelt.rules_engine import RuleEngine

logger = logging.getLogger(__name__)

DEFAULT_FIX_FLAGS = "gm"

ConfirmCallback = Callable[[Rule], bool]

_REPLACEMENT_TOKEN = re.compile(r"\$(\$|&|\d{1,2}|<[^>]*>)")


# =============================================================================
# Replacement expansion
# =============================================================================


def expand_replacement(template: str, match: re.Match[str]) -> str:
    """
    Expand a JavaScript-style replacement string for one match.

    Supported tokens: ``$$`` (literal dollar), ``$&`` (whole match),
    ``$1``..``$99`` (numbered groups) and ``$<name>`` (named groups).
    A two-digit reference falls back to one digit plus a literal when the
    pattern has fewer groups. References to groups that did not participate
    expand to an empty string; unknown references stay literal.

    Example:
        >>> m = re.search(r"echo\\s+(\\$\\w+)", "echo $title;")
        >>> expand_replacement("echo esc_html($1)", m)
        'echo esc_html($title)'
    """
    group_count = match.re.groups
    named = match.re.groupindex

    def token(m: re.Match[str]) -> str:
        ref = m.group(1)
        if ref == "$":
            return "$"
        if ref == "&":
            return match.group(0)
        if ref.startswith("<"):
            if not named:
                return m.group(0)
            name = ref[1:-1]
            return (match.group(name) or "") if name in named else ""
        if len(ref) == 2 and 1 <= int(ref) <= group_count:
            return match.group(int(ref)) or ""
        if 1 <= int(ref[0]) <= group_count:
            return (match.group(int(ref[0])) or "") + ref[1:]
        return m.group(0)

    return _REPLACEMENT_TOKEN.sub(token, template)


# =============================================================================
# Fix application
# =============================================================================


def apply_fixes(
    content: str,
    rules: Iterable[Rule],
    confirm: ConfirmCallback | None = None,
    confirm_remote: bool = True,
    pattern_timeout: float = DEFAULT_PATTERN_TIMEOUT,
) -> FixResult:
    """
    Apply the auto-fixes carried by rules.

    Rules without ``fix.replace`` are ignored. For each fixable rule, in
    order, the fix regex is tested against the current content; when it
    matches, occurrences are replaced (all of them with the ``g`` flag, the
    first one otherwise) and the rule identity is recorded. Fixes chain, so
    a later fix sees the output of earlier ones.

    Fixes from remote feeds are held back unless ``confirm`` approves them,
    when ``confirm_remote`` is set. Held-back fixes are listed in
    ``skipped_rules``.

    Args:
        content: Content to fix.
        rules: Effective rules, in application order.
        confirm: Callback approving a remote fix for a given rule.
        confirm_remote: Whether remote fixes need confirmation.
        pattern_timeout: Time limit in seconds for one fix regex.

    Returns:
        FixResult; ``content`` is the input unchanged when nothing applied.

    Example:
        >>> result = apply_fixes("eval($code);", merged.rules)
        >>> result.applied_rules
        ['no-eval']
    """
    updated = content
    applied: list[str] = []
    skipped: list[str] = []

    for rule in rules:
        if not rule.is_fixable:
            continue
        replace = rule.fix.replace

        re_flags, replace_all = translate_js_flags(replace.flags, DEFAULT_FIX_FLAGS)
        try:
            compiled = compile_js_pattern(replace.pattern, re_flags)
        except re.error as e:
            logger.warning(f"Skipping fix for rule '{rule.identity}' with invalid pattern: {e}")
            continue

        try:
            with timeout_context(pattern_timeout):
                found = compiled.search(updated) is not None
        except TimeoutException:
            logger.warning(f"Fix pattern timeout for rule '{rule.identity}'")
            continue
        if not found:
            continue

        # confirmation runs without the pattern timer armed
        if confirm_remote and rule.origin == RuleOrigin.REMOTE:
            if confirm is None or not confirm(rule):
                logger.info(
                    f"Remote fix for rule '{rule.identity}' not confirmed; skipping",
                    extra={"rule_id": rule.identity, "source": rule.source},
                )
                skipped.append(rule.identity)
                continue

        try:
            with timeout_context(pattern_timeout):
                updated = compiled.sub(
                    lambda m: expand_replacement(replace.replacement, m),
                    updated,
                    count=0 if replace_all else 1,
                )
        except TimeoutException:
            logger.warning(f"Fix pattern timeout for rule '{rule.identity}'")
            continue

        applied.append(rule.identity)

    if applied:
        logger.debug(f"Applied {len(applied)} fix(es): {', '.join(applied)}")

    return FixResult(content=updated, applied_rules=applied, skipped_rules=skipped)


# =============================================================================
# Text-edit sinks
# =============================================================================


class TextEditSink(Protocol):
    """Receives whole-file replacement content for a file identifier."""

    def replace_content(self, file_id: str, content: str) -> None: ...


class FileEditSink:
    """
    Writes fixed content back to disk.

    Relative file identifiers are resolved against ``root`` when given.
    """

    def __init__(self, root: str | Path | None = None):
        self.root = Path(root) if root is not None else None

    def resolve(self, file_id: str) -> Path:
        path = Path(file_id)
        if self.root is not None and not path.is_absolute():
            path = self.root / path
        return path

    def replace_content(self, file_id: str, content: str) -> None:
        path = self.resolve(file_id)
        path.write_text(content, encoding="utf-8")
        logger.info(f"Wrote fixed content to {path}")


async def apply_fixes_to_file(
    engine: RuleEngine,
    file_id: str,
    content: str,
    sink: TextEditSink | None = None,
    workspace_root: str | Path | None = None,
    confirm: ConfirmCallback | None = None,
) -> FixResult:
    """
    Detect, load rules, fix and hand changed content to a sink.

    Args:
        engine: Rule engine providing detection, rules and fix policy.
        file_id: File identifier passed to the sink.
        content: Current file content.
        sink: Text-edit sink; when None the result is only returned.
        workspace_root: Workspace root, or None for the global scope.
        confirm: Callback approving remote fixes.

    Returns:
        FixResult. The sink is only called when the content changed.

    Raises:
        RuleLoadError: If the bundled rules cannot be loaded.
    """
    context = engine.detect_context(content)
    if context == FrameworkContext.UNKNOWN:
        logger.info(f"Unable to detect framework context for auto-fixes in {file_id}")
        return FixResult(content=content)

    merged = await engine.load_rules(context, workspace_root)
    if merged is None or not merged.fixable_rules:
        logger.info(f"No auto-fix suggestions available for {file_id}")
        return FixResult(content=content)

    result = engine.apply_fixes(content, merged.rules, confirm=confirm)

    if result.content == content:
        logger.info(f"No matching issues to fix in {file_id}")
        return result

    if sink is not None:
        sink.replace_content(file_id, result.content)

    logger.info(
        f"Applied {len(result.applied_rules)} auto-fix(es) for {context.value}",
        extra={"file": file_id, "applied": result.applied_rules, "skipped": result.skipped_rules},
    )
    return result
