"""
Workspace-wide auditing and plain-text audit reports.

This module walks a workspace, audits every matching file with a RuleEngine
and renders the results as a readable report.

Features:
- Glob-based file selection with ignore patterns (node_modules, vendor, ...)
- Sequential auditing with cooperative cancellation between files
- Progress callbacks for large workspaces
- Per-file and workspace reports grouped by severity

Example:
    >>> engine = RuleEngine()
    >>> token = CancellationToken()
    >>> result = await audit_workspace(engine, "/path/to/site", cancel_token=token)
    >>> print(format_workspace_report(result))
"""

from __future__ import annotations

import asyncio
import fnmatch
import logging
import os
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Iterable, Iterator

from pcw_toolbelt.models import AuditResult, Issue, Severity, WorkspaceAuditResult
from pcw_toolbelt.rules_engine import RuleEngine

logger = logging.getLogger(__name__)

REPORT_RULE = "=" * 60
SECTION_RULE = "-" * 60

SEVERITY_HEADINGS = {
    Severity.ERROR.value: "ERRORS",
    Severity.WARNING.value: "WARNINGS",
    Severity.INFO.value: "INFO",
}


# =============================================================================
# Data Classes
# =============================================================================


@dataclass
class AuditProgress:
    """Progress information for audit callbacks."""

    total_files: int
    files_scanned: int
    files_with_issues: int
    current_file: str
    elapsed_seconds: float

    @property
    def percent_complete(self) -> float:
        """Calculate completion percentage."""
        if self.total_files == 0:
            return 100.0
        return (self.files_scanned / self.total_files) * 100


class CancellationToken:
    """
    Cooperative cancellation flag for workspace audits.

    The audit checks the token between files; the file being audited when
    ``cancel()`` is called still completes.
    """

    def __init__(self) -> None:
        self._cancelled = False

    def cancel(self) -> None:
        self._cancelled = True

    @property
    def cancelled(self) -> bool:
        return self._cancelled


ProgressCallback = Callable[[AuditProgress], None]


# =============================================================================
# File Discovery
# =============================================================================


def matches_glob(rel_path: str, pattern: str) -> bool:
    """
    Match a POSIX-style relative path against a glob.

    A leading ``**/`` matches any number of directories, including none, so
    ``**/*.php`` matches both ``plugin.php`` and ``includes/admin.php``.
    """
    if fnmatch.fnmatch(rel_path, pattern):
        return True

    if pattern.startswith("**/"):
        parts = rel_path.split("/")
        for i in range(len(parts)):
            partial = "/".join(parts[i:])
            if fnmatch.fnmatch(partial, pattern[3:]):
                return True

    return False


def should_ignore_path(path: Path, base_dir: Path, patterns: Iterable[str]) -> bool:
    """
    Check if a path should be ignored based on patterns.

    A directory is also ignored when ``<dir>/**`` style patterns cover it,
    so the walk never descends into it.

    Args:
        path: Path to check (file or directory).
        base_dir: Base directory for relative path calculation.
        patterns: Glob patterns to match against.

    Returns:
        True if the path should be ignored.
    """
    try:
        rel_str = path.relative_to(base_dir).as_posix()
    except ValueError:
        rel_str = path.as_posix()

    for pattern in patterns:
        if matches_glob(rel_str, pattern):
            return True
        if pattern.endswith("/**") and matches_glob(rel_str, pattern[:-3]):
            return True

    return False


def find_workspace_paths(
    root: str | Path,
    file_patterns: Iterable[str],
    ignored_patterns: Iterable[str],
) -> list[Path]:
    """
    Find files to audit in a workspace.

    Hidden files and directories are skipped, as are paths matching
    ``ignored_patterns``.

    Args:
        root: Workspace root directory.
        file_patterns: Globs selecting files (``**/*.php``).
        ignored_patterns: Globs excluding files and directories.

    Returns:
        Matching file paths, sorted.
    """
    directory = Path(root)
    file_patterns = list(file_patterns)
    ignored_patterns = list(ignored_patterns)
    files: list[Path] = []

    for current, dirs, filenames in os.walk(directory):
        current_path = Path(current)

        # Filter directories to avoid descending into ignored paths
        dirs[:] = [
            d for d in dirs
            if not d.startswith(".")
            and not should_ignore_path(current_path / d, directory, ignored_patterns)
        ]

        for filename in filenames:
            if filename.startswith("."):
                continue

            file_path = current_path / filename
            rel_str = file_path.relative_to(directory).as_posix()

            if not any(matches_glob(rel_str, p) for p in file_patterns):
                continue
            if should_ignore_path(file_path, directory, ignored_patterns):
                continue

            files.append(file_path)

    return sorted(files)


def read_workspace_files(paths: Iterable[Path]) -> Iterator[tuple[str, str]]:
    """Yield ``(file_id, content)`` pairs, skipping unreadable files with a warning."""
    for path in paths:
        try:
            content = path.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as e:
            logger.warning(f"Skipping unreadable file {path}: {e}")
            continue
        yield str(path), content


def discover_workspace_files(
    root: str | Path,
    file_patterns: Iterable[str],
    ignored_patterns: Iterable[str],
) -> Iterator[tuple[str, str]]:
    """Yield ``(file_id, content)`` for every auditable file, sorted by path."""
    return read_workspace_files(find_workspace_paths(root, file_patterns, ignored_patterns))


# =============================================================================
# Workspace Audit
# =============================================================================


def _report_progress(callback: ProgressCallback | None, progress: AuditProgress) -> None:
    if callback is None:
        return
    try:
        callback(progress)
    except Exception as e:
        logger.error(f"Progress callback failed: {e}")


async def audit_workspace(
    engine: RuleEngine,
    root: str | Path,
    files: Iterable[tuple[str, str]] | None = None,
    cancel_token: CancellationToken | None = None,
    progress_callback: ProgressCallback | None = None,
) -> WorkspaceAuditResult:
    """
    Audit every matching file of a workspace, one file at a time.

    Args:
        engine: Rule engine used for each file.
        root: Workspace root; also the scope of workspace rules.
        files: ``(file_id, content)`` pairs to audit instead of discovering
            files under ``root``.
        cancel_token: Checked before each file; when set, the audit stops
            and returns the results gathered so far.
        progress_callback: Receives an AuditProgress after each file.

    Returns:
        WorkspaceAuditResult holding only files with issues.

    Raises:
        RuleLoadError: If the bundled rules cannot be loaded.
    """
    start_time = time.monotonic()

    if files is None:
        paths = find_workspace_paths(
            root,
            engine.settings.file_patterns,
            engine.settings.ignored_patterns,
        )
        total_files = len(paths)
        pending: Iterable[tuple[str, str]] = read_workspace_files(paths)
    else:
        pending = list(files)
        total_files = len(pending)

    logger.info(f"Auditing {total_files} file(s) in {root}")

    results: list[AuditResult] = []
    files_scanned = 0
    cancelled = False

    for file_id, content in pending:
        if cancel_token is not None and cancel_token.cancelled:
            cancelled = True
            logger.info(f"Workspace audit cancelled after {files_scanned} file(s)")
            break

        result = await engine.audit_file(file_id, content, root)
        files_scanned += 1
        if result.issues:
            results.append(result)

        _report_progress(
            progress_callback,
            AuditProgress(
                total_files=total_files,
                files_scanned=files_scanned,
                files_with_issues=len(results),
                current_file=file_id,
                elapsed_seconds=time.monotonic() - start_time,
            ),
        )

        # let other tasks (and cancel requests) run between files
        await asyncio.sleep(0)

    workspace_result = WorkspaceAuditResult(
        results=results,
        files_scanned=files_scanned,
        cancelled=cancelled,
    )
    logger.info(
        "Workspace audit complete",
        extra={
            "root": str(root),
            "files_scanned": files_scanned,
            "files_with_issues": len(results),
            "total_issues": workspace_result.total_issues,
            "cancelled": cancelled,
        },
    )
    return workspace_result


# =============================================================================
# Reports
# =============================================================================


def _format_issue(issue: Issue) -> list[str]:
    lines = [
        f"  Line {issue.line}:{issue.column} - {issue.rule.message}",
        f'    Matched: "{issue.matched_text}"',
    ]
    if issue.suggestion:
        lines.append(f"    Suggestion: {issue.suggestion}")
    return lines


def format_audit_result(result: AuditResult) -> str:
    """
    Render one audit result as plain text, grouped by severity.

    Example:
        >>> print(format_audit_result(result))
        Audit Report: plugin.php
        Context: wordpress
        Issues Found: 2
        ...
    """
    name = Path(result.file).name

    if not result.issues:
        return f"No issues found in {name} ({result.category})"

    lines = [
        f"Audit Report: {name}",
        f"Context: {result.category}",
        f"Issues Found: {len(result.issues)}",
        f"Timestamp: {result.timestamp.isoformat()}",
        "",
    ]

    for severity, heading in SEVERITY_HEADINGS.items():
        group = [i for i in result.issues if i.severity == severity]
        if not group:
            continue
        lines.append(f"{heading} ({len(group)}):")
        for issue in group:
            lines.extend(_format_issue(issue))
        lines.append("")

    return "\n".join(lines).rstrip() + "\n"


def format_workspace_report(result: WorkspaceAuditResult) -> str:
    """Render a workspace audit: one section per file with issues, then totals."""
    lines = [
        REPORT_RULE,
        "PCW TOOLBELT - WORKSPACE AUDIT REPORT",
        REPORT_RULE,
        "",
    ]

    if result.cancelled:
        lines.append(f"Audit cancelled after {result.files_scanned} file(s); results are partial.")
        lines.append("")

    if not result.results:
        lines.append("No issues found in workspace.")
        return "\n".join(lines) + "\n"

    lines.append(f"Summary: {len(result.results)} file(s) with issues")

    totals = {s.value: 0 for s in Severity}
    for audit in result.results:
        lines.extend(["", SECTION_RULE, "", format_audit_result(audit).rstrip()])
        for severity, count in audit.severity_counts().items():
            totals[severity] += count

    lines.extend([
        "",
        REPORT_RULE,
        "TOTALS:",
        f"   Errors: {totals[Severity.ERROR.value]}",
        f"   Warnings: {totals[Severity.WARNING.value]}",
        f"   Info: {totals[Severity.INFO.value]}",
        f"   Files: {len(result.results)}",
        f"   Files scanned: {result.files_scanned}",
    ])
    return "\n".join(lines) + "\n"
