"""
Conversion of audit results into editor diagnostics.

Issues use 1-based positions; diagnostics use the 0-based ranges of
LSP-style editor APIs. A publisher replaces everything a sink shows with the
diagnostics of the latest audit.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from typing import Iterable, Protocol

from pcw_toolbelt.models import AuditResult, Diagnostic, DiagnosticPosition, DiagnosticRange, Issue

logger = logging.getLogger(__name__)

DIAGNOSTIC_SOURCE = "PCW ToolBelt"


def issue_message(issue: Issue) -> str:
    """Rule message, followed by the suggestion on its own line when present."""
    if issue.suggestion:
        return f"{issue.rule.message}\nSuggestion: {issue.suggestion}"
    return issue.rule.message


def to_diagnostic(file_id: str, issue: Issue) -> Diagnostic:
    """
    Convert one issue to a diagnostic.

    The range starts at ``(line - 1, column - 1)`` and spans the matched text
    on the same line, at least one character wide.
    """
    line = issue.line - 1
    start = issue.column - 1
    end = start + max(len(issue.matched_text), 1)

    return Diagnostic(
        file=file_id,
        range=DiagnosticRange(
            start=DiagnosticPosition(line=line, character=start),
            end=DiagnosticPosition(line=line, character=end),
        ),
        message=issue_message(issue),
        severity=issue.severity,
        source=DIAGNOSTIC_SOURCE,
        code=issue.rule.id or issue.rule.category,
    )


def to_diagnostics(result: AuditResult) -> list[Diagnostic]:
    """Convert every issue of an audit result, preserving issue order."""
    return [to_diagnostic(result.file, issue) for issue in result.issues]


class DiagnosticsSink(Protocol):
    """Editor-side store of diagnostics keyed by file identifier."""

    def set(self, file_id: str, diagnostics: list[Diagnostic]) -> None: ...

    def clear(self) -> None: ...


class MemoryDiagnosticsSink:
    """
    In-process diagnostics store.

    Used by the MCP server to serve the latest diagnostics as a resource.
    """

    def __init__(self) -> None:
        self._diagnostics: dict[str, list[Diagnostic]] = {}

    def set(self, file_id: str, diagnostics: list[Diagnostic]) -> None:
        self._diagnostics[file_id] = list(diagnostics)

    def clear(self) -> None:
        self._diagnostics.clear()

    def get(self, file_id: str) -> list[Diagnostic]:
        return list(self._diagnostics.get(file_id, []))

    def files(self) -> list[str]:
        return sorted(self._diagnostics)

    def all(self) -> dict[str, list[Diagnostic]]:
        return {file_id: list(diags) for file_id, diags in self._diagnostics.items()}

    def __len__(self) -> int:
        return sum(len(diags) for diags in self._diagnostics.values())


class DiagnosticsPublisher:
    """
    Publishes audit results to a diagnostics sink.

    Each ``publish`` call clears the sink first, so the sink always reflects
    the latest set of results only.

    Example:
        >>> sink = MemoryDiagnosticsSink()
        >>> DiagnosticsPublisher(sink).publish([result])
        >>> sink.get(result.file)[0].source
        'PCW ToolBelt'
    """

    def __init__(self, sink: DiagnosticsSink):
        self.sink = sink

    def publish(self, results: Iterable[AuditResult]) -> int:
        """
        Replace the sink contents with diagnostics for ``results``.

        Several results for the same file are combined.

        Returns:
            Number of diagnostics published.
        """
        grouped: dict[str, list[Diagnostic]] = defaultdict(list)
        for result in results:
            grouped[result.file].extend(to_diagnostics(result))

        self.sink.clear()
        for file_id, diagnostics in grouped.items():
            self.sink.set(file_id, diagnostics)

        total = sum(len(d) for d in grouped.values())
        logger.debug(f"Published {total} diagnostics for {len(grouped)} file(s)")
        return total
