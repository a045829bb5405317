"""Tools for auto-fixing, diagnostics, workspace audits and standards caching."""

from pcw_toolbelt.tools.auditor import (
    AuditProgress,
    CancellationToken,
    audit_workspace,
    discover_workspace_files,
    format_audit_result,
    format_workspace_report,
)
from pcw_toolbelt.tools.diagnostics import (
    DiagnosticsPublisher,
    MemoryDiagnosticsSink,
    to_diagnostic,
    to_diagnostics,
)
from pcw_toolbelt.tools.fixer import (
    FileEditSink,
    apply_fixes,
    apply_fixes_to_file,
    expand_replacement,
)
from pcw_toolbelt.tools.standards import StandardsManager

__all__ = [
    "apply_fixes",
    "apply_fixes_to_file",
    "audit_workspace",
    "AuditProgress",
    "CancellationToken",
    "DiagnosticsPublisher",
    "discover_workspace_files",
    "expand_replacement",
    "FileEditSink",
    "format_audit_result",
    "format_workspace_report",
    "MemoryDiagnosticsSink",
    "StandardsManager",
    "to_diagnostic",
    "to_diagnostics",
]
