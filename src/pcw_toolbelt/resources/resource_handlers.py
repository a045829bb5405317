"""Resource handlers for exposing rules, settings and diagnostics via MCP."""

from __future__ import annotations

import json
from pathlib import Path

from pcw_toolbelt.models import FrameworkContext
from pcw_toolbelt.rule_sources import rule_file_name
from pcw_toolbelt.rules_engine import RuleEngine
from pcw_toolbelt.tools.diagnostics import MemoryDiagnosticsSink


async def get_rules_resource(
    engine: RuleEngine,
    context: str,
    workspace_root: str | Path | None = None,
) -> str:
    """Get the merged rules of a context as Markdown."""
    try:
        merged = await engine.load_rules(context, workspace_root)
    except ValueError:
        return f"Unknown context: {context}"

    if merged is None or not merged.rules:
        return f"No rules configured for context: {context}"

    lines = [f"# {str(merged.category).title()} Rules", ""]
    if merged.description:
        lines.extend([merged.description, ""])

    for r in merged.rules:
        lines.append(f"## {r.message} (`{r.identity}`)")
        lines.append(f"- Severity: {r.severity}")
        if r.category:
            lines.append(f"- Category: {r.category}")
        if r.must_exist:
            lines.append("- Required pattern: Yes")
        if r.suggestion:
            lines.append(f"- Suggestion: {r.suggestion}")
        if r.is_fixable:
            lines.append("- Auto-fixable: Yes")
        lines.append(f"- Origin: {r.origin}")
        lines.append("")

    lines.append(f"Sources: {', '.join(merged.sources) or 'none'}")
    return "\n".join(lines)


def get_config_resource(engine: RuleEngine) -> str:
    """Get engine settings as formatted text."""
    settings = engine.settings
    lines = [
        "# Rule Engine Configuration",
        "",
        f"Rules directory: {engine.rules_dir}",
        f"Workspace rules directory: {settings.workspace_rules_dir}",
        f"Remote feed timeout: {settings.remote_timeout_seconds}s",
        f"Confirm remote fixes: {'yes' if settings.confirm_remote_fixes else 'no'}",
        f"Pattern timeout: {settings.pattern_timeout_seconds}s",
        "",
        "Contexts:",
    ]
    for context in engine.get_available_contexts():
        lines.append(f"  - {context.value}")

    lines.extend(["", "Audited files:"])
    lines.extend(f"  - {p}" for p in settings.file_patterns)
    lines.extend(["", "Ignored paths:"])
    lines.extend(f"  - {p}" for p in settings.ignored_patterns)
    return "\n".join(lines)


def get_rule_file_content(engine: RuleEngine, context: str) -> str:
    """Get raw content of a bundled rule file."""
    try:
        name = rule_file_name(FrameworkContext(context))
    except ValueError:
        return f"Unknown context: {context}"

    path = engine.rules_dir / name
    if not path.exists():
        return f"No rule file found for context: {context}"
    return path.read_text(encoding="utf-8")


def get_diagnostics_resource(sink: MemoryDiagnosticsSink) -> str:
    """Get the most recently published diagnostics as JSON."""
    payload = {
        file_id: [d.model_dump(mode="json") for d in diagnostics]
        for file_id, diagnostics in sink.all().items()
    }
    return json.dumps(payload, indent=2)
