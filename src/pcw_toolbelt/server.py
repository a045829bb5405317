"""PCW ToolBelt MCP Server - Context-aware audits for WordPress, Elementor, WooCommerce and React code."""

import logging
from pathlib import Path
from typing import Any

from mcp.server.fastmcp import FastMCP
from pydantic import ValidationError

from pcw_toolbelt.models import AuditResult, StandardSource
from pcw_toolbelt.rules_engine import RuleEngine, RuleEngineError
from pcw_toolbelt.tools import (
    DiagnosticsPublisher,
    FileEditSink,
    MemoryDiagnosticsSink,
    StandardsManager,
    apply_fixes_to_file,
    audit_workspace,
    format_audit_result,
    format_workspace_report,
)
from pcw_toolbelt.resources.resource_handlers import (
    get_config_resource,
    get_diagnostics_resource,
    get_rule_file_content,
    get_rules_resource,
)
from pcw_toolbelt.prompts.prompt_templates import (
    AUDIT_REVIEW_PROMPT,
    FIX_SUGGESTION_PROMPT,
)

# ────────────────────────────────────────────
# LOGGING SETUP
# ────────────────────────────────────────────

logger = logging.getLogger("pcw_toolbelt")

# ────────────────────────────────────────────
# SERVER INSTANTIATION
# ────────────────────────────────────────────

engine = RuleEngine()
diagnostics_sink = MemoryDiagnosticsSink()
publisher = DiagnosticsPublisher(diagnostics_sink)

mcp = FastMCP(
    name="PCW ToolBelt",
    instructions="Context-aware code audits for WordPress, Elementor, WooCommerce and React. Detects the framework of a file, applies bundled, workspace and community rules, and offers regex auto-fixes.",
)


def _error_payload(error: Exception) -> dict:
    logger.error(f"{type(error).__name__}: {error}")
    return {"error": str(error), "error_type": type(error).__name__}


def _audit_payload(result: AuditResult) -> dict[str, Any]:
    payload = result.model_dump(mode="json")
    payload["severity_counts"] = result.severity_counts()
    payload["report"] = format_audit_result(result)
    return payload


# ────────────────────────────────────────────
# TOOLS
# ────────────────────────────────────────────


@mcp.tool()
async def audit(
    content: str, file_path: str | None = None, workspace_root: str | None = None
) -> dict:
    """Audit a code snippet. Detects the framework context (elementor, wordpress, react, woocommerce) and returns positioned issues with severity, message and suggestion."""
    try:
        result = await engine.audit_file(file_path or "<inline>", content, workspace_root)
    except RuleEngineError as e:
        return _error_payload(e)
    publisher.publish([result])
    logger.info(f"audit: {len(result.issues)} issues ({result.category})")
    return _audit_payload(result)


@mcp.tool()
async def audit_file_path(path: str, workspace_root: str | None = None) -> dict:
    """Audit a file on disk by its path. The framework context is detected from the file content."""
    try:
        content = Path(path).read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as e:
        return _error_payload(e)
    try:
        result = await engine.audit_file(path, content, workspace_root)
    except RuleEngineError as e:
        return _error_payload(e)
    publisher.publish([result])
    logger.info(f"audit_file_path: {path}, {len(result.issues)} issues")
    return _audit_payload(result)


@mcp.tool()
async def audit_workspace_path(workspace_root: str) -> dict:
    """Audit every PHP, JS, JSX, TS and TSX file under a workspace root (node_modules, vendor and build output are skipped). Workspace rules in .pcw-rules apply."""
    if not Path(workspace_root).is_dir():
        return {"error": f"Directory not found: {workspace_root}", "error_type": "DirectoryNotFoundError"}
    try:
        result = await audit_workspace(engine, workspace_root)
    except RuleEngineError as e:
        return _error_payload(e)
    publisher.publish(result.results)
    logger.info(f"audit_workspace_path: {workspace_root}, {result.total_issues} issues")
    return {
        "files_scanned": result.files_scanned,
        "files_with_issues": len(result.results),
        "total_issues": result.total_issues,
        "cancelled": result.cancelled,
        "results": [_audit_payload(r) for r in result.results],
        "report": format_workspace_report(result),
    }


@mcp.tool()
async def apply_fixes_to_path(
    path: str, workspace_root: str | None = None, approve_remote_fixes: bool = False
) -> dict:
    """Apply the auto-fixes of the detected context to a file on disk. Fixes from remote rule feeds are skipped unless approve_remote_fixes is true."""
    try:
        content = Path(path).read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as e:
        return _error_payload(e)

    confirm = (lambda rule: True) if approve_remote_fixes else None
    try:
        result = await apply_fixes_to_file(
            engine, path, content, FileEditSink(), workspace_root, confirm
        )
    except (RuleEngineError, OSError) as e:
        return _error_payload(e)
    logger.info(f"apply_fixes_to_path: {path}, {len(result.applied_rules)} applied")
    return {
        "path": path,
        "changed": result.content != content,
        "applied_rules": result.applied_rules,
        "skipped_rules": result.skipped_rules,
    }


@mcp.tool()
def detect(content: str) -> dict:
    """Detect the framework context of code. Returns the primary context and every context whose signature matches."""
    return {
        "context": engine.detect_context(content).value,
        "all_contexts": [c.value for c in engine.detect_all_contexts(content)],
    }


@mcp.tool()
def reload_rules() -> dict:
    """Clear cached rules so the next audit reloads bundled, workspace and remote rules."""
    engine.clear_cache()
    logger.info("reload_rules: cache cleared")
    return engine.get_stats()


@mcp.tool()
async def list_rules(context: str, workspace_root: str | None = None) -> dict:
    """List the effective rules of a context (elementor, wordpress, react, woocommerce), after workspace overrides and remote feeds are merged."""
    try:
        merged = await engine.load_rules(context, workspace_root)
    except (RuleEngineError, ValueError) as e:
        return _error_payload(e)
    if merged is None:
        return {"context": context, "rules": [], "sources": []}
    return {
        "context": context,
        "description": merged.description,
        "rules": [r.model_dump(mode="json", by_alias=True, exclude_none=True) for r in merged.rules],
        "sources": list(merged.sources),
    }


@mcp.tool()
async def refresh_standards(
    workspace_root: str, sources: list[dict], max_age_days: float = 14, force: bool = False
) -> dict:
    """Fetch standards documents (id, name, url, fileTypes) into <workspace_root>/.toolbelt-standards. Only missing or outdated documents are fetched unless force is true."""
    if not Path(workspace_root).is_dir():
        return {"error": f"Directory not found: {workspace_root}", "error_type": "DirectoryNotFoundError"}
    try:
        configured = [StandardSource.model_validate(s) for s in sources]
    except ValidationError as e:
        return _error_payload(e)

    manager = StandardsManager(
        workspace_root,
        sources=configured,
        timeout=engine.settings.remote_timeout_seconds,
        transport=engine.transport,
    )
    targets = configured if force else manager.find_outdated(max_age_days)
    refreshed = await manager.update_sources(targets) if targets else 0
    logger.info(f"refresh_standards: {refreshed}/{len(targets)} refreshed in {workspace_root}")
    return {
        "requested": [s.id for s in targets],
        "refreshed": refreshed,
        "cache_dir": str(manager.cache_dir),
    }


# ────────────────────────────────────────────
# RESOURCES
# ────────────────────────────────────────────


@mcp.resource("pcw://rules/{context}")
async def rules_resource(context: str) -> str:
    """Effective rules for a framework context."""
    return await get_rules_resource(engine, context)

@mcp.resource("pcw://raw/{context}")
def raw_rules_resource(context: str) -> str:
    """Raw JSON of the bundled rule file for a framework context."""
    return get_rule_file_content(engine, context)

@mcp.resource("pcw://config")
def config_resource() -> str:
    """Rule engine configuration and settings."""
    return get_config_resource(engine)

@mcp.resource("pcw://diagnostics")
def diagnostics_resource() -> str:
    """Diagnostics published by the most recent audit."""
    return get_diagnostics_resource(diagnostics_sink)


# ────────────────────────────────────────────
# PROMPTS
# ────────────────────────────────────────────


@mcp.prompt()
async def audit_review(code: str, file_path: str = "") -> str:
    """Audit code and return a structured review prompt with all issues included."""
    try:
        result = await engine.audit_file(file_path or "<inline>", code)
    except RuleEngineError as e:
        logger.error(f"audit_review: {type(e).__name__}: {e}")
        context = engine.detect_context(code).value
        analysis_text = f"Audit failed: {e}"
    else:
        context = result.category
        analysis_text = format_audit_result(result) if result.issues else "No issues."
        logger.info(f"audit_review prompt generated: {len(result.issues)} issues")
    return AUDIT_REVIEW_PROMPT.format(
        context=context,
        file_path=file_path or "<inline>",
        code=code,
        analysis=analysis_text,
    )


@mcp.prompt()
def fix_suggestion(
    code: str,
    rule_id: str,
    message: str,
    file_path: str = "",
    line: int | None = None,
) -> str:
    """Generate a targeted fix suggestion prompt for a specific rule violation."""
    logger.info(f"fix_suggestion prompt: rule={rule_id}, line={line}")
    return FIX_SUGGESTION_PROMPT.format(
        rule_id=rule_id,
        message=message,
        file_path=file_path or "<unknown>",
        line=line or "?",
        code=code,
        context=engine.detect_context(code).value,
    )


# ────────────────────────────────────────────
# ENTRY POINT
# ────────────────────────────────────────────


def main() -> None:
    logger.info("Starting PCW ToolBelt MCP server...")
    mcp.run(transport="stdio")


if __name__ == "__main__":
    main()
