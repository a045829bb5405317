"""Tests for workspace audits and reports."""

import asyncio
from pathlib import Path

from pcw_toolbelt.settings import DEFAULT_FILE_PATTERNS, DEFAULT_IGNORED_PATTERNS
from pcw_toolbelt.tools.auditor import (
    CancellationToken,
    audit_workspace,
    discover_workspace_files,
    format_audit_result,
    format_workspace_report,
    matches_glob,
    should_ignore_path,
)

BAD_PLUGIN = "<?php\nadd_action('init', 'boot');\neval($code);\nextract($args);\n"
CLEAN_PLUGIN = "<?php\nadd_action('init', 'boot');\n"


def _write(path, content):
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(content, encoding="utf-8")


def _populate(ws):
    _write(ws / "plugin.php", BAD_PLUGIN)
    _write(ws / "includes" / "clean.php", CLEAN_PLUGIN)
    _write(ws / "includes" / "admin" / "settings.php", BAD_PLUGIN)
    _write(ws / "assets" / "app.js", "add_filter('x', 'y'); eval(1);")
    _write(ws / "node_modules" / "lib" / "index.js", "eval(1); add_action('a', 'b');")
    _write(ws / "vendor" / "pkg" / "x.php", BAD_PLUGIN)
    _write(ws / "readme.txt", "eval(")
    _write(ws / ".cache" / "hidden.php", BAD_PLUGIN)


def test_matches_glob_root_and_nested():
    assert matches_glob("plugin.php", "**/*.php")
    assert matches_glob("a/b/plugin.php", "**/*.php")
    assert not matches_glob("plugin.phps", "**/*.php")
    assert matches_glob("src/app.js", "src/*.js")


def test_should_ignore_directories(tmp_path):
    assert should_ignore_path(tmp_path / "node_modules", tmp_path, DEFAULT_IGNORED_PATTERNS)
    assert should_ignore_path(tmp_path / "a" / "vendor" / "x.php", tmp_path, DEFAULT_IGNORED_PATTERNS)
    assert not should_ignore_path(tmp_path / "includes", tmp_path, DEFAULT_IGNORED_PATTERNS)


def test_discover_workspace_files(tmp_path):
    _populate(tmp_path)

    found = list(discover_workspace_files(tmp_path, DEFAULT_FILE_PATTERNS, DEFAULT_IGNORED_PATTERNS))
    rel = [Path(file_id).relative_to(tmp_path).as_posix() for file_id, _ in found]

    assert rel == [
        "assets/app.js",
        "includes/admin/settings.php",
        "includes/clean.php",
        "plugin.php",
    ]
    assert dict(found)[str(tmp_path / "plugin.php")] == BAD_PLUGIN


def test_discover_skips_undecodable_files(tmp_path):
    _write(tmp_path / "ok.php", CLEAN_PLUGIN)
    (tmp_path / "binary.php").write_bytes(b"\xff\xfe\x00bad")

    found = list(discover_workspace_files(tmp_path, DEFAULT_FILE_PATTERNS, []))

    assert [file_id for file_id, _ in found] == [str(tmp_path / "ok.php")]


def test_audit_workspace_collects_files_with_issues(engine, tmp_path):
    _populate(tmp_path)
    progress = []

    result = asyncio.run(audit_workspace(engine, tmp_path, progress_callback=progress.append))

    assert result.files_scanned == 4
    assert not result.cancelled
    assert [r.file for r in result.results] == [
        str(tmp_path / "assets" / "app.js"),
        str(tmp_path / "includes" / "admin" / "settings.php"),
        str(tmp_path / "plugin.php"),
    ]
    assert result.total_issues == 5
    assert [p.files_scanned for p in progress] == [1, 2, 3, 4]
    assert progress[-1].percent_complete == 100.0
    assert progress[-1].files_with_issues == 3


def test_audit_workspace_cancellation_returns_partial_results(engine, tmp_path):
    _populate(tmp_path)
    token = CancellationToken()

    def cancel_after_first(progress):
        token.cancel()

    result = asyncio.run(
        audit_workspace(engine, tmp_path, cancel_token=token, progress_callback=cancel_after_first)
    )

    assert result.cancelled
    assert result.files_scanned == 1
    assert [r.file for r in result.results] == [str(tmp_path / "assets" / "app.js")]


def test_audit_workspace_ignores_failing_progress_callback(engine, tmp_path):
    _populate(tmp_path)

    def broken(progress):
        raise RuntimeError("display went away")

    result = asyncio.run(audit_workspace(engine, tmp_path, progress_callback=broken))
    assert result.files_scanned == 4


def test_audit_workspace_with_explicit_files(engine, tmp_path):
    files = [("a.php", BAD_PLUGIN), ("b.txt", "plain text"), ("c.php", CLEAN_PLUGIN)]
    result = asyncio.run(audit_workspace(engine, tmp_path, files=files))
    assert result.files_scanned == 3
    assert [r.file for r in result.results] == ["a.php"]


def test_format_audit_result_groups_by_severity(engine):
    result = engine.audit_file_sync("includes/plugin.php", BAD_PLUGIN)
    report = format_audit_result(result)

    assert report.startswith("Audit Report: plugin.php\nContext: wordpress\nIssues Found: 2\n")
    assert "ERRORS (1):\n  Line 3:1 - Avoid eval()\n" in report
    assert '    Matched: "eval("\n    Suggestion: Use explicit logic\n' in report
    assert "WARNINGS (1):\n  Line 4:1 - Avoid extract()" in report
    assert "INFO (" not in report
    assert report.index("ERRORS") < report.index("WARNINGS")


def test_format_audit_result_without_issues(engine):
    result = engine.audit_file_sync("includes/clean.php", CLEAN_PLUGIN)
    assert format_audit_result(result) == "No issues found in clean.php (wordpress)"


def test_format_workspace_report_totals(engine, tmp_path):
    _populate(tmp_path)
    result = asyncio.run(audit_workspace(engine, tmp_path))
    report = format_workspace_report(result)

    assert "Summary: 3 file(s) with issues" in report
    assert "   Errors: 3\n" in report
    assert "   Warnings: 2\n" in report
    assert "   Info: 0\n" in report
    assert "   Files: 3\n" in report
    assert "   Files scanned: 4\n" in report


def test_format_workspace_report_empty(engine, tmp_path):
    result = asyncio.run(audit_workspace(engine, tmp_path))
    report = format_workspace_report(result)
    assert "No issues found in workspace." in report
