"""Tests for diagnostics conversion and publishing."""

from pcw_toolbelt.models import AuditResult, Issue, Rule
from pcw_toolbelt.tools.diagnostics import (
    DiagnosticsPublisher,
    MemoryDiagnosticsSink,
    to_diagnostic,
    to_diagnostics,
)


def _issue(line=1, column=1, matched="eval(", **rule_kwargs) -> Issue:
    rule_kwargs.setdefault("pattern", r"eval\(")
    rule_kwargs.setdefault("message", "Avoid eval()")
    rule = Rule(**rule_kwargs)
    return Issue(line=line, column=column, rule=rule, matched_text=matched, suggestion=rule.suggestion)


def _result(file_id, *issues) -> AuditResult:
    return AuditResult(category="wordpress", file=file_id, issues=list(issues))


def test_diagnostic_range_is_zero_based():
    diagnostic = to_diagnostic("a.php", _issue(line=3, column=10, matched="eval("))
    assert (diagnostic.range.start.line, diagnostic.range.start.character) == (2, 9)
    assert (diagnostic.range.end.line, diagnostic.range.end.character) == (2, 14)


def test_diagnostic_range_at_least_one_character():
    diagnostic = to_diagnostic("a.php", _issue(matched=""))
    assert diagnostic.range.end.character - diagnostic.range.start.character == 1


def test_missing_pattern_diagnostic():
    diagnostic = to_diagnostic("w.php", _issue(matched="(missing)", mustExist=True))
    assert diagnostic.range.start.character == 0
    assert diagnostic.range.end.character == len("(missing)")


def test_diagnostic_message_and_metadata():
    diagnostic = to_diagnostic(
        "a.php",
        _issue(id="no-eval", severity="error", suggestion="Use a callback"),
    )
    assert diagnostic.message == "Avoid eval()\nSuggestion: Use a callback"
    assert diagnostic.severity == "error"
    assert diagnostic.source == "PCW ToolBelt"
    assert diagnostic.code == "no-eval"
    assert diagnostic.file == "a.php"


def test_diagnostic_code_falls_back_to_category():
    diagnostic = to_diagnostic("a.php", _issue(category="security"))
    assert diagnostic.code == "security"
    assert diagnostic.message == "Avoid eval()"
    assert to_diagnostic("a.php", _issue()).code is None


def test_to_diagnostics_preserves_order():
    result = _result("a.php", _issue(column=5), _issue(column=1))
    assert [d.range.start.character for d in to_diagnostics(result)] == [4, 0]


def test_publisher_replaces_previous_diagnostics():
    sink = MemoryDiagnosticsSink()
    publisher = DiagnosticsPublisher(sink)

    publisher.publish([_result("old.php", _issue())])
    assert sink.files() == ["old.php"]

    count = publisher.publish([
        _result("a.php", _issue(column=1)),
        _result("b.php", _issue(), _issue(line=2)),
        _result("a.php", _issue(column=7)),
    ])

    assert count == 4
    assert sink.files() == ["a.php", "b.php"]
    assert [d.range.start.character for d in sink.get("a.php")] == [0, 6]
    assert sink.get("old.php") == []
    assert len(sink) == 4


def test_publish_nothing_clears_sink():
    sink = MemoryDiagnosticsSink()
    publisher = DiagnosticsPublisher(sink)
    publisher.publish([_result("a.php", _issue())])
    assert publisher.publish([]) == 0
    assert len(sink) == 0
