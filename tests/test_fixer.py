"""Tests for auto-fix application."""

import asyncio

from pcw_toolbelt.models import Rule
from pcw_toolbelt.tools.fixer import (
    FileEditSink,
    apply_fixes,
    apply_fixes_to_file,
    expand_replacement,
)


def _fix_rule(identity, pattern, replacement, flags=None, origin="bundled") -> Rule:
    replace = {"pattern": pattern, "replacement": replacement}
    if flags is not None:
        replace["flags"] = flags
    return Rule(
        id=identity,
        pattern=pattern,
        message="fixable",
        fix={"replace": replace},
        origin=origin,
    )


class RecordingSink:
    def __init__(self):
        self.edits = []

    def replace_content(self, file_id, content):
        self.edits.append((file_id, content))


def test_no_fixable_rules_returns_content_unchanged():
    rules = [Rule(id="plain", pattern="x", message="no fix")]
    result = apply_fixes("x = 1", rules)
    assert result.content == "x = 1"
    assert result.applied_rules == []
    assert not result.changed


def test_fix_without_match_is_not_applied():
    rule = _fix_rule("old-api", r"old_api\(", "new_api(")
    result = apply_fixes("new_api();", [rule])
    assert result.content == "new_api();"
    assert result.applied_rules == []


def test_fix_replaces_every_occurrence_by_default():
    rule = _fix_rule("old-api", r"old_api\(", "new_api(")
    result = apply_fixes("old_api(1);\nold_api(2);", [rule])
    assert result.content == "new_api(1);\nnew_api(2);"
    assert result.applied_rules == ["old-api"]


def test_fix_without_global_flag_replaces_first_only():
    rule = _fix_rule("first", "a", "b", flags="m")
    assert apply_fixes("a a a", [rule]).content == "b a a"


def test_fix_flags_case_insensitive():
    rule = _fix_rule("upper", "var ", "let ", flags="gi")
    assert apply_fixes("VAR a; var b;", [rule]).content == "let a; let b;"


def test_fixes_chain_in_rule_order():
    first = _fix_rule("a-to-b", "a", "b")
    second = _fix_rule("b-to-c", "b", "c")
    result = apply_fixes("a", [first, second])
    assert result.content == "c"
    assert result.applied_rules == ["a-to-b", "b-to-c"]


def test_fix_identity_falls_back_to_pattern():
    rule = Rule(pattern="foo", message="m", fix={"replace": {"pattern": "foo", "replacement": "bar"}})
    assert apply_fixes("foo", [rule]).applied_rules == ["foo"]


def test_invalid_fix_pattern_is_skipped():
    broken = _fix_rule("broken", "(", "x")
    good = _fix_rule("good", "a", "b")
    result = apply_fixes("a", [broken, good])
    assert result.content == "b"
    assert result.applied_rules == ["good"]


def test_replacement_tokens():
    rule = _fix_rule(
        "escape",
        r"echo\s+(\$settings\[[^\]]+\])",
        "echo esc_html( $1 )",
    )
    result = apply_fixes("echo $settings['title'];", [rule])
    assert result.content == "echo esc_html( $settings['title'] );"


def test_expand_replacement_js_tokens():
    import re

    match = re.search(r"(?P<fn>get)_(\w+)", "get_title")
    assert expand_replacement("[$&]", match) == "[get_title]"
    assert expand_replacement("$2-$1", match) == "title-get"
    assert expand_replacement("$<fn>!", match) == "get!"
    assert expand_replacement("$$1", match) == "$1"
    assert expand_replacement("$3", match) == "$3"
    assert expand_replacement("$10", match) == "get0"
    assert expand_replacement("cost: $5.00", re.search("x", "x")) == "cost: $5.00"


def test_remote_fix_requires_confirmation():
    rule = _fix_rule("remote-fix", "a", "b", origin="remote")

    skipped = apply_fixes("a", [rule])
    assert skipped.content == "a"
    assert skipped.applied_rules == []
    assert skipped.skipped_rules == ["remote-fix"]

    seen = []

    def confirm(r):
        seen.append(r.identity)
        return True

    confirmed = apply_fixes("a", [rule], confirm=confirm)
    assert confirmed.content == "b"
    assert confirmed.applied_rules == ["remote-fix"]
    assert seen == ["remote-fix"]

    declined = apply_fixes("a", [rule], confirm=lambda r: False)
    assert declined.skipped_rules == ["remote-fix"]

    unguarded = apply_fixes("a", [rule], confirm_remote=False)
    assert unguarded.applied_rules == ["remote-fix"]


def test_apply_fixes_to_file_writes_changes(engine, tmp_path):
    path = tmp_path / "plugin.php"
    content = "<?php\nadd_action('init', 'x');\nget_currentuserinfo();\n"
    path.write_text(content, encoding="utf-8")

    result = asyncio.run(apply_fixes_to_file(engine, str(path), content, FileEditSink()))

    assert result.applied_rules == ["currentuserinfo"]
    assert path.read_text(encoding="utf-8") == content.replace("get_currentuserinfo(", "wp_get_current_user(")


def test_apply_fixes_to_file_without_changes_skips_sink(engine):
    sink = RecordingSink()
    content = "add_action('init', 'x');"

    result = asyncio.run(apply_fixes_to_file(engine, "plugin.php", content, sink))

    assert result.content == content
    assert sink.edits == []


def test_apply_fixes_to_file_unknown_context(engine):
    sink = RecordingSink()
    result = asyncio.run(apply_fixes_to_file(engine, "notes.txt", "get_currentuserinfo(", sink))
    assert result.content == "get_currentuserinfo("
    assert sink.edits == []


def test_file_edit_sink_resolves_relative_paths(tmp_path):
    sink = FileEditSink(tmp_path)
    sink.replace_content("nested.php", "<?php")
    assert (tmp_path / "nested.php").read_text(encoding="utf-8") == "<?php"


def test_engine_apply_fixes_uses_remote_policy(engine):
    rule = _fix_rule("remote-fix", "a", "b", origin="remote")
    assert engine.apply_fixes("a", [rule]).skipped_rules == ["remote-fix"]

    engine.settings.confirm_remote_fixes = False
    assert engine.apply_fixes("a", [rule]).applied_rules == ["remote-fix"]


def test_empty_flags_fall_back_to_global_replace():
    rule = _fix_rule("empty-flags", "foo", "bar", flags="")
    assert apply_fixes("foo foo", [rule]).content == "bar bar"


def test_slow_remote_confirmation_is_not_cut_off_by_pattern_timeout():
    """Approving a remote fix may take longer than the regex time limit."""
    import time

    rule = _fix_rule("remote-fix", "foo", "bar", origin="remote")

    def slow_confirm(r):
        time.sleep(0.5)
        return True

    result = apply_fixes("foo", [rule], confirm=slow_confirm, pattern_timeout=0.2)

    assert result.content == "bar"
    assert result.applied_rules == ["remote-fix"]
    assert result.skipped_rules == []


def test_fix_pattern_timeout_skips_rule(caplog):
    """A catastrophic fix regex is abandoned and later fixes still run."""
    slow = _fix_rule("slow", r"(a+)+$", "x")
    good = _fix_rule("good", "b", "c")

    result = apply_fixes("a" * 28 + "b", [slow, good], pattern_timeout=0.5)

    assert result.applied_rules == ["good"]
    assert result.content == "a" * 28 + "c"
    assert "Fix pattern timeout for rule 'slow'" in caplog.text
