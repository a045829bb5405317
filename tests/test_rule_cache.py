"""Tests for the merged rule cache."""

import asyncio

import httpx
import pytest

from pcw_toolbelt.exceptions import RuleLoadError
from pcw_toolbelt.models import FrameworkContext
from pcw_toolbelt.rule_cache import RuleCache, cache_key
from pcw_toolbelt.rule_sources import RuleSourceLoader

WP = FrameworkContext.WORDPRESS
FEED_URL = "https://rules.example.com/wordpress.json"
FEED = {
    "category": "wordpress",
    "rules": [
        {"id": "remote-only", "pattern": "foo", "message": "Remote"},
        {"id": "no-extract", "pattern": r"extract\(", "message": "Remote extract", "severity": "info"},
    ],
}


def _feed_transport(status: int = 200, calls: list | None = None, on_request=None) -> httpx.MockTransport:
    def handler(request: httpx.Request) -> httpx.Response:
        if calls is not None:
            calls.append(str(request.url))
        if on_request is not None:
            on_request()
        return httpx.Response(status, json=FEED if status < 400 else {"error": "boom"})

    return httpx.MockTransport(handler)


def _configure_workspace(workspace, write_json, repositories=(FEED_URL,), overrides=None):
    write_json(
        workspace / ".pcw-rules" / "config.json",
        {"severityOverrides": overrides or {}, "repositories": list(repositories)},
    )


def test_cache_key():
    assert cache_key(WP, None) == "global::wordpress"
    assert cache_key(FrameworkContext.REACT, "/srv/site") == "/srv/site::react"


def test_get_or_build_merges_all_sources(rules_dir, workspace, write_json):
    write_json(
        workspace / ".pcw-rules" / "wordpress-rules.json",
        {"rules": [{"id": "no-eval", "pattern": r"eval\(", "message": "Local eval", "severity": "warning"}]},
    )
    _configure_workspace(workspace, write_json, overrides={"wordpress": {"remote-only": "error"}})
    cache = RuleCache(RuleSourceLoader(rules_dir, transport=_feed_transport()))

    merged = asyncio.run(cache.get_or_build(WP, workspace))

    by_id = {r.identity: r for r in merged.rules}
    assert [r.identity for r in merged.rules] == ["no-eval", "no-extract", "currentuserinfo", "remote-only"]
    assert by_id["no-eval"].message == "Local eval"
    assert by_id["no-extract"].message == "Remote extract"
    assert by_id["remote-only"].severity == "error"
    assert merged.description == "Test WordPress rules"
    assert merged.sources[0].endswith("wordpress-rules.json")
    assert merged.sources[-1] == FEED_URL
    assert len(merged.sources) == 3


def test_get_or_build_is_cached(rules_dir, workspace, write_json):
    _configure_workspace(workspace, write_json)
    calls: list = []
    cache = RuleCache(RuleSourceLoader(rules_dir, transport=_feed_transport(calls=calls)))

    first = asyncio.run(cache.get_or_build(WP, workspace))
    second = asyncio.run(cache.get_or_build(WP, workspace))

    assert first is second
    assert calls == [FEED_URL]
    assert len(cache) == 1
    assert cache_key(WP, workspace) in cache


def test_workspaces_and_contexts_are_cached_separately(rules_dir, workspace):
    cache = RuleCache(RuleSourceLoader(rules_dir))

    global_wp = asyncio.run(cache.get_or_build(WP, None))
    ws_wp = asyncio.run(cache.get_or_build(WP, workspace))
    elementor = asyncio.run(cache.get_or_build(FrameworkContext.ELEMENTOR, None))

    assert global_wp is not ws_wp
    assert elementor.category == "elementor"
    assert len(cache) == 3


def test_clear_forces_rebuild(rules_dir, workspace, write_json):
    _configure_workspace(workspace, write_json)
    calls: list = []
    cache = RuleCache(RuleSourceLoader(rules_dir, transport=_feed_transport(calls=calls)))

    first = asyncio.run(cache.get_or_build(WP, workspace))
    cache.clear()
    assert len(cache) == 0

    # a workspace edit is only picked up after the clear
    write_json(
        workspace / ".pcw-rules" / "wordpress-rules.json",
        {"rules": [{"id": "added", "pattern": "bar", "message": "Added"}]},
    )
    second = asyncio.run(cache.get_or_build(WP, workspace))

    assert second is not first
    assert "added" in {r.identity for r in second.rules}
    assert calls == [FEED_URL, FEED_URL]


def test_failing_feed_contributes_nothing(rules_dir, workspace, write_json):
    write_json(
        workspace / ".pcw-rules" / "wordpress-rules.json",
        [{"id": "local", "pattern": "bar", "message": "Local"}],
    )
    _configure_workspace(workspace, write_json)
    cache = RuleCache(RuleSourceLoader(rules_dir, transport=_feed_transport(status=500)))

    merged = asyncio.run(cache.get_or_build(WP, workspace))

    assert [r.identity for r in merged.rules] == ["no-eval", "no-extract", "currentuserinfo", "local"]
    assert FEED_URL not in merged.sources


def test_clear_during_build_is_not_stored(rules_dir, workspace, write_json):
    """A build that overlaps a clear returns its result without caching it."""
    _configure_workspace(workspace, write_json)
    cache = RuleCache(RuleSourceLoader(rules_dir))
    cache.loader = RuleSourceLoader(rules_dir, transport=_feed_transport(on_request=cache.clear))

    merged = asyncio.run(cache.get_or_build(WP, workspace))

    assert "remote-only" in {r.identity for r in merged.rules}
    assert len(cache) == 0


def test_description_fallback_without_bundled_set(rules_dir):
    cache = RuleCache(RuleSourceLoader(rules_dir))
    merged = asyncio.run(cache.get_or_build(FrameworkContext.REACT, None))
    assert merged.rules == ()
    assert merged.description == "react rules (including workspace and community overlays)"
    assert merged.sources == ()


def test_missing_bundled_directory_propagates(tmp_path):
    cache = RuleCache(RuleSourceLoader(tmp_path / "missing"))
    with pytest.raises(RuleLoadError):
        asyncio.run(cache.get_or_build(WP, None))
    assert len(cache) == 0
