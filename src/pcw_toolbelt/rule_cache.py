"""
Memoization of merged rule sets per (workspace, context).

The cache is the only owner of MergedRuleSet instances. A miss loads every
source, merges them, applies the workspace severity overrides and stores the
result until ``clear()``. Invalidation is all-or-nothing.
"""

from __future__ import annotations

import logging
from pathlib import Path

from pcw_toolbelt.models import FrameworkContext, MergedRuleSet
from pcw_toolbelt.rule_merger import apply_severity_overrides, merge_rule_sets
from pcw_toolbelt.rule_sources import RuleSourceLoader

logger = logging.getLogger(__name__)

GLOBAL_WORKSPACE_KEY = "global"


def cache_key(context: FrameworkContext, workspace_root: str | Path | None) -> str:
    """Build the composite cache key, using 'global' when no workspace is open."""
    root = str(workspace_root) if workspace_root is not None else GLOBAL_WORKSPACE_KEY
    return f"{root}::{context.value}"


class RuleCache:
    """
    Lazily built, explicitly cleared store of merged rule sets.

    Execution is single-threaded (asyncio), so no lock is taken. A build that
    awaits remote feeds can still overlap a ``clear()``; such a build returns
    its result to its caller but does not store it, so nothing loaded before
    the clear survives it.

    Attributes:
        loader: Source loader used on cache misses.

    Example:
        >>> cache = RuleCache(RuleSourceLoader(rules_dir))
        >>> merged = await cache.get_or_build(FrameworkContext.WORDPRESS, "/repo")
        >>> again = await cache.get_or_build(FrameworkContext.WORDPRESS, "/repo")
        >>> merged is again
        True
    """

    def __init__(self, loader: RuleSourceLoader):
        self.loader = loader
        self._entries: dict[str, MergedRuleSet] = {}
        self._generation = 0

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: object) -> bool:
        return key in self._entries

    async def get_or_build(
        self,
        context: FrameworkContext,
        workspace_root: str | Path | None,
    ) -> MergedRuleSet:
        """
        Return the merged rule set for a context, building it on a miss.

        Args:
            context: Framework context (not ``UNKNOWN``).
            workspace_root: Workspace root, or None for the global scope.

        Returns:
            Cached or freshly built MergedRuleSet.

        Raises:
            RuleLoadError: If the bundled rules cannot be loaded.
        """
        key = cache_key(context, workspace_root)

        cached = self._entries.get(key)
        if cached is not None:
            return cached

        generation = self._generation
        merged = await self._build(context, workspace_root)

        if generation == self._generation:
            self._entries[key] = merged
        else:
            logger.debug(f"Cache cleared while building {key}; result not stored")

        return merged

    async def _build(
        self,
        context: FrameworkContext,
        workspace_root: str | Path | None,
    ) -> MergedRuleSet:
        bundled = self.loader.load_bundled(context)
        workspace_sets = self.loader.load_workspace_overrides(context, workspace_root)
        config = self.loader.load_workspace_config(workspace_root)
        remote_sets = await self.loader.load_remote(
            context, config.repositories if config else None
        )

        rules = merge_rule_sets(bundled, workspace_sets, remote_sets)
        rules = apply_severity_overrides(rules, context, config)

        sources = [s.source for s in ([bundled] if bundled else []) + workspace_sets + remote_sets]
        description = (
            bundled.description
            if bundled and bundled.description
            else f"{context.value} rules (including workspace and community overlays)"
        )

        merged = MergedRuleSet(
            category=context,
            description=description,
            rules=tuple(rules),
            sources=tuple(sources),
        )

        logger.info(
            f"Built {len(merged.rules)} rules for {context.value}",
            extra={
                "context": context.value,
                "workspace_root": str(workspace_root) if workspace_root else None,
                "sources": list(merged.sources),
            },
        )
        return merged

    def clear(self) -> None:
        """Drop every cached entry; the next request rebuilds from all sources."""
        self._entries.clear()
        self._generation += 1
        logger.info("Rule cache cleared")
