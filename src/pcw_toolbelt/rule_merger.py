"""
Rule merging and severity overrides.

Rule sets are merged by rule identity with a fixed precedence: bundled rules
first, then workspace overrides, then remote feeds. A later source replaces an
earlier rule with the same identity. Workspace severity overrides are applied
to the merged result.

Both operations are pure: they never mutate their inputs and perform no I/O.
"""

from __future__ import annotations

import logging
from typing import Iterable

from pcw_toolbelt.models import FrameworkContext, Rule, RuleSet, Severity, WorkspaceConfig

logger = logging.getLogger(__name__)

VALID_SEVERITIES = frozenset(s.value for s in Severity)


def merge_rule_sets(
    bundled: RuleSet | None,
    workspace_sets: Iterable[RuleSet] = (),
    remote_sets: Iterable[RuleSet] = (),
) -> list[Rule]:
    """
    Merge rule sets by identity, later sources winning.

    Args:
        bundled: Bundled rule set, if the package ships one.
        workspace_sets: Workspace override sets in load order.
        remote_sets: Remote feed sets in load order.

    Returns:
        Rules with unique identities. A rule keeps the position where its
        identity first appeared and takes the fields of its last occurrence.

    Example:
        >>> merged = merge_rule_sets(bundled, [workspace], [])
        >>> [r.identity for r in merged]
        ['no-eval', 'escape-output']
    """
    ordered: list[RuleSet] = []
    if bundled is not None:
        ordered.append(bundled)
    ordered.extend(workspace_sets)
    ordered.extend(remote_sets)

    merged: dict[str, Rule] = {}
    for rule_set in ordered:
        for rule in rule_set.rules:
            if rule.identity in merged:
                logger.debug(
                    f"Rule '{rule.identity}' from {rule_set.source or rule_set.origin} "
                    f"overrides {merged[rule.identity].source}"
                )
            merged[rule.identity] = rule

    return list(merged.values())


def apply_severity_overrides(
    rules: Iterable[Rule],
    context: FrameworkContext,
    config: WorkspaceConfig | None,
) -> list[Rule]:
    """
    Apply workspace severity overrides for one context.

    Only the severity of a matching rule changes. Override values other than
    error, warning or info (case-insensitive) are ignored and the rule keeps
    its severity.

    Args:
        rules: Merged rules.
        context: Context whose overrides apply.
        config: Workspace configuration, if any.

    Returns:
        New list of rules; unaffected rules are returned as-is.
    """
    rules = list(rules)
    if config is None:
        return rules

    overrides = config.severity_overrides.get(context.value)
    if not overrides:
        return rules

    result: list[Rule] = []
    for rule in rules:
        override = overrides.get(rule.identity)
        if override is None:
            result.append(rule)
            continue

        value = override.lower() if isinstance(override, str) else None
        if value not in VALID_SEVERITIES:
            logger.warning(
                f"Ignoring invalid severity override {override!r} for rule '{rule.identity}'"
            )
            result.append(rule)
            continue

        result.append(rule.model_copy(update={"severity": value}))

    return result
