"""
Rule source loading: bundled rule sets, workspace overrides and remote feeds.

Rules for a framework context come from three origins, loaded independently:

- Bundled: ``<rules_dir>/<context>-rules.json`` shipped with the package.
- Workspace: ``<root>/.pcw-rules/<context>-rules.json`` plus the workspace
  ``config.json`` (severity overrides and remote feed URLs).
- Remote: rule sets fetched over HTTP(S) from the configured repositories.

Only bundled resources can fail hard; a broken workspace file or an
unreachable feed is logged and skipped so the remaining sources still apply.
"""

from __future__ import annotations

import asyncio
import json
import logging
from pathlib import Path
from typing import Any, Sequence
from urllib.parse import urlsplit

import httpx
from pydantic import ValidationError

from pcw_toolbelt.exceptions import RuleLoadError, RuleSetFormatError
from pcw_toolbelt.models import (
    FrameworkContext,
    Rule,
    RuleOrigin,
    RuleSet,
    WorkspaceConfig,
)

logger = logging.getLogger(__name__)

WORKSPACE_CONFIG_FILENAME = "config.json"


def rule_file_name(context: FrameworkContext | str) -> str:
    """Return the conventional file name of a context's rule set."""
    value = context.value if isinstance(context, FrameworkContext) else context
    return f"{value}-rules.json"


def parse_rule_set(
    data: Any,
    context: FrameworkContext,
    origin: RuleOrigin,
    source: str,
) -> RuleSet:
    """
    Build a RuleSet from decoded JSON.

    Accepts both the object form ``{category, description, rules}`` and a
    bare array of rules. Invalid rules are skipped individually. The set's
    category is always ``context``, and every rule is stamped with ``origin``
    and ``source`` whatever the data claims.

    Args:
        data: Decoded JSON document.
        context: Context the rules are loaded for.
        origin: Origin of the source.
        source: File path or URL, kept for provenance.

    Returns:
        RuleSet with the valid rules in declaration order.

    Raises:
        RuleSetFormatError: If the document is neither an object nor an array,
            or its ``rules`` entry is not an array.
    """
    if isinstance(data, list):
        items: Any = data
        description = ""
    elif isinstance(data, dict):
        items = data.get("rules", [])
        description = data.get("description") or ""
        declared = data.get("category") or data.get("context")
        if declared and declared != context.value:
            logger.info(
                f"Rule set from {source} declares '{declared}', loading it as '{context.value}'"
            )
    else:
        raise RuleSetFormatError(
            f"Expected a rule set object or array, got {type(data).__name__}",
            source=source,
        )

    if not isinstance(items, list):
        raise RuleSetFormatError("'rules' must be an array", source=source)

    rules: list[Rule] = []
    for idx, item in enumerate(items):
        if not isinstance(item, dict):
            logger.warning(f"Skipping rule at index {idx} in {source}: not an object")
            continue
        # provenance is assigned here, never taken from the data
        fields = {k: v for k, v in item.items() if k not in ("origin", "source")}
        try:
            rule = Rule.model_validate(fields)
        except ValidationError as e:
            logger.warning(
                f"Skipping invalid rule at index {idx} in {source}: {e.error_count()} validation error(s)",
                extra={"source": source, "rule_id": item.get("id"), "errors": e.errors()},
            )
            continue
        rules.append(rule.model_copy(update={"origin": RuleOrigin(origin).value, "source": source}))

    return RuleSet(
        category=context,
        description=str(description),
        rules=rules,
        origin=origin,
        source=source,
    )


class RuleSourceLoader:
    """
    Reads rule sets from bundled, workspace and remote origins.

    The loader has no state beyond its settings; every call returns fresh
    data, and caching is left to the rule cache.

    Attributes:
        rules_dir: Bundled rules directory.
        workspace_rules_dir: Project-relative override directory name.
        remote_timeout: Timeout in seconds applied to each feed request.

    Example:
        >>> loader = RuleSourceLoader(Path("rules"))
        >>> bundled = loader.load_bundled(FrameworkContext.WORDPRESS)
        >>> overrides = loader.load_workspace_overrides(FrameworkContext.WORDPRESS, "/repo")
        >>> remote = asyncio.run(loader.load_remote(FrameworkContext.WORDPRESS, urls))
    """

    def __init__(
        self,
        rules_dir: Path,
        workspace_rules_dir: str = ".pcw-rules",
        remote_timeout: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.rules_dir = Path(rules_dir)
        self.workspace_rules_dir = workspace_rules_dir
        self.remote_timeout = remote_timeout
        self._transport = transport

    # -------------------------------------------------------------------------
    # Bundled rules
    # -------------------------------------------------------------------------

    def load_bundled(self, context: FrameworkContext) -> RuleSet | None:
        """
        Load the bundled rule set for a context.

        Args:
            context: Framework context.

        Returns:
            RuleSet, or None (with a warning) when the package ships no rule
            file for the context.

        Raises:
            RuleLoadError: If the rules directory is missing, or the rule file
                cannot be read or decoded.
        """
        if not self.rules_dir.is_dir():
            raise RuleLoadError(
                f"Bundled rules directory not found: {self.rules_dir}",
                context=context.value,
                path=str(self.rules_dir),
            )

        json_path = self.rules_dir / rule_file_name(context)

        if not json_path.exists():
            logger.warning(f"Rules file not found: {json_path.name}")
            return None

        try:
            with open(json_path, encoding="utf-8") as f:
                data = json.load(f)
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            raise RuleLoadError(
                f"Invalid JSON in {json_path}: {e}",
                context=context.value,
                path=str(json_path),
            ) from e
        except OSError as e:
            raise RuleLoadError(
                f"Cannot read {json_path}: {e}",
                context=context.value,
                path=str(json_path),
            ) from e

        try:
            rule_set = parse_rule_set(data, context, RuleOrigin.BUNDLED, str(json_path))
        except RuleSetFormatError as e:
            raise RuleLoadError(str(e), context=context.value, path=str(json_path)) from e

        logger.debug(f"Loaded {len(rule_set.rules)} bundled rules for {context.value}")
        return rule_set

    # -------------------------------------------------------------------------
    # Workspace rules and configuration
    # -------------------------------------------------------------------------

    def workspace_rules_path(self, workspace_root: str | Path) -> Path:
        """Return the override directory of a workspace."""
        return Path(workspace_root) / self.workspace_rules_dir

    def load_workspace_overrides(
        self,
        context: FrameworkContext,
        workspace_root: str | Path | None,
    ) -> list[RuleSet]:
        """
        Load the workspace override rule set for a context.

        Args:
            context: Framework context.
            workspace_root: Workspace root, or None when no workspace is open.

        Returns:
            A one-element list with the override set, or an empty list when
            there is no workspace, no override file, or the file is unparsable.
        """
        if workspace_root is None:
            return []

        file_path = self.workspace_rules_path(workspace_root) / rule_file_name(context)
        if not file_path.exists():
            return []

        try:
            data = json.loads(file_path.read_text(encoding="utf-8"))
            rule_set = parse_rule_set(data, context, RuleOrigin.WORKSPACE, str(file_path))
        except (OSError, ValueError, RuleSetFormatError) as e:
            logger.warning(f"Unable to parse workspace rules at {file_path}: {e}")
            return []

        logger.debug(f"Loaded {len(rule_set.rules)} workspace rules from {file_path}")
        return [rule_set]

    def load_workspace_config(self, workspace_root: str | Path | None) -> WorkspaceConfig | None:
        """
        Load ``config.json`` from the workspace override directory.

        Args:
            workspace_root: Workspace root, or None when no workspace is open.

        Returns:
            WorkspaceConfig, or None when absent or unparsable.
        """
        if workspace_root is None:
            return None

        config_path = self.workspace_rules_path(workspace_root) / WORKSPACE_CONFIG_FILENAME
        if not config_path.exists():
            return None

        try:
            data = json.loads(config_path.read_text(encoding="utf-8"))
            return WorkspaceConfig.model_validate(data)
        except (OSError, ValueError) as e:
            # pydantic's ValidationError is a ValueError
            logger.warning(f"Unable to parse {config_path}: {e}")
            return None

    # -------------------------------------------------------------------------
    # Remote feeds
    # -------------------------------------------------------------------------

    async def load_remote(
        self,
        context: FrameworkContext,
        urls: Sequence[str] | None,
    ) -> list[RuleSet]:
        """
        Fetch remote rule sets concurrently.

        Each URL is fetched independently under ``remote_timeout``. A URL that
        fails in any way (bad scheme, network error, status >= 400, invalid
        JSON or shape) is logged and skipped. Fetched sets are loaded as
        ``context`` regardless of the category they declare.

        Args:
            context: Framework context the rules are requested for.
            urls: Feed URLs in precedence order.

        Returns:
            Successfully fetched sets, in the order of ``urls``.
        """
        if not urls:
            return []

        async with httpx.AsyncClient(
            timeout=self.remote_timeout,
            follow_redirects=True,
            transport=self._transport,
        ) as client:
            fetched = await asyncio.gather(
                *(self._fetch_remote(client, context, url) for url in urls)
            )

        results = [rule_set for rule_set in fetched if rule_set is not None]
        logger.info(
            f"Fetched {len(results)}/{len(urls)} remote rule sets for {context.value}",
            extra={"context": context.value, "urls": list(urls)},
        )
        return results

    async def _fetch_remote(
        self,
        client: httpx.AsyncClient,
        context: FrameworkContext,
        url: str,
    ) -> RuleSet | None:
        if urlsplit(url).scheme not in ("http", "https"):
            logger.warning(f"Skipping remote rules with unsupported URL: {url}")
            return None

        try:
            response = await client.get(url)
        except (httpx.HTTPError, httpx.InvalidURL) as e:
            logger.warning(f"Unable to fetch rules from {url}: {type(e).__name__}: {e}")
            return None

        if response.status_code >= 400:
            logger.warning(f"Unable to fetch rules from {url}: HTTP {response.status_code}")
            return None

        try:
            data = response.json()
            return parse_rule_set(data, context, RuleOrigin.REMOTE, url)
        except (ValueError, RuleSetFormatError) as e:
            logger.warning(f"Failed to parse rules from {url}: {e}")
            return None
