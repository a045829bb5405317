"""
Local cache of remote standards documents.

Standards documents (framework guidelines, deprecated API lists) are fetched
from configured URLs and stored per workspace under ``.toolbelt-standards``.
JSON bodies are stored parsed; anything else is kept as text. Cached entries
older than a threshold are reported as outdated so hosts can refresh them.

Example:
    >>> manager = StandardsManager("/path/to/site", sources=[react_hooks])
    >>> outdated = manager.find_outdated(max_age_days=14)
    >>> refreshed = await manager.update_sources(outdated)
"""

from __future__ import annotations

import json
import logging
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Iterable

import httpx
from pydantic import ValidationError

from pcw_toolbelt.models import CachedStandard, StandardSource

logger = logging.getLogger(__name__)

STANDARDS_CACHE_DIR = ".toolbelt-standards"
DEFAULT_MAX_AGE_DAYS = 14


class StandardsManager:
    """
    Fetches standards documents and caches them in a workspace.

    Attributes:
        root: Workspace root; the cache lives in ``<root>/.toolbelt-standards``.
        sources: Configured standards sources.
        timeout: Timeout in seconds for each fetch.
    """

    def __init__(
        self,
        root: str | Path,
        sources: Iterable[StandardSource] = (),
        timeout: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.root = Path(root)
        self.sources = list(sources)
        self.timeout = timeout
        self._transport = transport

    def configure_sources(self, sources: Iterable[StandardSource]) -> None:
        self.sources = list(sources)

    @property
    def cache_dir(self) -> Path:
        return self.root / STANDARDS_CACHE_DIR

    def cache_path(self, source_id: str) -> Path:
        return self.cache_dir / f"{source_id}.json"

    # -------------------------------------------------------------------------
    # Cache access
    # -------------------------------------------------------------------------

    def read_cache(self, source_id: str) -> CachedStandard | None:
        """Return the cached document, or None when absent or unreadable."""
        path = self.cache_path(source_id)
        if not path.exists():
            return None

        try:
            return CachedStandard.model_validate_json(path.read_text(encoding="utf-8"))
        except (OSError, ValidationError) as e:
            logger.warning(f"Ignoring unreadable standards cache {path}: {e}")
            return None

    def _write_cache(self, cached: CachedStandard) -> None:
        path = self.cache_path(cached.id)
        try:
            self.cache_dir.mkdir(parents=True, exist_ok=True)
            path.write_text(cached.model_dump_json(by_alias=True, indent=2), encoding="utf-8")
        except OSError as e:
            logger.warning(f"Unable to write standards cache {path}: {e}")

    # -------------------------------------------------------------------------
    # Fetching
    # -------------------------------------------------------------------------

    async def _fetch(self, client: httpx.AsyncClient, url: str) -> str | None:
        try:
            response = await client.get(url)
        except (httpx.HTTPError, httpx.InvalidURL) as e:
            logger.warning(f"Unable to fetch standard from {url}: {type(e).__name__}: {e}")
            return None

        if response.status_code >= 400:
            logger.warning(f"Unable to fetch standard from {url}: HTTP {response.status_code}")
            return None

        return response.text

    async def fetch_and_cache(
        self,
        source: StandardSource,
        client: httpx.AsyncClient | None = None,
    ) -> CachedStandard | None:
        """
        Fetch one standards document and store it in the cache.

        Args:
            source: Source to fetch.
            client: Shared client; a temporary one is created when None.

        Returns:
            The cached document, or None when the fetch failed. A document
            that cannot be written to disk is still returned.
        """
        if client is None:
            async with self._client() as own_client:
                return await self.fetch_and_cache(source, own_client)

        body = await self._fetch(client, source.url)
        if body is None:
            return None

        try:
            content = json.loads(body)
            content_type = "json"
        except ValueError:
            content = body
            content_type = "text"

        cached = CachedStandard(
            id=source.id,
            name=source.name,
            last_updated=datetime.now(timezone.utc),
            content_type=content_type,
            content=content,
        )
        self._write_cache(cached)
        logger.debug(f"Cached standard '{source.id}' ({content_type})")
        return cached

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            timeout=self.timeout,
            follow_redirects=True,
            transport=self._transport,
        )

    # -------------------------------------------------------------------------
    # Refresh
    # -------------------------------------------------------------------------

    def find_outdated(
        self,
        max_age_days: float = DEFAULT_MAX_AGE_DAYS,
        now: datetime | None = None,
    ) -> list[StandardSource]:
        """
        List sources with no cache entry or one at least ``max_age_days`` old.

        Args:
            max_age_days: Age threshold in days.
            now: Reference time (UTC); defaults to the current time.

        Returns:
            Outdated sources in configuration order.
        """
        now = now or datetime.now(timezone.utc)
        threshold = timedelta(days=max_age_days)
        outdated: list[StandardSource] = []

        for source in self.sources:
            cached = self.read_cache(source.id)
            if cached is None:
                outdated.append(source)
                continue

            updated = cached.last_updated
            if updated.tzinfo is None:
                updated = updated.replace(tzinfo=timezone.utc)
            if now - updated >= threshold:
                outdated.append(source)

        return outdated

    async def update_sources(self, sources: Iterable[StandardSource] | None = None) -> int:
        """
        Refresh sources one after another.

        Args:
            sources: Sources to refresh; all configured sources when None.

        Returns:
            Number of sources fetched successfully.
        """
        targets = list(self.sources if sources is None else sources)
        count = 0

        async with self._client() as client:
            for source in targets:
                if await self.fetch_and_cache(source, client) is not None:
                    count += 1

        logger.info(f"Refreshed {count}/{len(targets)} standards sources")
        return count
