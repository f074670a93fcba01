"""Directory listing of available rule domains.

The combined raw listing of all search directories is cached in a single
slot for ``listing_ttl_seconds``. While the contents API is throttled the
last listing is served even if expired; with no listing at all a small
built-in domain list keeps list_rules minimally useful.
"""

from __future__ import annotations

import time
from typing import TYPE_CHECKING

import httpx
import structlog
from pydantic import ValidationError

from agentrules.errors import RateLimitedError, SourceError
from agentrules.fetcher import api_headers, domains_from_filenames, search_directories
from agentrules.models.github import ContentsEntry, DirectoryListing

if TYPE_CHECKING:
    from collections.abc import Callable

    from agentrules.config import GitHubSettings
    from agentrules.fetcher import RateLimitTracker

log = structlog.get_logger()

FALLBACK_DOMAINS: tuple[str, ...] = (
    "accessibility",
    "api-design",
    "clean-code",
    "nextjs",
    "python",
    "react",
    "security",
    "testing",
    "typescript",
)


def domains_from_listing(entries: list[ContentsEntry]) -> list[str]:
    return domains_from_filenames(entry.name for entry in entries if entry.type == "file")


class DirectoryLister:
    """Lists rule domains via the GitHub contents API."""

    def __init__(
        self,
        client: httpx.AsyncClient,
        settings: GitHubSettings,
        rate_limit: RateLimitTracker,
        *,
        ttl_seconds: float = 600,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._client = client
        self._settings = settings
        self._rate_limit = rate_limit
        self._ttl = ttl_seconds
        self._clock = clock
        self._listing: list[ContentsEntry] | None = None
        self._listed_at: float = 0.0

    async def list_domains(self) -> list[str]:
        """Return available domains. Never raises."""
        if self._listing is not None and self._clock() - self._listed_at < self._ttl:
            log.debug("listing_cache_hit", entries=len(self._listing))
            return domains_from_listing(self._listing)

        if self._rate_limit.active:
            return self._throttled_fallback()

        entries: list[ContentsEntry] = []
        for directory in search_directories(self._settings.path):
            try:
                entries.extend(await self._fetch_directory(directory))
            except RateLimitedError:
                log.warning("listing_rate_limited", directory=directory)
                return self._throttled_fallback()
            except SourceError as exc:
                # One broken directory must not hide the others
                log.warning("listing_directory_failed", directory=directory, error=str(exc))

        self._listing = entries
        self._listed_at = self._clock()
        domains = domains_from_listing(entries)
        log.info("listing_complete", entries=len(entries), domains=len(domains))
        return domains

    def invalidate(self) -> None:
        self._listing = None
        self._listed_at = 0.0

    def _throttled_fallback(self) -> list[str]:
        if self._listing is not None:
            log.info("listing_served_stale", entries=len(self._listing))
            return domains_from_listing(self._listing)
        log.warning("listing_using_fallback_domains", domains=len(FALLBACK_DOMAINS))
        return list(FALLBACK_DOMAINS)

    async def _fetch_directory(self, directory: str) -> list[ContentsEntry]:
        s = self._settings
        url = f"{s.api_url}/repos/{s.owner}/{s.repo}/contents/{directory}"
        try:
            response = await self._client.get(
                url, params={"ref": s.branch}, headers=api_headers(s.token)
            )
        except httpx.HTTPError as exc:
            raise SourceError(f"Network error listing {directory}: {exc}") from exc

        if self._rate_limit.observe(response):
            raise RateLimitedError(f"GitHub API rate limited ({response.status_code})")
        if response.status_code == 404:
            log.debug("listing_directory_missing", directory=directory)
            return []
        if not response.is_success:
            raise SourceError(f"GitHub API error for {directory}: HTTP {response.status_code}")

        try:
            return DirectoryListing.validate_json(response.content)
        except ValidationError as exc:
            raise SourceError(f"Unexpected directory listing for {directory}") from exc
