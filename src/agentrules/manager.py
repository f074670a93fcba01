"""Rule manager: cache, request coalescing and listing on top of a rule source.

The manager is the single entry point for tool handlers. Single-domain
lookups never raise; a missing or unreadable rule is logged and reported as
``None`` so that callers can prefer partial success over total failure.

All state lives on the instance and is mutated only between awaits, so no
locks are needed under asyncio's single-threaded scheduling.
"""

from __future__ import annotations

import asyncio
import time
from typing import TYPE_CHECKING

import structlog

from agentrules.errors import RuleNotFoundError
from agentrules.fetcher import GitHubFetcher, RateLimitTracker
from agentrules.lister import DirectoryLister
from agentrules.local import LocalRuleSource
from agentrules.models.rules import DomainInfo, RuleContent
from agentrules.parser import default_description, parse_rule_content

if TYPE_CHECKING:
    from collections.abc import Callable

    import httpx

    from agentrules.config import Settings
    from agentrules.protocols import RuleFetcherProtocol, RuleListerProtocol

log = structlog.get_logger()


class RuleManager:
    """Per-domain TTL cache over a fetcher, with in-flight deduplication."""

    def __init__(
        self,
        fetcher: RuleFetcherProtocol,
        lister: RuleListerProtocol,
        *,
        ttl_seconds: float = 300,
        privileged: bool = False,
        unauthenticated_limit: int = 10,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._fetcher = fetcher
        self._lister = lister
        self._ttl = ttl_seconds
        # Privileged sources (token or local disk) can afford one fetch per domain
        self.privileged = privileged
        self._unauthenticated_limit = unauthenticated_limit
        self._clock = clock
        self._cache: dict[str, tuple[RuleContent, float]] = {}
        self._in_flight: dict[str, asyncio.Task[RuleContent | None]] = {}
        # Why the latest lookup of a domain returned None
        self._failures: dict[str, Exception] = {}

    # ------------------------------------------------------------------
    # Single domain
    # ------------------------------------------------------------------

    async def get_content(self, domain: str) -> RuleContent | None:
        """Resolve one domain, from cache when fresh. Returns None on any failure.

        The exception behind a None result stays available via ``failure()``
        until the next lookup of the same domain succeeds.
        """
        cached = self._get_cached(domain)
        if cached is not None:
            log.debug("cache_hit", domain=domain)
            return cached

        try:
            text = await self._fetcher.fetch(domain)
        except RuleNotFoundError as exc:
            log.warning("rule_not_found", domain=domain, reason=str(exc))
            self._failures[domain] = exc
            return None
        except Exception as exc:
            log.error("rule_fetch_error", domain=domain, exc_info=True)
            self._failures[domain] = exc
            return None

        rule = parse_rule_content(text, domain)
        self._cache[domain] = (rule, self._clock())
        self._failures.pop(domain, None)
        return rule

    async def get_content_safe(self, domain: str) -> RuleContent | None:
        """Like get_content, but concurrent callers for one domain share a fetch.

        The shared task leaves the in-flight table when it settles, not when
        its first caller returns.
        """
        task = self._in_flight.get(domain)
        if task is not None:
            log.debug("request_coalesced", domain=domain)
            return await asyncio.shield(task)

        task = asyncio.ensure_future(self.get_content(domain))
        self._in_flight[domain] = task
        task.add_done_callback(lambda done: self._settle(domain, done))
        return await asyncio.shield(task)

    def failure(self, domain: str) -> Exception | None:
        """The exception that made the latest lookup of ``domain`` return None."""
        return self._failures.get(domain)

    def _settle(self, domain: str, task: asyncio.Task[RuleContent | None]) -> None:
        if self._in_flight.get(domain) is task:
            del self._in_flight[domain]

    async def get_multiple(self, domains: list[str]) -> dict[str, RuleContent | None]:
        """Resolve all domains concurrently; each failure maps to None independently."""
        outcomes = await asyncio.gather(
            *(self.get_content_safe(domain) for domain in domains),
            return_exceptions=True,
        )
        results: dict[str, RuleContent | None] = {}
        for domain, outcome in zip(domains, outcomes, strict=True):
            if isinstance(outcome, BaseException):
                log.warning("rule_lookup_failed", domain=domain, error=repr(outcome))
                results[domain] = None
            else:
                results[domain] = outcome
        return results

    # ------------------------------------------------------------------
    # Listing
    # ------------------------------------------------------------------

    async def domain_names(self) -> list[str]:
        """Available domain names, without resolving any content. Never raises."""
        try:
            return await self._lister.list_domains()
        except Exception:
            log.error("domain_listing_error", exc_info=True)
            return []

    async def list_domains(self) -> list[DomainInfo]:
        """Available domains with descriptions. Never raises."""
        domains = await self.domain_names()

        if not self.privileged and len(domains) > self._unauthenticated_limit:
            # One contents API call per domain would burn the anonymous quota
            log.info(
                "listing_metadata_skipped",
                domains=len(domains),
                limit=self._unauthenticated_limit,
            )
            return [DomainInfo(domain=d, description=default_description(d)) for d in domains]

        infos: list[DomainInfo] = []
        for domain in domains:
            rule = await self.get_content(domain)
            if rule is None:
                infos.append(
                    DomainInfo(domain=domain, description=f"Rules for {domain} (metadata unavailable)")
                )
                continue
            infos.append(
                DomainInfo(
                    domain=rule.domain,
                    description=rule.description or default_description(domain),
                    last_updated=rule.last_updated,
                )
            )
        return infos

    # ------------------------------------------------------------------
    # Cache administration
    # ------------------------------------------------------------------

    def clear(self, domain: str | None = None) -> None:
        if domain is not None:
            self._cache.pop(domain, None)
            log.info("cache_cleared", domain=domain)
        else:
            self._cache.clear()
            self._failures.clear()
            self._lister.invalidate()
            log.info("cache_cleared", domain="*")

    def stats(self) -> dict[str, object]:
        return {"size": len(self._cache), "domains": list(self._cache)}

    def _get_cached(self, domain: str) -> RuleContent | None:
        entry = self._cache.get(domain)
        if entry is None:
            return None
        rule, inserted_at = entry
        if self._clock() - inserted_at < self._ttl:
            return rule
        # Lazily evict on access
        del self._cache[domain]
        return None


def build_rule_manager(settings: Settings, client: httpx.AsyncClient | None) -> RuleManager:
    """Wire the configured rule source into a RuleManager."""
    if settings.source == "local":
        source = LocalRuleSource(settings.local)
        log.info("rule_source_configured", source="local", root=str(source.root))
        return RuleManager(
            source,
            source,
            ttl_seconds=settings.cache.ttl_seconds,
            privileged=True,
        )

    if client is None:
        raise ValueError("An HTTP client is required for the GitHub rule source")

    gh = settings.github
    rate_limit = RateLimitTracker(settings.cache.rate_limit_cooldown_seconds)
    fetcher = GitHubFetcher(client, gh, rate_limit)
    lister = DirectoryLister(
        client, gh, rate_limit, ttl_seconds=settings.cache.listing_ttl_seconds
    )
    log.info(
        "rule_source_configured",
        source="github",
        repository=f"{gh.owner}/{gh.repo}",
        path=gh.path or "(default directories)",
        branch=gh.branch,
        authenticated=fetcher.has_token,
    )
    return RuleManager(
        fetcher,
        lister,
        ttl_seconds=settings.cache.ttl_seconds,
        privileged=fetcher.has_token,
        unauthenticated_limit=settings.listing.unauthenticated_limit,
    )
