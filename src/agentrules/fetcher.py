"""GitHub rule file fetcher with raw-content fallback.

All network I/O for rule files goes through a single GitHubFetcher instance
shared across tool calls. The fetcher receives an httpx.AsyncClient via
constructor injection; the lifespan owns the client lifecycle.

Resolution of a domain tries every (directory x extension) candidate in a
fixed order, first against the contents API and then, when the API is
throttled or erroring, against raw.githubusercontent.com which has no quota.
"""

from __future__ import annotations

import base64
import binascii
import re
import time
from typing import TYPE_CHECKING

import httpx
import structlog
from pydantic import ValidationError

from agentrules.errors import RateLimitedError, RuleNotFoundError, SourceError
from agentrules.models.github import FileContents

if TYPE_CHECKING:
    from collections.abc import Callable, Iterable

    from agentrules.config import GitHubSettings, HttpSettings

log = structlog.get_logger()

USER_AGENT = "agent-rules-mcp"

DEFAULT_DIRECTORIES: tuple[str, ...] = ("chatmodes", "prompts", "instructions")
COMPOUND_MARKERS: tuple[str, ...] = (".chatmode", ".prompt", ".instructions")
# Probe order matters: specialised rule types win over plain markdown.
RULE_EXTENSIONS: tuple[str, ...] = (
    *(f"{marker}.md" for marker in COMPOUND_MARKERS),
    ".md",
    ".mdc",
)
NON_RULE_FILES: frozenset[str] = frozenset(
    {
        "README.md",
        "CONTRIBUTING.md",
        "CODE_OF_CONDUCT.md",
        "SECURITY.md",
        "SUPPORT.md",
        "LICENSE.md",
    }
)
THROTTLE_STATUS_CODES: frozenset[int] = frozenset({403, 429})

_VALID_DOMAIN_RE = re.compile(r"[A-Za-z0-9._-]+")


def build_http_client(settings: HttpSettings) -> httpx.AsyncClient:
    """Create the shared httpx client. Called once at startup."""
    return httpx.AsyncClient(
        follow_redirects=True,
        timeout=httpx.Timeout(settings.timeout_seconds),
        headers={"User-Agent": USER_AGENT},
        limits=httpx.Limits(
            max_connections=10,
            max_keepalive_connections=5,
        ),
    )


# ---------------------------------------------------------------------------
# Domain <-> filename helpers
# ---------------------------------------------------------------------------


def search_directories(path: str) -> list[str]:
    """The configured directory, or the conventional default set."""
    return [path] if path else list(DEFAULT_DIRECTORIES)


def extract_domain(filename: str) -> str:
    """Inverse of ``domain + ext`` for every extension in ``RULE_EXTENSIONS``.

    ``'react.md'`` → ``'react'``, ``'mode.chatmode.md'`` → ``'mode'``,
    ``'react.mdc'`` → ``'react'``. Unrecognised names are returned unchanged.
    """
    if filename.endswith(".md"):
        base = filename[: -len(".md")]
        for marker in COMPOUND_MARKERS:
            if base.endswith(marker):
                return base[: -len(marker)]
        return base
    if filename.endswith(".mdc"):
        return filename[: -len(".mdc")]
    return filename


def is_valid_domain(domain: str) -> bool:
    return bool(_VALID_DOMAIN_RE.fullmatch(domain))


def is_rule_file(filename: str) -> bool:
    if filename in NON_RULE_FILES:
        return False
    if any(filename.endswith(f"{marker}.md") for marker in COMPOUND_MARKERS):
        return True
    if filename.endswith(".md"):
        return not filename.startswith("README")
    return filename.endswith(".mdc")


def domains_from_filenames(filenames: Iterable[str]) -> list[str]:
    """Filter to rule files and deduplicate by domain, first occurrence wins."""
    seen: set[str] = set()
    domains: list[str] = []
    for name in filenames:
        if not is_rule_file(name):
            continue
        domain = extract_domain(name)
        if domain in seen:
            continue
        if not is_valid_domain(domain):
            log.warning("invalid_domain_skipped", domain=domain, filename=name)
            continue
        seen.add(domain)
        domains.append(domain)
    return domains


def api_headers(token: str | None) -> dict[str, str]:
    headers = {"Accept": "application/vnd.github.v3+json"}
    if token:
        headers["Authorization"] = f"token {token}"
    return headers


# ---------------------------------------------------------------------------
# Rate limiting
# ---------------------------------------------------------------------------


class RateLimitTracker:
    """Cooldown window during which the contents API is not called.

    Shared by the fetcher and the directory lister: once either sees the API
    throttle, both go straight to their fallbacks until the window passes.
    """

    def __init__(
        self,
        default_cooldown_seconds: float = 60,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._default_cooldown = default_cooldown_seconds
        self._clock = clock
        self.reset_at: float = 0.0  # epoch seconds, same clock as x-ratelimit-reset

    @property
    def active(self) -> bool:
        return self._clock() < self.reset_at

    def observe(self, response: httpx.Response) -> bool:
        """Start a cooldown if ``response`` shows the quota is exhausted.

        Returns True when the response itself was rejected for throttling.
        """
        rejected = response.status_code in THROTTLE_STATUS_CODES
        exhausted = response.headers.get("x-ratelimit-remaining") == "0"
        if not rejected and not exhausted:
            return False

        now = self._clock()
        reset_at = now + self._default_cooldown
        header = response.headers.get("x-ratelimit-reset")
        if header:
            try:
                parsed = float(header)
            except ValueError:
                log.debug("rate_limit_reset_unparseable", value=header)
            else:
                if parsed > now:
                    reset_at = parsed

        self.reset_at = max(self.reset_at, reset_at)
        log.warning(
            "rate_limit_cooldown_started",
            status_code=response.status_code,
            cooldown_seconds=round(self.reset_at - now),
        )
        return rejected


# ---------------------------------------------------------------------------
# Fetcher
# ---------------------------------------------------------------------------


class GitHubFetcher:
    """Resolves a domain to rule file text from a GitHub repository."""

    def __init__(
        self,
        client: httpx.AsyncClient,
        settings: GitHubSettings,
        rate_limit: RateLimitTracker,
    ) -> None:
        self._client = client
        self._settings = settings
        self._rate_limit = rate_limit

    @property
    def has_token(self) -> bool:
        return bool(self._settings.token)

    async def fetch(self, domain: str) -> str:
        """Return the raw text of the first candidate file for ``domain``.

        Raises RuleNotFoundError when no candidate exists, SourceError when
        the fallback transport also failed for a reason other than 404.
        """
        directories = search_directories(self._settings.path)

        if self._rate_limit.active:
            log.info("rule_fetch_cooldown_active", domain=domain)
            return await self._fetch_raw(domain, directories)

        try:
            return await self._fetch_api(domain, directories)
        except SourceError as exc:
            log.warning("rule_fetch_fallback", domain=domain, reason=str(exc))
            return await self._fetch_raw(domain, directories)

    async def _fetch_api(self, domain: str, directories: list[str]) -> str:
        s = self._settings
        headers = api_headers(s.token)

        for directory in directories:
            for ext in RULE_EXTENSIONS:
                url = f"{s.api_url}/repos/{s.owner}/{s.repo}/contents/{directory}/{domain}{ext}"
                try:
                    response = await self._client.get(
                        url, params={"ref": s.branch}, headers=headers
                    )
                except httpx.HTTPError as exc:
                    raise SourceError(f"Network error fetching {url}: {exc}") from exc

                if self._rate_limit.observe(response):
                    raise RateLimitedError(f"GitHub API rate limited ({response.status_code})")
                if response.status_code == 404:
                    continue
                if not response.is_success:
                    raise SourceError(f"GitHub API error: HTTP {response.status_code} for {url}")

                try:
                    payload = FileContents.model_validate_json(response.content)
                except ValidationError as exc:
                    raise SourceError(f"Unexpected contents API response for {url}") from exc

                if payload.type != "file":
                    log.debug("rule_candidate_not_a_file", url=url, type=payload.type)
                    continue

                text = _decode_contents(payload, url)
                log.info(
                    "rule_fetch_complete",
                    domain=domain,
                    transport="api",
                    path=f"{directory}/{domain}{ext}",
                    content_length=len(text),
                )
                return text

        raise RuleNotFoundError(domain, directories, RULE_EXTENSIONS)

    async def _fetch_raw(self, domain: str, directories: list[str]) -> str:
        s = self._settings
        last_error: str | None = None

        for directory in directories:
            for ext in RULE_EXTENSIONS:
                url = f"{s.raw_url}/{s.owner}/{s.repo}/{s.branch}/{directory}/{domain}{ext}"
                try:
                    response = await self._client.get(url)
                except httpx.HTTPError as exc:
                    last_error = f"Network error fetching {url}: {exc}"
                    log.warning("raw_fetch_error", url=url, error=str(exc))
                    continue

                if response.status_code == 404:
                    continue
                if not response.is_success:
                    last_error = f"Raw GitHub error: HTTP {response.status_code} for {url}"
                    log.warning("raw_fetch_error", url=url, status_code=response.status_code)
                    continue

                log.info(
                    "rule_fetch_complete",
                    domain=domain,
                    transport="raw",
                    path=f"{directory}/{domain}{ext}",
                    content_length=len(response.text),
                )
                return response.text

        if last_error is not None:
            raise SourceError(last_error)
        raise RuleNotFoundError(domain, directories, RULE_EXTENSIONS, via="raw URL")


def _decode_contents(payload: FileContents, url: str) -> str:
    if payload.encoding != "base64":
        # Files over 1 MB come back without inline content
        raise SourceError(f"Contents API returned no inline content for {url}")
    try:
        raw = base64.b64decode(payload.content)
    except (binascii.Error, ValueError) as exc:
        raise SourceError(f"Invalid base64 content for {url}") from exc
    return raw.decode("utf-8", errors="replace")
