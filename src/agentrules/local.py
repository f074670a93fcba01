"""Rule source backed by a directory on disk.

Mirrors GitHubFetcher and DirectoryLister (same candidate order, same file
filtering) without any network access, quota or cooldown. Useful for rule
sets checked out next to the server and for offline development.
"""

from __future__ import annotations

from pathlib import Path
from typing import TYPE_CHECKING

import structlog

from agentrules.errors import RuleNotFoundError, SourceError
from agentrules.fetcher import (
    DEFAULT_DIRECTORIES,
    RULE_EXTENSIONS,
    domains_from_filenames,
    is_valid_domain,
)

if TYPE_CHECKING:
    from agentrules.config import LocalSettings

log = structlog.get_logger()


class LocalRuleSource:
    """Implements both RuleFetcherProtocol and RuleListerProtocol."""

    def __init__(self, settings: LocalSettings) -> None:
        self.root = Path(settings.rules_dir).expanduser().resolve()
        # Without an explicit path the root itself is searched first
        self.directories = [settings.path] if settings.path else [".", *DEFAULT_DIRECTORIES]

    async def fetch(self, domain: str) -> str:
        if is_valid_domain(domain):
            for directory in self.directories:
                for ext in RULE_EXTENSIONS:
                    candidate = self.root / directory / f"{domain}{ext}"
                    if not candidate.is_file():
                        continue
                    try:
                        text = candidate.read_text(encoding="utf-8", errors="replace")
                    except OSError as exc:
                        raise SourceError(f"Failed to read {candidate}: {exc}") from exc
                    log.info(
                        "rule_fetch_complete",
                        domain=domain,
                        transport="local",
                        path=str(candidate),
                        content_length=len(text),
                    )
                    return text

        raise RuleNotFoundError(domain, self.directories, RULE_EXTENSIONS, via=str(self.root))

    async def list_domains(self) -> list[str]:
        filenames: list[str] = []
        for directory in self.directories:
            folder = self.root / directory
            if not folder.is_dir():
                log.debug("listing_directory_missing", directory=str(folder))
                continue
            try:
                filenames.extend(sorted(p.name for p in folder.iterdir() if p.is_file()))
            except OSError as exc:
                log.warning("listing_directory_failed", directory=str(folder), error=str(exc))
        return domains_from_filenames(filenames)

    def invalidate(self) -> None:
        # Listings are read from disk on every call
        pass
