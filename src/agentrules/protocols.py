"""Protocol interfaces for swappable components.

RuleManager references these protocols, not the concrete implementations.
This allows:
- Tests to use lightweight in-memory rule sources
- The GitHub and local-directory sources to be swapped without changing
  manager or tool code
"""

from __future__ import annotations

from typing import Protocol


class RuleFetcherProtocol(Protocol):
    """Resolves a domain name to the raw text of its rule file."""

    async def fetch(self, domain: str) -> str: ...


class RuleListerProtocol(Protocol):
    """Enumerates the domains a rule source currently offers."""

    async def list_domains(self) -> list[str]: ...

    def invalidate(self) -> None:
        """Drop any cached listing so the next call re-reads the source."""
        ...
