from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field


class RuleContent(BaseModel):
    """One resolved rule document. Rebuilt on every cache miss, never mutated."""

    model_config = ConfigDict(frozen=True)

    domain: str
    content: str  # Body with the frontmatter block removed, trimmed
    description: str | None = None
    last_updated: str | None = None
    version: str | None = None


class DomainInfo(BaseModel):
    """Single entry returned by list_rules."""

    domain: str
    description: str
    last_updated: str | None = Field(default=None, serialization_alias="lastUpdated")
