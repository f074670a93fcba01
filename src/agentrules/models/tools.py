from __future__ import annotations

from pydantic import BaseModel, Field, model_validator

from agentrules.models.rules import DomainInfo


class GetRulesInput(BaseModel):
    """Arguments of get_rules: exactly one of ``domain`` or ``domains``."""

    domain: str | None = None
    domains: list[str] | None = None

    @model_validator(mode="after")
    def exactly_one_selector(self) -> GetRulesInput:
        has_domain = self.domain is not None
        has_domains = self.domains is not None
        if has_domain == has_domains:
            raise ValueError("Must provide either domain or domains parameter, but not both")
        if has_domain and not self.domain.strip():  # type: ignore[union-attr]
            raise ValueError("Domain parameter cannot be empty")
        if has_domains:
            if not self.domains:
                raise ValueError("Domains array cannot be empty")
            if any(not d.strip() for d in self.domains):  # type: ignore[union-attr]
                raise ValueError("All domains must be non-empty strings")
        return self

    def requested(self) -> list[str]:
        return [self.domain] if self.domain is not None else list(self.domains or [])


class RuleDocument(BaseModel):
    title: str
    content: str


class GetRulesOutput(BaseModel):
    rules: list[RuleDocument]
    total: int
    failed: list[str] | None = None  # Only set on partial success


class ListRulesOutput(BaseModel):
    domains: list[DomainInfo]
    total_count: int = Field(serialization_alias="totalCount")
    message: str
