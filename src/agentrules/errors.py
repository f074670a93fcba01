from __future__ import annotations

from enum import StrEnum


class ErrorCode(StrEnum):
    DOMAIN_NOT_FOUND = "DOMAIN_NOT_FOUND"
    RULES_FETCH_FAILED = "RULES_FETCH_FAILED"
    INVALID_INPUT = "INVALID_INPUT"


class AgentRulesError(Exception):
    """Raised by tool handlers for all expected failure conditions.

    Caught by server.py and serialised into the MCP error response.
    Never catch this inside business logic; let it propagate to the
    MCP layer so the agent receives a structured error with a suggestion.
    """

    def __init__(
        self,
        code: ErrorCode,
        message: str,
        suggestion: str,
        recoverable: bool = False,
    ) -> None:
        super().__init__(message)
        self.code = code
        self.message = message
        self.suggestion = suggestion
        self.recoverable = recoverable

    def to_dict(self) -> dict:
        return {
            "error": {
                "code": self.code,
                "message": self.message,
                "suggestion": self.suggestion,
                "recoverable": self.recoverable,
            }
        }


# ---------------------------------------------------------------------------
# Rule source errors. Raised by fetchers/listers, consumed by RuleManager;
# they never reach the MCP layer directly.
# ---------------------------------------------------------------------------


class SourceError(Exception):
    """A rule source could not be read (network failure, bad status, bad shape)."""


class RateLimitedError(SourceError):
    """The primary transport signalled that its request quota is exhausted."""


class RuleNotFoundError(Exception):
    """No candidate file resolved for a domain."""

    def __init__(
        self,
        domain: str,
        directories: list[str],
        extensions: tuple[str, ...],
        *,
        via: str = "",
    ) -> None:
        where = f" via {via}" if via else ""
        super().__init__(
            f"Rule file not found for domain: {domain}{where} "
            f"(searched in {', '.join(directories)} with extensions {', '.join(extensions)})"
        )
        self.domain = domain
        self.directories = directories
        self.extensions = extensions
