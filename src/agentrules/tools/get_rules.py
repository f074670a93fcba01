"""Tool handler for get_rules.

Receives AppState, validates the requested domains before any network
access, resolves them concurrently through the RuleManager and returns a
structured dict. No MCP or FastMCP imports; server.py handles the MCP wiring.
"""

from __future__ import annotations

import re
from typing import TYPE_CHECKING

import structlog
from rapidfuzz import fuzz, process

from agentrules.errors import AgentRulesError, ErrorCode, RuleNotFoundError
from agentrules.fetcher import RULE_EXTENSIONS
from agentrules.models.tools import GetRulesInput, GetRulesOutput, RuleDocument

if TYPE_CHECKING:
    from agentrules.models.rules import RuleContent
    from agentrules.state import AppState

_DISALLOWED_CHARS_RE = re.compile(r"[^A-Za-z0-9_-]")


async def handle(domain: str | None, domains: list[str] | None, state: AppState) -> dict:
    """Handle a get_rules tool call."""
    log = structlog.get_logger().bind(tool="get_rules")
    log.info("handler_called", domain=domain, domains=domains)

    # Validate input
    try:
        validated = GetRulesInput(domain=domain, domains=domains)
    except ValueError as exc:
        raise AgentRulesError(
            code=ErrorCode.INVALID_INPUT,
            message=str(exc),
            suggestion=(
                'For a single domain pass {"domain": "react"}; '
                'for several pass {"domains": ["react", "security"]}.'
            ),
            recoverable=False,
        ) from exc

    requested = validated.requested()
    for name in requested:
        _check_domain_characters(name)

    results = await state.manager.get_multiple(requested)

    resolved: list[RuleContent] = []
    failed: list[str] = []
    for name in requested:
        rule = results.get(name)
        if rule is None:
            failed.append(name)
        else:
            resolved.append(rule)

    log.info("rules_resolved", resolved=len(resolved), failed=len(failed))

    if not resolved:
        available = await state.manager.domain_names()
        # Only a confirmed 404 everywhere means the domain does not exist
        unreadable = [
            name
            for name in failed
            if not isinstance(state.manager.failure(name), RuleNotFoundError)
        ]
        if unreadable:
            raise AgentRulesError(
                code=ErrorCode.RULES_FETCH_FAILED,
                message=f"Failed to fetch rules for: {', '.join(unreadable)}",
                suggestion=" ".join(
                    [
                        "The repository could not be read; GitHub may be rate limiting "
                        "or unreachable. Retry in a minute, or configure "
                        "AGENTRULES__GITHUB__TOKEN for a higher API quota.",
                        *_domain_hints(failed, available),
                    ]
                ),
                recoverable=True,
            )
        raise AgentRulesError(
            code=ErrorCode.DOMAIN_NOT_FOUND,
            message=f"No rules found for any of the requested domains: {', '.join(failed)}",
            suggestion=" ".join(
                [
                    "Check if the domain names are spelled correctly.",
                    "Call list_rules to see available domains.",
                    *_domain_hints(failed, available),
                ]
            ),
            recoverable=False,
        )

    if len(requested) == 1:
        rule = resolved[0]
        return RuleDocument(title=rule.domain, content=rule.content).model_dump()

    output = GetRulesOutput(
        rules=[RuleDocument(title=rule.domain, content=rule.content) for rule in resolved],
        total=len(resolved),
        failed=failed or None,
    )
    return output.model_dump(exclude_none=True)


def _check_domain_characters(name: str) -> None:
    """Reject, rather than silently rewrite, names with disallowed characters."""
    if _DISALLOWED_CHARS_RE.sub("", name) == name:
        return
    raise AgentRulesError(
        code=ErrorCode.INVALID_INPUT,
        message=(
            f"Invalid domain name {name!r}: only alphanumeric characters, "
            "hyphens, and underscores are allowed"
        ),
        suggestion=(
            "Use only letters, numbers, hyphens (-), and underscores (_). "
            "Remove special characters and spaces. "
            'Examples: "react", "next-js", "security_rules".'
        ),
        recoverable=False,
    )


def _domain_hints(failed: list[str], available: list[str]) -> list[str]:
    """Closest matches, the available domains and the filename convention."""
    hints: list[str] = []

    close: list[str] = []
    for name in failed:
        for match, _score, _idx in process.extract(
            name, available, scorer=fuzz.ratio, limit=3, score_cutoff=60
        ):
            if match not in close and match != name:
                close.append(match)
    if close:
        hints.append(f"Did you mean: {', '.join(close)}?")

    if available:
        hints.append(f"Available domains: {', '.join(available)}.")
    hints.append(
        "Domain names match the rule filename without its extension "
        f"({', '.join(RULE_EXTENSIONS)})."
    )
    return hints
