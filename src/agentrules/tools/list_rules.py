"""Tool handler for list_rules.

Receives AppState, delegates to the RuleManager, and returns a structured
dict. No MCP or FastMCP imports; server.py handles the MCP wiring.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

import structlog

from agentrules.models.tools import ListRulesOutput

if TYPE_CHECKING:
    from agentrules.state import AppState

_SOURCE_LABELS = {
    "github": "the GitHub repository",
    "local": "the local rules directory",
}


async def handle(state: AppState) -> dict:
    """Handle a list_rules tool call."""
    log = structlog.get_logger().bind(tool="list_rules")
    log.info("handler_called")

    domains = await state.manager.list_domains()
    log.info("list_complete", domain_count=len(domains))

    if domains:
        count = len(domains)
        message = f"Found {count} rule domain{'' if count == 1 else 's'}"
    else:
        message = f"No rule files found in {_SOURCE_LABELS[state.settings.source]}."

    output = ListRulesOutput(domains=domains, total_count=len(domains), message=message)
    return output.model_dump(mode="json", by_alias=True, exclude_none=True)
