"""MCP server entrypoint.

Responsibilities (and nothing more):
- Configure structlog
- Create AppState via the FastMCP lifespan context manager
- Register tools
- Start the stdio transport
"""

from __future__ import annotations

import json
import logging
import sys
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING

import structlog
from mcp.server.fastmcp import Context, FastMCP
from mcp.types import CallToolResult, TextContent

import agentrules.tools.get_rules as t_get_rules
import agentrules.tools.list_rules as t_list_rules
from agentrules import __version__
from agentrules.config import Settings, require_github_repository
from agentrules.errors import AgentRulesError
from agentrules.fetcher import build_http_client
from agentrules.manager import build_rule_manager
from agentrules.state import AppState

if TYPE_CHECKING:
    from collections.abc import AsyncGenerator

log = structlog.get_logger()


# ---------------------------------------------------------------------------
# Logging setup
# ---------------------------------------------------------------------------


def _setup_logging(settings: Settings) -> None:
    """Configure structlog. Called once at startup before any log statements."""
    log_level = logging.getLevelNamesMapping()[settings.logging.level]

    shared_processors: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.StackInfoRenderer(),
        structlog.processors.TimeStamper(fmt="iso"),
    ]

    if settings.logging.format == "json":
        processors = [*shared_processors, structlog.processors.JSONRenderer()]
    else:
        processors = [*shared_processors, structlog.dev.ConsoleRenderer()]

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(log_level),
        context_class=dict,
        # Logs go to stderr: stdout is reserved for the MCP JSON-RPC stream
        logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
        cache_logger_on_first_use=True,
    )


# ---------------------------------------------------------------------------
# Lifespan
# ---------------------------------------------------------------------------


@asynccontextmanager
async def lifespan(server: FastMCP) -> AsyncGenerator[AppState, None]:
    """Create and tear down all shared resources for the server's lifetime."""
    settings = Settings()
    _setup_logging(settings)

    log.info("server_starting", version=__version__, source=settings.source)
    require_github_repository(settings)

    http_client = build_http_client(settings.http) if settings.source == "github" else None
    manager = build_rule_manager(settings, http_client)
    state = AppState(settings=settings, manager=manager, http_client=http_client)

    # Warm the directory listing so the first list_rules call is served from cache
    domains = await manager.domain_names()
    if not domains:
        log.warning("no_rule_files_found", source=settings.source)

    log.info(
        "server_started",
        version=__version__,
        source=settings.source,
        domain_count=len(domains),
        authenticated=manager.privileged,
    )

    try:
        yield state
    finally:
        manager.clear()
        if http_client is not None:
            await http_client.aclose()
        log.info("server_stopping")


# ---------------------------------------------------------------------------
# FastMCP instance and tool registration
# ---------------------------------------------------------------------------

mcp = FastMCP("agent-rules-mcp", lifespan=lifespan)
# FastMCP doesn't expose a version kwarg, so set it on the underlying Server
# so the MCP initialize handshake reports our version, not the SDK's.
mcp._mcp_server.version = __version__  # pyright: ignore[reportPrivateUsage]


def _serialise_tool_error(error: AgentRulesError) -> CallToolResult:
    """Convert an AgentRulesError to the MCP tool error result envelope."""
    return CallToolResult(
        content=[TextContent(type="text", text=json.dumps(error.to_dict()))],
        isError=True,
    )


@mcp.tool()
async def get_rules(
    ctx: Context,
    domain: str | None = None,
    domains: list[str] | None = None,
) -> object:
    """Retrieve development rules and best practices for one or more domains.

    Pass exactly one of:
    - domain: a single domain name, e.g. "react"
    - domains: several domain names, e.g. ["react", "security", "typescript"]

    Call list_rules first unless you already know the exact domain names.
    When asked to "apply all rules", pass every domain name from list_rules
    in the domains array. Domain names may contain only letters, numbers,
    hyphens and underscores.
    """
    state: AppState = ctx.request_context.lifespan_context
    try:
        return await t_get_rules.handle(domain, domains, state)
    except AgentRulesError as exc:
        log.warning(
            "tool_error",
            tool="get_rules",
            code=exc.code,
            message=exc.message,
            recoverable=exc.recoverable,
        )
        return _serialise_tool_error(exc)
    except Exception:
        log.error("tool_unexpected_error", tool="get_rules", exc_info=True)
        raise


@mcp.tool()
async def list_rules(ctx: Context) -> object:
    """List all available rule domains with descriptions and metadata.

    Each entry has the exact domain name to pass to get_rules (the file name
    without its .md/.mdc extension), a human-readable description (declared in
    the file or generated from its content) and, when available, lastUpdated.
    """
    state: AppState = ctx.request_context.lifespan_context
    try:
        return await t_list_rules.handle(state)
    except Exception:
        log.error("tool_unexpected_error", tool="list_rules", exc_info=True)
        raise


# ---------------------------------------------------------------------------
# Entrypoint
# ---------------------------------------------------------------------------


def main() -> None:
    mcp.run()


if __name__ == "__main__":
    main()
