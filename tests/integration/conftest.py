"""Integration test fixtures.

Provides a fully wired AppState over the respx-backed GitHub fake from
tests/conftest.py, and an isolated environment for subprocess MCP tests.
"""

from __future__ import annotations

import os
from typing import TYPE_CHECKING

import pytest

from agentrules.config import Settings
from agentrules.manager import build_rule_manager
from agentrules.state import AppState

if TYPE_CHECKING:
    from pathlib import Path

    import httpx
    from conftest import FakeGitHub

    from agentrules.config import GitHubSettings


SECURITY_RULE = (
    "---\n"
    "description: Security best practices\n"
    "version: 2.0\n"
    "---\n"
    "# Security Rules\n"
    "Never commit secrets.\n"
)
REACT_RULE = (
    "# React Guidelines\n"
    "\n"
    "- Last Updated: 2024-01-15\n"
    "\n"
    "Prefer function components and hooks.\n"
)


@pytest.fixture()
def repo(fake_github: FakeGitHub) -> FakeGitHub:
    """The GitHub fake seeded with two rule files in different directories."""
    fake_github.files["chatmodes/security.chatmode.md"] = SECURITY_RULE
    fake_github.files["instructions/react.md"] = REACT_RULE
    return fake_github


@pytest.fixture()
def app_state(
    github_settings: GitHubSettings,
    http_client: httpx.AsyncClient,
    fake_github: FakeGitHub,
) -> AppState:
    settings = Settings(github=github_settings)
    return AppState(
        settings=settings,
        manager=build_rule_manager(settings, http_client),
        http_client=http_client,
    )


@pytest.fixture()
def subprocess_env(tmp_path: Path) -> dict[str, str]:
    """Baseline env dict for subprocess-based MCP integration tests.

    Serves rules from an isolated local directory so no network is needed.
    """
    rules_dir = tmp_path / "rules"
    (rules_dir / "chatmodes").mkdir(parents=True)
    (rules_dir / "security.md").write_text(SECURITY_RULE, encoding="utf-8")
    (rules_dir / "chatmodes" / "react.chatmode.md").write_text(REACT_RULE, encoding="utf-8")

    env = os.environ.copy()
    env["AGENTRULES__SOURCE"] = "local"
    env["AGENTRULES__LOCAL__RULES_DIR"] = str(rules_dir)
    env["AGENTRULES__LOGGING__LEVEL"] = "WARNING"
    return env
