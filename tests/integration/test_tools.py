"""Integration tests for the tool handlers against a mocked GitHub repository."""

from __future__ import annotations

from typing import TYPE_CHECKING

import httpx
import pytest

import agentrules.tools.get_rules as t_get_rules
import agentrules.tools.list_rules as t_list_rules
from agentrules.errors import AgentRulesError, ErrorCode
from agentrules.lister import FALLBACK_DOMAINS

if TYPE_CHECKING:
    from conftest import FakeGitHub

    from agentrules.state import AppState


# ---------------------------------------------------------------------------
# get_rules
# ---------------------------------------------------------------------------


class TestGetRules:
    async def test_single_domain(self, app_state: AppState, repo: FakeGitHub) -> None:
        result = await t_get_rules.handle("security", None, app_state)
        assert result == {
            "title": "security",
            "content": "# Security Rules\nNever commit secrets.",
        }

    async def test_single_element_list_uses_single_shape(
        self, app_state: AppState, repo: FakeGitHub
    ) -> None:
        result = await t_get_rules.handle(None, ["react"], app_state)
        assert result["title"] == "react"
        assert result["content"].startswith("# React Guidelines")

    async def test_multiple_domains(self, app_state: AppState, repo: FakeGitHub) -> None:
        result = await t_get_rules.handle(None, ["react", "security"], app_state)
        assert result["total"] == 2
        assert [r["title"] for r in result["rules"]] == ["react", "security"]
        assert "failed" not in result

    async def test_partial_failure_lists_failed(
        self, app_state: AppState, repo: FakeGitHub
    ) -> None:
        result = await t_get_rules.handle(
            None, ["security", "nonexistent", "react"], app_state
        )
        assert result["total"] == 2
        assert [r["title"] for r in result["rules"]] == ["security", "react"]
        assert result["failed"] == ["nonexistent"]

    async def test_all_failed_is_domain_not_found(
        self, app_state: AppState, repo: FakeGitHub
    ) -> None:
        with pytest.raises(AgentRulesError) as exc_info:
            await t_get_rules.handle("reactt", None, app_state)

        err = exc_info.value
        assert err.code == ErrorCode.DOMAIN_NOT_FOUND
        assert err.recoverable is False
        assert "reactt" in err.message
        assert "list_rules" in err.suggestion
        assert "Did you mean: react?" in err.suggestion
        assert "Available domains: security, react." in err.suggestion
        assert ".mdc" in err.suggestion

    async def test_listed_but_unreadable_is_fetch_failure(
        self, app_state: AppState, repo: FakeGitHub
    ) -> None:
        repo.api_overrides["chatmodes/security.chatmode.md"] = httpx.Response(500)
        repo.raw_status = 500

        with pytest.raises(AgentRulesError) as exc_info:
            await t_get_rules.handle("security", None, app_state)

        err = exc_info.value
        assert err.code == ErrorCode.RULES_FETCH_FAILED
        assert err.recoverable is True
        assert "security" in err.message
        assert "AGENTRULES__GITHUB__TOKEN" in err.suggestion
        assert "Available domains: security, react." in err.suggestion

    async def test_unreadable_and_missing_is_fetch_failure(
        self, app_state: AppState, repo: FakeGitHub
    ) -> None:
        repo.api_overrides["chatmodes/security.chatmode.md"] = httpx.Response(500)
        repo.raw_status = 500

        with pytest.raises(AgentRulesError) as exc_info:
            await t_get_rules.handle(None, ["security", "reactt"], app_state)

        err = exc_info.value
        assert err.code == ErrorCode.RULES_FETCH_FAILED
        assert err.message == "Failed to fetch rules for: security"
        assert "Did you mean: react?" in err.suggestion

    async def test_throttled_unknown_domain_is_not_found(
        self, app_state: AppState, repo: FakeGitHub
    ) -> None:
        # Listed by the built-in fallback, absent from the repository
        repo.throttle(reset_at=4_000_000_000)

        with pytest.raises(AgentRulesError) as exc_info:
            await t_get_rules.handle("python", None, app_state)

        err = exc_info.value
        assert err.code == ErrorCode.DOMAIN_NOT_FOUND
        assert err.recoverable is False
        assert f"Available domains: {', '.join(FALLBACK_DOMAINS)}." in err.suggestion

    async def test_cached_between_calls(self, app_state: AppState, repo: FakeGitHub) -> None:
        await t_get_rules.handle("security", None, app_state)
        calls = repo.api.call_count
        await t_get_rules.handle(None, ["security"], app_state)
        assert repo.api.call_count == calls

    async def test_throttled_api_served_from_raw(
        self, app_state: AppState, repo: FakeGitHub
    ) -> None:
        repo.throttle(reset_at=4_000_000_000)
        result = await t_get_rules.handle("react", None, app_state)
        assert result["title"] == "react"
        assert repo.raw.call_count > 0


class TestGetRulesValidation:
    @pytest.mark.parametrize(
        ("domain", "domains", "message"),
        [
            (None, None, "Must provide either domain or domains parameter, but not both"),
            ("react", ["security"], "Must provide either domain or domains parameter"),
            ("  ", None, "Domain parameter cannot be empty"),
            (None, [], "Domains array cannot be empty"),
            (None, ["react", ""], "All domains must be non-empty strings"),
        ],
    )
    async def test_invalid_arguments(
        self,
        app_state: AppState,
        repo: FakeGitHub,
        domain: str | None,
        domains: list[str] | None,
        message: str,
    ) -> None:
        with pytest.raises(AgentRulesError) as exc_info:
            await t_get_rules.handle(domain, domains, app_state)
        assert exc_info.value.code == ErrorCode.INVALID_INPUT
        assert message in exc_info.value.message
        assert repo.api.call_count == 0

    @pytest.mark.parametrize("name", ["inv@lid", "../etc/passwd", "two words", "v1.2"])
    async def test_disallowed_characters_rejected_before_network(
        self, app_state: AppState, repo: FakeGitHub, name: str
    ) -> None:
        with pytest.raises(AgentRulesError) as exc_info:
            await t_get_rules.handle(None, ["react", name], app_state)

        err = exc_info.value
        assert err.code == ErrorCode.INVALID_INPUT
        assert "only alphanumeric characters, hyphens, and underscores" in err.message
        assert repo.api.call_count == 0
        assert repo.raw.call_count == 0


# ---------------------------------------------------------------------------
# list_rules
# ---------------------------------------------------------------------------


class TestListRules:
    async def test_lists_with_metadata(self, app_state: AppState, repo: FakeGitHub) -> None:
        result = await t_list_rules.handle(app_state)
        assert result == {
            "domains": [
                {"domain": "security", "description": "Security best practices"},
                {
                    "domain": "react",
                    "description": "React Guidelines",
                    "lastUpdated": "2024-01-15",
                },
            ],
            "totalCount": 2,
            "message": "Found 2 rule domains",
        }

    async def test_singular_message(self, app_state: AppState, fake_github: FakeGitHub) -> None:
        fake_github.files["prompts/solo.prompt.md"] = "# Solo Rules"
        result = await t_list_rules.handle(app_state)
        assert result["message"] == "Found 1 rule domain"

    async def test_empty_repository(self, app_state: AppState, fake_github: FakeGitHub) -> None:
        result = await t_list_rules.handle(app_state)
        assert result == {
            "domains": [],
            "totalCount": 0,
            "message": "No rule files found in the GitHub repository.",
        }

    async def test_large_anonymous_listing_skips_file_fetches(
        self, app_state: AppState, fake_github: FakeGitHub
    ) -> None:
        for i in range(11):
            fake_github.files[f"prompts/rule-{i:02d}.md"] = f"# Rule {i}"

        result = await t_list_rules.handle(app_state)
        assert result["totalCount"] == 11
        assert result["domains"][0] == {
            "domain": "rule-00",
            "description": "Development rules and guidelines for rule 00",
        }
        assert fake_github.api_paths() == ["chatmodes", "prompts", "instructions"]

    async def test_listing_warms_get_rules(self, app_state: AppState, repo: FakeGitHub) -> None:
        await t_list_rules.handle(app_state)
        calls = repo.api.call_count
        await t_get_rules.handle(None, ["security", "react"], app_state)
        assert repo.api.call_count == calls

    async def test_throttled_without_listing_uses_fallback_domains(
        self, app_state: AppState, repo: FakeGitHub
    ) -> None:
        repo.throttle(reset_at=4_000_000_000)
        result = await t_list_rules.handle(app_state)

        assert [d["domain"] for d in result["domains"]] == list(FALLBACK_DOMAINS)
        by_domain = {d["domain"]: d for d in result["domains"]}
        # Present on raw, so real metadata is still resolved
        assert by_domain["security"]["description"] == "Security best practices"
        assert by_domain["python"]["description"] == "Rules for python (metadata unavailable)"
