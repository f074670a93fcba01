"""Configuration loading.

Settings are loaded in priority order (highest first):
  1. Environment variables  (AGENTRULES__GITHUB__OWNER=acme)
  2. agentrules.yaml        (searched in cwd, then platform config dir)
  3. Hardcoded defaults

The config file is optional, but a GitHub-backed server needs at least an
owner and a repository name from one of the sources above.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any, Literal

import platformdirs
from pydantic import BaseModel
from pydantic_settings import (
    BaseSettings,
    PydanticBaseSettingsSource,
    SettingsConfigDict,
    YamlConfigSettingsSource,
)


def _find_config_file() -> str | None:
    """Return the path of the first agentrules.yaml found, or None."""
    candidates = [
        Path("agentrules.yaml"),
        Path(platformdirs.user_config_dir("agentrules")) / "agentrules.yaml",
    ]
    for path in candidates:
        if path.exists():
            return str(path)
    return None


class GitHubSettings(BaseModel):
    owner: str = ""
    repo: str = ""
    # Empty path searches the default directories (chatmodes, prompts, instructions)
    path: str = ""
    branch: str = "main"
    token: str | None = None
    api_url: str = "https://api.github.com"
    raw_url: str = "https://raw.githubusercontent.com"


class LocalSettings(BaseModel):
    rules_dir: str = "./rules"
    path: str = ""


class CacheSettings(BaseModel):
    ttl_seconds: int = 5 * 60
    listing_ttl_seconds: int = 10 * 60
    rate_limit_cooldown_seconds: int = 60


class ListingSettings(BaseModel):
    # Without a token, listings larger than this skip per-domain metadata fetches
    unauthenticated_limit: int = 10


class HttpSettings(BaseModel):
    timeout_seconds: float = 30.0


class LoggingSettings(BaseModel):
    level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"
    format: Literal["json", "text"] = "json"


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        # Double-underscore separates nesting: AGENTRULES__GITHUB__BRANCH=dev
        env_prefix="AGENTRULES__",
        env_nested_delimiter="__",
        yaml_file=_find_config_file(),
        yaml_file_encoding="utf-8",
    )

    source: Literal["github", "local"] = "github"
    github: GitHubSettings = GitHubSettings()
    local: LocalSettings = LocalSettings()
    cache: CacheSettings = CacheSettings()
    listing: ListingSettings = ListingSettings()
    http: HttpSettings = HttpSettings()
    logging: LoggingSettings = LoggingSettings()

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
        **kwargs: Any,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        return (
            init_settings,  # Constructor args (highest priority)
            env_settings,  # Environment variables
            YamlConfigSettingsSource(settings_cls),  # YAML file
            # dotenv and file secrets intentionally excluded
        )


def require_github_repository(settings: Settings) -> None:
    """Raise ``ValueError`` naming the first missing repository coordinate."""
    if settings.source != "github":
        return
    if not settings.github.owner:
        raise ValueError("AGENTRULES__GITHUB__OWNER environment variable is required")
    if not settings.github.repo:
        raise ValueError("AGENTRULES__GITHUB__REPO environment variable is required")
