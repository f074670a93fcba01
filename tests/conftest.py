"""Shared test fixtures for the agentrules test suite."""

from __future__ import annotations

import base64
from typing import TYPE_CHECKING

import httpx
import pytest
import respx

from agentrules.config import GitHubSettings

if TYPE_CHECKING:
    from collections.abc import AsyncIterator, Iterator

API_URL = "https://api.github.test"
RAW_URL = "https://raw.github.test"
OWNER = "acme"
REPO = "rules"
BRANCH = "main"


class FakeClock:
    """Manually advanced replacement for time.monotonic / time.time."""

    def __init__(self, start: float = 1_700_000_000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeGitHub:
    """respx-backed stand-in for the GitHub contents API and the raw host.

    ``files`` maps ``"<directory>/<filename>"`` to text and is served by both
    hosts; directory listings are derived from it. Anything unknown is a 404.
    """

    def __init__(self, router: respx.MockRouter) -> None:
        self.files: dict[str, str] = {}
        # Served by the raw host only
        self.raw_only: dict[str, str] = {}
        # Extra listing entries, e.g. sub-directories
        self.extra_entries: dict[str, list[dict]] = {}
        # Forced API responses keyed by path below /contents/
        self.api_overrides: dict[str, httpx.Response] = {}
        self.api_status: int | None = None  # Force every API response to this status
        self.api_headers: dict[str, str] = {}
        self.api_down = False
        self.raw_status: int | None = None

        self.api = router.route(host="api.github.test").mock(side_effect=self._api)
        self.raw = router.route(host="raw.github.test").mock(side_effect=self._raw)

    def _api(self, request: httpx.Request) -> httpx.Response:
        if self.api_down:
            raise httpx.ConnectError("Connection refused", request=request)

        prefix = f"/repos/{OWNER}/{REPO}/contents/"
        path = request.url.path.removeprefix(prefix)

        if path in self.api_overrides:
            return self.api_overrides[path]
        if self.api_status is not None:
            return httpx.Response(self.api_status, headers=self.api_headers)
        if path in self.files:
            encoded = base64.encodebytes(self.files[path].encode("utf-8")).decode("ascii")
            return httpx.Response(
                200,
                json={"type": "file", "encoding": "base64", "content": encoded, "path": path},
                headers=self.api_headers,
            )

        entries = [
            {"name": key.split("/", 1)[1], "type": "file", "path": key}
            for key in self.files
            if key.split("/", 1)[0] == path
        ]
        entries += self.extra_entries.get(path, [])
        if entries:
            return httpx.Response(200, json=entries, headers=self.api_headers)
        return httpx.Response(404, json={"message": "Not Found"}, headers=self.api_headers)

    def _raw(self, request: httpx.Request) -> httpx.Response:
        if self.raw_status is not None:
            return httpx.Response(self.raw_status)
        path = request.url.path.removeprefix(f"/{OWNER}/{REPO}/{BRANCH}/")
        text = self.raw_only.get(path, self.files.get(path))
        if text is None:
            return httpx.Response(404, text="404: Not Found")
        return httpx.Response(200, text=text)

    def throttle(self, reset_at: float) -> None:
        """Make every API call fail the way an exhausted quota does."""
        self.api_status = 403
        self.api_headers = {
            "x-ratelimit-remaining": "0",
            "x-ratelimit-reset": str(int(reset_at)),
        }

    def api_paths(self) -> list[str]:
        prefix = f"/repos/{OWNER}/{REPO}/contents/"
        return [call.request.url.path.removeprefix(prefix) for call in self.api.calls]


@pytest.fixture()
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture()
def github_settings() -> GitHubSettings:
    return GitHubSettings(
        owner=OWNER,
        repo=REPO,
        branch=BRANCH,
        api_url=API_URL,
        raw_url=RAW_URL,
    )


@pytest.fixture()
def fake_github() -> Iterator[FakeGitHub]:
    with respx.mock(assert_all_called=False) as router:
        yield FakeGitHub(router)


@pytest.fixture()
async def http_client() -> AsyncIterator[httpx.AsyncClient]:
    async with httpx.AsyncClient() as client:
        yield client
