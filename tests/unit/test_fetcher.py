from __future__ import annotations

import asyncio
from typing import Callable

import httpx
import pytest

from recipebox.services.errors import (
    BlockedBySourceError,
    FetchFailedError,
    InvalidInputError,
    NetworkTimeoutError,
)
from recipebox.services.fetcher import fetch_html, is_challenge_page

RECIPE_PAGE = "<html><body><h1>Lentil Soup</h1>" + "<p>Simmer the lentils.</p>" * 1500 + "</body></html>"


def _fetch(url: str, handler: Callable[[httpx.Request], httpx.Response], timeout: float = 15.0) -> str:
    return asyncio.run(fetch_html(url, timeout=timeout, transport=httpx.MockTransport(handler)))


def _respond(status: int, text: str = RECIPE_PAGE) -> Callable[[httpx.Request], httpx.Response]:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(status, text=text)

    return handler


class TestUrlValidation:
    @pytest.mark.parametrize("url", ["ftp://example.com/recipe", "not a url", "https://", ""])
    def test_rejects_non_http_urls(self, url: str) -> None:
        with pytest.raises(InvalidInputError) as exc_info:
            _fetch(url, _respond(200))

        assert "Only HTTP and HTTPS" in str(exc_info.value)


class TestFetchHtml:
    def test_returns_page_body(self) -> None:
        assert _fetch("https://example.com/soup", _respond(200)) == RECIPE_PAGE

    def test_sends_browser_headers(self) -> None:
        seen: dict[str, str] = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["user-agent"] = request.headers["user-agent"]
            seen["accept"] = request.headers["accept"]
            return httpx.Response(200, text=RECIPE_PAGE)

        _fetch("https://example.com/soup", handler)

        assert seen["user-agent"].startswith("Mozilla/5.0")
        assert "text/html" in seen["accept"]

    def test_follows_redirects(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            if request.url.path == "/old":
                return httpx.Response(301, headers={"Location": "https://example.com/new"})
            return httpx.Response(200, text=RECIPE_PAGE)

        assert _fetch("https://example.com/old", handler) == RECIPE_PAGE

    @pytest.mark.parametrize("status", [403, 429])
    def test_blocking_status_codes(self, status: int) -> None:
        with pytest.raises(BlockedBySourceError) as exc_info:
            _fetch("https://www.example.com/soup", _respond(status, "denied"))

        assert exc_info.value.host == "www.example.com"
        assert "blocks automated access" in str(exc_info.value)

    def test_other_error_status(self) -> None:
        with pytest.raises(FetchFailedError) as exc_info:
            _fetch("https://example.com/missing", _respond(404, "nope"))

        assert exc_info.value.upstream_status == 404
        assert "404 Not Found" in str(exc_info.value)

    def test_challenge_page_is_blocked(self) -> None:
        page = "<html><title>Just a moment...</title><body>Checking your browser</body></html>"

        with pytest.raises(BlockedBySourceError) as exc_info:
            _fetch("https://example.com/soup", _respond(200, page))

        assert "browser verification" in str(exc_info.value)

    def test_timeout(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ReadTimeout("timed out", request=request)

        with pytest.raises(NetworkTimeoutError) as exc_info:
            _fetch("https://example.com/slow", handler, timeout=15.0)

        assert exc_info.value.timeout_seconds == 15.0
        assert exc_info.value.url == "https://example.com/slow"

    def test_connection_error(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        with pytest.raises(FetchFailedError) as exc_info:
            _fetch("https://example.com/down", handler)

        assert exc_info.value.upstream_status is None


class TestChallengeDetection:
    def test_small_page_with_marker(self) -> None:
        assert is_challenge_page("<p>Please enable JavaScript to continue</p>")

    def test_large_page_with_marker_is_real_content(self) -> None:
        assert not is_challenge_page(RECIPE_PAGE + "<noscript>enable javascript</noscript>")

    def test_small_page_without_marker(self) -> None:
        assert not is_challenge_page("<p>Toast</p>")
