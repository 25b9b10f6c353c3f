from __future__ import annotations

import logging
from urllib.parse import urlparse

import httpx

from .errors import (
    BlockedBySourceError,
    FetchFailedError,
    InvalidInputError,
    NetworkTimeoutError,
)

logger = logging.getLogger(__name__)

FETCH_TIMEOUT_SECONDS = 15.0
ALLOWED_SCHEMES = ("http", "https")
BLOCKED_STATUS_CODES = (403, 429)

# Real recipe pages are much larger than challenge interstitials
CHALLENGE_MAX_CHARS = 20_000
CHALLENGE_MARKERS = (
    "cf-browser-verification",
    "checking your browser",
    "enable javascript",
    "ddos-guard",
    "just a moment",
)

# Accept-Encoding is left to httpx so brotli is only requested when installed
BROWSER_HEADERS = {
    "User-Agent": (
        "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
        "(KHTML, like Gecko) Chrome/131.0.0.0 Safari/537.36"
    ),
    "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,image/avif,image/webp,*/*;q=0.8",
    "Accept-Language": "en-US,en;q=0.9",
    "Cache-Control": "no-cache",
    "Pragma": "no-cache",
    "Upgrade-Insecure-Requests": "1",
    "Sec-Fetch-Dest": "document",
    "Sec-Fetch-Mode": "navigate",
    "Sec-Fetch-Site": "none",
    "Sec-Fetch-User": "?1",
}


def _validate_url(url: str) -> str:
    parsed = urlparse(url.strip()) if isinstance(url, str) else None
    if not parsed or parsed.scheme.lower() not in ALLOWED_SCHEMES or not parsed.netloc:
        raise InvalidInputError("Invalid URL. Only HTTP and HTTPS URLs are supported.")
    return parsed.hostname or parsed.netloc


def is_challenge_page(html: str) -> bool:
    if len(html) >= CHALLENGE_MAX_CHARS:
        return False
    lowered = html.lower()
    return any(marker in lowered for marker in CHALLENGE_MARKERS)


def _check_response(response: httpx.Response, host: str) -> str:
    if response.status_code in BLOCKED_STATUS_CODES:
        raise BlockedBySourceError(host)

    if not response.is_success:
        raise FetchFailedError(
            f"Failed to fetch URL: {response.status_code} {response.reason_phrase}",
            status_code=response.status_code,
        )

    html = response.text
    if is_challenge_page(html):
        raise BlockedBySourceError(host, reason="requires browser verification and can't be imported automatically")

    return html


async def fetch_html(
    url: str,
    *,
    timeout: float = FETCH_TIMEOUT_SECONDS,
    transport: httpx.AsyncBaseTransport | None = None,
) -> str:
    host = _validate_url(url)

    try:
        async with httpx.AsyncClient(
            timeout=timeout,
            follow_redirects=True,
            headers=BROWSER_HEADERS,
            transport=transport,
        ) as client:
            response = await client.get(url.strip())
    except httpx.TimeoutException as error:
        logger.warning("fetch.timeout host=%s timeout=%.1fs", host, timeout)
        raise NetworkTimeoutError(url, timeout) from error
    except httpx.HTTPError as error:
        logger.warning("fetch.error host=%s error=%s", host, error)
        raise FetchFailedError(f"Failed to fetch URL: {error}") from error

    html = _check_response(response, host)
    logger.info("fetch.ok host=%s status=%d chars=%d", host, response.status_code, len(html))
    return html
