from __future__ import annotations

import re

from bs4 import BeautifulSoup

DEFAULT_MAX_CHARS = 30_000
MIN_MAIN_CONTENT_CHARS = 500
TRUNCATION_MARKER = "... [content truncated]"

WHITESPACE_PATTERN = re.compile(r"\s+")

NOISE_TAGS = ("script", "style", "noscript", "nav", "header", "footer", "aside")
NOISE_ATTRIBUTE_PATTERNS = (
    "ad",
    "banner",
    "cookie",
    "popup",
    "sidebar",
    "social",
    "share",
    "comment",
    "newsletter",
    "subscribe",
    "promo",
)
MAIN_CONTENT_SELECTORS = (
    '[class*="recipe"]',
    '[class*="article"]',
    '[class*="post-content"]',
    '[class*="entry-content"]',
    "article",
    "main",
)


def _decompose_all(elements) -> None:
    for element in elements:
        # Nested matches are already gone with their ancestor
        if not element.decomposed:
            element.decompose()


def _remove_noise(soup: BeautifulSoup) -> None:
    _decompose_all(soup.find_all(list(NOISE_TAGS)))

    noise_selector = ", ".join(
        f'[{attribute}*="{pattern}"]'
        for attribute in ("class", "id")
        for pattern in NOISE_ATTRIBUTE_PATTERNS
    )
    _decompose_all(soup.select(noise_selector))


def _main_content_text(soup: BeautifulSoup) -> str:
    for selector in MAIN_CONTENT_SELECTORS:
        element = soup.select_one(selector)
        if element is None:
            continue
        text = element.get_text(" ")
        if len(text.strip()) > MIN_MAIN_CONTENT_CHARS:
            return text

    body = soup.body or soup
    return body.get_text(" ")


def clean_html_for_gemini(html: str, max_chars: int = DEFAULT_MAX_CHARS) -> str:
    """
    Reduce a page to plain text small enough for the extraction prompt.

    Strips scripts, navigation, ads and other boilerplate, keeps the first
    main-content candidate with enough text, collapses whitespace and cuts
    the result to ``max_chars`` followed by ``TRUNCATION_MARKER``. The cut
    may drop part of the recipe.
    """
    soup = BeautifulSoup(html, "html.parser")
    _remove_noise(soup)

    content = WHITESPACE_PATTERN.sub(" ", _main_content_text(soup)).strip()

    if len(content) > max_chars:
        content = content[:max_chars] + TRUNCATION_MARKER

    return content
