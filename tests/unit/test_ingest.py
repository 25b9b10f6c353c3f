from __future__ import annotations

import asyncio
import json
from datetime import datetime, timedelta, timezone
from functools import partial
from typing import Optional

import httpx
import pytest

from recipebox.app.domain.models import ImportMethod, RequestType, UsageEvent
from recipebox.app.infra.db.memory_usage_repo import InMemoryUsageEventRepository
from recipebox.app.services.usage_limiter import UsageLimiter
from recipebox.services.errors import (
    BlockedBySourceError,
    InvalidInputError,
    MalformedExtractionError,
    NotImplementedFeatureError,
    RateLimitedError,
)
from recipebox.services.fetcher import fetch_html
from recipebox.services.ingest import MAX_PDF_BYTES, RecipeImporter
from recipebox.services.recipe_agent import AgentResult
from recipebox.services.types import Recipe

NOW = datetime(2026, 1, 15, 12, 0, 0, tzinfo=timezone.utc)

AI_RECIPE = Recipe(
    name="Pan Bread",
    ingredients=[{"amount": "2 cups", "item": "flour"}],
    instructions=[{"step": 1, "text": "Knead and bake."}],
)

STRUCTURED_PAGE = """
<html><head><script type="application/ld+json">{}</script></head>
<body><p>Cookies</p></body></html>
""".format(
    json.dumps(
        {
            "@context": "https://schema.org",
            "@type": "Recipe",
            "name": "Chocolate Chip Cookies",
            "prepTime": "PT15M",
            "recipeIngredient": ["2 1/4 cups all-purpose flour"],
            "recipeInstructions": [{"@type": "HowToStep", "text": "Bake."}],
        }
    )
)

PLAIN_PAGE = """
<html><body>
  <script>var tracking = true;</script>
  <h1>Grandma's Pan Bread</h1>
  <p>Mix two cups of flour with water, knead and bake.</p>
</body></html>
"""


class AgentStub:
    """Stands in for RecipeAgent and records what it was asked."""

    def __init__(self, result: Optional[AgentResult] = None, error: Optional[Exception] = None):
        self.result = result or AgentResult(recipe=AI_RECIPE, tokens_used=500)
        self.error = error
        self.text_calls: list[str] = []
        self.pdf_calls: list[bytes] = []

    async def extract_from_text(self, text: str) -> AgentResult:
        self.text_calls.append(text)
        if self.error is not None:
            raise self.error
        return self.result

    async def extract_from_pdf(self, data: bytes) -> AgentResult:
        self.pdf_calls.append(data)
        if self.error is not None:
            raise self.error
        return self.result


def _serve(html: str):
    async def fetch(url: str) -> str:
        return html

    return fetch


def _refuse(error: Exception):
    async def fetch(url: str) -> str:
        raise error

    return fetch


def _importer(
    fetch=None,
    agent: Optional[AgentStub] = None,
    events: Optional[list[UsageEvent]] = None,
) -> tuple[RecipeImporter, AgentStub, InMemoryUsageEventRepository]:
    repo = InMemoryUsageEventRepository(events)
    limiter = UsageLimiter(repository=repo, rpm_limit=15, rpd_limit=1500, tpm_limit=1_000_000, clock=lambda: NOW)
    agent = agent or AgentStub()
    importer = RecipeImporter(limiter=limiter, agent=agent, fetch=fetch or _serve(PLAIN_PAGE))
    return importer, agent, repo


def _recent_events(count: int) -> list[UsageEvent]:
    return [
        UsageEvent(
            user_id="someone-else",
            request_type=RequestType.URL,
            success=True,
            timestamp=NOW - timedelta(seconds=i),
        )
        for i in range(count)
    ]


class TestImportFromUrl:
    def test_structured_data_needs_no_ai(self) -> None:
        importer, agent, repo = _importer(fetch=_serve(STRUCTURED_PAGE))

        result = asyncio.run(importer.import_from_url("https://cookies.example.com", "user-1"))

        assert result.method is ImportMethod.STRUCTURED
        assert result.recipe.name == "Chocolate Chip Cookies"
        assert result.recipe.prep_time == 15
        assert result.usage is None
        assert agent.text_calls == []
        assert repo.events == []

    def test_structured_data_ignores_spent_budget(self) -> None:
        importer, _, repo = _importer(fetch=_serve(STRUCTURED_PAGE), events=_recent_events(15))

        result = asyncio.run(importer.import_from_url("https://cookies.example.com", "user-1"))

        assert result.method is ImportMethod.STRUCTURED
        assert len(repo.events) == 15

    def test_ai_fallback_records_usage(self) -> None:
        importer, agent, repo = _importer()

        result = asyncio.run(importer.import_from_url("https://bread.example.com", "user-1"))

        assert result.method is ImportMethod.AI
        assert result.recipe == AI_RECIPE
        [event] = repo.events
        assert event.user_id == "user-1"
        assert event.request_type is RequestType.URL
        assert event.success is True
        assert event.tokens_used == 500
        assert result.usage is not None
        assert result.usage.rpm.used == 1
        assert result.usage.rpd.remaining == 1499

    def test_ai_receives_cleaned_text(self) -> None:
        importer, agent, _ = _importer()

        asyncio.run(importer.import_from_url("https://bread.example.com", "user-1"))

        [text] = agent.text_calls
        assert "Grandma's Pan Bread" in text
        assert "tracking" not in text
        assert "<" not in text

    def test_blocked_source_stops_before_ai(self) -> None:
        importer, agent, repo = _importer(fetch=_refuse(BlockedBySourceError("www.example.com")))

        with pytest.raises(BlockedBySourceError):
            asyncio.run(importer.import_from_url("https://www.example.com/r", "user-1"))

        assert agent.text_calls == []
        assert repo.events == []

    def test_forbidden_page_end_to_end(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(403, text="Forbidden")

        fetch = partial(fetch_html, transport=httpx.MockTransport(handler))
        importer, agent, repo = _importer(fetch=fetch)

        with pytest.raises(BlockedBySourceError) as exc_info:
            asyncio.run(importer.import_from_url("https://www.example.com/r", "user-1"))

        assert exc_info.value.host == "www.example.com"
        assert agent.text_calls == []
        assert repo.events == []

    def test_spent_budget_refused_before_ai(self) -> None:
        importer, agent, repo = _importer(events=_recent_events(15))

        with pytest.raises(RateLimitedError):
            asyncio.run(importer.import_from_url("https://bread.example.com", "user-1"))

        assert agent.text_calls == []
        assert len(repo.events) == 15

    def test_provider_throttling_recorded_as_failure(self) -> None:
        agent = AgentStub(error=RateLimitedError("Gemini API quota exceeded", retry_after_seconds=60))
        importer, _, repo = _importer(agent=agent)

        with pytest.raises(RateLimitedError):
            asyncio.run(importer.import_from_url("https://bread.example.com", "user-1"))

        [event] = repo.events
        assert event.success is False
        assert event.tokens_used is None

    def test_failed_extraction_records_nothing(self) -> None:
        agent = AgentStub(error=MalformedExtractionError("Failed to parse recipe data from AI response"))
        importer, _, repo = _importer(agent=agent)

        with pytest.raises(MalformedExtractionError):
            asyncio.run(importer.import_from_url("https://bread.example.com", "user-1"))

        assert repo.events == []


class TestImportFromPdf:
    def test_pdf_goes_to_ai(self) -> None:
        importer, agent, repo = _importer(fetch=_refuse(AssertionError("PDF imports never fetch")))

        result = asyncio.run(importer.import_from_pdf(b"%PDF-1.7", "application/pdf", "user-2"))

        assert result.method is ImportMethod.AI
        assert agent.pdf_calls == [b"%PDF-1.7"]
        [event] = repo.events
        assert event.request_type is RequestType.PDF
        assert event.tokens_used == 500

    def test_wrong_content_type(self) -> None:
        importer, agent, _ = _importer()

        with pytest.raises(InvalidInputError) as exc_info:
            asyncio.run(importer.import_from_pdf(b"GIF89a", "image/gif", "user-2"))

        assert "Only PDF files" in str(exc_info.value)
        assert agent.pdf_calls == []

    def test_empty_file(self) -> None:
        importer, _, _ = _importer()

        with pytest.raises(InvalidInputError):
            asyncio.run(importer.import_from_pdf(b"", "application/pdf", "user-2"))

    def test_oversized_file(self) -> None:
        importer, agent, _ = _importer()

        with pytest.raises(InvalidInputError) as exc_info:
            asyncio.run(importer.import_from_pdf(b"x" * (MAX_PDF_BYTES + 1), "application/pdf", "user-2"))

        assert "too large" in str(exc_info.value)
        assert agent.pdf_calls == []

    def test_spent_budget(self) -> None:
        importer, agent, _ = _importer(events=_recent_events(15))

        with pytest.raises(RateLimitedError):
            asyncio.run(importer.import_from_pdf(b"%PDF-1.7", "application/pdf", "user-2"))

        assert agent.pdf_calls == []


class TestImportFromVideo:
    def test_video_not_implemented(self) -> None:
        importer, _, repo = _importer()

        with pytest.raises(NotImplementedFeatureError):
            asyncio.run(importer.import_from_video("video/mp4", "user-3"))

        assert repo.events == []

    def test_unsupported_video_format(self) -> None:
        importer, _, _ = _importer()

        with pytest.raises(InvalidInputError):
            asyncio.run(importer.import_from_video("video/x-flv", "user-3"))
