from __future__ import annotations

import logging
from functools import partial
from typing import Awaitable, Callable, Optional

from starlette.concurrency import run_in_threadpool

from recipebox.app.config import settings
from recipebox.app.domain.models import ImportMethod, ImportResult, RequestType
from recipebox.app.services.usage_limiter import UsageLimiter
from recipebox.services.errors import InvalidInputError, NotImplementedFeatureError, RateLimitedError
from recipebox.services.fetcher import fetch_html
from recipebox.services.recipe_agent import PDF_MIME_TYPE, AgentResult, RecipeAgent
from recipebox.services.sanitizer import clean_html_for_gemini
from recipebox.services.structured_data import extract_structured_data

logger = logging.getLogger(__name__)

MAX_PDF_BYTES = 10 * 1024 * 1024
ALLOWED_VIDEO_TYPES = ("video/mp4", "video/quicktime", "video/x-msvideo", "video/webm")

Fetcher = Callable[[str], Awaitable[str]]


def validate_pdf_upload(data: bytes, content_type: Optional[str]) -> None:
    if content_type != PDF_MIME_TYPE:
        raise InvalidInputError("Only PDF files are supported")
    if not data:
        raise InvalidInputError("PDF file is required")
    if len(data) > MAX_PDF_BYTES:
        raise InvalidInputError(f"PDF file is too large (max {MAX_PDF_BYTES // (1024 * 1024)}MB)")


def validate_video_content_type(content_type: Optional[str]) -> None:
    if content_type not in ALLOWED_VIDEO_TYPES:
        raise InvalidInputError("Unsupported video format. Allowed formats: MP4, MOV, AVI, WebM")


class RecipeImporter:
    """
    Picks the cheapest strategy that yields a recipe.

    URL imports try embedded structured data first, which is free. Only
    pages without it go through the usage budget and the AI agent. PDF
    imports always use the agent.
    """

    def __init__(
        self,
        limiter: UsageLimiter,
        agent: Optional[RecipeAgent] = None,
        fetch: Optional[Fetcher] = None,
    ) -> None:
        self._limiter = limiter
        self._agent = agent or RecipeAgent()
        self._fetch = fetch or partial(fetch_html, timeout=settings.FETCH_TIMEOUT_SECONDS)

    async def import_from_url(self, url: str, user_id: str) -> ImportResult:
        html = await self._fetch(url)

        structured = await run_in_threadpool(extract_structured_data, html)
        if structured is not None:
            logger.info("Structured data found: user=%s, recipe=%s", user_id, structured.name)
            return ImportResult(method=ImportMethod.STRUCTURED, recipe=structured)

        await run_in_threadpool(self._limiter.check_limits)
        cleaned = await run_in_threadpool(clean_html_for_gemini, html)
        logger.info("No structured data, using AI: user=%s, chars=%d", user_id, len(cleaned))

        return await self._run_agent(
            user_id,
            RequestType.URL,
            partial(self._agent.extract_from_text, cleaned),
        )

    async def import_from_pdf(
        self,
        data: bytes,
        content_type: Optional[str],
        user_id: str,
    ) -> ImportResult:
        validate_pdf_upload(data, content_type)
        await run_in_threadpool(self._limiter.check_limits)

        return await self._run_agent(
            user_id,
            RequestType.PDF,
            partial(self._agent.extract_from_pdf, data),
        )

    async def import_from_video(self, content_type: Optional[str], user_id: str) -> ImportResult:
        validate_video_content_type(content_type)
        logger.info("Video import requested: user=%s", user_id)
        raise NotImplementedFeatureError("Video import not yet implemented. Check back in a future update!")

    async def _run_agent(
        self,
        user_id: str,
        request_type: RequestType,
        call: Callable[[], Awaitable[AgentResult]],
    ) -> ImportResult:
        try:
            result = await call()
        except RateLimitedError:
            # Provider throttling is logged but does not consume the budget
            await run_in_threadpool(self._limiter.record, user_id, request_type, None, False)
            raise

        await run_in_threadpool(self._limiter.record, user_id, request_type, result.tokens_used, True)
        usage = await run_in_threadpool(self._limiter.stats)
        return ImportResult(method=ImportMethod.AI, recipe=result.recipe, usage=usage)
