# recipebox/app/routers/ingest.py
from __future__ import annotations

import logging
import time
from typing import Awaitable, Callable, Optional

from fastapi import APIRouter, Depends, File, HTTPException, UploadFile
from starlette.concurrency import run_in_threadpool

from recipebox.app.deps import (
    CurrentUser,
    get_current_user,
    get_recipe_agent,
    get_recipe_importer,
    get_usage_limiter,
)
from recipebox.app.domain.models import ImportResult
from recipebox.app.schemas.ingest import (
    ImportResponse,
    ImportUrlRequest,
    MacroRequest,
    MacroResponse,
    UsageStatsResponse,
)
from recipebox.app.services.usage_limiter import UsageLimiter
from recipebox.services.errors import RateLimitedError, ServiceError
from recipebox.services.ingest import MAX_PDF_BYTES, RecipeImporter
from recipebox.services.recipe_agent import RecipeAgent

log = logging.getLogger("import")
router = APIRouter(prefix="/import", tags=["import"])


def _to_http_error(exc: ServiceError) -> HTTPException:
    headers = None
    if isinstance(exc, RateLimitedError) and exc.retry_after_seconds:
        headers = {"Retry-After": str(exc.retry_after_seconds)}
    return HTTPException(status_code=exc.status_code, detail=str(exc), headers=headers)


def _to_response(result: ImportResult) -> ImportResponse:
    return ImportResponse(
        method=result.method.value,
        recipe=result.recipe,
        usage=result.usage.to_dict() if result.usage else None,
    )


async def _run_import(
    source: str,
    user: CurrentUser,
    call: Callable[[], Awaitable[ImportResult]],
) -> ImportResponse:
    t0 = time.time()
    log.info("import.start source=%s owner=%s", source, user.id)
    try:
        result = await call()
    except RateLimitedError as exc:
        log.warning("import.rate_limited source=%s dt=%.2fs", source, time.time() - t0)
        raise _to_http_error(exc) from exc
    except ServiceError as exc:
        log.warning("import.fail source=%s kind=%s dt=%.2fs error=%s", source, exc.kind, time.time() - t0, exc)
        raise _to_http_error(exc) from exc
    except Exception:
        log.exception("import.fail source=%s dt=%.2fs", source, time.time() - t0)
        raise HTTPException(status_code=500, detail="Recipe import failed")

    log.info(
        "import.ok source=%s method=%s recipe=%s dt=%.2fs",
        source,
        result.method.value,
        result.recipe.name,
        time.time() - t0,
    )
    return _to_response(result)


@router.post("/url", response_model=ImportResponse, response_model_exclude_none=True)
async def import_from_url(
    body: ImportUrlRequest,
    user: CurrentUser = Depends(get_current_user),
    importer: RecipeImporter = Depends(get_recipe_importer),
) -> ImportResponse:
    return await _run_import(
        body.url,
        user,
        lambda: importer.import_from_url(body.url, user.id),
    )


@router.post("/pdf", response_model=ImportResponse, response_model_exclude_none=True)
async def import_from_pdf(
    pdf: UploadFile = File(...),
    user: CurrentUser = Depends(get_current_user),
    importer: RecipeImporter = Depends(get_recipe_importer),
) -> ImportResponse:
    # One byte past the limit is enough to reject oversized uploads
    data = await pdf.read(MAX_PDF_BYTES + 1)
    return await _run_import(
        pdf.filename or "upload.pdf",
        user,
        lambda: importer.import_from_pdf(data, pdf.content_type, user.id),
    )


@router.post("/video", response_model=ImportResponse, response_model_exclude_none=True)
async def import_from_video(
    video: Optional[UploadFile] = File(default=None),
    user: CurrentUser = Depends(get_current_user),
    importer: RecipeImporter = Depends(get_recipe_importer),
) -> ImportResponse:
    content_type = video.content_type if video else None
    return await _run_import(
        video.filename if video and video.filename else "video",
        user,
        lambda: importer.import_from_video(content_type, user.id),
    )


@router.get("/usage", response_model=UsageStatsResponse)
async def get_usage_stats(
    limiter: UsageLimiter = Depends(get_usage_limiter),
) -> UsageStatsResponse:
    try:
        snapshot = await run_in_threadpool(limiter.stats)
    except ServiceError as exc:
        log.error("usage.fail kind=%s error=%s", exc.kind, exc)
        raise _to_http_error(exc) from exc
    return UsageStatsResponse(**snapshot.to_dict())


@router.post("/macros", response_model=MacroResponse, response_model_exclude_none=True)
async def estimate_macros(
    body: MacroRequest,
    user: CurrentUser = Depends(get_current_user),
    agent: RecipeAgent = Depends(get_recipe_agent),
) -> MacroResponse:
    try:
        macros = await agent.estimate_macros(body.ingredients, body.servings)
    except ServiceError as exc:
        log.warning("macros.fail owner=%s kind=%s error=%s", user.id, exc.kind, exc)
        raise _to_http_error(exc) from exc
    return MacroResponse(macros=macros)
