from __future__ import annotations

import logging
from datetime import datetime
from typing import Optional

import httpx
from postgrest.exceptions import APIError
from supabase import Client, create_client

from recipebox.app.config import settings
from recipebox.app.domain.models import UsageEvent
from recipebox.app.infra.db.base import UsageEventRepository
from recipebox.services.errors import UsageLogUnavailableError

logger = logging.getLogger(__name__)

# What supabase-py raises when Postgres or the network is down
STORAGE_ERRORS = (APIError, httpx.HTTPError, ConnectionError, TimeoutError)


def _parse_datetime(value: str | datetime | None) -> datetime | None:
    if value is None:
        return None
    if isinstance(value, datetime):
        return value
    if not isinstance(value, str):
        return None

    try:
        normalized = value.replace("Z", "+00:00") if value.endswith("Z") else value
        return datetime.fromisoformat(normalized)
    except ValueError:
        return None


def _safe_int(value: object, default: int = 0) -> int:
    return int(value) if value else default


def _create_supabase_client() -> Client:
    url = settings.SUPABASE_URL
    key = settings.SUPABASE_SERVICE_ROLE_KEY
    if not url or not key:
        raise ValueError("SUPABASE_URL and SUPABASE_SERVICE_ROLE_KEY required")
    return create_client(str(url), key.get_secret_value())


class SupabaseUsageEventRepository(UsageEventRepository):
    TABLE_NAME = "ai_usage_events"

    def __init__(self, client: Client | None = None):
        self._client = client or _create_supabase_client()
        logger.info("SupabaseUsageEventRepository initialized")

    def append(self, event: UsageEvent) -> None:
        row = {
            "user_id": event.user_id,
            "request_type": event.request_type.value,
            "tokens_used": event.tokens_used,
            "success": event.success,
            "timestamp": event.timestamp.isoformat(),
        }

        try:
            self._client.table(self.TABLE_NAME).insert(row).execute()
        except STORAGE_ERRORS as error:
            logger.error("Network error recording usage event: %s", error)
            raise UsageLogUnavailableError("append", error) from error

    def _successful_since(self, columns: str, since: datetime, **select_kwargs):
        return (
            self._client.table(self.TABLE_NAME)
            .select(columns, **select_kwargs)
            .gte("timestamp", since.isoformat())
            .eq("success", True)
        )

    def count_successful_since(self, since: datetime) -> int:
        try:
            result = self._successful_since("id", since, count="exact").limit(1).execute()
        except STORAGE_ERRORS as error:
            logger.error("Network error counting usage events: %s", error)
            raise UsageLogUnavailableError("count", error) from error

        return _safe_int(getattr(result, "count", None))

    def sum_tokens_since(self, since: datetime) -> int:
        try:
            result = self._successful_since("tokens_used", since).execute()
        except STORAGE_ERRORS as error:
            logger.error("Network error summing usage tokens: %s", error)
            raise UsageLogUnavailableError("sum_tokens", error) from error

        return sum(_safe_int(row.get("tokens_used")) for row in result.data or [])

    def oldest_successful_since(self, since: datetime) -> Optional[datetime]:
        try:
            result = (
                self._successful_since("timestamp", since)
                .order("timestamp")
                .limit(1)
                .execute()
            )
        except STORAGE_ERRORS as error:
            logger.error("Network error reading oldest usage event: %s", error)
            raise UsageLogUnavailableError("oldest", error) from error

        rows = result.data or []
        if not rows:
            return None
        return _parse_datetime(rows[0].get("timestamp"))
