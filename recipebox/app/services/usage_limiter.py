# recipebox/app/services/usage_limiter.py
"""
AI usage limiter.
Enforces the shared per-minute and per-day request budget of the AI provider.
"""
from __future__ import annotations

import logging
import math
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional

from recipebox.app.config import settings
from recipebox.app.domain.models import RequestType, UsageEvent, UsageSnapshot, UsageWindow
from recipebox.app.infra.db.base import UsageEventRepository
from recipebox.app.infra.db.memory_usage_repo import InMemoryUsageEventRepository
from recipebox.app.infra.db.supabase_usage_repo import SupabaseUsageEventRepository
from recipebox.services.errors import RateLimitedError

logger = logging.getLogger(__name__)

MINUTE = timedelta(seconds=60)
DAY = timedelta(hours=24)


def _now_utc() -> datetime:
    return datetime.now(timezone.utc)


def build_usage_repository() -> UsageEventRepository:
    if settings.USAGE_BACKEND == "memory":
        return InMemoryUsageEventRepository()
    return SupabaseUsageEventRepository()


class UsageLimiter:
    """
    Service for the AI request budget.

    Responsibilities:
    - Refuse an AI call when the minute or day budget is spent
    - Record every AI call attempt in the append-only usage log
    - Provide usage statistics

    Quota state is never stored: it is derived from the usage log on
    each call. Only successful events count against the budget.
    The check and the later record are not atomic, so concurrent
    imports racing near a threshold can overshoot it by at most the
    number of requests in flight.
    """

    def __init__(
        self,
        repository: Optional[UsageEventRepository] = None,
        rpm_limit: int = settings.USAGE_RPM,
        rpd_limit: int = settings.USAGE_RPD,
        tpm_limit: int = settings.USAGE_TPM,
        clock: Callable[[], datetime] = _now_utc,
    ):
        self._repo = repository or build_usage_repository()
        self.rpm_limit = rpm_limit
        self.rpd_limit = rpd_limit
        self.tpm_limit = tpm_limit
        self._clock = clock

    def check_limits(self) -> UsageSnapshot:
        """
        Check the budget before an AI call.

        Returns:
            UsageSnapshot with current usage

        Raises:
            RateLimitedError: If the minute or day budget is spent
            UsageLogUnavailableError: If the usage log cannot be read
        """
        now = self._clock()
        minute_start = now - MINUTE
        day_start = now - DAY

        requests_last_minute = self._repo.count_successful_since(minute_start)
        if requests_last_minute >= self.rpm_limit:
            oldest = self._repo.oldest_successful_since(minute_start) or now
            retry_after = max(1, math.ceil((oldest + MINUTE - now).total_seconds()))
            logger.warning("Minute budget spent: used=%d limit=%d", requests_last_minute, self.rpm_limit)
            raise RateLimitedError(
                f"Rate limit exceeded: {self.rpm_limit} requests per minute. "
                f"Try again in {retry_after} seconds.",
                retry_after_seconds=retry_after,
            )

        requests_last_day = self._repo.count_successful_since(day_start)
        if requests_last_day >= self.rpd_limit:
            oldest = self._repo.oldest_successful_since(day_start) or now
            reset_at = oldest + DAY
            seconds_left = max(1, math.ceil((reset_at - now).total_seconds()))
            hours_left = math.ceil(seconds_left / 3600)
            logger.warning("Daily budget spent: used=%d limit=%d", requests_last_day, self.rpd_limit)
            raise RateLimitedError(
                f"Daily AI limit reached ({self.rpd_limit}/{self.rpd_limit}). "
                f"Resets in {hours_left} hours at {reset_at:%Y-%m-%d %H:%M} UTC.",
                retry_after_seconds=seconds_left,
                reset_at=reset_at,
            )

        tokens_last_minute = self._repo.sum_tokens_since(minute_start)
        return self._snapshot(requests_last_minute, requests_last_day, tokens_last_minute)

    def record(
        self,
        user_id: str,
        request_type: RequestType,
        tokens_used: Optional[int] = None,
        success: bool = True,
    ) -> None:
        """
        Append one AI call attempt to the usage log.

        Args:
            user_id: The user who triggered the call
            request_type: url, pdf or video
            tokens_used: Tokens reported by the provider, if any
            success: False for attempts that must not count against the budget
        """
        event = UsageEvent(
            user_id=str(user_id),
            request_type=RequestType(request_type),
            success=success,
            tokens_used=tokens_used,
            timestamp=self._clock(),
        )
        self._repo.append(event)

        logger.info(
            "Usage recorded: user=%s, type=%s, tokens=%s, success=%s",
            event.user_id,
            event.request_type.value,
            tokens_used,
            success,
        )

    def stats(self) -> UsageSnapshot:
        """Current usage for display. Never raises for spent budgets."""
        now = self._clock()
        minute_start = now - MINUTE

        return self._snapshot(
            self._repo.count_successful_since(minute_start),
            self._repo.count_successful_since(now - DAY),
            self._repo.sum_tokens_since(minute_start),
        )

    def _snapshot(self, rpm_used: int, rpd_used: int, tpm_used: int) -> UsageSnapshot:
        return UsageSnapshot(
            rpm=UsageWindow(used=rpm_used, limit=self.rpm_limit),
            rpd=UsageWindow(used=rpd_used, limit=self.rpd_limit),
            tpm=UsageWindow(used=tpm_used, limit=self.tpm_limit),
        )
