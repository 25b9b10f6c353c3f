from __future__ import annotations

import logging
import threading
from datetime import datetime
from typing import Optional

from recipebox.app.domain.models import UsageEvent
from recipebox.app.infra.db.base import UsageEventRepository

logger = logging.getLogger(__name__)


class InMemoryUsageEventRepository(UsageEventRepository):
    def __init__(self, events: list[UsageEvent] | None = None):
        self._events: list[UsageEvent] = list(events or [])
        self._lock = threading.Lock()

    @property
    def events(self) -> list[UsageEvent]:
        with self._lock:
            return list(self._events)

    def append(self, event: UsageEvent) -> None:
        with self._lock:
            self._events.append(event)
        logger.debug(
            "Usage event stored: user=%s, type=%s, success=%s",
            event.user_id,
            event.request_type.value,
            event.success,
        )

    def _successful_since(self, since: datetime) -> list[UsageEvent]:
        with self._lock:
            return [e for e in self._events if e.success and e.timestamp >= since]

    def count_successful_since(self, since: datetime) -> int:
        return len(self._successful_since(since))

    def sum_tokens_since(self, since: datetime) -> int:
        return sum(e.tokens_used or 0 for e in self._successful_since(since))

    def oldest_successful_since(self, since: datetime) -> Optional[datetime]:
        timestamps = [e.timestamp for e in self._successful_since(since)]
        return min(timestamps) if timestamps else None
