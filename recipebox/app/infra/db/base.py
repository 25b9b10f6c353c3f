# recipebox/app/infra/db/base.py
"""
Abstract base class for the AI usage event log.
This interface allows easy swapping between different storage backends.
"""
from __future__ import annotations

from abc import ABC, abstractmethod
from datetime import datetime
from typing import Optional

from recipebox.app.domain.models import UsageEvent


class UsageEventRepository(ABC):
    """
    Append-only log of AI call attempts.

    Implementations:
    - SupabaseUsageEventRepository: Postgres table behind Supabase
    - InMemoryUsageEventRepository: process-local list (dev and tests)

    Storage failures raise UsageLogUnavailableError. An unreadable log
    must never look like an empty one.
    """

    @abstractmethod
    def append(self, event: UsageEvent) -> None:
        """
        Persist one usage event.

        Args:
            event: The event to store
        """
        pass

    @abstractmethod
    def count_successful_since(self, since: datetime) -> int:
        """
        Count successful events with timestamp >= since.

        Args:
            since: Start of the trailing window

        Returns:
            Number of successful events in the window
        """
        pass

    @abstractmethod
    def sum_tokens_since(self, since: datetime) -> int:
        """
        Sum tokens of successful events with timestamp >= since.
        Events without a token count contribute zero.
        """
        pass

    @abstractmethod
    def oldest_successful_since(self, since: datetime) -> Optional[datetime]:
        """
        Timestamp of the oldest successful event with timestamp >= since,
        or None if the window is empty.
        """
        pass
