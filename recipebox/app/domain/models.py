# recipebox/app/domain/models.py
"""
Domain models for AI usage tracking and recipe imports.
These are pure data structures with no infrastructure dependencies.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from recipebox.services.types import Recipe


class RequestType(str, Enum):
    """Kind of content sent to the AI provider."""
    URL = "url"
    PDF = "pdf"
    VIDEO = "video"


class ImportMethod(str, Enum):
    """Strategy that produced an imported recipe."""
    STRUCTURED = "structured"
    AI = "ai"


@dataclass(frozen=True)
class UsageEvent:
    """
    One AI call attempt. The usage log is append-only: events are
    never updated or deleted once recorded.
    """
    user_id: str
    request_type: RequestType
    success: bool
    tokens_used: Optional[int] = None
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


@dataclass(frozen=True)
class UsageWindow:
    """Usage of one budget dimension inside its trailing window."""
    used: int
    limit: int

    @property
    def remaining(self) -> int:
        return max(0, self.limit - self.used)

    def to_dict(self) -> dict[str, int]:
        return {"used": self.used, "limit": self.limit, "remaining": self.remaining}


@dataclass(frozen=True)
class UsageSnapshot:
    """Derived quota state: requests per minute/day and tokens per minute."""
    rpm: UsageWindow
    rpd: UsageWindow
    tpm: UsageWindow

    def to_dict(self) -> dict[str, dict[str, int]]:
        return {
            "rpm": self.rpm.to_dict(),
            "rpd": self.rpd.to_dict(),
            "tpm": self.tpm.to_dict(),
        }


@dataclass
class ImportResult:
    """Outcome of a successful import."""
    method: ImportMethod
    recipe: Recipe
    usage: Optional[UsageSnapshot] = None
