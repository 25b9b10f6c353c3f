from __future__ import annotations

from typing import Literal, Optional

from pydantic import BaseModel, Field

from recipebox.services.types import Ingredient, MacroEstimate, Recipe


class ImportUrlRequest(BaseModel):
    url: str = Field(..., min_length=1, max_length=2048)


class UsageWindowResponse(BaseModel):
    used: int
    limit: int
    remaining: int


class UsageStatsResponse(BaseModel):
    rpm: UsageWindowResponse
    rpd: UsageWindowResponse
    tpm: UsageWindowResponse


class ImportResponse(BaseModel):
    method: Literal["structured", "ai"]
    recipe: Recipe
    usage: Optional[UsageStatsResponse] = None


class MacroRequest(BaseModel):
    ingredients: list[Ingredient] = Field(..., min_length=1)
    servings: Optional[int] = Field(default=None, ge=1)


class MacroResponse(BaseModel):
    macros: MacroEstimate
