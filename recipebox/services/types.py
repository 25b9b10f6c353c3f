from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


def _coerce_text(value: object) -> object:
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return str(value)
    if isinstance(value, str):
        return value.strip()
    return value


class Ingredient(BaseModel):
    amount: str = ""
    item: str = Field(..., min_length=1)

    @field_validator("amount", "item", mode="before")
    @classmethod
    def clean_text(cls, value: object) -> object:
        return _coerce_text(value)


class InstructionStep(BaseModel):
    step: int = Field(..., ge=1)
    text: str

    @field_validator("text", mode="before")
    @classmethod
    def clean_text(cls, value: object) -> object:
        return _coerce_text(value)


class Recipe(BaseModel):
    """Canonical recipe shape produced by both import strategies."""

    model_config = ConfigDict(populate_by_name=True)

    name: str = Field(..., min_length=1)
    description: Optional[str] = None
    prep_time: Optional[int] = Field(default=None, ge=0, alias="prepTime")
    cook_time: Optional[int] = Field(default=None, ge=0, alias="cookTime")
    total_time: Optional[int] = Field(default=None, ge=0, alias="totalTime")
    servings: Optional[int] = Field(default=None, ge=1)
    ingredients: list[Ingredient] = Field(..., min_length=1)
    instructions: list[InstructionStep]
    tags: list[str] = Field(default_factory=list)

    @field_validator("name", "description", mode="before")
    @classmethod
    def clean_text(cls, value: object) -> object:
        return _coerce_text(value)

    @field_validator("tags", mode="before")
    @classmethod
    def normalize_tags(cls, value: object) -> list[str]:
        if value is None:
            return []
        if isinstance(value, str):
            value = [value]
        if not isinstance(value, (list, tuple, set)):
            raise ValueError("tags must be a list of strings")

        seen: list[str] = []
        for tag in value:
            if not isinstance(tag, str):
                continue
            cleaned = tag.strip().lower()
            if cleaned and cleaned not in seen:
                seen.append(cleaned)
        return seen

    def to_payload(self) -> dict:
        return self.model_dump(by_alias=True, exclude_none=True)


class MacroEstimate(BaseModel):
    calories: int
    protein: int
    carbs: int
    fat: int
    fiber: Optional[int] = None
