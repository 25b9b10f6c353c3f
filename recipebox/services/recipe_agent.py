from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Iterable, Optional

from pydantic import ValidationError

from recipebox.app.config import settings
from recipebox.services.errors import (
    ExtractionFailedError,
    InvalidInputError,
    MalformedExtractionError,
    RateLimitedError,
    ServiceError,
    ServiceUnavailableError,
)
from recipebox.services.gemini_client import Contents, GeminiClient, GeminiReply
from recipebox.services.structured_data import split_ingredient
from recipebox.services.types import Ingredient, MacroEstimate, Recipe

logger = logging.getLogger(__name__)

PROMPTS_DIR = Path(__file__).resolve().parent.parent / "prompts"
RECIPE_EXTRACTION_PROMPT = PROMPTS_DIR / "RECIPE_EXTRACTION_PROMPT.txt"
MACRO_PROMPT = PROMPTS_DIR / "MACRO_PROMPT.txt"

PDF_MIME_TYPE = "application/pdf"
REQUIRED_FIELDS = ("name", "ingredients", "instructions")
MACRO_FIELDS = ("calories", "protein", "carbs", "fat")
PROVIDER_RETRY_AFTER_SECONDS = 60

CODE_FENCE_PATTERN = re.compile(r"^```(?:json)?[ \t]*\n?(.*?)\n?```$", re.DOTALL)


@dataclass(frozen=True)
class AgentResult:
    recipe: Recipe
    tokens_used: Optional[int] = None


def strip_code_fence(text: str) -> str:
    cleaned = (text or "").strip()
    match = CODE_FENCE_PATTERN.match(cleaned)
    return match.group(1).strip() if match else cleaned


def _load_json(text: str) -> Any:
    try:
        return json.loads(strip_code_fence(text))
    except json.JSONDecodeError as error:
        raise MalformedExtractionError("Failed to parse recipe data from AI response") from error


def _normalize_ingredients(raw: Any) -> Any:
    if not isinstance(raw, list):
        return raw
    return [split_ingredient(entry) if isinstance(entry, str) else entry for entry in raw]


def _normalize_instructions(raw: Any) -> Any:
    if not isinstance(raw, list):
        return raw

    # Steps are renumbered by position; the model's own numbering is not trusted
    steps = []
    for entry in raw:
        text = (entry.get("text") or entry.get("description")) if isinstance(entry, dict) else entry
        steps.append({"step": len(steps) + 1, "text": text})
    return steps


def parse_recipe_reply(text: str) -> Recipe:
    data = _load_json(text)

    if not isinstance(data, dict) or any(not data.get(field) for field in REQUIRED_FIELDS):
        raise MalformedExtractionError("Extracted recipe is missing required fields")

    data["ingredients"] = _normalize_ingredients(data["ingredients"])
    data["instructions"] = _normalize_instructions(data["instructions"])

    try:
        return Recipe.model_validate(data)
    except ValidationError as error:
        raise MalformedExtractionError(
            f"Extracted recipe is invalid ({error.error_count()} field errors)"
        ) from error


def parse_macro_reply(text: str) -> MacroEstimate:
    data = _load_json(text)

    if not isinstance(data, dict) or not all(
        isinstance(data.get(field), (int, float)) and not isinstance(data.get(field), bool)
        for field in MACRO_FIELDS
    ):
        raise MalformedExtractionError("Invalid macro data returned by AI")

    fiber = data.get("fiber")
    return MacroEstimate(
        calories=round(data["calories"]),
        protein=round(data["protein"]),
        carbs=round(data["carbs"]),
        fat=round(data["fat"]),
        fiber=round(fiber) if isinstance(fiber, (int, float)) else None,
    )


def map_provider_error(error: Exception) -> ServiceError:
    message = str(error)
    status_code = getattr(error, "code", None) or getattr(error, "status_code", None)
    logger.error("Gemini API error: %s", message)

    if "API key" in message or "API_KEY" in message:
        return ServiceUnavailableError("Invalid Gemini API key")
    if status_code == 429 or "429" in message or "quota" in message.lower() or "RESOURCE_EXHAUSTED" in message:
        return RateLimitedError(
            "Gemini API quota exceeded. Please try again in about a minute.",
            retry_after_seconds=PROVIDER_RETRY_AFTER_SECONDS,
        )
    if isinstance(error, json.JSONDecodeError):
        return MalformedExtractionError("Failed to parse recipe data from AI response")
    return ExtractionFailedError(f"Recipe extraction failed: {message}")


def _default_client() -> GeminiClient:
    api_key = settings.GEMINI_API_KEY.get_secret_value() if settings.GEMINI_API_KEY else None
    return GeminiClient(
        api_key=api_key,
        model_name=settings.GEMINI_MODEL,
        timeout_seconds=settings.GEMINI_TIMEOUT_SECONDS,
    )


class RecipeAgent:
    def __init__(self, client: Optional[GeminiClient] = None) -> None:
        self._client = client or _default_client()

    @property
    def client(self) -> GeminiClient:
        return self._client

    async def _generate(self, contents: Contents, system_prompt_path: Path) -> GeminiReply:
        try:
            return await self._client.generate_content(contents, system_prompt_path)
        except ServiceError:
            raise
        except Exception as error:
            raise map_provider_error(error) from error

    async def extract_from_text(self, text: str) -> AgentResult:
        if not text or not text.strip():
            raise InvalidInputError("No page content to extract a recipe from.")

        reply = await self._generate(f"Recipe page content:\n{text}", RECIPE_EXTRACTION_PROMPT)
        return AgentResult(recipe=parse_recipe_reply(reply.text), tokens_used=reply.tokens_used)

    async def extract_from_pdf(self, data: bytes) -> AgentResult:
        if not data:
            raise InvalidInputError("PDF file is empty.")

        contents = [
            self._client.inline_part(data, PDF_MIME_TYPE),
            "Extract the recipe from this PDF document.",
        ]
        reply = await self._generate(contents, RECIPE_EXTRACTION_PROMPT)
        return AgentResult(recipe=parse_recipe_reply(reply.text), tokens_used=reply.tokens_used)

    async def estimate_macros(
        self,
        ingredients: Iterable[Ingredient],
        servings: Optional[int] = None,
    ) -> MacroEstimate:
        ingredient_lines = [
            f"- {ingredient.amount} {ingredient.item}".replace("-  ", "- ")
            for ingredient in ingredients
        ]
        if not ingredient_lines:
            raise InvalidInputError("At least one ingredient is required.")

        servings_line = f"Servings: {servings}\n" if servings else ""
        payload = f"Recipe:\n{servings_line}Ingredients:\n" + "\n".join(ingredient_lines)

        reply = await self._generate(payload, MACRO_PROMPT)
        return parse_macro_reply(reply.text)
