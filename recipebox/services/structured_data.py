"""
Recipe extraction from embedded JSON-LD structured data.

Many recipe sites publish a schema.org ``Recipe`` object for search engines.
When a page has one, the import needs no AI call at all. Missing or broken
structured data is the common case and is never an error: the extractor just
returns ``None`` and the caller falls back to AI extraction.
"""
from __future__ import annotations

import html as html_lib
import json
import logging
import re
from typing import Any, Iterator, Optional

from bs4 import BeautifulSoup
from pydantic import ValidationError

from .types import Recipe

logger = logging.getLogger(__name__)

DURATION_PATTERN = re.compile(r"^PT(?:(\d+)H)?(?:(\d+)M)?$")
INGREDIENT_PATTERN = re.compile(r"^([\d\s/\-¼½¾⅓⅔⅛⅜⅝⅞.]+\s*[a-zA-Z]*)\s+(.+)$")
STEP_MARKER_PATTERN = re.compile(r"\d+\.\s*")
INTEGER_PATTERN = re.compile(r"\d+")
DEFAULT_AMOUNT = "1"
RECIPE_TYPE = "Recipe"


def parse_duration(value: object) -> Optional[int]:
    """Convert an ISO-8601 ``PT#H#M`` duration to minutes, or None."""
    if not isinstance(value, str) or not value.strip():
        return None

    match = DURATION_PATTERN.match(value.strip())
    if not match or match.group(1) is None and match.group(2) is None:
        return None

    hours = int(match.group(1) or 0)
    minutes = int(match.group(2) or 0)
    return hours * 60 + minutes


def split_ingredient(raw: str) -> dict[str, str]:
    """Split ``"2 1/4 cups flour"`` into amount and item."""
    text = _clean_text(raw)
    match = INGREDIENT_PATTERN.match(text)
    if match:
        return {"amount": match.group(1).strip(), "item": match.group(2).strip()}
    return {"amount": DEFAULT_AMOUNT, "item": text}


def _clean_text(value: object) -> str:
    if not isinstance(value, str):
        return ""
    return html_lib.unescape(value).strip()


def _as_list(value: Any) -> list:
    if value is None:
        return []
    if isinstance(value, list):
        return value
    return [value]


def _is_recipe(node: dict) -> bool:
    declared = node.get("@type")
    if isinstance(declared, list):
        return RECIPE_TYPE in declared
    return declared == RECIPE_TYPE


def _iter_nodes(data: Any) -> Iterator[dict]:
    for item in _as_list(data):
        if not isinstance(item, dict):
            continue
        yield item
        if "@graph" in item:
            yield from _iter_nodes(item["@graph"])


def find_recipe_node(data: Any) -> Optional[dict]:
    for node in _iter_nodes(data):
        if _is_recipe(node):
            return node
    return None


def _instruction_texts(raw: Any) -> Iterator[str]:
    for entry in _as_list(raw):
        if isinstance(entry, str):
            yield _clean_text(entry)
        elif isinstance(entry, dict):
            if entry.get("@type") == "HowToSection" and "itemListElement" in entry:
                yield from _instruction_texts(entry["itemListElement"])
            else:
                yield _clean_text(entry.get("text") or entry.get("description"))


def map_instructions(raw: Any) -> list[dict[str, Any]]:
    if isinstance(raw, str):
        texts = [part.strip() for part in STEP_MARKER_PATTERN.split(_clean_text(raw))]
    else:
        texts = list(_instruction_texts(raw))

    steps = [text for text in texts if text]
    return [{"step": index, "text": text} for index, text in enumerate(steps, start=1)]


def collect_tags(node: dict) -> list[str]:
    tags: list[str] = []
    tags.extend(_as_list(node.get("recipeCategory")))
    tags.extend(_as_list(node.get("recipeCuisine")))

    keywords = node.get("keywords")
    if isinstance(keywords, str):
        tags.extend(keywords.split(","))
    else:
        tags.extend(_as_list(keywords))

    # Recipe normalizes case and removes duplicates
    return [tag for tag in tags if isinstance(tag, str)]


def parse_servings(value: Any) -> Optional[int]:
    for entry in _as_list(value):
        match = INTEGER_PATTERN.search(str(entry))
        if match:
            servings = int(match.group(0))
            return servings or None
    return None


def recipe_from_json_ld(node: dict) -> Recipe:
    ingredients = [
        split_ingredient(raw)
        for raw in _as_list(node.get("recipeIngredient"))
        if isinstance(raw, str) and raw.strip()
    ]

    return Recipe(
        name=_clean_text(node.get("name")),
        description=_clean_text(node.get("description")) or None,
        prep_time=parse_duration(node.get("prepTime")),
        cook_time=parse_duration(node.get("cookTime")),
        total_time=parse_duration(node.get("totalTime")),
        servings=parse_servings(node.get("recipeYield")),
        ingredients=ingredients,
        instructions=map_instructions(node.get("recipeInstructions")),
        tags=collect_tags(node),
    )


def _json_ld_blocks(html: str) -> Iterator[str]:
    soup = BeautifulSoup(html, "html.parser")
    for script in soup.find_all("script", attrs={"type": "application/ld+json"}):
        content = script.string or script.get_text()
        if content and content.strip():
            yield content


def extract_structured_data(html: str) -> Optional[Recipe]:
    for index, block in enumerate(_json_ld_blocks(html)):
        try:
            node = find_recipe_node(json.loads(block))
            if node is None:
                continue
            return recipe_from_json_ld(node)
        except ValidationError as error:
            logger.debug("JSON-LD block %d is not a usable recipe: %s", index, error.error_count())
            continue
        except Exception as error:
            # Broken structured data must never abort the import
            logger.debug("Skipping JSON-LD block %d: %s", index, error)
            continue

    return None
