"""
Static per-category average scores (tier 3 of the prediction cascade).

Lookup walks the record's category tags in order; for each tag (with any
``en:`` prefix removed) the first table key that is a substring of the tag,
or that contains the tag, wins.  No match, or no tags: ``DEFAULT_SCORE``.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from typing import Optional

DEFAULT_SCORE = 45

CATEGORY_AVERAGES: dict[str, int] = {
    "organic": 78,
    "plant-based": 72,
    "fruits": 75,
    "vegetables": 80,
    "fresh": 68,
    "cereals": 55,
    "breads": 52,
    "beverages": 48,
    "dairy": 42,
    "cheese": 40,
    "fish": 45,
    "seafood": 45,
    "snacks": 35,
    "chocolate": 32,
    "frozen": 38,
    "canned": 40,
    "meals": 42,
    "sauces": 45,
    "meat": 25,
    "beef": 18,
    "pork": 22,
    "poultry": 28,
    "processed-meat": 20,
}


def _clean(tag: str) -> str:
    tag = tag.strip().lower()
    if ":" in tag:
        tag = tag.split(":", 1)[1]
    return tag


def match_category(
    category_tags: Optional[Iterable[str]],
    table: Mapping[str, int] = CATEGORY_AVERAGES,
) -> Optional[tuple[str, int]]:
    """Return ``(table_key, score)`` for the first matching tag, else ``None``."""
    if isinstance(category_tags, str):
        category_tags = [category_tags]
    for tag in category_tags or ():
        if not isinstance(tag, str):
            continue
        clean = _clean(tag)
        if not clean:
            continue
        for key, score in table.items():
            if key in clean or clean in key:
                return key, score
    return None


def category_average(
    category_tags: Optional[Iterable[str]],
    table: Mapping[str, int] = CATEGORY_AVERAGES,
    default: int = DEFAULT_SCORE,
) -> int:
    match = match_category(category_tags, table)
    return default if match is None else match[1]
