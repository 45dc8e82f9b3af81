"""
Feature encoder: raw product record -> fixed 40-element feature vector.

The vector layout below is the contract shared by the training pipeline
(``sustain_score.ml``) and every caller of the inference engine
(``sustain_score.serving``).  Both sides import this module; the sync
validator checks that the exported artifact still agrees with it.

Layout
------
 0      category_env_score           specificity-weighted category table average
 1-3    processing                   NOVA score, ultra-processed flag, ingredient complexity
 4-9    packaging                    five material flags + material continuity score
 10-15  certifications               five family flags + saturating certification count
 16-19  origin                       origin weight, local flag, transport band, manufacturing weight
 20-22  ingredient analysis          vegan, vegetarian, palm oil
 23-27  nutrient levels              high sugar / sat. fat / sodium / fat, low fat
 28-39  food groups                  exact category-tag membership

Totality
--------
``encode()`` never raises.  Missing keys, wrong types, NaN and unparsable
strings all resolve to the per-index default in ``FEATURE_DEFAULTS``; every
output is clamped to [0, 1].

Standard library only: this module runs inside the serving runtime.
"""

from __future__ import annotations

import math
import re
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any, Optional

from sustain_score.features.tables import (
    ALL_CERTIFICATION_TAGS,
    CATEGORY_ENV_SCORES,
    CERTIFICATION_TAGS,
    FOOD_GROUP_TAGS,
    LOCAL_ORIGIN_KEYWORDS,
    ORIGIN_SUSTAINABILITY,
    PACKAGING_KEYWORDS,
    PACKAGING_MATERIALS,
    TRANSPORT_BANDS,
    VEGAN_LABELS,
    VEGETARIAN_LABELS,
)

# ── Contract ──────────────────────────────────────────────────────────────────

FEATURE_NAMES: tuple[str, ...] = (
    "category_env_score",
    "nova_group_normalized", "is_ultra_processed", "ingredient_complexity",
    "has_plastic_packaging", "has_glass_packaging", "has_cardboard_packaging",
    "has_metal_packaging", "has_compostable_packaging", "packaging_material_score",
    "has_organic_cert", "has_fair_trade_cert", "has_rainforest_alliance_cert",
    "has_eu_ecolabel", "has_msc_cert", "certification_total_score",
    "origin_sustainability", "has_local_origin", "transport_estimate",
    "manufacturing_sustainability",
    "is_vegan", "is_vegetarian", "has_palm_oil",
    "has_high_sugar", "has_high_saturated_fat", "has_high_sodium",
    "has_high_fat", "has_low_fat",
    "is_meat", "is_fish_seafood", "is_dairy", "is_plant_based",
    "is_fruit_vegetable", "is_cereal", "is_beverage", "is_fat_oil",
    "is_sweet_snack", "is_canned", "is_frozen", "is_ready_meal",
)

NUM_FEATURES = 40

# Neutral 0.5 for scores where "unknown" sits mid-scale; 0 for presence flags.
FEATURE_DEFAULTS: tuple[float, ...] = (
    0.5,                                # category
    0.5, 0.0, 0.5,                      # processing
    0.0, 0.0, 0.0, 0.0, 0.0, 0.5,       # packaging
    0.0, 0.0, 0.0, 0.0, 0.0, 0.0,       # certifications
    0.5, 0.0, 0.5, 0.5,                 # origin
    0.0, 0.0, 0.0,                      # ingredient analysis
    0.0, 0.0, 0.0, 0.0, 0.0,            # nutrient levels
    *([0.0] * 12),                      # food groups
)

NON_DEFAULT_TOLERANCE = 0.001
MIN_VALID_FEATURES = 2

_PACKAGING_SPLIT = re.compile(r"[\s,;/]+")


@dataclass(frozen=True)
class FeatureVector:
    """Encoded product.

    Attributes:
        values:            ``NUM_FEATURES`` floats, each in [0, 1].
        non_default_count: How many values differ from their default by more
                           than ``NON_DEFAULT_TOLERANCE`` (data richness).
    """

    values: tuple[float, ...]
    non_default_count: int

    @property
    def valid(self) -> bool:
        """True when at least ``MIN_VALID_FEATURES`` features carry real data."""
        return self.non_default_count >= MIN_VALID_FEATURES

    def as_list(self) -> list[float]:
        return list(self.values)


# ── Field coercion ────────────────────────────────────────────────────────────


def as_tags(value: Any) -> list[str]:
    """Coerce a tag field to a list of lowercase strings; junk becomes []."""
    if isinstance(value, str):
        return [value.lower()] if value else []
    if isinstance(value, (list, tuple, set, frozenset)):
        return [item.lower() for item in value if isinstance(item, str) and item]
    return []


def _text(value: Any) -> str:
    return value.lower() if isinstance(value, str) else ""


def _number(value: Any) -> Optional[float]:
    """Coerce a numeric field; bools, NaN, infinities and junk become None."""
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        number = float(value)
    elif isinstance(value, str):
        try:
            number = float(value.strip())
        except ValueError:
            return None
    else:
        return None
    return number if math.isfinite(number) else None


def _clamp(value: float, low: float = 0.0, high: float = 1.0) -> float:
    return max(low, min(high, value))


def _flag(condition: bool) -> float:
    return 1.0 if condition else 0.0


def _any_contains(tags: list[str], keyword: str) -> bool:
    return any(keyword in tag for tag in tags)


# ── Sub-encoders ──────────────────────────────────────────────────────────────


def encode_category_score(
    category_tags: list[str],
    category_scores: Mapping[str, float] = CATEGORY_ENV_SCORES,
) -> float:
    """Specificity-weighted mean of the table scores of matching tags.

    Weight = number of hyphen-separated parts, so ``en:plain-yogurts`` (2)
    outweighs ``en:yogurts`` (1).  No match -> 0.5.
    """
    total = 0.0
    weight = 0
    for tag in category_tags:
        score = category_scores.get(tag)
        if score is None:
            continue
        specificity = len(tag.split("-"))
        total += score * specificity
        weight += specificity
    if weight == 0:
        return 0.5
    return total / weight


def encode_processing(record: Mapping[str, Any]) -> list[float]:
    nova = _number(record.get("nova_group"))
    nova_score = 0.5 if nova is None else _clamp(1.0 - (nova - 1.0) / 3.0)

    ingredients_n = _number(record.get("ingredients_n"))
    if ingredients_n is not None and ingredients_n > 0:
        complexity = _clamp(1.0 - ingredients_n / 50.0)
    else:
        complexity = 0.5

    return [nova_score, _flag(nova == 4), complexity]


def packaging_tokens(record: Mapping[str, Any]) -> list[str]:
    """All packaging descriptors: both tag lists plus the split free text."""
    tokens = as_tags(record.get("packaging_tags")) + as_tags(record.get("packaging_materials_tags"))
    text = _text(record.get("packaging_text"))
    if text:
        tokens.extend(token for token in _PACKAGING_SPLIT.split(text) if token)
    return tokens


def encode_packaging(record: Mapping[str, Any]) -> list[float]:
    tokens = packaging_tokens(record)
    flags = [
        _flag(any(_any_contains(tokens, kw) for kw in PACKAGING_KEYWORDS[family]))
        for family in ("plastic", "glass", "cardboard", "metal", "compostable")
    ]

    material_count = sum(1 for material in PACKAGING_MATERIALS if _any_contains(tokens, material))
    if not tokens or material_count == 0:
        continuity = 0.5
    elif material_count == 1:
        continuity = 0.8
    else:
        continuity = max(0.2, 1.0 - material_count / 5.0)

    return flags + [continuity]


def encode_certifications(record: Mapping[str, Any]) -> list[float]:
    labels = as_tags(record.get("labels_tags"))
    label_set = set(labels)
    flags = [
        _flag(any(tag in label_set for tag in CERTIFICATION_TAGS[family]))
        for family in ("organic", "fair_trade", "rainforest_alliance", "eu_ecolabel", "msc")
    ]

    count = 0
    for cert_tag in ALL_CERTIFICATION_TAGS:
        bare = cert_tag.replace("en:", "", 1)
        if _any_contains(labels, bare):
            count += 1

    return flags + [min(count / 5.0, 1.0)]


def origin_weight(tags: list[str], text: str) -> float:
    """First ``ORIGIN_SUSTAINABILITY`` keyword found in tags + text, else 0.5."""
    sources = [tag.replace("en:", "", 1).replace("-", " ") for tag in tags]
    if text:
        sources.append(text)
    combined = " ".join(sources)
    if not combined:
        return 0.5
    for keyword, weight in ORIGIN_SUSTAINABILITY.items():
        if keyword in combined:
            return weight
    return 0.5


def transport_estimate(tags: list[str], text: str) -> float:
    combined = " ".join([*tags, text])
    if not combined.strip():
        return 0.5
    for score, keywords in TRANSPORT_BANDS:
        if any(keyword in combined for keyword in keywords):
            return score
    return 0.5


def encode_origin(record: Mapping[str, Any]) -> list[float]:
    origin_tags = as_tags(record.get("origins_tags"))
    origin_text = _text(record.get("origins"))

    has_local = any(
        _any_contains(origin_tags, kw) or kw in origin_text for kw in LOCAL_ORIGIN_KEYWORDS
    )

    return [
        origin_weight(origin_tags, origin_text),
        _flag(has_local),
        transport_estimate(origin_tags, origin_text),
        origin_weight(
            as_tags(record.get("manufacturing_places_tags")),
            _text(record.get("manufacturing_places")),
        ),
    ]


def encode_ingredients(record: Mapping[str, Any]) -> list[float]:
    label_set = set(as_tags(record.get("labels_tags")))
    analysis = as_tags(record.get("ingredients_analysis_tags"))

    vegan = any(tag in label_set for tag in VEGAN_LABELS) or (
        _any_contains(analysis, "vegan") and not _any_contains(analysis, "non-vegan")
    )
    vegetarian = any(tag in label_set for tag in VEGETARIAN_LABELS) or (
        _any_contains(analysis, "vegetarian") and not _any_contains(analysis, "non-vegetarian")
    )
    palm_oil = _any_contains(analysis, "palm-oil") and not _any_contains(analysis, "palm-oil-free")

    return [_flag(vegan), _flag(vegetarian), _flag(palm_oil)]


def encode_nutrients(record: Mapping[str, Any]) -> list[float]:
    levels = as_tags(record.get("nutrient_levels_tags"))
    return [
        _flag(_any_contains(levels, "sugars-in-high-quantity")),
        _flag(_any_contains(levels, "saturated-fat-in-high-quantity")),
        _flag(_any_contains(levels, "salt-in-high-quantity")),
        _flag(_any_contains(levels, "fat-in-high-quantity")),
        _flag(_any_contains(levels, "fat-in-low-quantity")),
    ]


def encode_food_groups(category_tags: list[str]) -> list[float]:
    """One flag per food group, by exact tag membership (never substring)."""
    tag_set = set(category_tags)
    return [_flag(not tag_set.isdisjoint(group)) for group in FOOD_GROUP_TAGS.values()]


# ── Public API ────────────────────────────────────────────────────────────────


def finalize(raw: list[float]) -> FeatureVector:
    """NaN-guard, clamp and count non-default features of a raw vector."""
    values: list[float] = []
    non_default = 0
    for index, value in enumerate(raw):
        default = FEATURE_DEFAULTS[index]
        if value is None or math.isnan(value):
            value = default
        value = _clamp(float(value))
        if abs(value - default) > NON_DEFAULT_TOLERANCE:
            non_default += 1
        values.append(value)
    return FeatureVector(values=tuple(values), non_default_count=non_default)


def encode(
    record: Optional[Mapping[str, Any]],
    category_scores: Optional[Mapping[str, float]] = None,
) -> FeatureVector:
    """Encode a raw product record into the shared feature contract.

    Args:
        record:          Sparse product attribute mapping (any key may be
                         absent or malformed).  ``None`` or a non-mapping is
                         treated as an empty record.
        category_scores: Optional replacement for ``CATEGORY_ENV_SCORES``
                         (used when evaluating a rebuilt table).

    Returns:
        ``FeatureVector`` of exactly ``NUM_FEATURES`` values in [0, 1].
    """
    if not isinstance(record, Mapping):
        record = {}
    category_tags = as_tags(record.get("categories_tags"))
    table = CATEGORY_ENV_SCORES if category_scores is None else category_scores

    raw = [
        encode_category_score(category_tags, table),
        *encode_processing(record),
        *encode_packaging(record),
        *encode_certifications(record),
        *encode_origin(record),
        *encode_ingredients(record),
        *encode_nutrients(record),
        *encode_food_groups(category_tags),
    ]
    return finalize(raw)
