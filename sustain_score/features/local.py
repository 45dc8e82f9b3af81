"""
Adapter from user-entered product fields to a raw product record.

Products that are not in the product database are described by hand (or
by the label-text analyzer): a category name, free-form certification
names, a packaging description and so on.  ``record_from_local_product``
maps those fields onto the same record shape the database client returns,
so the encoder and every prediction tier treat both sources identically.
"""

from __future__ import annotations

import re
from collections.abc import Iterable
from typing import Any, Optional

# certification substring -> label tag, checked independently
_CERTIFICATION_LABELS: tuple[tuple[tuple[str, ...], str], ...] = (
    (("organic", "bio"), "en:organic"),
    (("fair", "trade"), "en:fair-trade"),
    (("rainforest",), "en:rainforest-alliance"),
    (("fsc",), "en:fsc"),
    (("msc",), "en:msc"),
    (("utz",), "en:utz-certified"),
    (("vegan",), "en:vegan"),
    (("vegetarian",), "en:vegetarian"),
    (("ecolabel",), "en:eu-ecolabel"),
)

_WHITESPACE = re.compile(r"\s+")


def certification_labels(certifications: Optional[Iterable[str]]) -> list[str]:
    """Map free-form certification names to canonical label tags."""
    labels: list[str] = []
    for cert in certifications or ():
        if not isinstance(cert, str):
            continue
        lower = cert.lower()
        for needles, tag in _CERTIFICATION_LABELS:
            if any(needle in lower for needle in needles):
                labels.append(tag)
    return labels


def category_tag(category: Optional[str]) -> Optional[str]:
    """``"Plant Based Foods"`` -> ``"en:plant-based-foods"``."""
    if not isinstance(category, str) or not category.strip():
        return None
    return "en:" + _WHITESPACE.sub("-", category.strip().lower())


def record_from_local_product(
    category: Optional[str] = None,
    nova_group: Optional[int] = None,
    certifications: Optional[Iterable[str]] = None,
    packaging_type: Optional[str] = None,
    label_text: Optional[str] = None,
    origin_country: Optional[str] = None,
    manufacturing_place: Optional[str] = None,
) -> dict[str, Any]:
    """Build a raw product record from hand-entered fields.

    Args:
        category:            Display category, e.g. ``"Breakfast Cereals"``.
        nova_group:          NOVA processing group 1-4, if known.
        certifications:      Certification names as printed on the label.
        packaging_type:      Packaging description, e.g. ``"glass jar"``.
        label_text:          Transcribed label text; appended to the
                             packaging description.
        origin_country:      Country or region of origin.
        manufacturing_place: Where the product was made.

    Returns:
        Record dict containing only the keys that carry data.
    """
    record: dict[str, Any] = {}

    tag = category_tag(category)
    if tag:
        record["categories_tags"] = [tag]
    if nova_group is not None:
        record["nova_group"] = nova_group

    labels = certification_labels(certifications)
    if labels:
        record["labels_tags"] = labels

    packaging_text = " ".join(part for part in (packaging_type, label_text) if part)
    if packaging_text:
        record["packaging_text"] = packaging_text
    if origin_country:
        record["origins"] = origin_country
    if manufacturing_place:
        record["manufacturing_places"] = manufacturing_place

    return record
