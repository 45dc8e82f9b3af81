"""
Per-category mean-score table built from a labelled corpus.

For every category tag seen on at least ``min_count`` usable records the
table holds ``mean(ecoscore_score) / 100`` rounded to 3 decimals, ordered
from lowest to highest.  The output has the same shape as
``features.tables.CATEGORY_ENV_SCORES`` and can be passed to ``encode()``
as ``category_scores``.
"""

from __future__ import annotations

import json
import logging
from collections import defaultdict
from collections.abc import Iterable
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from sustain_score.features.encoder import as_tags
from sustain_score.ml.dataset import label_for

logger = logging.getLogger(__name__)

DEFAULT_MIN_COUNT = 20


@dataclass(frozen=True)
class CategoryScore:
    tag: str
    score: float
    count: int


def build_category_scores(
    records: Iterable[Any], min_count: int = DEFAULT_MIN_COUNT
) -> list[CategoryScore]:
    """Average the labels of each category tag.

    Args:
        records:   Raw corpus entries; unusable ones are skipped.
        min_count: Minimum observations for a tag to be kept.

    Returns:
        ``CategoryScore`` rows sorted by ascending score (ties by tag).
    """
    totals: dict[str, float] = defaultdict(float)
    counts: dict[str, int] = defaultdict(int)

    for record in records:
        label, reason = label_for(record)
        if reason is not None:
            continue
        for tag in set(as_tags(record.get("categories_tags"))):
            totals[tag] += label
            counts[tag] += 1

    rows = [
        CategoryScore(tag=tag, score=round(totals[tag] / counts[tag], 3), count=counts[tag])
        for tag in counts
        if counts[tag] >= min_count
    ]
    rows.sort(key=lambda r: (r.score, r.tag))
    logger.info(
        "Category table: %d of %d tags have >= %d observations",
        len(rows), len(counts), min_count,
    )
    return rows


def as_table(rows: Iterable[CategoryScore]) -> dict[str, float]:
    return {row.tag: row.score for row in rows}


def write_category_scores(rows: list[CategoryScore], path: str | Path) -> Path:
    out = Path(path)
    out.parent.mkdir(parents=True, exist_ok=True)
    with open(out, "w", encoding="utf-8") as f:
        json.dump(as_table(rows), f, indent=2)
    return out
