"""
Training corpus loading, filtering, encoding and splitting.

Pipeline
--------
1. ``load_records(path)``   — JSON array, ``{"products": [...]}`` wrapper,
                              JSON Lines or Parquet (via pyarrow).
2. ``build_examples()``     — keep records with a numeric ``ecoscore_score``
                              in [0, 100] and at least one category tag;
                              encode them; drop vectors with the wrong length
                              or non-finite values.  Every rejection is
                              counted by reason in a ``CorpusReport``.
3. ``split_indices()``      — seeded shuffle, then the test partition is cut
                              from the tail first and validation from the
                              tail of the remainder::

                                test_start = floor(n * (1 - test))
                                val_start  = floor(test_start * (1 - val / (1 - test)))

4. ``FeatureScaler.fit()``  — per-feature mean and population std from the
                              training partition only; a std below
                              ``STD_EPSILON`` is replaced with 1.0 so a
                              constant feature normalizes to 0.
"""

from __future__ import annotations

import json
import logging
import math
from collections import Counter
from collections.abc import Callable, Iterable, Mapping, Sequence
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Optional

import numpy as np
import pyarrow.parquet as pq

from sustain_score.features.encoder import NUM_FEATURES, as_tags, encode

logger = logging.getLogger(__name__)

LABEL_FIELD = "ecoscore_score"
STD_EPSILON = 1e-8

# rejection reasons
REASON_NOT_A_RECORD = "not_a_record"
REASON_MISSING_SCORE = "missing_score"
REASON_NON_NUMERIC_SCORE = "non_numeric_score"
REASON_SCORE_OUT_OF_RANGE = "score_out_of_range"
REASON_NO_CATEGORIES = "no_categories"
REASON_BAD_ENCODING = "bad_encoding"


# ── Loading ───────────────────────────────────────────────────────────────────


def load_records(path: str | Path) -> list[Any]:
    """Read a raw product corpus.

    Args:
        path: ``.json`` (array or ``{"products": [...]}``), ``.jsonl`` /
              ``.ndjson`` (one object per line) or ``.parquet``.

    Returns:
        The raw entries, unfiltered.  Entries may be non-dicts; filtering
        happens in ``build_examples``.

    Raises:
        FileNotFoundError: If ``path`` does not exist.
        ValueError:        If the file format or JSON shape is unsupported.
    """
    corpus_path = Path(path)
    if not corpus_path.exists():
        raise FileNotFoundError(f"Corpus file not found: {corpus_path}")

    suffix = corpus_path.suffix.lower()
    if suffix == ".parquet":
        return pq.read_table(corpus_path).to_pylist()

    if suffix in (".jsonl", ".ndjson"):
        records = []
        with open(corpus_path, encoding="utf-8") as f:
            for line in f:
                line = line.strip()
                if line:
                    records.append(json.loads(line))
        return records

    if suffix == ".json":
        with open(corpus_path, encoding="utf-8") as f:
            document = json.load(f)
        if isinstance(document, Mapping) and isinstance(document.get("products"), list):
            return document["products"]
        if isinstance(document, list):
            return document
        raise ValueError(
            f"{corpus_path}: expected a JSON array or an object with a 'products' array."
        )

    raise ValueError(f"Unsupported corpus format '{suffix}' ({corpus_path}).")


# ── Filtering and encoding ────────────────────────────────────────────────────


@dataclass(frozen=True)
class TrainingExample:
    """One encoded, labelled product.

    ``features`` are un-normalized encoder output; ``label`` is
    ``ecoscore_score / 100``.
    """

    features: tuple[float, ...]
    label: float
    name: str = ""
    grade: Optional[str] = None


@dataclass
class CorpusReport:
    """Counts produced while turning raw records into examples."""

    total: int = 0
    accepted: int = 0
    rejected: Counter = field(default_factory=Counter)

    @property
    def rejected_total(self) -> int:
        return sum(self.rejected.values())

    def to_dict(self) -> dict[str, Any]:
        return {
            "total": self.total,
            "accepted": self.accepted,
            "rejected_total": self.rejected_total,
            "rejected_by_reason": dict(sorted(self.rejected.items())),
        }


def label_for(record: Any) -> tuple[Optional[float], Optional[str]]:
    """Return ``(label, None)`` for a usable record or ``(None, reason)``."""
    if not isinstance(record, Mapping):
        return None, REASON_NOT_A_RECORD
    score = record.get(LABEL_FIELD)
    if score is None:
        return None, REASON_MISSING_SCORE
    if isinstance(score, bool) or not isinstance(score, (int, float)) or not math.isfinite(score):
        return None, REASON_NON_NUMERIC_SCORE
    if not 0 <= score <= 100:
        return None, REASON_SCORE_OUT_OF_RANGE
    if not as_tags(record.get("categories_tags")):
        return None, REASON_NO_CATEGORIES
    return score / 100.0, None


def build_examples(
    records: Iterable[Any],
    encoder: Callable[[Mapping[str, Any]], Any] = encode,
) -> tuple[list[TrainingExample], CorpusReport]:
    """Filter, label and encode raw records.

    Args:
        records: Raw corpus entries.
        encoder: Record → feature vector; defaults to ``encode``.  Either a
                 ``FeatureVector`` or a plain sequence is accepted.

    Returns:
        ``(examples, report)``.
    """
    report = CorpusReport()
    examples: list[TrainingExample] = []

    for record in records:
        report.total += 1
        label, reason = label_for(record)
        if reason is not None:
            report.rejected[reason] += 1
            continue

        vector = encoder(record)
        values = tuple(float(v) for v in getattr(vector, "values", vector))
        if len(values) != NUM_FEATURES or not all(math.isfinite(v) for v in values):
            report.rejected[REASON_BAD_ENCODING] += 1
            continue

        grade = record.get("ecoscore_grade")
        examples.append(
            TrainingExample(
                features=values,
                label=label,
                name=str(record.get("product_name") or ""),
                grade=grade.lower() if isinstance(grade, str) and grade else None,
            )
        )

    report.accepted = len(examples)
    if report.rejected:
        logger.info(
            "Corpus: %d/%d records accepted; rejected %s",
            report.accepted,
            report.total,
            dict(report.rejected),
        )
    return examples, report


# ── Splitting ─────────────────────────────────────────────────────────────────


def split_boundaries(n: int, validation_split: float, test_split: float) -> tuple[int, int]:
    """Return ``(val_start, test_start)`` for ``n`` shuffled examples."""
    test_start = math.floor(n * (1.0 - test_split))
    val_start = math.floor(test_start * (1.0 - validation_split / (1.0 - test_split)))
    return val_start, test_start


def split_indices(
    n: int,
    validation_split: float,
    test_split: float,
    seed: Optional[int] = None,
) -> tuple[list[int], list[int], list[int]]:
    """Shuffle ``range(n)`` and cut it into train / validation / test."""
    order = np.random.default_rng(seed).permutation(n).tolist()
    val_start, test_start = split_boundaries(n, validation_split, test_split)
    return order[:val_start], order[val_start:test_start], order[test_start:]


@dataclass(frozen=True)
class DatasetSplit:
    train: list[TrainingExample]
    validation: list[TrainingExample]
    test: list[TrainingExample]

    @property
    def sizes(self) -> dict[str, int]:
        return {
            "train": len(self.train),
            "validation": len(self.validation),
            "test": len(self.test),
            "total": len(self.train) + len(self.validation) + len(self.test),
        }


def split_examples(
    examples: Sequence[TrainingExample],
    validation_split: float,
    test_split: float,
    seed: Optional[int] = None,
) -> DatasetSplit:
    train_idx, val_idx, test_idx = split_indices(len(examples), validation_split, test_split, seed)
    return DatasetSplit(
        train=[examples[i] for i in train_idx],
        validation=[examples[i] for i in val_idx],
        test=[examples[i] for i in test_idx],
    )


# ── Normalization ─────────────────────────────────────────────────────────────


@dataclass(frozen=True)
class FeatureScaler:
    """Z-score parameters fitted on the training partition."""

    means: tuple[float, ...]
    stds: tuple[float, ...]

    @classmethod
    def fit(cls, matrix: Sequence[Sequence[float]] | np.ndarray) -> "FeatureScaler":
        data = np.asarray(matrix, dtype=np.float64)
        if data.ndim != 2 or data.shape[0] == 0:
            raise ValueError(f"FeatureScaler.fit needs a non-empty 2-D matrix, got shape {data.shape}.")
        means = data.mean(axis=0)
        stds = data.std(axis=0)
        stds[stds < STD_EPSILON] = 1.0
        return cls(means=tuple(means.tolist()), stds=tuple(stds.tolist()))

    def transform(self, matrix: Sequence[Sequence[float]] | np.ndarray) -> np.ndarray:
        data = np.asarray(matrix, dtype=np.float64)
        return (data - np.asarray(self.means)) / np.asarray(self.stds)

    def to_dict(self) -> dict[str, list[float]]:
        return {"feature_means": list(self.means), "feature_stds": list(self.stds)}


def feature_matrix(examples: Sequence[TrainingExample]) -> np.ndarray:
    return np.asarray([e.features for e in examples], dtype=np.float64).reshape(-1, NUM_FEATURES)


def label_vector(examples: Sequence[TrainingExample]) -> np.ndarray:
    return np.asarray([e.label for e in examples], dtype=np.float64)
