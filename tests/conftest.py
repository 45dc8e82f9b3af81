"""
Shared pytest fixtures for the sustainability-score test suite.

Provides:
  - ``in_memory_db``: A fresh in-memory SQLite connection with the schema
    applied.
  - ``make_artifact``: Builds a structurally valid ``weights.json`` document
    with small seeded random weights (pure Python, no torch).
  - ``artifact_file``: ``make_artifact()`` written to a temporary file.
  - ``app_config``: An ``AppConfig`` whose paths all live under ``tmp_path``.
  - ``sample_record``: A well-populated raw product record.
  - ``linear_examples``: 200 encoded examples with a linear label in feature 0.
  - ``raw_corpus``: Raw records covering every filter rejection reason.
"""

from __future__ import annotations

import json
import random
import sqlite3
from pathlib import Path
from typing import Any, Callable, Generator

import pytest

from sustain_score.config import (
    AppConfig,
    DatabaseConfig,
    DataConfig,
    LoggingConfig,
    SyncConfig,
)
from sustain_score.db.schema import apply_schema
from sustain_score.features.encoder import FEATURE_DEFAULTS, FEATURE_NAMES
from sustain_score.features.tables import (
    CATEGORY_ENV_SCORES,
    CATEGORY_TABLE_VERSION,
    FOOD_GROUP_TAGS,
)
from sustain_score.serving.artifact import (
    BATCH_NORM_NAMES,
    BATCH_NORM_WIDTHS,
    FORMAT_VERSION,
    LAYER_NAMES,
    LAYER_SHAPES,
)


# ── Database fixture ──────────────────────────────────────────────────────────

@pytest.fixture
def in_memory_db() -> Generator[sqlite3.Connection, None, None]:
    """Yield a fresh in-memory SQLite connection with the schema applied."""
    conn = sqlite3.connect(":memory:")
    conn.row_factory = sqlite3.Row
    apply_schema(conn)
    yield conn
    conn.close()


# ── Artifact builders ─────────────────────────────────────────────────────────

def build_artifact(seed: int = 0, scale: float = 0.1) -> dict[str, Any]:
    """A valid artifact: random kernels, identity batch norm, default-centred inputs."""
    rng = random.Random(seed)

    def uniform(n: int) -> list[float]:
        return [rng.uniform(-scale, scale) for _ in range(n)]

    layers = {}
    for name in LAYER_NAMES:
        rows, cols = LAYER_SHAPES[name]
        layers[name] = {"kernel": [uniform(cols) for _ in range(rows)], "bias": uniform(cols)}

    batch_norm = {
        name: {
            "gamma": [1.0] * BATCH_NORM_WIDTHS[name],
            "beta": [0.0] * BATCH_NORM_WIDTHS[name],
            "moving_mean": [0.0] * BATCH_NORM_WIDTHS[name],
            "moving_variance": [1.0] * BATCH_NORM_WIDTHS[name],
            "epsilon": 1e-5,
        }
        for name in BATCH_NORM_NAMES
    }

    return {
        "format_version": FORMAT_VERSION,
        "architecture": "40→256→128→64→1",
        "layers": layers,
        "batch_norm": batch_norm,
        "normalization": {
            "feature_means": list(FEATURE_DEFAULTS),
            "feature_stds": [0.5] * len(FEATURE_DEFAULTS),
        },
        "contract": {
            "feature_names": list(FEATURE_NAMES),
            "category_table_size": len(CATEGORY_ENV_SCORES),
            "category_table_version": CATEGORY_TABLE_VERSION,
            "food_groups": {name: sorted(tags) for name, tags in FOOD_GROUP_TAGS.items()},
        },
        "metadata": {"test_metrics": {"r_squared": 0.8}},
    }


@pytest.fixture
def make_artifact() -> Callable[..., dict[str, Any]]:
    return build_artifact


@pytest.fixture
def artifact_file(tmp_path: Path) -> Path:
    path = tmp_path / "weights.json"
    path.write_text(json.dumps(build_artifact()), encoding="utf-8")
    return path


# ── Config fixture ────────────────────────────────────────────────────────────

@pytest.fixture
def app_config(tmp_path: Path) -> AppConfig:
    """AppConfig with every path under ``tmp_path`` and no log file."""
    return AppConfig(
        database=DatabaseConfig(db_path=str(tmp_path / "db" / "test.db")),
        data=DataConfig(
            corpus_path=str(tmp_path / "products.json"),
            artifact_dir=str(tmp_path / "artifacts"),
        ),
        sync=SyncConfig(report_path=str(tmp_path / "reports" / "sync.json")),
        logging=LoggingConfig(log_file=""),
    )


# ── Sample records ────────────────────────────────────────────────────────────

@pytest.fixture
def sample_record() -> dict[str, Any]:
    """An organic, glass-packed, French yogurt with most fields populated."""
    return {
        "product_name": "Yaourt nature bio",
        "categories_tags": ["en:dairies", "en:yogurts", "en:plain-yogurts"],
        "nova_group": 1,
        "ingredients_n": 2,
        "packaging_tags": ["en:glass", "en:jar"],
        "packaging_text": "glass jar, metal lid",
        "labels_tags": ["en:organic", "en:eu-organic", "en:vegetarian"],
        "origins_tags": ["en:france"],
        "origins": "France",
        "manufacturing_places": "Normandie, France",
        "ingredients_analysis_tags": ["en:palm-oil-free", "en:vegetarian"],
        "nutrient_levels_tags": ["en:fat-in-low-quantity", "en:sugars-in-low-quantity"],
        "ecoscore_score": 76,
        "ecoscore_grade": "b",
    }


# ── Training corpora ──────────────────────────────────────────────────────────

def build_linear_examples(n: int = 200, seed: int = 7) -> list:
    """``n`` examples whose label is ``0.1 + 0.8 * features[0]``.

    Every other feature sits at its default, so only feature 0 carries
    signal.
    """
    from sustain_score.ml.dataset import TrainingExample

    rng = random.Random(seed)
    examples = []
    for index in range(n):
        x = rng.random()
        features = (x, *FEATURE_DEFAULTS[1:])
        examples.append(
            TrainingExample(features=features, label=0.1 + 0.8 * x, name=f"product-{index}")
        )
    return examples


@pytest.fixture(scope="session")
def linear_examples() -> list:
    return build_linear_examples()


def corpus_record(index: int, score: int) -> dict[str, Any]:
    """A minimal raw record accepted by the training filter."""
    return {
        "product_name": f"Product {index}",
        "categories_tags": ["en:plant-based-foods"] if index % 2 else ["en:beef"],
        "nova_group": 1 + index % 4,
        "labels_tags": ["en:organic"] if index % 3 == 0 else [],
        "ecoscore_score": score,
        "ecoscore_grade": "abcde"[min(4, (100 - score) // 20)],
    }


@pytest.fixture
def raw_corpus() -> list[dict[str, Any]]:
    """Sixty acceptable records plus one of each rejection reason."""
    records: list[Any] = [corpus_record(i, 20 + i) for i in range(60)]
    records += [
        "not a record",
        {"categories_tags": ["en:beef"]},
        {"categories_tags": ["en:beef"], "ecoscore_score": "high"},
        {"categories_tags": ["en:beef"], "ecoscore_score": 140},
        {"ecoscore_score": 50},
    ]
    return records
