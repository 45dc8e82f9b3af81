"""
Exported-artifact parsing and validation for the inference runtime.

The artifact (``weights.json``) is the only channel between training and
serving.  This module holds the serving side's *own* copy of the
architecture constants; they are deliberately not imported from
``sustain_score.ml`` so that the sync validator can compare the two
declarations.

Document layout::

    {
      "format_version": "4.0",
      "architecture":   "40→256→128→64→1",
      "layers": {
        "hidden1": {"kernel": [[...256] x 40], "bias": [...256]},
        "hidden2": {"kernel": [[...128] x 256], "bias": [...128]},
        "hidden3": {"kernel": [[...64] x 128],  "bias": [...64]},
        "output":  {"kernel": [[...1] x 64],    "bias": [...1]}
      },
      "batch_norm": {
        "bn1": {"gamma", "beta", "moving_mean", "moving_variance", "epsilon"},
        "bn2": ..., "bn3": ...
      },
      "normalization": {"feature_means": [...40], "feature_stds": [...40]},
      "contract": {...},
      "metadata": {...}
    }

Kernels are stored ``[inputs][outputs]``.

``validate_artifact()`` returns every problem found (never raises);
``parse_artifact()`` raises ``ArtifactError`` listing them all.
"""

from __future__ import annotations

import json
import math
from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

FORMAT_VERSION = "4.0"

INPUT_DIM = 40
HIDDEN1_DIM = 256
HIDDEN2_DIM = 128
HIDDEN3_DIM = 64
OUTPUT_DIM = 1

BN_EPSILON = 1e-5

LAYER_NAMES: tuple[str, ...] = ("hidden1", "hidden2", "hidden3", "output")
BATCH_NORM_NAMES: tuple[str, ...] = ("bn1", "bn2", "bn3")
BATCH_NORM_PARAMS: tuple[str, ...] = ("gamma", "beta", "moving_mean", "moving_variance")

# layer name -> (inputs, outputs)
LAYER_SHAPES: dict[str, tuple[int, int]] = {
    "hidden1": (INPUT_DIM, HIDDEN1_DIM),
    "hidden2": (HIDDEN1_DIM, HIDDEN2_DIM),
    "hidden3": (HIDDEN2_DIM, HIDDEN3_DIM),
    "output": (HIDDEN3_DIM, OUTPUT_DIM),
}

BATCH_NORM_WIDTHS: dict[str, int] = {
    "bn1": HIDDEN1_DIM,
    "bn2": HIDDEN2_DIM,
    "bn3": HIDDEN3_DIM,
}


class ArtifactError(ValueError):
    """Raised when an artifact does not match the compiled-in architecture.

    Attributes:
        problems: Every validation failure found, in document order.
    """

    def __init__(self, problems: list[str]) -> None:
        self.problems = problems
        summary = "; ".join(problems[:5])
        if len(problems) > 5:
            summary += f"; ... ({len(problems) - 5} more)"
        super().__init__(f"Invalid model artifact: {summary}")


@dataclass(frozen=True)
class DenseLayer:
    kernel: tuple[tuple[float, ...], ...]
    bias: tuple[float, ...]


@dataclass(frozen=True)
class BatchNormParams:
    gamma: tuple[float, ...]
    beta: tuple[float, ...]
    moving_mean: tuple[float, ...]
    moving_variance: tuple[float, ...]
    epsilon: float = BN_EPSILON


@dataclass(frozen=True)
class ModelWeights:
    """Validated, immutable contents of an artifact."""

    layers: tuple[DenseLayer, ...]
    batch_norms: tuple[BatchNormParams, ...]
    feature_means: tuple[float, ...]
    feature_stds: tuple[float, ...]
    format_version: str = FORMAT_VERSION
    architecture: str = ""
    metadata: dict[str, Any] = field(default_factory=dict)


# ── Validation ────────────────────────────────────────────────────────────────


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool) and math.isfinite(value)


def _check_vector(value: Any, length: int, where: str) -> list[str]:
    if not isinstance(value, list):
        return [f"{where}: missing or not an array"]
    if len(value) != length:
        return [f"{where}: expected length {length}, got {len(value)}"]
    bad = next((i for i, v in enumerate(value) if not _is_number(v)), None)
    if bad is not None:
        return [f"{where}[{bad}]: not a finite number"]
    return []


def _check_matrix(value: Any, rows: int, cols: int, where: str) -> list[str]:
    if not isinstance(value, list):
        return [f"{where}: missing or not an array"]
    if len(value) != rows:
        return [f"{where}: expected {rows} rows, got {len(value)}"]
    for index, row in enumerate(value):
        problems = _check_vector(row, cols, f"{where}[{index}]")
        if problems:
            # first bad row is enough to locate the divergence
            if isinstance(row, list) and len(row) != cols:
                return [f"{where}: expected {cols} columns, got {len(row)} (row {index})"]
            return problems
    return []


def validate_artifact(document: Any) -> list[str]:
    """Return every structural problem in ``document`` (empty list = valid)."""
    if not isinstance(document, Mapping):
        return ["artifact: not a JSON object"]

    problems: list[str] = []

    version = document.get("format_version")
    if version != FORMAT_VERSION:
        problems.append(f"format_version: expected {FORMAT_VERSION!r}, got {version!r}")

    layers = document.get("layers")
    if not isinstance(layers, Mapping):
        problems.append("layers: missing")
    else:
        for name in LAYER_NAMES:
            layer = layers.get(name)
            if not isinstance(layer, Mapping):
                problems.append(f"layers.{name}: missing")
                continue
            rows, cols = LAYER_SHAPES[name]
            problems += _check_matrix(layer.get("kernel"), rows, cols, f"layers.{name}.kernel")
            problems += _check_vector(layer.get("bias"), cols, f"layers.{name}.bias")

    batch_norm = document.get("batch_norm")
    if not isinstance(batch_norm, Mapping):
        problems.append("batch_norm: missing")
    else:
        for name in BATCH_NORM_NAMES:
            group = batch_norm.get(name)
            if not isinstance(group, Mapping):
                problems.append(f"batch_norm.{name}: missing")
                continue
            width = BATCH_NORM_WIDTHS[name]
            for param in BATCH_NORM_PARAMS:
                problems += _check_vector(group.get(param), width, f"batch_norm.{name}.{param}")
            variance = group.get("moving_variance")
            if isinstance(variance, list) and any(_is_number(v) and v < 0 for v in variance):
                problems.append(f"batch_norm.{name}.moving_variance: negative entry")
            epsilon = group.get("epsilon", BN_EPSILON)
            if not _is_number(epsilon) or epsilon <= 0:
                problems.append(f"batch_norm.{name}.epsilon: must be a positive number")

    normalization = document.get("normalization")
    if not isinstance(normalization, Mapping):
        problems.append("normalization: missing")
    else:
        problems += _check_vector(
            normalization.get("feature_means"), INPUT_DIM, "normalization.feature_means"
        )
        stds = normalization.get("feature_stds")
        std_problems = _check_vector(stds, INPUT_DIM, "normalization.feature_stds")
        problems += std_problems
        if not std_problems and any(v <= 0 for v in stds):
            problems.append("normalization.feature_stds: entries must be positive")

    return problems


# ── Parsing ───────────────────────────────────────────────────────────────────


def parse_artifact(document: Any) -> ModelWeights:
    """Validate and freeze an artifact document.

    Raises:
        ArtifactError: If ``validate_artifact`` reports any problem.
    """
    problems = validate_artifact(document)
    if problems:
        raise ArtifactError(problems)

    layers = tuple(
        DenseLayer(
            kernel=tuple(tuple(float(v) for v in row) for row in document["layers"][name]["kernel"]),
            bias=tuple(float(v) for v in document["layers"][name]["bias"]),
        )
        for name in LAYER_NAMES
    )
    batch_norms = tuple(
        BatchNormParams(
            *(tuple(float(v) for v in document["batch_norm"][name][param]) for param in BATCH_NORM_PARAMS),
            epsilon=float(document["batch_norm"][name].get("epsilon", BN_EPSILON)),
        )
        for name in BATCH_NORM_NAMES
    )
    normalization = document["normalization"]
    metadata = document.get("metadata")

    return ModelWeights(
        layers=layers,
        batch_norms=batch_norms,
        feature_means=tuple(float(v) for v in normalization["feature_means"]),
        feature_stds=tuple(float(v) for v in normalization["feature_stds"]),
        format_version=str(document["format_version"]),
        architecture=str(document.get("architecture", "")),
        metadata=dict(metadata) if isinstance(metadata, Mapping) else {},
    )


def read_artifact_document(path: str | Path) -> dict[str, Any]:
    """Read the raw JSON document behind an artifact file.

    Raises:
        ArtifactError: If the file is missing or not valid JSON.
    """
    artifact_path = Path(path)
    try:
        with open(artifact_path, encoding="utf-8") as f:
            return json.load(f)
    except FileNotFoundError:
        raise ArtifactError([f"artifact file not found: {artifact_path}"]) from None
    except (OSError, ValueError) as exc:
        raise ArtifactError([f"artifact file unreadable: {artifact_path}: {exc}"]) from exc


def load_artifact(path: str | Path) -> ModelWeights:
    """Read and validate an artifact file."""
    return parse_artifact(read_artifact_document(path))
