"""
Dependency-free forward pass over an exported artifact.

Inference only: there is no dropout, no batch statistics and no gradient
code here.  Training-mode behaviour lives exclusively in
``sustain_score.ml.network``; ``InferenceEngine`` is a separate type with a
single mode.

Forward pass
------------
    x  = (features - feature_means) / feature_stds        # z-score
    h1 = relu(bn1(x  @ W1 + b1))
    h2 = relu(bn2(h1 @ W2 + b2))
    h3 = relu(bn3(h2 @ W3 + b3))
    y  = sigmoid(h3 @ W4 + b4)

Batch normalization uses the stored running statistics, folded into a
per-unit ``scale`` / ``shift`` at construction time::

    scale = gamma / sqrt(moving_variance + epsilon)
    shift = beta - moving_mean * scale

Failure handling
----------------
``predict_raw`` raises ``InferenceError`` on a length mismatch or a
non-finite value; ``predict`` logs the problem and returns the neutral
``NEUTRAL_OUTPUT`` instead, so callers never see NaN.
"""

from __future__ import annotations

import logging
import math
from collections.abc import Sequence
from operator import mul
from pathlib import Path
from typing import Any

from sustain_score.serving.artifact import (
    BatchNormParams,
    DenseLayer,
    ModelWeights,
    load_artifact,
    parse_artifact,
)

logger = logging.getLogger(__name__)

NEUTRAL_OUTPUT = 0.5
SIGMOID_CLIP = 500.0


class InferenceError(ArithmeticError):
    """Raised by ``predict_raw`` when a forward pass cannot produce a score."""


# ── Primitives ────────────────────────────────────────────────────────────────


def relu(values: list[float]) -> list[float]:
    return [v if v > 0.0 else 0.0 for v in values]


def sigmoid(x: float) -> float:
    if x > SIGMOID_CLIP:
        return 1.0
    if x < -SIGMOID_CLIP:
        return 0.0
    return 1.0 / (1.0 + math.exp(-x))


class _Affine:
    """Dense layer with the kernel stored column-major for fast dot products."""

    __slots__ = ("columns", "bias")

    def __init__(self, layer: DenseLayer) -> None:
        self.columns = tuple(zip(*layer.kernel))
        self.bias = layer.bias

    def __call__(self, vector: Sequence[float]) -> list[float]:
        return [b + sum(map(mul, vector, column)) for b, column in zip(self.bias, self.columns)]


class _BatchNormInference:
    __slots__ = ("scale", "shift")

    def __init__(self, params: BatchNormParams) -> None:
        self.scale = tuple(
            g / math.sqrt(v + params.epsilon) for g, v in zip(params.gamma, params.moving_variance)
        )
        self.shift = tuple(
            b - m * s for b, m, s in zip(params.beta, params.moving_mean, self.scale)
        )

    def __call__(self, values: list[float]) -> list[float]:
        return [v * s + t for v, s, t in zip(values, self.scale, self.shift)]


# ── Engine ────────────────────────────────────────────────────────────────────


class InferenceEngine:
    """A loaded, immutable model ready to score feature vectors.

    Construct via ``from_artifact`` (parsed JSON document) or ``from_file``;
    both raise ``ArtifactError`` for an artifact that does not match the
    compiled-in architecture.  Instances are safe to share across threads.
    """

    def __init__(self, weights: ModelWeights) -> None:
        self.weights = weights
        self._means = weights.feature_means
        self._stds = weights.feature_stds
        self._hidden = tuple(
            (_Affine(layer), _BatchNormInference(bn))
            for layer, bn in zip(weights.layers[:3], weights.batch_norms)
        )
        self._output = _Affine(weights.layers[3])

    @classmethod
    def from_artifact(cls, document: Any) -> "InferenceEngine":
        return cls(parse_artifact(document))

    @classmethod
    def from_file(cls, path: str | Path) -> "InferenceEngine":
        return cls(load_artifact(path))

    @property
    def input_dim(self) -> int:
        return len(self._means)

    @property
    def format_version(self) -> str:
        return self.weights.format_version

    @property
    def architecture(self) -> str:
        return self.weights.architecture

    @property
    def total_parameters(self) -> int:
        dense = sum(len(layer.kernel) * len(layer.bias) + len(layer.bias) for layer in self.weights.layers)
        norm = sum(4 * len(bn.gamma) for bn in self.weights.batch_norms)
        return dense + norm

    def normalize(self, values: Sequence[float]) -> list[float]:
        """Apply the training-set z-score transform."""
        return [(v - m) / s for v, m, s in zip(values, self._means, self._stds)]

    def predict_raw(self, features: Any) -> float:
        """Score one feature vector; raise ``InferenceError`` on bad input/output.

        Args:
            features: A ``FeatureVector`` or a plain sequence of floats.

        Returns:
            Sigmoid output in [0, 1].
        """
        values = getattr(features, "values", features)
        try:
            values = [float(v) for v in values]
        except (TypeError, ValueError) as exc:
            raise InferenceError(f"feature vector is not numeric: {exc}") from exc

        if len(values) != self.input_dim:
            raise InferenceError(
                f"feature vector has length {len(values)}, model expects {self.input_dim}"
            )
        if not all(math.isfinite(v) for v in values):
            raise InferenceError("feature vector contains non-finite values")

        activations = self.normalize(values)
        for affine, batch_norm in self._hidden:
            activations = relu(batch_norm(affine(activations)))
        logit = self._output(activations)[0]

        if not math.isfinite(logit):
            raise InferenceError(f"forward pass produced non-finite logit {logit!r}")
        return sigmoid(logit)

    def predict(self, features: Any) -> float:
        """Score one feature vector, degrading to ``NEUTRAL_OUTPUT`` on failure."""
        try:
            return self.predict_raw(features)
        except InferenceError as exc:
            logger.warning("Inference fell back to neutral output: %s", exc)
            return NEUTRAL_OUTPUT

    def predict_many(self, rows: Sequence[Any]) -> list[float]:
        return [self.predict(row) for row in rows]
