"""
Training-side architecture declaration.

These values shape ``SustainabilityNet`` and the exported artifact.  The
serving runtime keeps its own copy in ``sustain_score.serving.artifact``;
``sustain_score.sync.validator`` fails when the two disagree.

No torch import here, so the declaration can be read without the training
stack installed.
"""

from __future__ import annotations

from sustain_score.features.encoder import NUM_FEATURES

MODEL_FORMAT_VERSION = "4.0"

INPUT_DIM = NUM_FEATURES
HIDDEN_DIMS: tuple[int, int, int] = (256, 128, 64)
OUTPUT_DIM = 1

# dropout after the first and second hidden blocks; none after the third
DROPOUT_RATES: tuple[float, float] = (0.25, 0.15)

BN_EPSILON = 1e-5
BN_MOMENTUM = 0.1

# kernels that carry the L2 penalty
L2_LAYERS: tuple[str, ...] = ("hidden1", "hidden2")

LAYER_NAMES: tuple[str, ...] = ("hidden1", "hidden2", "hidden3", "output")
BATCH_NORM_NAMES: tuple[str, ...] = ("bn1", "bn2", "bn3")


def layer_shapes() -> dict[str, tuple[int, int]]:
    """Map each dense layer to its ``(inputs, outputs)`` kernel shape."""
    widths = (INPUT_DIM, *HIDDEN_DIMS, OUTPUT_DIM)
    return {name: (widths[i], widths[i + 1]) for i, name in enumerate(LAYER_NAMES)}


def architecture_string() -> str:
    return "→".join(str(w) for w in (INPUT_DIM, *HIDDEN_DIMS, OUTPUT_DIM))
