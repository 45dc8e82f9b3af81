"""
Artifact, metadata and test-set export.

``build_artifact()`` converts a trained ``SustainabilityNet`` into the JSON
document the serving runtime loads.  torch stores ``Linear.weight`` as
``[out][in]``; the artifact stores kernels ``[in][out]``, so every weight is
transposed on the way out.

The ``contract`` block snapshots the encoder-side facts the sync validator
compares against the live code: feature names in order, category table size
and version, and the food-group keyword sets.

Written files (under ``DataConfig.artifact_dir``):
  weights.json          the artifact (metadata embedded)
  model_metadata.json   the metadata on its own
  test_set.json         un-normalized held-out vectors, labels, names, grades
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any

from sustain_score.features.encoder import FEATURE_NAMES
from sustain_score.features.tables import (
    CATEGORY_ENV_SCORES,
    CATEGORY_TABLE_VERSION,
    FOOD_GROUP_TAGS,
)
from sustain_score.ml.architecture import (
    BATCH_NORM_NAMES,
    LAYER_NAMES,
    MODEL_FORMAT_VERSION,
    architecture_string,
)
from sustain_score.ml.trainer import TrainingResult

logger = logging.getLogger(__name__)


def _tensor_list(tensor: Any) -> list:
    return tensor.detach().cpu().double().tolist()


def build_contract() -> dict[str, Any]:
    """Snapshot of the encoder-side contract at export time."""
    return {
        "feature_names": list(FEATURE_NAMES),
        "category_table_size": len(CATEGORY_ENV_SCORES),
        "category_table_version": CATEGORY_TABLE_VERSION,
        "food_groups": {name: sorted(tags) for name, tags in FOOD_GROUP_TAGS.items()},
    }


def build_metadata(result: TrainingResult) -> dict[str, Any]:
    """Describe a training run for ``model_metadata.json``."""
    config = result.config
    return {
        "architecture": architecture_string(),
        "format_version": MODEL_FORMAT_VERSION,
        "total_parameters": result.network.parameter_count(),
        "hyperparameters": {
            "optimizer": "adam",
            "learning_rate": config.learning_rate,
            "l2_reg": config.l2_reg,
            "dropout_rate1": config.dropout_rate1,
            "dropout_rate2": config.dropout_rate2,
            "batch_size": config.batch_size,
            "max_epochs": config.epochs,
            "patience": config.patience,
            "min_delta": config.min_delta,
            "seed": config.seed,
        },
        "epochs_run": result.epochs_run,
        "best_epoch": result.best_epoch,
        "stopped_early": result.stopped_early,
        "training_seconds": round(result.training_seconds, 2),
        "samples": {
            **result.split.sizes,
            "rejected": result.report.rejected_total,
            "rejected_by_reason": dict(sorted(result.report.rejected.items())),
        },
        "validation_metrics": result.validation_metrics.to_dict(),
        "test_metrics": result.test_metrics.to_dict(),
        "feature_names": list(FEATURE_NAMES),
        "trained_at": result.trained_at,
    }


def build_artifact(result: TrainingResult) -> dict[str, Any]:
    """Assemble the ``weights.json`` document for a finished run."""
    network = result.network
    layers = {
        name: {
            "kernel": _tensor_list(getattr(network, name).weight.t()),
            "bias": _tensor_list(getattr(network, name).bias),
        }
        for name in LAYER_NAMES
    }
    batch_norm = {}
    for name in BATCH_NORM_NAMES:
        bn = getattr(network, name)
        batch_norm[name] = {
            "gamma": _tensor_list(bn.weight),
            "beta": _tensor_list(bn.bias),
            "moving_mean": _tensor_list(bn.running_mean),
            "moving_variance": _tensor_list(bn.running_var),
            "epsilon": float(bn.eps),
        }

    return {
        "format_version": MODEL_FORMAT_VERSION,
        "architecture": architecture_string(),
        "layers": layers,
        "batch_norm": batch_norm,
        "normalization": result.scaler.to_dict(),
        "contract": build_contract(),
        "metadata": build_metadata(result),
    }


def build_test_set(result: TrainingResult) -> dict[str, Any]:
    """Held-out examples, un-normalized, for evaluation through the runtime."""
    test = result.split.test
    return {
        "feature_names": list(FEATURE_NAMES),
        "features": [list(e.features) for e in test],
        "labels": [e.label for e in test],
        "names": [e.name for e in test],
        "grades": [e.grade for e in test],
    }


def _write_json(document: Any, path: Path, indent: int | None = None) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "w", encoding="utf-8") as f:
        json.dump(document, f, indent=indent, ensure_ascii=False)


def write_artifacts(
    result: TrainingResult,
    artifact_dir: str | Path,
    weights_file: str = "weights.json",
    metadata_file: str = "model_metadata.json",
    test_set_file: str = "test_set.json",
) -> dict[str, Path]:
    """Write the artifact, metadata and test set; return their paths."""
    out_dir = Path(artifact_dir)
    artifact = build_artifact(result)

    paths = {
        "weights": out_dir / weights_file,
        "metadata": out_dir / metadata_file,
        "test_set": out_dir / test_set_file,
    }
    _write_json(artifact, paths["weights"])
    _write_json(artifact["metadata"], paths["metadata"], indent=2)
    _write_json(build_test_set(result), paths["test_set"])

    logger.info(
        "Exported %s (%d parameters) to %s",
        artifact["architecture"],
        artifact["metadata"]["total_parameters"],
        out_dir,
    )
    return paths
