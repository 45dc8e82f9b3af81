"""
Sync validator: the deploy gate between training and serving.

The encoder, the training declaration (``ml.architecture``) and the serving
runtime (``serving.artifact``) each hold their own copy of the model's
shape.  ``run_sync_checks()`` compares all of them with one exported
artifact and returns a ``SyncReport``; it never raises.  The CLI turns a
failing report into exit code 1.

Checks performed
----------------
 1. feature count        — encoder names, defaults and ``NUM_FEATURES``;
                           training and serving input dims.
 2. hidden widths        — each hidden layer and the output, training vs
                           serving.
 3. format version       — training vs serving, and the artifact's.
 4. feature names        — artifact contract order vs the live encoder.
 5. layer shapes         — every kernel and bias in the artifact.
 6. normalization        — mean and std vector lengths.
 7. batch norm           — each group present with four parameters at the
                           layer width.
 8. category table       — recorded ``category_table_version`` equals the
                           live one; artifact snapshot size vs live table
                           within ``category_tolerance``; both at least
                           ``min_category_entries`` long.
 9. food groups          — every group on one side exists on the other and,
                           when the artifact records tag sets, each set
                           matches the encoder's.
10. serving source       — AST scan of the runtime packages: no tensor or
                           training-library imports and no function named
                           like a training construct (backward, train,
                           optimizer, adam, gradient, sgd).
11. engine               — ``InferenceEngine`` accepts the artifact and
                           scores the all-default vector to a finite value.
"""

from __future__ import annotations

import ast
import json
import logging
import math
import re
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Optional

from sustain_score.features import encoder as encoder_module
from sustain_score.features.tables import (
    CATEGORY_ENV_SCORES,
    CATEGORY_TABLE_VERSION,
    FOOD_GROUP_TAGS,
)
from sustain_score.ml import architecture as training
from sustain_score.serving import artifact as serving
from sustain_score.serving.artifact import ArtifactError
from sustain_score.serving.engine import InferenceEngine

logger = logging.getLogger(__name__)

DEFAULT_CATEGORY_TOLERANCE = 5
DEFAULT_MIN_CATEGORY_ENTRIES = 100

_PACKAGE_ROOT = Path(__file__).resolve().parent.parent
RUNTIME_SOURCE_DIRS: tuple[Path, ...] = (
    _PACKAGE_ROOT / "serving",
    _PACKAGE_ROOT / "prediction",
    _PACKAGE_ROOT / "features",
)

FORBIDDEN_IMPORTS: frozenset[str] = frozenset(
    {"torch", "numpy", "pyarrow", "tensorflow", "jax", "sklearn", "pandas", "pydantic", "typer"}
)
FORBIDDEN_MODULE_PREFIXES: tuple[str, ...] = ("sustain_score.ml", "sustain_score.config")
TRAINING_NAME_PATTERN = re.compile(r"backward|train|optimi[sz]e|adam|gradient|sgd", re.IGNORECASE)


# ── Result types ──────────────────────────────────────────────────────────────


@dataclass(frozen=True)
class SyncCheck:
    """One comparison.

    Attributes:
        label:  Short check name, e.g. ``"shape: layers.hidden1.kernel"``.
        passed: True when both sides agree.
        detail: Human-readable evidence (values compared, first mismatch).
    """

    label: str
    passed: bool
    detail: str = ""


@dataclass(frozen=True)
class SyncReport:
    artifact: str
    checks: list[SyncCheck] = field(default_factory=list)

    @property
    def passed(self) -> bool:
        return bool(self.checks) and all(c.passed for c in self.checks)

    @property
    def failures(self) -> list[SyncCheck]:
        return [c for c in self.checks if not c.passed]

    def to_dict(self) -> dict[str, Any]:
        return {
            "artifact": self.artifact,
            "passed": self.passed,
            "total": len(self.checks),
            "failed": len(self.failures),
            "checks": [
                {"label": c.label, "passed": c.passed, "detail": c.detail} for c in self.checks
            ],
        }


# ── Helpers ───────────────────────────────────────────────────────────────────


def _check(label: str, passed: bool, detail: str = "") -> SyncCheck:
    return SyncCheck(label=label, passed=bool(passed), detail=detail)


def _compare(label: str, training_value: Any, serving_value: Any) -> SyncCheck:
    return _check(
        label,
        training_value == serving_value,
        f"training={training_value!r} serving={serving_value!r}",
    )


def _matrix_shape(value: Any) -> Optional[str]:
    """``"RxC"`` for a rectangular list of lists, a description otherwise."""
    if not isinstance(value, list):
        return None
    widths = {len(row) if isinstance(row, list) else -1 for row in value}
    if -1 in widths:
        return f"{len(value)}x? (non-array rows)"
    if len(widths) > 1:
        return f"{len(value)}x{sorted(widths)} (ragged)"
    return f"{len(value)}x{widths.pop() if widths else 0}"


def _vector_length(value: Any) -> Optional[int]:
    return len(value) if isinstance(value, list) else None


def _section(document: Mapping[str, Any], key: str) -> Mapping[str, Any]:
    value = document.get(key)
    return value if isinstance(value, Mapping) else {}


# ── Code-only checks ──────────────────────────────────────────────────────────


def check_feature_counts() -> list[SyncCheck]:
    names = len(encoder_module.FEATURE_NAMES)
    defaults = len(encoder_module.FEATURE_DEFAULTS)
    declared = encoder_module.NUM_FEATURES
    return [
        _check(
            "feature count: encoder",
            names == defaults == declared,
            f"names={names} defaults={defaults} NUM_FEATURES={declared}",
        ),
        _check(
            "feature count: training input",
            training.INPUT_DIM == declared,
            f"INPUT_DIM={training.INPUT_DIM} encoder={declared}",
        ),
        _check(
            "feature count: serving input",
            serving.INPUT_DIM == declared,
            f"INPUT_DIM={serving.INPUT_DIM} encoder={declared}",
        ),
    ]


def check_layer_widths() -> list[SyncCheck]:
    serving_hidden = (serving.HIDDEN1_DIM, serving.HIDDEN2_DIM, serving.HIDDEN3_DIM)
    checks = [
        _compare(f"hidden width: layer {i}", t, s)
        for i, (t, s) in enumerate(zip(training.HIDDEN_DIMS, serving_hidden), start=1)
    ]
    if len(training.HIDDEN_DIMS) != len(serving_hidden):
        checks.append(_compare("hidden layer count", len(training.HIDDEN_DIMS), len(serving_hidden)))
    checks.append(_compare("output width", training.OUTPUT_DIM, serving.OUTPUT_DIM))
    return checks


def check_format_versions(document: Optional[Mapping[str, Any]]) -> list[SyncCheck]:
    checks = [
        _compare("format version: code", training.MODEL_FORMAT_VERSION, serving.FORMAT_VERSION)
    ]
    if document is not None:
        version = document.get("format_version")
        checks.append(
            _check(
                "format version: artifact",
                version == serving.FORMAT_VERSION,
                f"artifact={version!r} serving={serving.FORMAT_VERSION!r}",
            )
        )
    return checks


def _forbidden_import(module: str) -> bool:
    root = module.split(".")[0]
    return root in FORBIDDEN_IMPORTS or module.startswith(FORBIDDEN_MODULE_PREFIXES)


def scan_runtime_source(path: Path) -> list[str]:
    """Return training-only constructs found in one source file."""
    tree = ast.parse(path.read_text(encoding="utf-8"), filename=str(path))
    findings = []
    for node in ast.walk(tree):
        if isinstance(node, ast.Import):
            findings += [f"import {a.name}" for a in node.names if _forbidden_import(a.name)]
        elif isinstance(node, ast.ImportFrom) and node.module and node.level == 0:
            if _forbidden_import(node.module):
                findings.append(f"from {node.module} import ...")
        elif isinstance(node, (ast.FunctionDef, ast.AsyncFunctionDef)):
            if TRAINING_NAME_PATTERN.search(node.name):
                findings.append(f"def {node.name}()")
    return findings


def check_runtime_source(source_dirs: Iterable[Path] = RUNTIME_SOURCE_DIRS) -> SyncCheck:
    findings: list[str] = []
    scanned = 0
    for directory in source_dirs:
        for path in sorted(Path(directory).rglob("*.py")):
            scanned += 1
            try:
                found = scan_runtime_source(path)
            except (OSError, SyntaxError) as exc:
                findings.append(f"{path.name}: unreadable ({exc})")
                continue
            findings += [f"{path.name}: {f}" for f in found]

    if scanned == 0:
        return _check("serving source: no training code", False, "no runtime source files found")
    if findings:
        shown = "; ".join(findings[:4]) + ("; ..." if len(findings) > 4 else "")
        return _check("serving source: no training code", False, shown)
    return _check("serving source: no training code", True, f"{scanned} files scanned")


# ── Artifact checks ───────────────────────────────────────────────────────────


def check_feature_names(document: Mapping[str, Any]) -> SyncCheck:
    names = _section(document, "contract").get("feature_names")
    expected = list(encoder_module.FEATURE_NAMES)
    if not isinstance(names, list):
        return _check("feature names: artifact order", False, "contract.feature_names missing")
    if len(names) != len(expected):
        return _check(
            "feature names: artifact order",
            False,
            f"artifact has {len(names)} names, encoder has {len(expected)}",
        )
    for index, (got, want) in enumerate(zip(names, expected)):
        if got != want:
            return _check(
                "feature names: artifact order",
                False,
                f"index {index}: artifact={got!r} encoder={want!r}",
            )
    return _check("feature names: artifact order", True, f"{len(expected)} names match")


def check_layer_shapes(document: Mapping[str, Any]) -> list[SyncCheck]:
    layers = _section(document, "layers")
    checks = []
    for name in serving.LAYER_NAMES:
        rows, cols = serving.LAYER_SHAPES[name]
        layer = layers.get(name) if isinstance(layers.get(name), Mapping) else {}
        kernel_shape = _matrix_shape(layer.get("kernel"))
        checks.append(
            _check(
                f"shape: layers.{name}.kernel",
                kernel_shape == f"{rows}x{cols}",
                f"expected {rows}x{cols}, got {kernel_shape or 'missing'}",
            )
        )
        bias_len = _vector_length(layer.get("bias"))
        checks.append(
            _check(
                f"shape: layers.{name}.bias",
                bias_len == cols,
                f"expected {cols}, got {bias_len if bias_len is not None else 'missing'}",
            )
        )
    return checks


def check_normalization(document: Mapping[str, Any]) -> list[SyncCheck]:
    normalization = _section(document, "normalization")
    checks = []
    for key in ("feature_means", "feature_stds"):
        length = _vector_length(normalization.get(key))
        checks.append(
            _check(
                f"normalization: {key}",
                length == encoder_module.NUM_FEATURES,
                f"expected {encoder_module.NUM_FEATURES}, "
                f"got {length if length is not None else 'missing'}",
            )
        )
    return checks


def check_batch_norm(document: Mapping[str, Any]) -> list[SyncCheck]:
    batch_norm = _section(document, "batch_norm")
    checks = []
    for name in serving.BATCH_NORM_NAMES:
        width = serving.BATCH_NORM_WIDTHS[name]
        group = batch_norm.get(name)
        if not isinstance(group, Mapping):
            checks.append(_check(f"batch norm: {name}", False, "group missing"))
            continue
        bad = [
            f"{param}={_vector_length(group.get(param))}"
            for param in serving.BATCH_NORM_PARAMS
            if _vector_length(group.get(param)) != width
        ]
        checks.append(
            _check(
                f"batch norm: {name}",
                not bad,
                f"width {width}" + (f"; mismatched {', '.join(bad)}" if bad else ", 4 params"),
            )
        )
    return checks


def check_category_table(
    document: Mapping[str, Any],
    live_table: Mapping[str, float],
    tolerance: int,
    min_entries: int,
    live_version: str = CATEGORY_TABLE_VERSION,
) -> list[SyncCheck]:
    contract = _section(document, "contract")
    recorded_version = contract.get("category_table_version")
    version_check = _check(
        "category table: version",
        recorded_version == live_version,
        f"artifact={recorded_version!r} live={live_version!r}",
    )
    snapshot = contract.get("category_table_size")
    live = len(live_table)
    if not isinstance(snapshot, int) or isinstance(snapshot, bool):
        return [
            version_check,
            _check("category table: count parity", False, "contract.category_table_size missing"),
        ]
    return [
        version_check,
        _check(
            "category table: count parity",
            abs(snapshot - live) <= tolerance,
            f"artifact={snapshot} live={live} tolerance={tolerance}",
        ),
        _check(
            "category table: minimum size",
            snapshot >= min_entries and live >= min_entries,
            f"artifact={snapshot} live={live} minimum={min_entries}",
        ),
    ]


def check_food_groups(
    document: Mapping[str, Any], live_groups: Mapping[str, Any]
) -> list[SyncCheck]:
    recorded = _section(document, "contract").get("food_groups")
    if isinstance(recorded, Mapping):
        artifact_groups = set(recorded)
    elif isinstance(recorded, list):
        artifact_groups = {g for g in recorded if isinstance(g, str)}
    else:
        return [_check("food groups: coverage", False, "contract.food_groups missing")]

    live = set(live_groups)
    only_artifact = sorted(artifact_groups - live)
    only_live = sorted(live - artifact_groups)
    checks = [
        _check(
            "food groups: coverage",
            not (only_artifact or only_live),
            f"only in artifact={only_artifact} only in encoder={only_live}"
            if only_artifact or only_live
            else f"{len(live)} groups",
        )
    ]
    # a bare list of names carries no tag sets to compare
    if isinstance(recorded, Mapping):
        shared = sorted(artifact_groups & live)
        changed = [
            g for g in shared
            if not isinstance(recorded[g], (list, tuple))
            or not all(isinstance(tag, str) for tag in recorded[g])
            or set(recorded[g]) != set(live_groups[g])
        ]
        checks.append(
            _check(
                "food groups: tag sets",
                not changed,
                f"tag sets differ for {changed}" if changed else f"{len(shared)} groups match",
            )
        )
    return checks


def check_engine_accepts(document: Mapping[str, Any]) -> SyncCheck:
    try:
        engine = InferenceEngine.from_artifact(document)
    except ArtifactError as exc:
        shown = "; ".join(exc.problems[:3])
        more = f" (+{len(exc.problems) - 3} more)" if len(exc.problems) > 3 else ""
        return _check("engine: accepts artifact", False, shown + more)
    output = engine.predict(list(encoder_module.FEATURE_DEFAULTS))
    return _check(
        "engine: accepts artifact",
        math.isfinite(output) and 0.0 <= output <= 1.0,
        f"default-vector output={output:.4f}",
    )


# ── Entry point ───────────────────────────────────────────────────────────────


def _read_document(artifact: str | Path | Mapping[str, Any]) -> tuple[str, Optional[Mapping[str, Any]], Optional[str]]:
    if isinstance(artifact, Mapping):
        return "<in-memory>", artifact, None
    path = Path(artifact)
    try:
        with open(path, encoding="utf-8") as f:
            document = json.load(f)
    except (OSError, ValueError) as exc:
        return str(path), None, f"{path}: {exc}"
    if not isinstance(document, Mapping):
        return str(path), None, f"{path}: not a JSON object"
    return str(path), document, None


def run_sync_checks(
    artifact: str | Path | Mapping[str, Any],
    category_tolerance: int = DEFAULT_CATEGORY_TOLERANCE,
    min_category_entries: int = DEFAULT_MIN_CATEGORY_ENTRIES,
    source_dirs: Iterable[Path] = RUNTIME_SOURCE_DIRS,
    category_table: Mapping[str, float] = CATEGORY_ENV_SCORES,
    food_groups: Mapping[str, Any] = FOOD_GROUP_TAGS,
    table_version: str = CATEGORY_TABLE_VERSION,
) -> SyncReport:
    """Run every check against ``artifact`` (a path or a parsed document).

    Args:
        artifact:             ``weights.json`` path or its parsed mapping.
        category_tolerance:   Allowed |artifact - live| category table size.
        min_category_entries: Minimum size on both sides.
        source_dirs:          Runtime directories for the AST scan.
        category_table:       Live category table (defaults to the encoder's).
        food_groups:          Live food-group sets (defaults to the encoder's).
        table_version:        Live ``CATEGORY_TABLE_VERSION``.

    Returns:
        A ``SyncReport``; inspect ``passed`` / ``failures``.
    """
    label, document, read_error = _read_document(artifact)

    checks: list[SyncCheck] = []
    checks += check_feature_counts()
    checks += check_layer_widths()
    checks += check_format_versions(document)

    if document is None:
        checks.append(_check("artifact: readable", False, read_error or "unreadable"))
    else:
        checks.append(check_feature_names(document))
        checks += check_layer_shapes(document)
        checks += check_normalization(document)
        checks += check_batch_norm(document)
        checks += check_category_table(
            document, category_table, category_tolerance, min_category_entries, table_version
        )
        checks += check_food_groups(document, food_groups)

    checks.append(check_runtime_source(source_dirs))

    if document is not None:
        checks.append(check_engine_accepts(document))

    report = SyncReport(artifact=label, checks=checks)
    logger.info(
        "Sync check %s: %d/%d passed",
        "PASSED" if report.passed else "FAILED",
        len(checks) - len(report.failures),
        len(checks),
    )
    return report
