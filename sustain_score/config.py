"""
Application configuration management.

Load order (each layer overrides the previous):
  1. ``config/default.toml``      — committed static defaults
  2. ``config/local.toml``        — optional local overrides (gitignored)
  3. ``.env``                     — local env overrides (gitignored)
  4. Environment variables        — ``SUSTAIN_SCORE_*`` prefix

Entry point: ``load_config(config_path=None) -> AppConfig``

The offline tooling (training, evaluation, sync checks, CLI) receives an
``AppConfig``.  The serving runtime does not import this module: it takes
plain values (``PredictionSettings``, paths) so it stays free of pydantic.
"""

from __future__ import annotations

import os
import tomllib
from pathlib import Path
from typing import Any, Optional

from dotenv import load_dotenv
from pydantic import BaseModel, ConfigDict, field_validator, model_validator

# ── Sub-config models ─────────────────────────────────────────────────────────


class DatabaseConfig(BaseModel):
    """SQLite database connection settings."""

    model_config = ConfigDict(frozen=True)

    db_path: str = "data/db/sustain_score.db"
    wal_mode: bool = True
    busy_timeout_ms: int = 5000


class DataConfig(BaseModel):
    """Filesystem paths for the training corpus and exported artifacts."""

    model_config = ConfigDict(frozen=True)

    corpus_path: str = "data/raw/products.json"
    artifact_dir: str = "data/artifacts"
    weights_file: str = "weights.json"
    metadata_file: str = "model_metadata.json"
    test_set_file: str = "test_set.json"
    category_scores_file: str = "category_scores.json"

    @property
    def weights_path(self) -> Path:
        return Path(self.artifact_dir) / self.weights_file

    @property
    def metadata_path(self) -> Path:
        return Path(self.artifact_dir) / self.metadata_file

    @property
    def test_set_path(self) -> Path:
        return Path(self.artifact_dir) / self.test_set_file

    @property
    def category_scores_path(self) -> Path:
        return Path(self.artifact_dir) / self.category_scores_file


class TrainingConfig(BaseModel):
    """Hyperparameters for the offline training run.

    Splits are fractions of the filtered corpus: the test partition is cut
    first, then ``validation_split`` of the whole is taken from what remains.
    ``l2_reg`` applies to the first two dense kernels only.
    """

    model_config = ConfigDict(frozen=True)

    epochs: int = 300
    batch_size: int = 64
    learning_rate: float = 0.001
    validation_split: float = 0.15
    test_split: float = 0.15
    patience: int = 25
    min_delta: float = 0.0005
    l2_reg: float = 0.0005
    dropout_rate1: float = 0.25
    dropout_rate2: float = 0.15
    seed: Optional[int] = 42
    min_samples: int = 50
    restore_best_weights: bool = True
    log_every: int = 10

    @field_validator("epochs", "batch_size", "patience", "min_samples", "log_every")
    @classmethod
    def validate_positive(cls, v: int) -> int:
        if v < 1:
            raise ValueError(f"must be a positive integer, got {v}.")
        return v

    @field_validator("validation_split", "test_split")
    @classmethod
    def validate_fraction(cls, v: float) -> float:
        if not 0.0 < v < 1.0:
            raise ValueError(f"split must be in (0.0, 1.0), got {v}.")
        return v

    @field_validator("dropout_rate1", "dropout_rate2")
    @classmethod
    def validate_dropout(cls, v: float) -> float:
        if not 0.0 <= v < 1.0:
            raise ValueError(f"dropout rate must be in [0.0, 1.0), got {v}.")
        return v

    @field_validator("learning_rate")
    @classmethod
    def validate_learning_rate(cls, v: float) -> float:
        if v <= 0.0:
            raise ValueError(f"learning_rate must be positive, got {v}.")
        return v

    @field_validator("min_delta", "l2_reg")
    @classmethod
    def validate_non_negative(cls, v: float) -> float:
        if v < 0.0:
            raise ValueError(f"must be non-negative, got {v}.")
        return v

    @model_validator(mode="after")
    def validate_split_total(self) -> "TrainingConfig":
        if self.validation_split + self.test_split >= 1.0:
            raise ValueError(
                "validation_split + test_split must be below 1.0, got "
                f"{self.validation_split} + {self.test_split}."
            )
        return self


class PredictionConfig(BaseModel):
    """Tier thresholds for the prediction cascade."""

    model_config = ConfigDict(frozen=True)

    min_heuristic_features: int = 3
    high_decisiveness: float = 0.4
    high_min_features: int = 8
    medium_decisiveness: float = 0.2
    medium_min_features: int = 5
    heuristic_medium_features: int = 10
    default_category_score: int = 45
    block_on_load: bool = False
    cache_key: str = "model_weights"

    @field_validator("default_category_score")
    @classmethod
    def validate_score(cls, v: int) -> int:
        if not 0 <= v <= 100:
            raise ValueError(f"default_category_score must be in [0, 100], got {v}.")
        return v

    def to_settings(self):
        """Convert to the runtime's plain ``PredictionSettings``."""
        from sustain_score.prediction.orchestrator import PredictionSettings

        return PredictionSettings(
            min_heuristic_features=self.min_heuristic_features,
            high_decisiveness=self.high_decisiveness,
            high_min_features=self.high_min_features,
            medium_decisiveness=self.medium_decisiveness,
            medium_min_features=self.medium_min_features,
            heuristic_medium_features=self.heuristic_medium_features,
            default_category_score=self.default_category_score,
            block_on_load=self.block_on_load,
        )


class SyncConfig(BaseModel):
    """Training/serving consistency check settings."""

    model_config = ConfigDict(frozen=True)

    category_count_tolerance: int = 5
    min_category_entries: int = 100
    report_path: str = "data/reports/sync_report.json"


class LoggingConfig(BaseModel):
    """Logging output settings."""

    model_config = ConfigDict(frozen=True)

    level: str = "INFO"
    log_file: str = "data/logs/sustain_score.log"
    json_format: bool = False

    @field_validator("level")
    @classmethod
    def validate_level(cls, v: str) -> str:
        valid = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        if v.upper() not in valid:
            raise ValueError(f"Log level must be one of {sorted(valid)}, got '{v}'.")
        return v.upper()


class AppConfig(BaseModel):
    """Complete offline-tooling configuration.

    Constructed by ``load_config()``, which merges TOML, ``.env`` and
    ``SUSTAIN_SCORE_*`` environment variables.
    """

    model_config = ConfigDict(frozen=True)

    database: DatabaseConfig = DatabaseConfig()
    data: DataConfig = DataConfig()
    training: TrainingConfig = TrainingConfig()
    prediction: PredictionConfig = PredictionConfig()
    sync: SyncConfig = SyncConfig()
    logging: LoggingConfig = LoggingConfig()
    debug: bool = False


# ── Loader ────────────────────────────────────────────────────────────────────

_PROJECT_ROOT = Path(__file__).parent.parent


def _find_project_root() -> Path:
    """Walk up from this file to find the project root (contains pyproject.toml)."""
    candidate = Path(__file__).parent
    for _ in range(5):
        if (candidate / "pyproject.toml").exists():
            return candidate
        candidate = candidate.parent
    return _PROJECT_ROOT


def load_config(config_path: Optional[Path] = None) -> AppConfig:
    """Load and merge application configuration.

    Args:
        config_path: Explicit path to a TOML config file. Defaults to
            ``<project_root>/config/default.toml``.

    Returns:
        Fully validated ``AppConfig`` instance.

    Raises:
        FileNotFoundError: If the specified ``config_path`` does not exist.
        pydantic.ValidationError: If merged config values fail validation.
    """
    root = _find_project_root()

    load_dotenv(dotenv_path=root / ".env", override=False)

    if config_path is None:
        config_path = root / "config" / "default.toml"

    config_path = Path(config_path)
    if not config_path.exists():
        raise FileNotFoundError(
            f"Config file not found: {config_path}\n"
            "Create config/default.toml or pass --config."
        )

    with open(config_path, "rb") as f:
        raw: dict[str, Any] = tomllib.load(f)

    local_config_path = config_path.parent / "local.toml"
    if local_config_path.exists():
        with open(local_config_path, "rb") as f:
            local_raw: dict[str, Any] = tomllib.load(f)
        raw = _deep_merge(raw, local_raw)

    raw = _apply_env_overrides(raw)

    return _build_app_config(raw)


def _deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """Recursively merge ``override`` into ``base``."""
    result = dict(base)
    for key, val in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(val, dict):
            result[key] = _deep_merge(result[key], val)
        else:
            result[key] = val
    return result


def _apply_env_overrides(raw: dict[str, Any]) -> dict[str, Any]:
    """Apply SUSTAIN_SCORE_* env vars to the raw config dict.

    Supported overrides:
      SUSTAIN_SCORE_DB_PATH       → raw["database"]["db_path"]
      SUSTAIN_SCORE_LOG_LEVEL     → raw["logging"]["level"]
      SUSTAIN_SCORE_ARTIFACT_DIR  → raw["data"]["artifact_dir"]
      SUSTAIN_SCORE_CORPUS_PATH   → raw["data"]["corpus_path"]
      SUSTAIN_SCORE_DEBUG         → raw["debug"]
    """
    if db_path := os.environ.get("SUSTAIN_SCORE_DB_PATH"):
        raw.setdefault("database", {})["db_path"] = db_path

    if log_level := os.environ.get("SUSTAIN_SCORE_LOG_LEVEL"):
        raw.setdefault("logging", {})["level"] = log_level

    if artifact_dir := os.environ.get("SUSTAIN_SCORE_ARTIFACT_DIR"):
        raw.setdefault("data", {})["artifact_dir"] = artifact_dir

    if corpus_path := os.environ.get("SUSTAIN_SCORE_CORPUS_PATH"):
        raw.setdefault("data", {})["corpus_path"] = corpus_path

    if debug := os.environ.get("SUSTAIN_SCORE_DEBUG"):
        raw["debug"] = debug.lower() in ("1", "true", "yes")

    return raw


def _build_app_config(raw: dict[str, Any]) -> AppConfig:
    """Map raw TOML dict to ``AppConfig`` model structure."""
    project = raw.pop("project", {})

    return AppConfig(
        database=DatabaseConfig(**raw.get("database", {})),
        data=DataConfig(**raw.get("data", {})),
        training=TrainingConfig(**raw.get("training", {})),
        prediction=PredictionConfig(**raw.get("prediction", {})),
        sync=SyncConfig(**raw.get("sync", {})),
        logging=LoggingConfig(**raw.get("logging", {})),
        debug=raw.get("debug", project.get("debug", False)),
    )
