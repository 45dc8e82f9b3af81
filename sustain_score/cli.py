"""
Sustainability score — CLI entry point.

All commands follow this pattern:
  1. Load ``AppConfig`` via ``load_config()``.
  2. Configure logging.
  3. Validate inputs.
  4. Execute the action (usually a pipeline stage).
  5. Report the result to stdout; errors go to stderr with exit code 1.

Install and run::

    pip install -e .
    sustain-score --help
    sustain-score validate-config
    sustain-score init-db
    sustain-score train --corpus data/raw/products.json
    sustain-score evaluate
    sustain-score validate-sync
    sustain-score predict --category "Breakfast Cereals" --certification organic
    sustain-score build-category-scores --min-count 20
    sustain-score cache-artifact
"""

from __future__ import annotations

import json
import signal
import threading
from dataclasses import replace
from pathlib import Path
from typing import Optional

import typer

app = typer.Typer(
    name="sustain-score",
    help="Food-product sustainability scoring: training, validation and prediction.",
    add_completion=False,
)


# ── Helpers ───────────────────────────────────────────────────────────────────

def _load_config_or_exit(config_path: Optional[str] = None):
    """Load AppConfig, printing a friendly error and exiting on failure."""
    from pydantic import ValidationError

    from sustain_score.config import load_config

    try:
        cfg_path = Path(config_path) if config_path else None
        return load_config(cfg_path)
    except FileNotFoundError as exc:
        typer.echo(f"[ERROR] {exc}", err=True)
        raise typer.Exit(code=1)
    except (ValidationError, ValueError) as exc:
        typer.echo(f"[ERROR] Config validation failed: {exc}", err=True)
        raise typer.Exit(code=1)


def _configure_logging(config):
    """Set up logging from config."""
    from sustain_score.utils.logging import configure_logging
    configure_logging(config.logging)


# ── Commands ──────────────────────────────────────────────────────────────────

@app.command("init-db")
def init_db(
    db_path: Optional[str] = typer.Option(
        None,
        "--db-path",
        help="Override DB path from config (e.g. data/db/test.db).",
    ),
    config_path: Optional[str] = typer.Option(
        None,
        "--config",
        help="Path to TOML config file.",
    ),
) -> None:
    """Initialize the SQLite database (run records and weight cache).

    Idempotent: every table is created with IF NOT EXISTS.
    """
    from sustain_score.db.connection import get_connection
    from sustain_score.db.repositories.cache_repo import WeightCacheRepository
    from sustain_score.db.repositories.run_repo import RunMetadataRepository
    from sustain_score.db.schema import ALL_TABLE_NAMES

    config = _load_config_or_exit(config_path)
    _configure_logging(config)

    target_path = db_path or config.database.db_path
    typer.echo(f"Initializing database at: {target_path}")

    with get_connection(
        target_path,
        wal_mode=config.database.wal_mode,
        busy_timeout_ms=config.database.busy_timeout_ms,
        ensure_schema=True,
    ) as conn:
        runs = RunMetadataRepository(conn).count()
        cached = WeightCacheRepository(conn).count()

    typer.echo(f"  Tables: {len(ALL_TABLE_NAMES)} created/verified.")
    typer.echo(f"  Existing rows: run_metadata={runs}, weight_cache={cached}")
    typer.echo("[OK] Database ready.")


@app.command("validate-config")
def validate_config(
    config_path: Optional[str] = typer.Option(
        None,
        "--config",
        help="Path to TOML config file (default: config/default.toml).",
    ),
    show_full: bool = typer.Option(
        False,
        "--full",
        help="Print full config including all fields.",
    ),
) -> None:
    """Validate the configuration file and print parsed values.

    Exits with code 1 if the config fails validation.
    """
    config = _load_config_or_exit(config_path)
    training = config.training

    typer.echo("Configuration validated successfully.")
    typer.echo("")
    typer.echo(f"  Database path:    {config.database.db_path}")
    typer.echo(f"  Corpus:           {config.data.corpus_path}")
    typer.echo(f"  Artifact dir:     {config.data.artifact_dir}")
    typer.echo(
        f"  Training:         epochs={training.epochs} batch={training.batch_size} "
        f"lr={training.learning_rate} patience={training.patience}"
    )
    typer.echo(
        f"  Splits:           val={training.validation_split} test={training.test_split}"
    )
    typer.echo(f"  Log level:        {config.logging.level}")
    typer.echo(f"  Debug mode:       {config.debug}")

    if show_full:
        typer.echo("")
        typer.echo("Full config (JSON):")
        typer.echo(json.dumps(config.model_dump(), indent=2, default=str))

    typer.echo("")
    typer.echo("[OK] Config is valid.")


@app.command("train")
def train(
    corpus: Optional[str] = typer.Option(
        None, "--corpus", help="Corpus file (.json / .jsonl / .parquet); default from config."
    ),
    artifact_dir: Optional[str] = typer.Option(
        None, "--artifact-dir", help="Output directory for weights / metadata / test set."
    ),
    epochs: Optional[int] = typer.Option(None, "--epochs", help="Override max epochs."),
    seed: Optional[int] = typer.Option(None, "--seed", help="Override the random seed."),
    config_path: Optional[str] = typer.Option(None, "--config", help="Path to TOML config file."),
) -> None:
    """Train the model on a labelled corpus and export its artifacts.

    Ctrl-C stops training after the current epoch; nothing is exported.
    """
    from sustain_score.ml.trainer import TrainingError
    from sustain_score.pipeline.stages import TrainStage

    config = _load_config_or_exit(config_path)
    _configure_logging(config)

    overrides = {}
    if epochs is not None:
        overrides["epochs"] = epochs
    if seed is not None:
        overrides["seed"] = seed
    if overrides:
        try:
            training = config.training.model_validate({**config.training.model_dump(), **overrides})
        except ValueError as exc:
            typer.echo(f"[ERROR] Invalid training override: {exc}", err=True)
            raise typer.Exit(code=1)
        config = config.model_copy(update={"training": training})

    cancel_event = threading.Event()

    def _cancel(signum, _frame):
        typer.echo("\nCancel requested; stopping after the current epoch.", err=True)
        cancel_event.set()

    previous = signal.signal(signal.SIGINT, _cancel)
    stage = TrainStage(config=config)
    try:
        run = stage.run(corpus_path=corpus, artifact_dir=artifact_dir, cancel_event=cancel_event)
    except (TrainingError, FileNotFoundError, ValueError) as exc:
        typer.echo(f"[ERROR] {exc}", err=True)
        raise typer.Exit(code=1)
    finally:
        signal.signal(signal.SIGINT, previous)

    result = stage.last_result
    test = result.test_metrics
    typer.echo(f"  Examples:      {result.report.accepted} accepted, "
               f"{result.report.rejected_total} rejected")
    typer.echo(f"  Splits:        {result.split.sizes}")
    typer.echo(f"  Epochs:        {result.epochs_run} (best {result.best_epoch}"
               f"{', early stop' if result.stopped_early else ''})")
    typer.echo(f"  Test R²:       {test.r_squared:.4f}")
    typer.echo(f"  Test MAE:      {test.mae_points:.2f} pts")
    typer.echo(f"  Within ±10:    {test.within_10:.1f}%")
    for name, path in stage.last_paths.items():
        typer.echo(f"  {name + ':':<14} {path}")
    typer.echo(f"[OK] Training complete | run_slug={run.run_slug}")


@app.command("evaluate")
def evaluate(
    weights: Optional[str] = typer.Option(None, "--weights", help="Artifact path; default from config."),
    test_set: Optional[str] = typer.Option(None, "--test-set", help="Test set path; default from config."),
    json_output: bool = typer.Option(False, "--json", help="Print the report as JSON."),
    config_path: Optional[str] = typer.Option(None, "--config", help="Path to TOML config file."),
) -> None:
    """Evaluate an exported artifact on its held-out test set via the serving engine."""
    from sustain_score.pipeline.stages import EvaluateStage
    from sustain_score.serving.artifact import ArtifactError
    from sustain_score.sync.reporter import format_evaluation_report

    config = _load_config_or_exit(config_path)
    _configure_logging(config)

    stage = EvaluateStage(config=config)
    try:
        stage.run(weights_path=weights, test_set_path=test_set)
    except (ArtifactError, FileNotFoundError, ValueError) as exc:
        typer.echo(f"[ERROR] {exc}", err=True)
        raise typer.Exit(code=1)

    report = stage.last_report
    if json_output:
        typer.echo(json.dumps(report.to_dict(), indent=2))
    else:
        typer.echo(format_evaluation_report(report))
    status = "[OK] All quality targets met." if report.meets_targets else "[WARN] Quality targets missed."
    typer.echo(status)


@app.command("validate-sync")
def validate_sync(
    weights: Optional[str] = typer.Option(None, "--weights", help="Artifact path; default from config."),
    report_path: Optional[str] = typer.Option(
        None, "--report", help="Write the JSON report here (default from config)."
    ),
    config_path: Optional[str] = typer.Option(None, "--config", help="Path to TOML config file."),
) -> None:
    """Check that training and serving agree on the model contract.

    Exits with code 1 if any check fails.
    """
    from sustain_score.pipeline.stages import SyncCheckError, SyncCheckStage
    from sustain_score.sync.reporter import format_sync_report

    config = _load_config_or_exit(config_path)
    _configure_logging(config)

    stage = SyncCheckStage(config=config)
    try:
        stage.run(weights_path=weights, report_path=report_path)
    except SyncCheckError as exc:
        typer.echo(format_sync_report(exc.report))
        typer.echo(f"[ERROR] {exc}", err=True)
        raise typer.Exit(code=1)

    typer.echo(format_sync_report(stage.last_report))
    typer.echo("[OK] Training and serving are in sync.")


@app.command("predict")
def predict(
    record_file: Optional[str] = typer.Option(
        None, "--record", help="JSON file holding one raw product record."
    ),
    category: Optional[str] = typer.Option(None, "--category", help="Product category name."),
    nova_group: Optional[int] = typer.Option(None, "--nova", help="NOVA processing group (1-4)."),
    certification: Optional[list[str]] = typer.Option(
        None, "--certification", help="Certification label (repeatable)."
    ),
    packaging: Optional[str] = typer.Option(None, "--packaging", help="Packaging description."),
    label_text: Optional[str] = typer.Option(None, "--label-text", help="Transcribed label text."),
    origin: Optional[str] = typer.Option(None, "--origin", help="Country of origin."),
    manufacturing_place: Optional[str] = typer.Option(
        None, "--manufacturing-place", help="Where the product was made."
    ),
    weights: Optional[str] = typer.Option(None, "--weights", help="Artifact path; default from config."),
    use_cache: bool = typer.Option(False, "--use-cache", help="Load the model via the SQLite weight cache."),
    no_model: bool = typer.Option(False, "--no-model", help="Skip the model tier."),
    json_output: bool = typer.Option(False, "--json", help="Print the result as JSON."),
    config_path: Optional[str] = typer.Option(None, "--config", help="Path to TOML config file."),
) -> None:
    """Score one product with the three-tier prediction cascade."""
    from sustain_score.prediction.orchestrator import PredictionOrchestrator
    from sustain_score.serving.cache import SqliteWeightCache
    from sustain_score.serving.loader import ModelLoader

    config = _load_config_or_exit(config_path)
    _configure_logging(config)

    loader = None
    if not no_model:
        cache = None
        if use_cache:
            cache = SqliteWeightCache(
                config.database.db_path,
                wal_mode=config.database.wal_mode,
                busy_timeout_ms=config.database.busy_timeout_ms,
            )
        artifact = Path(weights) if weights else config.data.weights_path
        loader = ModelLoader(
            artifact_path=artifact if artifact.exists() else None,
            cache=cache,
            cache_key=config.prediction.cache_key,
        )

    settings = config.prediction.to_settings()
    if loader is not None:
        settings = replace(settings, block_on_load=True)
    orchestrator = PredictionOrchestrator(loader=loader, settings=settings)

    if record_file:
        try:
            with open(record_file, encoding="utf-8") as f:
                record = json.load(f)
        except (OSError, json.JSONDecodeError) as exc:
            typer.echo(f"[ERROR] Cannot read record: {exc}", err=True)
            raise typer.Exit(code=1)
        result = orchestrator.predict(record)
    else:
        result = orchestrator.predict_local(
            category=category,
            nova_group=nova_group,
            certifications=certification,
            packaging_type=packaging,
            label_text=label_text,
            origin_country=origin,
            manufacturing_place=manufacturing_place,
        )

    if json_output:
        typer.echo(json.dumps(result.to_dict(), indent=2))
        return
    typer.echo(f"  Score:       {result.score}/100")
    typer.echo(f"  Confidence:  {result.confidence.value}")
    typer.echo(f"  Method:      {result.method.value}")
    typer.echo(f"  Explanation: {result.explanation}")
    if loader is not None and loader.last_error:
        typer.echo(f"  Model:       unavailable ({loader.last_error})")


@app.command("build-category-scores")
def build_category_scores(
    corpus: Optional[str] = typer.Option(None, "--corpus", help="Corpus file; default from config."),
    output: Optional[str] = typer.Option(None, "--output", help="Output JSON; default from config."),
    min_count: int = typer.Option(20, "--min-count", min=1, help="Minimum products per category."),
    config_path: Optional[str] = typer.Option(None, "--config", help="Path to TOML config file."),
) -> None:
    """Build the per-category mean-score table from a labelled corpus."""
    from sustain_score.pipeline.stages import CategoryScoresStage

    config = _load_config_or_exit(config_path)
    _configure_logging(config)

    stage = CategoryScoresStage(config=config)
    try:
        run = stage.run(corpus_path=corpus, output_path=output, min_count=min_count)
    except (FileNotFoundError, ValueError) as exc:
        typer.echo(f"[ERROR] {exc}", err=True)
        raise typer.Exit(code=1)

    rows = stage.last_rows
    if rows:
        typer.echo(f"  Lowest:  {rows[0].tag} ({rows[0].score:.3f}, n={rows[0].count})")
        typer.echo(f"  Highest: {rows[-1].tag} ({rows[-1].score:.3f}, n={rows[-1].count})")
    typer.echo(f"[OK] {len(rows)} categories written to {run.details['output']}")


@app.command("cache-artifact")
def cache_artifact(
    weights: Optional[str] = typer.Option(None, "--weights", help="Artifact path; default from config."),
    db_path: Optional[str] = typer.Option(None, "--db-path", help="Override DB path from config."),
    config_path: Optional[str] = typer.Option(None, "--config", help="Path to TOML config file."),
) -> None:
    """Validate an artifact and store it in the SQLite weight cache."""
    from sustain_score.serving.artifact import FORMAT_VERSION, ArtifactError, read_artifact_document
    from sustain_score.serving.cache import SqliteWeightCache
    from sustain_score.serving.engine import InferenceEngine

    config = _load_config_or_exit(config_path)
    _configure_logging(config)

    source = Path(weights) if weights else config.data.weights_path
    try:
        document = read_artifact_document(source)
        engine = InferenceEngine.from_artifact(document)
    except ArtifactError as exc:
        typer.echo(f"[ERROR] {exc}", err=True)
        raise typer.Exit(code=1)

    cache = SqliteWeightCache(
        db_path or config.database.db_path,
        wal_mode=config.database.wal_mode,
        busy_timeout_ms=config.database.busy_timeout_ms,
    )
    cache.save(config.prediction.cache_key, document, FORMAT_VERSION)
    typer.echo(f"  Architecture: {engine.architecture} ({engine.total_parameters} params)")
    typer.echo(f"[OK] Cached '{config.prediction.cache_key}' at format {FORMAT_VERSION}.")


if __name__ == "__main__":
    app()
