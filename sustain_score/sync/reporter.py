"""
ASCII terminal formatting and JSON export for sync and evaluation reports.

Used by the ``validate-sync`` and ``evaluate`` CLI commands.  No external
dependencies.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import TYPE_CHECKING

from sustain_score.sync.validator import SyncReport
from sustain_score.utils.time_utils import utc_timestamp

if TYPE_CHECKING:
    from sustain_score.ml.evaluate import EvaluationReport


def _status_badge(passed: bool) -> str:
    return "[PASS]" if passed else "[FAIL]"


# ── Sync report ───────────────────────────────────────────────────────────────


def format_sync_report(report: SyncReport) -> str:
    """Columns: Status | Check | Detail."""
    if not report.checks:
        return "  (no checks run)\n"

    width = max(len(c.label) for c in report.checks)
    header = f"  {'Status':<8} {'Check':<{width}}  Detail"
    sep = "  " + "-" * (len(header) - 2 + 24)

    rows = [f"  Artifact: {report.artifact}", "", header, sep]
    for check in report.checks:
        rows.append(f"  {_status_badge(check.passed):<8} {check.label:<{width}}  {check.detail}")

    failed = len(report.failures)
    rows.append(sep)
    rows.append(
        f"  {len(report.checks) - failed}/{len(report.checks)} checks passed"
        + (f", {failed} failed" if failed else "")
    )
    rows.append("")
    return "\n".join(rows)


def export_sync_report(report: SyncReport, path: str | Path) -> Path:
    """Write the report as JSON; parent directories are created."""
    out = Path(path)
    out.parent.mkdir(parents=True, exist_ok=True)
    document = {"generated_at": utc_timestamp(), **report.to_dict()}
    with open(out, "w", encoding="utf-8") as f:
        json.dump(document, f, indent=2, default=str)
    return out


# ── Evaluation report ─────────────────────────────────────────────────────────


def format_evaluation_report(report: "EvaluationReport") -> str:
    m = report.metrics
    lines = [
        f"  Samples      : {m.sample_count}" + (f" ({report.skipped} skipped)" if report.skipped else ""),
        f"  MSE          : {m.mse:.5f}",
        f"  RMSE         : {m.rmse * 100:.2f} pts",
        f"  MAE          : {m.mae_points:.2f} pts",
        f"  R²           : {m.r_squared:.4f}",
        f"  Within ±5    : {m.within_5:.1f}%",
        f"  Within ±10   : {m.within_10:.1f}%",
        f"  Within ±15   : {m.within_15:.1f}%",
        f"  Within ±20   : {m.within_20:.1f}%",
        f"  Exact grade  : {report.exact_grade_rate:.1f}%",
        f"  Within 1 grd : {report.within_one_grade_rate:.1f}%",
    ]
    if report.parity_gap is not None:
        lines.append(
            f"  Parity       : training R²={report.recorded_test_r_squared:.4f} "
            f"gap={report.parity_gap:.4f}"
        )

    header = f"  {'Grade':<6} {'Count':>6} {'MAE(pts)':>9} {'Pred':>7} {'Actual':>7}"
    lines += ["", header, "  " + "-" * (len(header) - 2)]
    for g in report.grades:
        lines.append(
            f"  {g.grade.upper():<6} {g.count:>6} {g.mae_points:>9.2f} "
            f"{g.mean_predicted:>7.1f} {g.mean_actual:>7.1f}"
        )

    lines.append("")
    for name, met in report.targets.items():
        lines.append(f"  {_status_badge(met):<8} target {name}")
    lines.append("")
    return "\n".join(lines)
