"""CSV / JSON export of a run's result log."""

from __future__ import annotations

import csv
from dataclasses import dataclass
from datetime import datetime
import json
from pathlib import Path
from typing import Callable, Dict, List

from sqlalchemy.orm import Session

from caselens.db.schema import Result, Run, utcnow
from caselens.repos.result_repo import ResultRepository

EXPORT_COLUMNS = [
    "run_id",
    "row_num",
    "entity_id",
    "subtype",
    "ground_truth",
    "entity_ground_truth",
    "detected",
    "confidence",
    "indicators",
    "rationale",
    "error_occurred",
    "error_kind",
    "error_message",
    "response_sec",
    "prompt_tokens",
    "completion_tokens",
    "total_tokens",
    "is_true_positive",
    "is_true_negative",
    "is_false_positive",
    "is_false_negative",
    "processed_at",
]


@dataclass(frozen=True)
class ExportPaths:
    csv_file: str
    json_file: str


def _indicators(row: Result) -> List[str]:
    try:
        value = json.loads(row.indicators_json or "[]")
    except ValueError:
        return []
    return [str(v) for v in value] if isinstance(value, list) else []


def result_to_dict(row: Result) -> Dict[str, object]:
    out: Dict[str, object] = {}
    for col in EXPORT_COLUMNS:
        if col == "indicators":
            out[col] = _indicators(row)
        elif col == "processed_at":
            out[col] = row.processed_at.isoformat() if row.processed_at else None
        else:
            out[col] = getattr(row, col)
    return out


def export_results(
    session: Session,
    run: Run,
    reports_dir: str | Path,
    now_fn: Callable[[], datetime] = utcnow,
) -> ExportPaths:
    """
    Write <reports_dir>/run_<run_id>_<timestamp>.csv and .json.

    In the CSV, indicators are joined with "; ".
    """
    reports = Path(reports_dir)
    reports.mkdir(parents=True, exist_ok=True)
    stamp = now_fn().strftime("%Y%m%d_%H%M%S")
    base = reports / f"run_{run.run_id}_{stamp}"
    csv_path = base.with_suffix(".csv")
    json_path = base.with_suffix(".json")

    rows = [result_to_dict(r) for r in ResultRepository(session).list_by_run(run.run_id)]

    with csv_path.open("w", newline="", encoding="utf-8") as f:
        writer = csv.DictWriter(f, fieldnames=EXPORT_COLUMNS)
        writer.writeheader()
        for row in rows:
            writer.writerow({**row, "indicators": "; ".join(row["indicators"])})

    report = {
        "run_id": run.run_id,
        "name": run.name,
        "model_name": run.model_name,
        "prompt_version": run.prompt_version,
        "data_source": run.data_source,
        "exported_at": now_fn().isoformat(),
        "n": len(rows),
        "results": rows,
    }
    json_path.write_text(json.dumps(report, indent=2), encoding="utf-8")

    return ExportPaths(csv_file=str(csv_path), json_file=str(json_path))
