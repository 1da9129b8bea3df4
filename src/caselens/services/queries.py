"""Read-only views over the run registry and result log."""

from __future__ import annotations

from typing import List, Optional

from sqlalchemy.orm import Session

from caselens.db.schema import Result, Run
from caselens.models.domain import RunStatusView
from caselens.repos.result_repo import ResultRepository
from caselens.repos.runs_repo import COMPLETED, RunsRepository
from caselens.services.metrics import MetricsAggregator


def describe_run(session: Session, run_id: str) -> RunStatusView:
    """Registry row plus live progress and error counts; metrics once completed."""
    run = RunsRepository(session).require(run_id)
    results = ResultRepository(session)
    metrics = MetricsAggregator(session).compute(run_id) if run.status == COMPLETED else None
    return RunStatusView(
        run_id=run.run_id,
        name=run.name,
        status=run.status,
        model_name=run.model_name,
        prompt_version=run.prompt_version,
        data_source=run.data_source,
        total_items=run.total_items,
        items_processed=results.count_by_run(run_id),
        started_at=run.started_at,
        ended_at=run.ended_at,
        estimated_completion_at=run.estimated_completion_at,
        notes=run.notes,
        errors=results.error_summary(run_id),
        metrics=metrics,
    )


def list_runs(session: Session, status: Optional[str] = None, limit: int = 50) -> List[Run]:
    return RunsRepository(session).list_runs(status=status, limit=limit)


def find_disagreements(session: Session, run_id: str, kind: str = "both") -> List[Result]:
    RunsRepository(session).require(run_id)
    return ResultRepository(session).find_disagreements(run_id, kind=kind)
