"""Run registry repository."""

from __future__ import annotations

from datetime import datetime
from typing import List, Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from caselens.db.schema import Run, utcnow
from caselens.errors import RunNotFoundError
from caselens.models.domain import MetricsBlock

RUNNING = "running"
COMPLETED = "completed"
FAILED = "failed"


class RunsRepository:
    """
    Repository for the `runs` table.

    Responsibility:
    - create runs
    - move runs through running -> completed / failed
    - record progress and fetch runs

    Status checks belong to the caller (RunController); every method here
    is one committed write or one read.
    """

    def __init__(self, session: Session):
        self.session = session

    def create(self, run: Run) -> Run:
        run.status = RUNNING
        now = utcnow()
        run.created_at = run.created_at or now
        run.started_at = run.started_at or now
        run.items_processed = 0
        self.session.add(run)
        self.session.commit()
        return run

    def get(self, run_id: str) -> Optional[Run]:
        return self.session.get(Run, run_id)

    def require(self, run_id: str) -> Run:
        run = self.get(run_id)
        if run is None:
            raise RunNotFoundError(run_id)
        return run

    def update_progress(
        self,
        run_id: str,
        items_processed: int,
        estimated_completion_at: Optional[datetime] = None,
    ) -> None:
        run = self.require(run_id)
        run.items_processed = items_processed
        run.last_progress_at = utcnow()
        run.estimated_completion_at = estimated_completion_at
        self.session.commit()

    def set_log_dir(self, run_id: str, log_dir: str) -> None:
        run = self.require(run_id)
        run.log_dir = log_dir
        self.session.commit()

    def finalize(
        self,
        run_id: str,
        metrics: MetricsBlock,
        items_processed: int,
        csv_file: Optional[str] = None,
        json_file: Optional[str] = None,
    ) -> Run:
        """Write the metrics block, artifacts and status=completed in one commit."""
        run = self.require(run_id)
        ended_at = utcnow()
        runtime = (ended_at - run.started_at).total_seconds()

        for key, value in metrics.as_dict().items():
            setattr(run, key, value)

        run.items_processed = items_processed
        run.total_runtime_sec = runtime
        run.avg_time_per_item_sec = runtime / items_processed if items_processed else None
        run.csv_file = csv_file
        run.json_file = json_file
        run.ended_at = ended_at
        run.estimated_completion_at = None
        run.status = COMPLETED
        self.session.commit()
        return run

    def mark_failed(self, run_id: str, error_message: str) -> None:
        run = self.require(run_id)
        run.status = FAILED
        run.ended_at = utcnow()
        run.notes = f"FAILED: {error_message}"
        self.session.commit()

    def reopen(self, run_id: str) -> Run:
        """failed -> running, clearing the failure marker."""
        run = self.require(run_id)
        run.status = RUNNING
        run.ended_at = None
        run.notes = None
        self.session.commit()
        return run

    def list_runs(self, status: Optional[str] = None, limit: int = 50) -> List[Run]:
        stmt = select(Run)
        if status:
            stmt = stmt.where(Run.status == status)
        stmt = stmt.order_by(Run.created_at.desc()).limit(limit)
        return list(self.session.execute(stmt).scalars().all())
