"""What a run still has to process."""

from __future__ import annotations

from dataclasses import dataclass
from typing import List

from sqlalchemy.orm import Session

from caselens.db.schema import CorpusRecord, Run
from caselens.repos.corpus_repo import CorpusRepository
from caselens.repos.result_repo import ResultRepository

NORMAL = "normal"
RETRY_ERRORS_ONLY = "retry_errors_only"
MODES = (NORMAL, RETRY_ERRORS_ONLY)


@dataclass(frozen=True)
class WorkItem:
    row_num: int  # 1-based position in the run's slice
    record: CorpusRecord


def run_slice(session: Session, run: Run) -> List[CorpusRecord]:
    """The run's configured corpus slice: its source, in load order, up to row_limit."""
    return CorpusRepository(session).list_slice(run.data_source, limit=run.row_limit)


def resolve_work_items(session: Session, run: Run, mode: str = NORMAL) -> List[WorkItem]:
    """
    Records of the run's slice still needing work, in slice order.

    normal: slice minus every key that already has a result row (errored or not).
    retry_errors_only: slice records whose result row is flagged as errored.

    Always read fresh from the result log; nothing is cached between calls.
    """
    if mode not in MODES:
        raise ValueError(f"Unknown work-set mode: {mode}")

    items = [WorkItem(row_num=i, record=r) for i, r in enumerate(run_slice(session, run), start=1)]
    results = ResultRepository(session)

    if mode == RETRY_ERRORS_ONLY:
        errored = results.errored_keys(run.run_id)
        return [w for w in items if (w.record.entity_id, w.record.subtype) in errored]

    done = results.done_keys(run.run_id)
    return [w for w in items if (w.record.entity_id, w.record.subtype) not in done]
