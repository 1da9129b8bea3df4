"""Confusion matrix and derived rates, computed from persisted result rows."""

from __future__ import annotations

from typing import Iterable, Optional

from sqlalchemy.orm import Session

from caselens.db.schema import Result
from caselens.models.domain import MetricsBlock
from caselens.repos.result_repo import ResultRepository


def _safe_div(num: float, denom: float) -> Optional[float]:
    return num / denom if denom != 0 else None


def compute_metrics(rows: Iterable[Result]) -> MetricsBlock:
    """
    Metrics over successful rows.

    Rates are None (never NaN) when their denominator is zero;
    f1 is None when precision or recall is None or their sum is zero.
    pct_overlap_with_manual is TP+TN as a percentage of every counted row,
    including rows without ground truth.
    """
    rows_list = [r for r in rows if not r.error_occurred]

    tp = sum(1 for r in rows_list if r.is_true_positive)
    tn = sum(1 for r in rows_list if r.is_true_negative)
    fp = sum(1 for r in rows_list if r.is_false_positive)
    fn = sum(1 for r in rows_list if r.is_false_negative)

    precision = _safe_div(tp, tp + fp)
    recall = _safe_div(tp, tp + fn)
    f1 = None
    if precision is not None and recall is not None:
        f1 = _safe_div(2 * precision * recall, precision + recall)

    overlap = _safe_div(tp + tn, len(rows_list))

    return MetricsBlock(
        n_positive_detected=sum(1 for r in rows_list if r.detected is True),
        n_negative_detected=sum(1 for r in rows_list if r.detected is False),
        n_positive_manual=sum(1 for r in rows_list if r.ground_truth is True),
        n_negative_manual=sum(1 for r in rows_list if r.ground_truth is False),
        n_true_positive=tp,
        n_true_negative=tn,
        n_false_positive=fp,
        n_false_negative=fn,
        accuracy=_safe_div(tp + tn, tp + tn + fp + fn),
        precision=precision,
        recall=recall,
        f1=f1,
        pct_overlap_with_manual=overlap * 100 if overlap is not None else None,
    )


class MetricsAggregator:
    """Read-only: every call re-reads the result log for the run."""

    def __init__(self, session: Session):
        self.results = ResultRepository(session)

    def compute(self, run_id: str) -> MetricsBlock:
        return compute_metrics(self.results.list_for_metrics(run_id))
