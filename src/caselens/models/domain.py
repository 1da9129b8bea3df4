from __future__ import annotations

from dataclasses import asdict, dataclass, field
from datetime import datetime
from typing import Optional


@dataclass(frozen=True)
class MetricsBlock:
    n_positive_detected: int
    n_negative_detected: int
    n_positive_manual: int
    n_negative_manual: int
    n_true_positive: int
    n_true_negative: int
    n_false_positive: int
    n_false_negative: int
    accuracy: Optional[float]
    precision: Optional[float]
    recall: Optional[float]
    f1: Optional[float]
    pct_overlap_with_manual: Optional[float]

    def as_dict(self) -> dict:
        return asdict(self)


@dataclass(frozen=True)
class ParseSuccess:
    detected: bool
    confidence: Optional[float]
    indicators: list[str] = field(default_factory=list)
    rationale: str = ""


@dataclass(frozen=True)
class ParseFailure:
    message: str
    kind: str = "parse"


@dataclass(frozen=True)
class ErrorSummary:
    total: int
    errored: int
    by_kind: dict[str, int]


@dataclass(frozen=True)
class RunStatusView:
    run_id: str
    name: str
    status: str
    model_name: str
    prompt_version: str | None
    data_source: str
    total_items: int | None
    items_processed: int
    started_at: datetime
    ended_at: datetime | None
    estimated_completion_at: datetime | None
    notes: str | None
    errors: ErrorSummary
    metrics: MetricsBlock | None


@dataclass(frozen=True)
class ExecutionResult:
    run_id: str
    status: str
    items_attempted: int
    items_errored: int
    metrics: MetricsBlock | None
    csv_file: str | None = None
    json_file: str | None = None
