"""Result log repository."""

from __future__ import annotations

from typing import List, Optional, Set, Tuple

from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from caselens.db.schema import Result
from caselens.models.domain import ErrorSummary

ResultKey = Tuple[str, str]

# Columns an in-place supersede may rewrite. The key columns never change.
_MUTABLE_COLUMNS = (
    "row_num",
    "ground_truth",
    "entity_ground_truth",
    "detected",
    "confidence",
    "indicators_json",
    "rationale",
    "raw_response",
    "response_sec",
    "prompt_tokens",
    "completion_tokens",
    "total_tokens",
    "error_occurred",
    "error_kind",
    "error_message",
    "is_true_positive",
    "is_true_negative",
    "is_false_positive",
    "is_false_negative",
    "processed_at",
)

DISAGREEMENT_KINDS = ("false_positive", "false_negative", "both")


class ResultRepository:
    """Repository for results table operations."""

    def __init__(self, session: Session):
        self.session = session

    def get_by_key(self, run_id: str, entity_id: str, subtype: str) -> Optional[Result]:
        return (
            self.session.query(Result)
            .filter(
                Result.run_id == run_id,
                Result.entity_id == entity_id,
                Result.subtype == subtype,
            )
            .first()
        )

    def insert(self, row: Result) -> Tuple[Result, bool]:
        """
        Insert one result row and commit.

        Returns (row, True) when written, or (existing_row, False) when the key
        (run_id, entity_id, subtype) already had a row. The unique constraint
        is the final word if another writer got there between check and insert.
        """
        existing = self.get_by_key(row.run_id, row.entity_id, row.subtype)
        if existing is not None:
            return existing, False

        self.session.add(row)
        try:
            self.session.commit()
        except IntegrityError:
            self.session.rollback()
            existing = self.get_by_key(row.run_id, row.entity_id, row.subtype)
            if existing is None:
                raise
            return existing, False
        return row, True

    def supersede(self, existing: Result, replacement: Result) -> Result:
        """Overwrite an existing row's verdict in place, keeping its key and id."""
        values = {name: getattr(replacement, name) for name in _MUTABLE_COLUMNS}
        self.session.execute(
            update(Result).where(Result.result_id == existing.result_id).values(**values)
        )
        self.session.commit()
        self.session.refresh(existing)
        return existing

    def done_keys(self, run_id: str) -> Set[ResultKey]:
        rows = self.session.execute(
            select(Result.entity_id, Result.subtype).where(Result.run_id == run_id)
        ).all()
        return {(r[0], r[1]) for r in rows}

    def errored_keys(self, run_id: str) -> Set[ResultKey]:
        rows = self.session.execute(
            select(Result.entity_id, Result.subtype).where(
                Result.run_id == run_id,
                Result.error_occurred.is_(True),
            )
        ).all()
        return {(r[0], r[1]) for r in rows}

    def count_by_run(self, run_id: str) -> int:
        return int(
            self.session.execute(
                select(func.count()).select_from(Result).where(Result.run_id == run_id)
            ).scalar_one()
        )

    def list_by_run(self, run_id: str) -> List[Result]:
        return (
            self.session.query(Result)
            .filter(Result.run_id == run_id)
            .order_by(Result.row_num, Result.entity_id, Result.subtype)
            .all()
        )

    def list_for_metrics(self, run_id: str) -> List[Result]:
        """Successful rows only; errored rows never count toward metrics."""
        return (
            self.session.query(Result)
            .filter(Result.run_id == run_id, Result.error_occurred.is_(False))
            .all()
        )

    def find_disagreements(self, run_id: str, kind: str = "both") -> List[Result]:
        """False positives and/or false negatives, most confident first."""
        if kind not in DISAGREEMENT_KINDS:
            raise ValueError(f"kind must be one of {', '.join(DISAGREEMENT_KINDS)}")

        stmt = select(Result).where(Result.run_id == run_id, Result.error_occurred.is_(False))
        if kind == "false_positive":
            stmt = stmt.where(Result.is_false_positive.is_(True))
        elif kind == "false_negative":
            stmt = stmt.where(Result.is_false_negative.is_(True))
        else:
            stmt = stmt.where(
                (Result.is_false_positive.is_(True)) | (Result.is_false_negative.is_(True))
            )
        stmt = stmt.order_by(Result.confidence.desc().nulls_last(), Result.row_num)
        return list(self.session.execute(stmt).scalars().all())

    def error_summary(self, run_id: str) -> ErrorSummary:
        total = self.count_by_run(run_id)
        rows = self.session.execute(
            select(Result.error_kind, func.count())
            .where(Result.run_id == run_id, Result.error_occurred.is_(True))
            .group_by(Result.error_kind)
        ).all()
        by_kind = {(r[0] or "unknown"): int(r[1]) for r in rows}
        return ErrorSummary(total=total, errored=sum(by_kind.values()), by_kind=by_kind)
