# src/caselens/db/schema.py
from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional
from uuid import uuid4

from sqlalchemy import Boolean, DateTime, Double, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


def _uuid() -> str:
    return str(uuid4())


def utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


class Base(DeclarativeBase):
    pass


class CorpusRecord(Base):
    """
    One unit of text to classify. Written once by the corpus loader,
    read-only to runs.
    """
    __tablename__ = "corpus_records"

    record_id: Mapped[int] = mapped_column(
        Integer,
        primary_key=True,
        autoincrement=False,
    )
    # NOTE: record_id is assigned manually in CorpusRepository (DuckDB has no autoincrement).
    # It also defines the stable iteration order of a source.

    entity_id: Mapped[str] = mapped_column(String, nullable=False, index=True)
    subtype: Mapped[str] = mapped_column(String, nullable=False, index=True)
    text: Mapped[str] = mapped_column(Text, nullable=False)

    ground_truth: Mapped[Optional[bool]] = mapped_column(Boolean, nullable=True)
    entity_ground_truth: Mapped[Optional[bool]] = mapped_column(Boolean, nullable=True)

    source_tag: Mapped[str] = mapped_column(String, nullable=False, index=True)
    loaded_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)

    __table_args__ = (UniqueConstraint("entity_id", "subtype", name="uq_corpus_entity_subtype"),)


class CorpusSource(Base):
    """
    One row per loaded source file: the sha256 of the file as it was loaded.

    Runs compare against this, not just the file on disk, so a file edited
    after loading can never pass for the records in the store.
    """
    __tablename__ = "corpus_sources"

    source_tag: Mapped[str] = mapped_column(String, primary_key=True)
    checksum: Mapped[str] = mapped_column(String, nullable=False)
    n_records: Mapped[int] = mapped_column(Integer, nullable=False)
    loaded_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)


class Run(Base):
    """
    One row per experiment run: config snapshot, lifecycle, progress and,
    once completed, the metrics block.
    """
    __tablename__ = "runs"

    # NOTE: columns that get UPDATEd in place carry no secondary index;
    # DuckDB rewrites updates of indexed columns as delete+insert.
    run_id: Mapped[str] = mapped_column(String, primary_key=True, default=_uuid)
    name: Mapped[str] = mapped_column(String, nullable=False)
    status: Mapped[str] = mapped_column(String, nullable=False)  # running/completed/failed

    # config snapshot
    model_name: Mapped[str] = mapped_column(String, nullable=False, index=True)
    model_provider: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    temperature: Mapped[float] = mapped_column(Double, nullable=False)
    system_prompt: Mapped[str] = mapped_column(Text, nullable=False)
    user_template: Mapped[str] = mapped_column(Text, nullable=False)
    prompt_version: Mapped[Optional[str]] = mapped_column(String, nullable=True, index=True)
    prompt_author: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    run_seed: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    api_url: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    hostname: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    data_source: Mapped[str] = mapped_column(Text, nullable=False)
    row_limit: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    source_checksum: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    config_json: Mapped[str] = mapped_column(Text, nullable=False)

    # progress
    total_items: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    items_processed: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    last_progress_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    estimated_completion_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)

    # timestamps
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)
    started_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)
    ended_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    total_runtime_sec: Mapped[Optional[float]] = mapped_column(Double, nullable=True)
    avg_time_per_item_sec: Mapped[Optional[float]] = mapped_column(Double, nullable=True)

    # metrics block (finalization only)
    n_positive_detected: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    n_negative_detected: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    n_positive_manual: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    n_negative_manual: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    n_true_positive: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    n_true_negative: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    n_false_positive: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    n_false_negative: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    accuracy: Mapped[Optional[float]] = mapped_column(Double, nullable=True)
    precision: Mapped[Optional[float]] = mapped_column(Double, nullable=True)
    recall: Mapped[Optional[float]] = mapped_column(Double, nullable=True)
    f1: Mapped[Optional[float]] = mapped_column(Double, nullable=True)
    pct_overlap_with_manual: Mapped[Optional[float]] = mapped_column(Double, nullable=True)

    # artifacts
    csv_file: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    json_file: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    log_dir: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)


class Result(Base):
    """
    One classification outcome per (run, entity, subtype).

    The unique key is what makes resume safe: an existing row means "done",
    whether it records a verdict or an error.
    """
    __tablename__ = "results"

    result_id: Mapped[str] = mapped_column(String, primary_key=True, default=_uuid)
    run_id: Mapped[str] = mapped_column(String, nullable=False, index=True)
    entity_id: Mapped[str] = mapped_column(String, nullable=False, index=True)
    subtype: Mapped[str] = mapped_column(String, nullable=False)
    row_num: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)

    ground_truth: Mapped[Optional[bool]] = mapped_column(Boolean, nullable=True)
    entity_ground_truth: Mapped[Optional[bool]] = mapped_column(Boolean, nullable=True)

    detected: Mapped[Optional[bool]] = mapped_column(Boolean, nullable=True)
    confidence: Mapped[Optional[float]] = mapped_column(Double, nullable=True)
    indicators_json: Mapped[str] = mapped_column(Text, nullable=False, default="[]")
    rationale: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    raw_response: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    response_sec: Mapped[Optional[float]] = mapped_column(Double, nullable=True)
    prompt_tokens: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    completion_tokens: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    total_tokens: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)

    error_occurred: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    error_kind: Mapped[Optional[str]] = mapped_column(String, nullable=True)  # transport/parse
    error_message: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    is_true_positive: Mapped[Optional[bool]] = mapped_column(Boolean, nullable=True)
    is_true_negative: Mapped[Optional[bool]] = mapped_column(Boolean, nullable=True)
    is_false_positive: Mapped[Optional[bool]] = mapped_column(Boolean, nullable=True)
    is_false_negative: Mapped[Optional[bool]] = mapped_column(Boolean, nullable=True)

    processed_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)

    __table_args__ = (
        UniqueConstraint("run_id", "entity_id", "subtype", name="uq_results_run_entity_subtype"),
    )
