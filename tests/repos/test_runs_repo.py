"""Unit tests for RunsRepository."""

import pytest

from caselens.db.schema import Run
from caselens.errors import RunNotFoundError
from caselens.models.domain import MetricsBlock
from caselens.repos.runs_repo import RunsRepository


def _run(name="r"):
    return Run(
        name=name,
        model_name="m",
        temperature=0.0,
        system_prompt="s",
        user_template="<<TEXT>>",
        data_source="/data/x.csv",
        config_json="{}",
        total_items=3,
    )


def _metrics():
    return MetricsBlock(
        n_positive_detected=3,
        n_negative_detected=0,
        n_positive_manual=2,
        n_negative_manual=1,
        n_true_positive=2,
        n_true_negative=0,
        n_false_positive=1,
        n_false_negative=0,
        accuracy=2 / 3,
        precision=2 / 3,
        recall=1.0,
        f1=0.8,
        pct_overlap_with_manual=200 / 3,
    )


def test_create_assigns_id_and_running_status(session):
    repo = RunsRepository(session)
    run = repo.create(_run())
    assert run.run_id
    assert run.status == "running"
    assert run.items_processed == 0
    assert repo.get(run.run_id).name == "r"


def test_require_missing_raises(session):
    with pytest.raises(RunNotFoundError):
        RunsRepository(session).require("missing")


def test_finalize_writes_metrics_and_artifacts(session):
    repo = RunsRepository(session)
    run_id = repo.create(_run()).run_id

    run = repo.finalize(run_id, _metrics(), items_processed=3, csv_file="a.csv", json_file="a.json")

    assert run.status == "completed"
    assert run.ended_at is not None
    assert run.n_true_positive == 2
    assert run.f1 == 0.8
    assert run.precision == 2 / 3
    assert run.pct_overlap_with_manual == 200 / 3
    assert run.csv_file == "a.csv"
    assert run.total_runtime_sec is not None
    assert run.avg_time_per_item_sec == pytest.approx(run.total_runtime_sec / 3)


def test_mark_failed_and_reopen(session):
    repo = RunsRepository(session)
    run_id = repo.create(_run()).run_id

    repo.mark_failed(run_id, "OperationalError: disk full")
    run = repo.get(run_id)
    assert run.status == "failed"
    assert run.notes == "FAILED: OperationalError: disk full"
    assert run.ended_at is not None

    run = repo.reopen(run_id)
    assert run.status == "running"
    assert run.notes is None
    assert run.ended_at is None


def test_update_progress(session):
    repo = RunsRepository(session)
    run_id = repo.create(_run()).run_id
    repo.update_progress(run_id, 2)
    run = repo.get(run_id)
    assert run.items_processed == 2
    assert run.last_progress_at is not None


def test_list_runs_filters_and_orders(session):
    repo = RunsRepository(session)
    first = repo.create(_run("first")).run_id
    second = repo.create(_run("second")).run_id
    repo.mark_failed(first, "x")

    assert [r.name for r in repo.list_runs()] == ["second", "first"]
    assert [r.run_id for r in repo.list_runs(status="failed")] == [first]
    assert [r.run_id for r in repo.list_runs(limit=1)] == [second]
