"""Unit tests for ResultRepository."""

import pytest
from sqlalchemy.exc import DBAPIError

from caselens.db.schema import Result
from caselens.repos.result_repo import ResultRepository


def _result(entity_id, subtype="cme", run_id="r1", **kwargs):
    kwargs.setdefault("error_occurred", False)
    return Result(run_id=run_id, entity_id=entity_id, subtype=subtype, **kwargs)


def test_insert_is_idempotent_per_key(session):
    repo = ResultRepository(session)
    row, created = repo.insert(_result("A", detected=True))
    assert created is True

    dup, created = repo.insert(_result("A", detected=False))
    assert created is False
    assert dup.result_id == row.result_id
    assert dup.detected is True
    assert repo.count_by_run("r1") == 1


def test_unique_constraint_enforced_at_write(session):
    session.add(_result("A"))
    session.commit()
    session.add(_result("A"))
    with pytest.raises(DBAPIError):
        session.commit()
    session.rollback()


def test_done_and_errored_keys(session):
    repo = ResultRepository(session)
    repo.insert(_result("A"))
    repo.insert(_result("B", error_occurred=True, error_kind="transport"))
    repo.insert(_result("C", run_id="r2", error_occurred=True))

    assert repo.done_keys("r1") == {("A", "cme"), ("B", "cme")}
    assert repo.errored_keys("r1") == {("B", "cme")}


def test_find_disagreements_sorted_by_confidence(session):
    repo = ResultRepository(session)
    repo.insert(_result("A", confidence=0.6, is_false_positive=True, is_false_negative=False))
    repo.insert(_result("B", confidence=0.95, is_false_positive=False, is_false_negative=True))
    repo.insert(_result("C", confidence=0.99, is_true_positive=True, is_false_positive=False, is_false_negative=False))

    assert [r.entity_id for r in repo.find_disagreements("r1")] == ["B", "A"]
    assert [r.entity_id for r in repo.find_disagreements("r1", "false_positive")] == ["A"]
    assert [r.entity_id for r in repo.find_disagreements("r1", "false_negative")] == ["B"]
    with pytest.raises(ValueError):
        repo.find_disagreements("r1", "true_positive")


def test_error_summary_by_kind(session):
    repo = ResultRepository(session)
    repo.insert(_result("A"))
    repo.insert(_result("B", error_occurred=True, error_kind="transport"))
    repo.insert(_result("C", error_occurred=True, error_kind="parse"))
    repo.insert(_result("D", error_occurred=True, error_kind="parse"))

    summary = repo.error_summary("r1")
    assert summary.total == 4
    assert summary.errored == 3
    assert summary.by_kind == {"transport": 1, "parse": 2}
