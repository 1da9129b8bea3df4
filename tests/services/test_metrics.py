"""Unit tests for the metrics aggregator."""

import math

from caselens.db.schema import Result
from caselens.services.item_processor import correctness_flags
from caselens.services.metrics import MetricsAggregator, compute_metrics


def _row(entity_id, subtype, detected, truth, error=False, run_id="r1"):
    flags = correctness_flags(None if error else detected, truth)
    return Result(
        run_id=run_id,
        entity_id=entity_id,
        subtype=subtype,
        detected=None if error else detected,
        ground_truth=truth,
        error_occurred=error,
        indicators_json="[]",
        **flags,
    )


def test_three_item_scenario():
    rows = [
        _row("A", "cme", True, True),
        _row("A", "le", True, False),
        _row("B", "cme", True, True),
    ]
    m = compute_metrics(rows)
    assert (m.n_true_positive, m.n_false_positive, m.n_true_negative, m.n_false_negative) == (2, 1, 0, 0)
    assert math.isclose(m.accuracy, 2 / 3)
    assert math.isclose(m.precision, 2 / 3)
    assert m.recall == 1.0
    assert math.isclose(m.f1, 0.8)
    assert m.n_positive_detected == 3
    assert m.n_negative_detected == 0
    assert m.n_positive_manual == 2
    assert m.n_negative_manual == 1


def test_precision_is_none_without_positive_predictions():
    rows = [_row("A", "cme", False, True), _row("B", "cme", False, False)]
    m = compute_metrics(rows)
    assert m.precision is None
    assert m.f1 is None
    assert m.recall == 0.0
    assert m.accuracy == 0.5


def test_empty_rows_give_null_rates():
    m = compute_metrics([])
    assert m.accuracy is None
    assert m.precision is None
    assert m.recall is None
    assert m.f1 is None
    assert m.pct_overlap_with_manual is None
    assert m.n_true_positive == 0


def test_errored_rows_are_ignored():
    rows = [_row("A", "cme", True, True), _row("B", "cme", None, False, error=True)]
    m = compute_metrics(rows)
    assert m.n_true_positive == 1
    assert m.n_negative_manual == 0
    assert m.accuracy == 1.0


def test_rows_without_ground_truth_count_only_as_detections():
    rows = [_row("A", "cme", True, True), _row("B", "cme", True, None)]
    m = compute_metrics(rows)
    assert m.n_positive_detected == 2
    assert m.n_true_positive == 1
    assert m.accuracy == 1.0
    assert m.pct_overlap_with_manual == 50.0


def test_aggregator_is_pure(session):
    for row in [
        _row("A", "cme", True, True),
        _row("A", "le", True, False),
        _row("B", "cme", False, True),
        _row("C", "cme", None, True, error=True),
    ]:
        session.add(row)
    session.commit()

    agg = MetricsAggregator(session)
    first = agg.compute("r1")
    second = agg.compute("r1")
    assert first == second
    assert first.n_false_negative == 1
    assert agg.compute("other-run").accuracy is None
