import logging

import pytest

from curvetrack.stats import PredictionAccuracyTracker, StepStats, format_report, magnitude


def test_magnitude():
    assert magnitude((3, 4)) == pytest.approx(5.0)


def test_invalid_horizon():
    with pytest.raises(ValueError):
        PredictionAccuracyTracker(0)


def test_queue_is_bounded_by_horizon():
    acc = PredictionAccuracyTracker(3)
    for k in range(10):
        acc.record_prediction([k, k, k])
        assert acc.queue_length <= 3
    assert acc.queue_length == 3
    # oldest surviving prediction is from k == 7
    assert acc.oldest_prediction == [7.0, 7.0, 7.0]


def test_wrong_prediction_length():
    acc = PredictionAccuracyTracker(3)
    with pytest.raises(ValueError):
        acc.record_prediction([1.0, 2.0])
    assert acc.queue_length == 0


def test_not_enough_history_is_a_noop():
    acc = PredictionAccuracyTracker(3)
    acc.record_prediction([1.0, 1.0, 1.0])
    assert acc.report_against_history([(1, 0), (1, 0)]) is None
    assert acc.means == [0.0, 0.0, 0.0]
    assert acc.errors(0) == []


def test_empty_queue_is_a_noop():
    acc = PredictionAccuracyTracker(2)
    assert acc.report_against_history([(1, 0), (1, 0), (1, 0)]) is None


def test_perfect_predictions_converge_to_zero_error():
    acc = PredictionAccuracyTracker(3)
    history = []
    for _ in range(5):
        history.insert(0, (1.0, 0.0))
        acc.report_against_history(history)
        acc.record_prediction([1.0, 1.0, 1.0])
    assert acc.means == pytest.approx([0.0, 0.0, 0.0])
    assert acc.stddevs == pytest.approx([0.0, 0.0, 0.0])
    assert len(acc.errors(0)) == 3


def test_running_mean_and_population_stddev():
    acc = PredictionAccuracyTracker(2)
    acc.record_prediction([5.0, 10.0])
    acc.report_against_history([(3, 4), (6, 8)])
    stats = acc.report_against_history([(0, 3), (0, 10)])
    assert acc.errors(0) == pytest.approx([0.0, 2.0])
    assert stats[0].step == 1
    assert stats[0].count == 2
    assert stats[0].mean == pytest.approx(1.0)
    assert stats[0].stddev == pytest.approx(1.0)
    assert stats[1].mean == pytest.approx(0.0)
    assert stats[1].stddev == pytest.approx(0.0)
    # report does not consume the queue
    assert acc.queue_length == 1


def test_report_callback_and_logging(caplog):
    received = []
    acc = PredictionAccuracyTracker(2, on_report=received.append)
    acc.record_prediction([1.0, 1.0])
    with caplog.at_level(logging.INFO, logger="curvetrack.stats"):
        acc.report_against_history([(2, 0), (1, 0)])
    assert len(received) == 1
    assert [s.step for s in received[0]] == [1, 2]
    assert "Prediction <mean, stddev>" in caplog.text


def test_reset_clears_everything():
    acc = PredictionAccuracyTracker(2)
    acc.record_prediction([1.0, 1.0])
    acc.report_against_history([(3, 0), (3, 0)])
    acc.reset()
    assert acc.queue_length == 0
    assert acc.means == [0.0, 0.0]
    assert acc.errors(1) == []


def test_format_report_column_selection():
    stats = [StepStats(step=i + 1, mean=0.5, stddev=0.25, count=1) for i in range(12)]
    lines = format_report(stats).splitlines()
    assert lines[0] == "Prediction <mean, stddev>"
    assert lines[1].split("\t\t") == ["1", "2", "3", "4", "5", "11", "12"]
    assert lines[2].split("\t") == ["0.500", "0.250"] * 7
    assert format_report(stats, header=False).count("\n") == 0
    assert format_report([]) == ""
