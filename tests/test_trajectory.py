import logging

import pytest

from curvetrack.lsfit import FitError
from curvetrack.pipeline import SPLINE, Sample, resolve_predictor_params
from curvetrack.trajectory import IDLE, TRACKING, TrajectoryPredictor


def make_predictor(**overrides):
    base = {
        "fit_degree": 1,
        "weighted": False,
        "history_window_length": 10,
        "prediction_horizon": 5,
        "lookback": 2,
    }
    base.update(overrides)
    pred = TrajectoryPredictor(resolve_predictor_params(base))
    pred.start()
    return pred


def test_idle_ignores_samples():
    pred = TrajectoryPredictor(resolve_predictor_params({"prediction_horizon": 5}))
    assert pred.mode == IDLE
    out = pred.process(Sample(1, 10.0, 10.0))
    assert out.frame is None
    assert out.predicted == []
    assert pred.history == ()
    assert pred.fitter_x.size() == 0


def test_missing_sample_leaves_state_untouched():
    pred = make_predictor()
    pred.process(Sample(1, 1.0, 1.0))
    out = pred.process(None)
    assert out.frame == 1
    assert out.predicted == []
    assert len(pred.history) == 1


def test_linear_motion_is_extrapolated():
    pred = make_predictor()
    out = None
    for f in range(1, 6):
        out = pred.process(Sample(f, 2.0 * f, f + 1.0))
    assert pred.mode == TRACKING
    assert len(out.predicted) == 5
    for k, (x, y) in enumerate(out.predicted, start=1):
        assert x == pytest.approx(2.0 * (5 + k))
        assert y == pytest.approx(5 + k + 1.0)
    assert len(out.lookback) == 3
    assert out.lookback[-1] == pytest.approx((10.0, 6.0))


def test_history_window_is_bounded():
    pred = make_predictor(history_window_length=4, prediction_horizon=3)
    for f in range(1, 11):
        pred.process(Sample(f, float(f), 0.0))
    assert len(pred.history) == 4
    assert [s.frame for s in pred.history] == [7, 8, 9, 10]


def test_direction_reversal_clears_axis():
    pred = make_predictor()
    for f, x in enumerate([0.0, 1.0, 2.0, 3.0, 4.0], start=1):
        pred.process(Sample(f, x, 5.0))
    assert pred.fitter_x.size() == 5
    pred.process(Sample(6, 3.0, 5.0))
    assert pred.fitter_x.size() == 1
    assert pred.fitter_y.size() == 6


def test_frame_index_must_increase():
    pred = make_predictor()
    pred.process(Sample(3, 1.0, 1.0))
    with pytest.raises(ValueError):
        pred.process(Sample(3, 2.0, 2.0))
    with pytest.raises(ValueError):
        pred.process(Sample(2, 2.0, 2.0))


def test_non_finite_position_rejected():
    pred = make_predictor()
    with pytest.raises(ValueError):
        pred.process(Sample(1, float("nan"), 0.0))
    assert pred.history == ()


def test_accuracy_reported_once_history_covers_horizon():
    pred = make_predictor(fit_degree=3)
    reports = []
    for f in range(1, 6):
        out = pred.process(Sample(f, 100.0, 50.0))
        reports.append(out.accuracy)
    assert reports[:4] == [None] * 4
    stats = reports[4]
    assert len(stats) == 5
    for s in stats:
        assert s.mean == pytest.approx(0.0, abs=1e-6)


def test_on_report_callback_wired_through():
    received = []
    pred = TrajectoryPredictor(resolve_predictor_params({"prediction_horizon": 2}), on_report=received.append)
    pred.start()
    for f in range(1, 4):
        pred.process(Sample(f, 1.0, 1.0))
    assert len(received) == 2


def test_spline_strategy_needs_three_samples():
    pred = make_predictor(strategy=SPLINE)
    assert pred.process(Sample(1, 0.0, 0.0)).predicted == []
    assert pred.process(Sample(2, 1.0, 2.0)).predicted == []
    out = pred.process(Sample(3, 2.0, 4.0))
    assert len(out.predicted) == 5
    assert out.lookback == []
    assert out.predicted[0] == pytest.approx((3.0, 6.0))
    assert pred.fitter_x.size() == 0


def test_fit_failure_is_logged_not_raised(monkeypatch, caplog):
    pred = make_predictor()

    def failing_push(frame, value, solve=True):
        raise FitError("singular")

    monkeypatch.setattr(pred.fitter_x, "push", failing_push)
    with caplog.at_level(logging.WARNING, logger="curvetrack.trajectory"):
        out = pred.process(Sample(1, 1.0, 1.0))
    assert out.frame == 1
    assert "fit failed" in caplog.text


def test_start_clears_history_but_keeps_accuracy():
    pred = make_predictor(prediction_horizon=2)
    for f in range(1, 4):
        pred.process(Sample(f, 1.0, 1.0))
    assert pred.accuracy.errors(0)
    pred.start()
    assert pred.history == ()
    assert pred.fitter_x.size() == 0
    assert pred.accuracy.errors(0)
    pred.reinitialize()
    assert pred.mode == IDLE
    assert pred.accuracy.errors(0) == []
    assert pred.accuracy.queue_length == 0


def test_fit_is_limited_to_history_window():
    pred = make_predictor(history_window_length=10)
    for f in range(1, 31):
        pred.process(Sample(f, float(f), 2.0 * f))
    assert len(pred.history) == 10
    assert pred.fitter_x.size() == 10
    assert pred.fitter_y.size() == 10
    assert pred.fitter_x.frames == [float(s.frame) for s in pred.history]


def test_speed_change_follows_recent_window():
    # +1 per frame, then +10 per frame without any direction reversal
    pred = make_predictor(history_window_length=10)
    x = 0.0
    out = None
    for f in range(1, 41):
        x += 1.0 if f <= 20 else 10.0
        out = pred.process(Sample(f, x, 0.0))
    assert out.predicted[0][0] == pytest.approx(x + 10.0)
