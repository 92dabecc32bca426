"""
Trajectory Prediction and Accuracy Tracking
===========================================
This module turns per-frame tracked positions into predicted future positions.

Each processed sample goes through:
1. History window update (bounded FIFO)
2. Direction-reversal check per axis (polynomial strategy only)
3. Fit update (polynomial pair) or fresh spline pair over the window
4. Validation of the oldest queued prediction against the realized history
5. Evaluation at the next H frames and queueing of the new prediction

Modes:
- idle: no target selected, samples are ignored
- tracking: entered by start() when a new region is selected; left only by
  stop() / reinitialize(), never automatically
"""

from __future__ import annotations

import logging
import math
from collections import deque
from dataclasses import dataclass, field
from typing import Deque, List, Optional, Tuple

import numpy as np

from curvetrack.lsfit import FitError, PolynomialFitter
from curvetrack.pipeline import (
    POLYNOMIAL,
    SPLINE,
    PredictorDefaults,
    Sample,
    get_predictor_defaults,
    validate_predictor_params,
)
from curvetrack.spline import MIN_SPLINE_POINTS, SplineInterpolator
from curvetrack.stats import PredictionAccuracyTracker, ReportCallback, StepStats

logger = logging.getLogger(__name__)

Point = Tuple[float, float]

IDLE = "idle"
TRACKING = "tracking"


@dataclass
class FramePrediction:
    """
    Output of one processed frame.

    Attributes:
        frame: Frame index of the sample (None if nothing was processed yet)
        predicted: Predicted (x, y) for frames frame+1 .. frame+H (may be empty)
        lookback: Fitted (x, y) for frames frame-lookback .. frame (polynomial only)
        history: Current history window, oldest first
        accuracy: Per-step error stats if a prediction was validated this frame
    """

    frame: Optional[int]
    predicted: List[Point] = field(default_factory=list)
    lookback: List[Point] = field(default_factory=list)
    history: Tuple[Sample, ...] = ()
    accuracy: Optional[List[StepStats]] = None


def _is_reversal(fitter: PolynomialFitter, value: float) -> bool:
    """True when the newest raw delta flips sign against the previous raw delta."""
    n = fitter.size()
    if n < 2:
        return False
    last = fitter.at(n - 1)
    return (last - fitter.at(n - 2)) * (value - last) < 0


class TrajectoryPredictor:
    """
    Orchestrates history, curve fitting, prediction and accuracy tracking.

    Args:
        params: Predictor parameters (defaults from curvetrack.pipeline)
        on_report: Optional callback receiving accuracy stats after each validation
    """

    def __init__(
        self,
        params: Optional[PredictorDefaults] = None,
        on_report: Optional[ReportCallback] = None,
    ) -> None:
        self.params = params if params is not None else get_predictor_defaults()
        validate_predictor_params(self.params)

        self.horizon = int(self.params.prediction_horizon)
        self.strategy = self.params.strategy

        window = int(self.params.history_window_length)
        self._history: Deque[Sample] = deque(maxlen=window)
        # Fits cover the same bounded window as the history
        self.fitter_x = PolynomialFitter(self.params.fit_degree, weighted=self.params.weighted, maxlen=window)
        self.fitter_y = PolynomialFitter(self.params.fit_degree, weighted=self.params.weighted, maxlen=window)
        self.accuracy = PredictionAccuracyTracker(self.horizon, on_report=on_report)

        self.mode = IDLE

    # ------------------------------------------------------------
    #                    STATE
    # ------------------------------------------------------------

    @property
    def is_tracking(self) -> bool:
        return self.mode == TRACKING

    @property
    def history(self) -> Tuple[Sample, ...]:
        return tuple(self._history)

    def start(self) -> None:
        """A new region was selected: drop history and fit state, begin tracking."""
        self._clear_fit_state()
        self.mode = TRACKING

    def stop(self) -> None:
        """Back to idle. History is kept (for drawing) until the next start()."""
        self.mode = IDLE

    def reinitialize(self) -> None:
        """Full reset, including the accuracy statistics."""
        self._clear_fit_state()
        self.accuracy.reset()
        self.mode = IDLE

    def _clear_fit_state(self) -> None:
        self._history.clear()
        self.fitter_x.clear()
        self.fitter_y.clear()

    # ------------------------------------------------------------
    #                    PER-FRAME PROCESSING
    # ------------------------------------------------------------

    def process(self, sample: Optional[Sample]) -> FramePrediction:
        """
        Process one frame.

        Args:
            sample: Tracked position for this frame, or None if the tracker
                has no target. None (or idle mode) skips history and fitting.

        Returns:
            FramePrediction for rendering.

        Raises:
            ValueError: Frame index not strictly after the newest history
                sample, or non-finite coordinates.
        """
        if sample is None or not self.is_tracking:
            last = self._history[-1].frame if self._history else None
            return FramePrediction(frame=last, history=self.history)

        if not (math.isfinite(sample.x) and math.isfinite(sample.y)):
            raise ValueError(f"non-finite position at frame {sample.frame}: ({sample.x}, {sample.y})")
        if self._history and sample.frame <= self._history[-1].frame:
            raise ValueError(
                f"frame index must increase: got {sample.frame} after {self._history[-1].frame}"
            )

        self._history.append(sample)

        if self.strategy == POLYNOMIAL:
            self._update_fit(sample)

        # Validate before queueing this frame's forecast
        accuracy = self.accuracy.report_against_history([s.position for s in reversed(self._history)])

        predicted, lookback = self._predict(sample.frame)
        if predicted:
            self.accuracy.record_prediction([math.hypot(x, y) for x, y in predicted])

        return FramePrediction(
            frame=sample.frame,
            predicted=predicted,
            lookback=lookback,
            history=self.history,
            accuracy=accuracy,
        )

    def _update_fit(self, sample: Sample) -> None:
        for axis, fitter, value in (("x", self.fitter_x, sample.x), ("y", self.fitter_y, sample.y)):
            if _is_reversal(fitter, value):
                logger.debug("direction reversal on %s at frame %d, clearing %d samples", axis, sample.frame, fitter.size())
                fitter.clear()
            try:
                fitter.push(sample.frame, value)
            except FitError as e:
                logger.warning("%s fit failed at frame %d (%s); keeping previous coefficients", axis, sample.frame, e)

    def _predict(self, frame: int) -> Tuple[List[Point], List[Point]]:
        future = np.arange(frame + 1, frame + self.horizon + 1, dtype=np.float64)

        if self.strategy == SPLINE:
            if len(self._history) < MIN_SPLINE_POINTS:
                return [], []
            frames = [s.frame for s in self._history]
            spl_x = SplineInterpolator(frames, [s.x for s in self._history])
            spl_y = SplineInterpolator(frames, [s.y for s in self._history])
            xs = spl_x.evaluate_batch(future)
            ys = spl_y.evaluate_batch(future)
            return list(zip(xs, ys)), []

        xs = self.fitter_x.evaluate_many(future)
        ys = self.fitter_y.evaluate_many(future)
        predicted = [(float(x), float(y)) for x, y in zip(xs, ys)]

        lookback: List[Point] = []
        if self.params.lookback > 0:
            past = np.arange(frame - int(self.params.lookback), frame + 1, dtype=np.float64)
            lx = self.fitter_x.evaluate_many(past)
            ly = self.fitter_y.evaluate_many(past)
            lookback = [(float(x), float(y)) for x, y in zip(lx, ly)]
        return predicted, lookback


__all__ = [
    "IDLE",
    "TRACKING",
    "FramePrediction",
    "TrajectoryPredictor",
]
