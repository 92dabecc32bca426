"""
Prediction Accuracy Tracking
============================
Closes the loop on trajectory prediction: forecasts emitted at one frame are
queued and, once the real future has arrived, compared against the realized
positions.

For each horizon step i the tracker keeps every absolute error seen so far,
a running mean and the population standard deviation.

Comparison basis is the magnitude (Euclidean norm) of the 2D position.
"""

from __future__ import annotations

import logging
import math
from collections import deque
from dataclasses import dataclass
from typing import Callable, Deque, List, Optional, Sequence, Tuple

logger = logging.getLogger(__name__)

Point = Tuple[float, float]


@dataclass(frozen=True)
class StepStats:
    """Error statistics for one horizon step (step is 1-based: 1 = next frame)."""

    step: int
    mean: float
    stddev: float
    count: int


ReportCallback = Callable[[List[StepStats]], None]


def magnitude(point: Sequence[float]) -> float:
    return math.hypot(float(point[0]), float(point[1]))


def _report_columns(horizon: int) -> List[int]:
    """0-based step indices shown in the text report (first 5, every 10th, last)."""
    return [i for i in range(horizon) if i < 5 or i % 10 == 0 or i == horizon - 1]


def format_report(stats: Sequence[StepStats], header: bool = True) -> str:
    """
    Render step statistics as the tabular "Prediction <mean, stddev>" report.

    Only a subset of steps is shown: the first five, every tenth and the last.
    """
    if not stats:
        return ""
    cols = _report_columns(len(stats))
    lines = []
    if header:
        lines.append("Prediction <mean, stddev>")
        lines.append("\t\t".join(str(stats[i].step) for i in cols))
    lines.append("\t".join(f"{stats[i].mean:.3f}\t{stats[i].stddev:.3f}" for i in cols))
    return "\n".join(lines)


class PredictionAccuracyTracker:
    """
    Running mean / stddev of prediction error at each future horizon step.

    Args:
        horizon: Number of future steps per prediction (H); also the queue bound
        on_report: Optional callback receiving the per-step stats after each report
        print_header: Include the column header in logged reports
    """

    def __init__(
        self,
        horizon: int,
        on_report: Optional[ReportCallback] = None,
        print_header: bool = True,
    ) -> None:
        horizon = int(horizon)
        if horizon <= 0:
            raise ValueError(f"horizon must be positive, got {horizon}")
        self.horizon = horizon
        self.on_report = on_report
        self.print_header = print_header
        self.reset()

    def reset(self) -> None:
        """Full reinitialization: drop queued predictions and all error history."""
        self._queue: Deque[List[float]] = deque(maxlen=self.horizon)
        self._errors: List[List[float]] = [[] for _ in range(self.horizon)]
        self._mean: List[float] = [0.0] * self.horizon
        self._dev: List[float] = [0.0] * self.horizon

    # ------------------------------------------------------------
    #                    QUEUE
    # ------------------------------------------------------------

    @property
    def queue_length(self) -> int:
        return len(self._queue)

    @property
    def oldest_prediction(self) -> Optional[List[float]]:
        return list(self._queue[0]) if self._queue else None

    def record_prediction(self, values: Sequence[float]) -> None:
        """
        Queue one prediction (H predicted magnitudes, step 1 first).

        Raises:
            ValueError: len(values) != H
        """
        vals = [float(v) for v in values]
        if len(vals) != self.horizon:
            raise ValueError(f"prediction must have exactly {self.horizon} values, got {len(vals)}")
        self._queue.append(vals)

    # ------------------------------------------------------------
    #                    VALIDATION
    # ------------------------------------------------------------

    @property
    def means(self) -> List[float]:
        return list(self._mean)

    @property
    def stddevs(self) -> List[float]:
        return list(self._dev)

    def errors(self, step: int) -> List[float]:
        """All absolute errors recorded for 0-based horizon step `step`."""
        return list(self._errors[step])

    def snapshot(self) -> List[StepStats]:
        return [
            StepStats(step=i + 1, mean=self._mean[i], stddev=self._dev[i], count=len(self._errors[i]))
            for i in range(self.horizon)
        ]

    def report_against_history(self, recent_positions: Sequence[Point]) -> Optional[List[StepStats]]:
        """
        Compare the oldest queued prediction with realized positions.

        Args:
            recent_positions: Realized (x, y) positions, newest first. Step i of
                the prediction is aligned with the i-th most recent position.

        Returns:
            Per-step stats, or None when fewer than H positions (or no queued
            prediction) are available. The queue itself is not modified.
        """
        if len(recent_positions) < self.horizon or not self._queue:
            return None

        predicted = self._queue[0]
        for i in range(self.horizon):
            e = abs(magnitude(recent_positions[i]) - predicted[i])
            count = len(self._errors[i])
            self._errors[i].append(e)
            self._mean[i] = (count * self._mean[i] + e) / (count + 1)

            mean = self._mean[i]
            sq = sum((err - mean) * (err - mean) for err in self._errors[i])
            self._dev[i] = math.sqrt(sq / len(self._errors[i]))

        stats = self.snapshot()
        if logger.isEnabledFor(logging.INFO):
            logger.info("%s", format_report(stats, header=self.print_header))
        if self.on_report is not None:
            self.on_report(stats)
        return stats


__all__ = [
    "StepStats",
    "ReportCallback",
    "magnitude",
    "format_report",
    "PredictionAccuracyTracker",
]
