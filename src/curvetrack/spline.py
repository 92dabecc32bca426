"""
Natural Cubic Spline Interpolation
==================================
A spline is built fresh from the most recent (frame, coordinate) window each
time the window changes. It has no incremental state.

Construction:
- Tridiagonal forward sweep / back substitution for the second-derivative
  coefficients c[i], natural boundary c[0] = c[n] = 0
- a[i] = y[i], b[i] and d[i] derived per segment from c

Evaluation:
- Segment = last knot <= x (falls back to the first segment)
- Outside [x_0, x_n] the boundary segment's cubic is used (extrapolation)
"""

from __future__ import annotations

from bisect import bisect_right
from typing import List, Sequence, Tuple

import numpy as np


MIN_SPLINE_POINTS = 3


class SplineInterpolator:
    """
    Natural cubic spline through (xs, ys).

    Args:
        xs: Strictly increasing knot positions (frame indices), at least 3
        ys: Values at the knots

    Raises:
        ValueError: Fewer than 3 points, mismatched lengths or xs not strictly
            increasing. Callers must guard; nothing is truncated.
    """

    def __init__(self, xs: Sequence[float], ys: Sequence[float]) -> None:
        x = np.asarray(xs, dtype=np.float64).reshape(-1)
        y = np.asarray(ys, dtype=np.float64).reshape(-1)

        if x.size != y.size:
            raise ValueError(f"xs and ys must have the same length ({x.size} != {y.size})")
        if x.size < MIN_SPLINE_POINTS:
            raise ValueError(f"spline needs at least {MIN_SPLINE_POINTS} points, got {x.size}")
        if not np.all(np.diff(x) > 0):
            raise ValueError("spline xs must be strictly increasing")

        n = x.size - 1
        h = np.diff(x)

        # Forward sweep
        alpha = np.zeros(n + 1)
        l = np.ones(n + 1)
        mu = np.zeros(n + 1)
        z = np.zeros(n + 1)
        for i in range(1, n):
            alpha[i] = (3.0 / h[i]) * (y[i + 1] - y[i]) - (3.0 / h[i - 1]) * (y[i] - y[i - 1])
            l[i] = 2.0 * (x[i + 1] - x[i - 1]) - h[i - 1] * mu[i - 1]
            mu[i] = h[i] / l[i]
            z[i] = (alpha[i] - h[i - 1] * z[i - 1]) / l[i]

        # Back substitution
        c = np.zeros(n + 1)
        b = np.zeros(n)
        d = np.zeros(n)
        for j in range(n - 1, -1, -1):
            c[j] = z[j] - mu[j] * c[j + 1]
            b[j] = (y[j + 1] - y[j]) / h[j] - h[j] * (c[j + 1] + 2.0 * c[j]) / 3.0
            d[j] = (c[j + 1] - c[j]) / (3.0 * h[j])

        self._x = x[:-1].copy()
        self._a = y[:-1].copy()
        self._b = b
        self._c = c[:-1].copy()
        self._d = d
        self._knots: List[float] = [float(v) for v in self._x]
        self._x_end = float(x[-1])

    # ------------------------------------------------------------
    #                    SEGMENTS
    # ------------------------------------------------------------

    def __len__(self) -> int:
        """Number of cubic segments (count - 1)."""
        return len(self._knots)

    @property
    def domain(self) -> Tuple[float, float]:
        return self._knots[0], self._x_end

    @property
    def segments(self) -> List[Tuple[float, float, float, float, float]]:
        """(x_i, a_i, b_i, c_i, d_i) per segment."""
        return [
            (float(self._x[i]), float(self._a[i]), float(self._b[i]), float(self._c[i]), float(self._d[i]))
            for i in range(len(self._knots))
        ]

    def _segment_index(self, x: float, lo: int = 0) -> int:
        i = bisect_right(self._knots, x, lo) - 1
        return max(i, 0)

    def _eval_segment(self, i: int, x: float) -> float:
        dx = x - self._x[i]
        return float(self._a[i] + self._b[i] * dx + self._c[i] * dx * dx + self._d[i] * dx * dx * dx)

    # ------------------------------------------------------------
    #                    EVALUATION
    # ------------------------------------------------------------

    def evaluate(self, x: float) -> float:
        x = float(x)
        return self._eval_segment(self._segment_index(x), x)

    def __call__(self, x: float) -> float:
        return self.evaluate(x)

    def evaluate_batch(self, sorted_xs: Sequence[float]) -> List[float]:
        """
        Evaluate many points in one pass.

        The caller guarantees ascending input; the segment search resumes from
        the previous segment instead of restarting from the first knot.
        """
        out: List[float] = []
        seg = 0
        for x in sorted_xs:
            x = float(x)
            seg = self._segment_index(x, lo=seg)
            out.append(self._eval_segment(seg, x))
        return out

    def derivative(self, x: float) -> float:
        """First derivative of the segment containing x."""
        x = float(x)
        i = self._segment_index(x)
        dx = x - self._x[i]
        return float(self._b[i] + 2.0 * self._c[i] * dx + 3.0 * self._d[i] * dx * dx)

    def __repr__(self) -> str:
        lo, hi = self.domain
        return f"SplineInterpolator(segments={len(self)}, domain=[{lo}, {hi}])"


__all__ = [
    "MIN_SPLINE_POINTS",
    "SplineInterpolator",
]
