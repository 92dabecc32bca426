"""
Incremental Least-Squares Polynomial Fitting
=============================================
This module fits ONE position coordinate (x or y) as a polynomial function of
the frame index. The x and y axes are fitted independently by two instances.

Every push re-solves the full least-squares system:
1. Build the design matrix [1, t, t^2, ..., t^(dim-1)] with dim = min(D+1, n)
2. Optionally weight row i by i (recent samples count more)
3. Solve with a QR decomposition (no normal equations)

Notes:
- With fewer than D+1 samples the degree silently drops to n-1, so a cold
  start with 1-2 points still yields a constant / linear fit.
- Frame indices are shifted and scaled internally before building the
  Vandermonde matrix. Evaluation applies the same transform, so results are
  those of the polynomial in the raw frame index.
"""

from __future__ import annotations

from enum import IntEnum
from typing import Iterable, List, Optional, Sequence

import numpy as np


MAX_DEGREE = 6


class CurveDegree(IntEnum):
    """Named polynomial degrees (accepted by the command line as lowercase names)."""

    CONST = 0
    LIN = 1
    QUAD = 2
    CUBIC = 3
    QUART = 4
    QUINT = 5
    SEXT = 6


class FitError(ArithmeticError):
    """Raised when the least-squares system cannot be solved reliably."""


class PolynomialFitter:
    """
    Weighted least-squares polynomial fit of value(frame).

    The fitter owns its observation buffers; sequences passed to the
    constructor are copied.

    Args:
        degree: Polynomial degree D (0..6)
        weighted: Multiply row i of the system by i (later samples weigh more)
        xs: Optional initial frame indices
        ys: Optional initial values (same length as xs)
        maxlen: Keep at most this many observations; the oldest are dropped
            before solving (None = unbounded)
    """

    def __init__(
        self,
        degree: int = CurveDegree.CUBIC,
        weighted: bool = False,
        xs: Optional[Sequence[float]] = None,
        ys: Optional[Sequence[float]] = None,
        maxlen: Optional[int] = None,
    ) -> None:
        degree = int(degree)
        if degree < 0 or degree > MAX_DEGREE:
            raise ValueError(f"degree must be in [0, {MAX_DEGREE}], got {degree}")
        if maxlen is not None and int(maxlen) <= 0:
            raise ValueError(f"maxlen must be positive, got {maxlen}")
        self.maxlen = int(maxlen) if maxlen is not None else None

        self.degree = degree
        self.weighted = bool(weighted)

        self._xs: List[float] = []
        self._ys: List[float] = []
        self._coef = np.zeros(0, dtype=np.float64)
        self._origin = 0.0
        self._scale = 1.0

        if xs is not None or ys is not None:
            xs_l = list(xs or [])
            ys_l = list(ys or [])
            if len(xs_l) != len(ys_l):
                raise ValueError(f"xs and ys must have the same length ({len(xs_l)} != {len(ys_l)})")
            self._xs = [float(x) for x in xs_l]
            self._ys = [float(y) for y in ys_l]
            self._trim()
            if self._ys:
                self.solve()

    # ------------------------------------------------------------
    #                    OBSERVATIONS
    # ------------------------------------------------------------

    def size(self) -> int:
        return len(self._ys)

    def __len__(self) -> int:
        return len(self._ys)

    def at(self, i: int) -> float:
        """Raw stored value of observation i (negative indices allowed)."""
        return self._ys[i]

    @property
    def frames(self) -> List[float]:
        return list(self._xs)

    @property
    def values(self) -> List[float]:
        return list(self._ys)

    @property
    def dim(self) -> int:
        """Number of coefficients the next solve will use."""
        return min(self.degree + 1, len(self._ys))

    @property
    def coefficients(self) -> np.ndarray:
        """Coefficients of the last successful solve, in the internal (shifted, scaled) basis."""
        return self._coef.copy()

    def push(self, frame: float, value: float, solve: bool = True) -> None:
        """
        Append one observation and (by default) re-solve.

        With maxlen set, the oldest observation is dropped once the buffer is full.

        Raises:
            FitError: The system is numerically singular. The observation is
                kept and the previous coefficients stay in effect.
        """
        self._xs.append(float(frame))
        self._ys.append(float(value))
        self._trim()
        if solve:
            self.solve()

    def extend(self, frames: Iterable[float], values: Iterable[float]) -> None:
        """Append many observations and solve once."""
        for frame, value in zip(frames, values):
            self.push(frame, value, solve=False)
        if self._ys:
            self.solve()

    def _trim(self) -> None:
        if self.maxlen is not None and len(self._ys) > self.maxlen:
            drop = len(self._ys) - self.maxlen
            del self._xs[:drop]
            del self._ys[:drop]

    def clear(self) -> None:
        self._xs.clear()
        self._ys.clear()
        self._coef = np.zeros(0, dtype=np.float64)
        self._origin = 0.0
        self._scale = 1.0

    # ------------------------------------------------------------
    #                    LEAST SQUARES
    # ------------------------------------------------------------

    def solve(self) -> np.ndarray:
        """Re-solve the least-squares system over all stored observations."""
        n = len(self._ys)
        if n == 0:
            self._coef = np.zeros(0, dtype=np.float64)
            return self._coef.copy()

        dim = min(self.degree + 1, n)
        xs = np.asarray(self._xs, dtype=np.float64)
        y = np.asarray(self._ys, dtype=np.float64)

        origin = float(xs[0])
        span = float(np.max(np.abs(xs - origin)))
        scale = span if span > 0.0 else 1.0
        t = (xs - origin) / scale

        A = np.vander(t, N=dim, increasing=True)
        if self.weighted:
            w = np.maximum(np.arange(n, dtype=np.float64), 1.0)
            A = A * w[:, None]
            y = y * w

        if not (np.all(np.isfinite(A)) and np.all(np.isfinite(y))):
            raise FitError("non-finite observation in least-squares system")

        Q, R = np.linalg.qr(A)
        diag = np.abs(np.diag(R))
        tol = max(diag.max(initial=0.0), 1.0) * dim * np.finfo(np.float64).eps * 1e3
        if diag.size == 0 or float(diag.min()) <= tol:
            raise FitError(f"rank-deficient design matrix (n={n}, dim={dim})")

        try:
            coef = np.linalg.solve(R, Q.T @ y)
        except np.linalg.LinAlgError as e:
            raise FitError(str(e)) from e

        if not np.all(np.isfinite(coef)):
            raise FitError("least-squares solve produced non-finite coefficients")

        self._coef = coef
        self._origin = origin
        self._scale = scale
        return coef.copy()

    # ------------------------------------------------------------
    #                    EVALUATION
    # ------------------------------------------------------------

    def evaluate(self, frame: float) -> float:
        """Fitted value at an arbitrary frame index (extrapolates freely)."""
        if self._coef.size == 0:
            return 0.0
        t = (float(frame) - self._origin) / self._scale
        # Horner, highest power first
        acc = 0.0
        for c in self._coef[::-1]:
            acc = acc * t + float(c)
        return float(acc)

    def evaluate_many(self, frames: Sequence[float]) -> np.ndarray:
        frames_a = np.asarray(frames, dtype=np.float64)
        if self._coef.size == 0:
            return np.zeros_like(frames_a)
        t = (frames_a - self._origin) / self._scale
        return np.polynomial.polynomial.polyval(t, self._coef)

    def __call__(self, frame: float) -> float:
        return self.evaluate(frame)

    def __repr__(self) -> str:
        return f"PolynomialFitter(degree={self.degree}, weighted={self.weighted}, n={len(self._ys)}, maxlen={self.maxlen})"


__all__ = [
    "MAX_DEGREE",
    "CurveDegree",
    "FitError",
    "PolynomialFitter",
]
