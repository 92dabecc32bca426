"""
Trajectory Prediction - Defaults and Shared Types
=================================================
Single source of truth for predictor and tracker parameters.

The module includes:
1. PredictorDefaults (frozen dataclass) and the override resolver
2. Parameter validation
3. Sample - one tracked position at one frame

Notes:
- The runner, the session and the tests all fetch defaults from here to
  avoid drift.
- `lookback` only affects drawing (fitted points behind the current frame);
  it never enters the accuracy statistics.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, replace
from typing import Any, Dict, Optional, Tuple

from curvetrack.lsfit import MAX_DEGREE

# ============================================================
#              STRATEGIES
# ============================================================

POLYNOMIAL = "polynomial"
SPLINE = "spline"
STRATEGIES = (POLYNOMIAL, SPLINE)


# ============================================================
#              DEFAULTS (SINGLE SOURCE OF TRUTH)
# ============================================================

@dataclass(frozen=True)
class PredictorDefaults:
    """Default parameters for trajectory prediction and the CamShift tracker.

    Notes:
    - fit_degree is only used by the polynomial strategy (1..6).
    - prediction_horizon is H: future points per frame, also the size of
      the accuracy tracker's prediction queue.
    - history_window_length bounds the position history (FIFO eviction).
    """

    # Fitting
    strategy: str = POLYNOMIAL
    fit_degree: int = 3
    weighted: bool = True
    history_window_length: int = 50
    prediction_horizon: int = 40
    lookback: int = 20

    # CamShift color thresholds (HSV)
    vmin: int = 10
    vmax: int = 256
    smin: int = 30
    hist_size: int = 16

    # Selections with area <= this are too small to track
    min_selection_area: int = 16


def get_predictor_defaults() -> PredictorDefaults:
    """
    Return default predictor parameters.

    Returns:
        PredictorDefaults: Default parameter dataclass instance
    """
    return PredictorDefaults()


def resolve_predictor_params(overrides: Optional[Dict[str, Any]] = None) -> PredictorDefaults:
    """
    Return defaults with optional overrides applied.

    Unknown keys and None values are ignored, so CLI tools can pass their
    whole argument namespace.

    Args:
        overrides: Optional dictionary of parameter overrides

    Returns:
        PredictorDefaults: Validated parameter dataclass with overrides applied

    Example:
        params = resolve_predictor_params({"strategy": "spline", "prediction_horizon": 10})
    """
    base = get_predictor_defaults()
    if overrides:
        data = {k: v for k, v in overrides.items() if k in base.__dict__ and v is not None}
        base = replace(base, **data)
    validate_predictor_params(base)
    return base


def validate_predictor_params(params: PredictorDefaults) -> None:
    """
    Raise ValueError if any parameter is out of range.
    """
    if params.strategy not in STRATEGIES:
        raise ValueError(f"unknown strategy {params.strategy!r}; expected one of {STRATEGIES}")
    if params.strategy == POLYNOMIAL and not (1 <= int(params.fit_degree) <= MAX_DEGREE):
        raise ValueError(f"fit_degree must be in [1, {MAX_DEGREE}], got {params.fit_degree}")
    if int(params.history_window_length) <= 0:
        raise ValueError(f"history_window_length must be > 0, got {params.history_window_length}")
    if int(params.prediction_horizon) <= 0:
        raise ValueError(f"prediction_horizon must be > 0, got {params.prediction_horizon}")
    if int(params.history_window_length) < int(params.prediction_horizon):
        # Accuracy validation needs H realized positions in the window
        raise ValueError(
            f"history_window_length ({params.history_window_length}) must be >= "
            f"prediction_horizon ({params.prediction_horizon})"
        )
    if int(params.lookback) < 0:
        raise ValueError(f"lookback must be >= 0, got {params.lookback}")
    if int(params.hist_size) <= 0:
        raise ValueError(f"hist_size must be > 0, got {params.hist_size}")


# ============================================================
#              SAMPLE
# ============================================================

@dataclass(frozen=True)
class Sample:
    """One tracked position: frame index and (x, y) in pixels."""

    frame: int
    x: float
    y: float

    @property
    def position(self) -> Tuple[float, float]:
        return (self.x, self.y)

    @property
    def magnitude(self) -> float:
        return math.hypot(self.x, self.y)


__all__ = [
    "POLYNOMIAL",
    "SPLINE",
    "STRATEGIES",
    "PredictorDefaults",
    "get_predictor_defaults",
    "resolve_predictor_params",
    "validate_predictor_params",
    "Sample",
]
