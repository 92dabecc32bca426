"""
curvetrack - track a colored object in video and predict its future path.

Core building blocks:
- PolynomialFitter     incremental least-squares fit per axis (lsfit)
- SplineInterpolator   natural cubic spline over a window (spline)
- PredictionAccuracyTracker  error statistics per horizon step (stats)
- TrajectoryPredictor  history, fitting, prediction and validation (trajectory)
"""

from curvetrack.lsfit import CurveDegree, FitError, PolynomialFitter
from curvetrack.pipeline import PredictorDefaults, Sample, get_predictor_defaults, resolve_predictor_params
from curvetrack.spline import SplineInterpolator
from curvetrack.stats import PredictionAccuracyTracker, StepStats
from curvetrack.trajectory import FramePrediction, TrajectoryPredictor

__version__ = "0.1.0"

__all__ = [
    "CurveDegree",
    "FitError",
    "PolynomialFitter",
    "SplineInterpolator",
    "PredictionAccuracyTracker",
    "StepStats",
    "PredictorDefaults",
    "Sample",
    "get_predictor_defaults",
    "resolve_predictor_params",
    "FramePrediction",
    "TrajectoryPredictor",
]
