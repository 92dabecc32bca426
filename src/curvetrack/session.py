"""
Tracking Session
================
Explicit per-run context tying the region tracker to the trajectory predictor.

Holds what would otherwise be process-wide state: the frame counter, the
pending/active selection, pause, histogram and back-projection view flags, and mouse drag
state. One session is driven by one frame loop; callers that share it across
threads must serialize whole process_frame() calls.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

import cv2
import numpy as np

from curvetrack.camshift import CamShiftTracker, Rect, TrackResult, rect_area
from curvetrack.pipeline import PredictorDefaults, Sample, get_predictor_defaults
from curvetrack.stats import ReportCallback
from curvetrack.trajectory import FramePrediction, TrajectoryPredictor

logger = logging.getLogger(__name__)


@dataclass
class SessionFrame:
    """Result of one processed frame."""

    frame: int
    track: Optional[TrackResult]
    prediction: FramePrediction


class TrackingSession:
    """
    Frame-by-frame driver: tracker -> Sample -> predictor.

    Args:
        predictor: TrajectoryPredictor (built from params if omitted)
        tracker: Region tracker with select_region / track / stop
        params: Parameters used for the defaults above
        on_report: Accuracy report callback for a predictor built here
    """

    def __init__(
        self,
        predictor: Optional[TrajectoryPredictor] = None,
        tracker: Optional[CamShiftTracker] = None,
        params: Optional[PredictorDefaults] = None,
        on_report: Optional[ReportCallback] = None,
    ) -> None:
        self.params = params if params is not None else get_predictor_defaults()
        self.predictor = predictor if predictor is not None else TrajectoryPredictor(self.params, on_report=on_report)
        self.tracker = tracker if tracker is not None else CamShiftTracker(
            vmin=self.params.vmin,
            vmax=self.params.vmax,
            smin=self.params.smin,
            hist_size=self.params.hist_size,
        )
        self.min_selection_area = int(self.params.min_selection_area)

        self.frame_index = 0
        self.selection: Optional[Rect] = None
        self._pending_selection = False
        self.paused = False
        self.show_histogram = True
        self.show_backprojection = False

    @property
    def is_tracking(self) -> bool:
        return self.predictor.is_tracking

    def select(self, rect: Rect) -> bool:
        """
        Request tracking of `rect`; applied on the next processed frame.

        Returns:
            False (and nothing changes) if the area is too small to track.
        """
        rect = tuple(int(v) for v in rect)
        if rect_area(rect) <= self.min_selection_area:
            logger.info("selection %s too small to track (area <= %d)", rect, self.min_selection_area)
            return False
        logger.info("region selected x=%d y=%d w=%d h=%d", *rect)
        self.selection = rect
        self._pending_selection = True
        return True

    def stop_tracking(self) -> None:
        self.tracker.stop()
        self.predictor.stop()
        self._pending_selection = False

    def view_image(self, image: np.ndarray) -> np.ndarray:
        """Base image to draw on: the frame, or the back-projection when that view is on."""
        if self.show_backprojection:
            bp = self.tracker.backprojection_image()
            if bp is not None:
                return bp
        return image.copy()

    def process_frame(self, image: np.ndarray) -> SessionFrame:
        """Advance the frame counter and run tracker + predictor on `image`."""
        self.frame_index += 1

        if self._pending_selection and self.selection is not None:
            self._pending_selection = False
            if self.tracker.select_region(image, self.selection):
                self.predictor.start()
            else:
                logger.info("selection %s lies outside the frame", self.selection)

        track = self.tracker.track(image) if self.predictor.is_tracking else None

        sample = None
        if track is not None and track.center is not None:
            sample = Sample(self.frame_index, track.center[0], track.center[1])

        prediction = self.predictor.process(sample)
        return SessionFrame(frame=self.frame_index, track=track, prediction=prediction)


class MouseSelector:
    """
    Turns cv2 mouse events into a drag rectangle and a session selection.

    Register with cv2.setMouseCallback(window, selector).
    """

    def __init__(self, session: TrackingSession) -> None:
        self.session = session
        self.origin: Optional[tuple] = None
        self.current: Optional[Rect] = None

    @property
    def dragging(self) -> bool:
        return self.origin is not None

    def __call__(self, event: int, x: int, y: int, flags: int = 0, param: object = None) -> None:
        if event == cv2.EVENT_LBUTTONDOWN:
            self.origin = (x, y)
            self.current = (x, y, 0, 0)
        elif self.origin is not None:
            ox, oy = self.origin
            self.current = (min(x, ox), min(y, oy), abs(x - ox), abs(y - oy))
            if event == cv2.EVENT_LBUTTONUP:
                self.origin = None
                self.session.select(self.current)


__all__ = [
    "SessionFrame",
    "TrackingSession",
    "MouseSelector",
]
