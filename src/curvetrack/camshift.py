"""
Color-Histogram Region Tracker (CamShift)
=========================================
Locates the selected object in each frame. This is the external tracking
primitive of the trajectory predictor: per frame it yields a rotated box whose
centre becomes the next Sample.

Per frame:
1. BGR -> HSV, saturation / value thresholding
2. Hue back-projection of the selected region's histogram
3. CamShift search starting from the previous window

Hook points are injected (TrackerHooks) instead of subclassed, so callers
can steer the search window or draw results, and tests can pass fakes.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Protocol, Tuple

import cv2
import numpy as np

Rect = Tuple[int, int, int, int]
RotatedBox = Tuple[Tuple[float, float], Tuple[float, float], float]

HUE_RANGE = (0, 180)
TERM_CRITERIA = (cv2.TERM_CRITERIA_EPS | cv2.TERM_CRITERIA_COUNT, 10, 1)


# ============================================================
#              HOOKS
# ============================================================

class TrackerHooks(Protocol):
    """Injected strategy for the two customization points of the tracker."""

    def search_window(self, image: np.ndarray, prev_box: Optional[RotatedBox], prev_rect: Rect) -> Rect:
        ...

    def on_track_result(self, image: np.ndarray, box: RotatedBox) -> None:
        ...


class DefaultHooks:
    """Search from the previous window, draw nothing."""

    def search_window(self, image: np.ndarray, prev_box: Optional[RotatedBox], prev_rect: Rect) -> Rect:
        return prev_rect

    def on_track_result(self, image: np.ndarray, box: RotatedBox) -> None:
        return None


# ============================================================
#              GEOMETRY HELPERS
# ============================================================

def rect_area(rect: Rect) -> int:
    return int(rect[2]) * int(rect[3])


def clip_rect(rect: Rect, width: int, height: int) -> Rect:
    """Intersect rect with the image bounds (may return an empty rect)."""
    x, y, w, h = (int(v) for v in rect)
    x0, y0 = max(0, x), max(0, y)
    x1, y1 = min(int(width), x + w), min(int(height), y + h)
    return (x0, y0, max(0, x1 - x0), max(0, y1 - y0))


def box_center(box: RotatedBox) -> Tuple[float, float]:
    """Centre of a rotated box as the midpoint of two opposite corners."""
    pts = cv2.boxPoints(box)
    c = (pts[0] + pts[2]) * 0.5
    return (float(c[0]), float(c[1]))


@dataclass(frozen=True)
class TrackResult:
    """
    One CamShift step.

    Attributes:
        box: Rotated box found by CamShift
        window: Search window to use next frame
        center: Box centre, or None if the target was lost (empty box)
    """

    box: RotatedBox
    window: Rect
    center: Optional[Tuple[float, float]]


# ============================================================
#              TRACKER
# ============================================================

class CamShiftTracker:
    """
    Hue-histogram CamShift tracker.

    Args:
        vmin: Lower value (brightness) threshold
        vmax: Upper value threshold
        smin: Lower saturation threshold
        hist_size: Number of hue bins
        hooks: Optional TrackerHooks implementation
    """

    def __init__(
        self,
        vmin: int = 10,
        vmax: int = 256,
        smin: int = 30,
        hist_size: int = 16,
        hooks: Optional[TrackerHooks] = None,
    ) -> None:
        self.vmin = int(vmin)
        self.vmax = int(vmax)
        self.smin = int(smin)
        self.hist_size = int(hist_size)
        self.hooks: TrackerHooks = hooks if hooks is not None else DefaultHooks()

        self.hist: Optional[np.ndarray] = None
        self.window: Optional[Rect] = None
        self.box: Optional[RotatedBox] = None
        self.backproj: Optional[np.ndarray] = None
        self.tracking = False

    def set_thresholds(self, vmin: int, vmax: int, smin: int) -> None:
        self.vmin = int(vmin)
        self.vmax = int(vmax)
        self.smin = int(smin)

    def hue_and_mask(self, image: np.ndarray) -> Tuple[np.ndarray, np.ndarray]:
        """
        Hue channel and the saturation/value validity mask of a BGR image.

        Returns:
            hue: Hue plane (uint8)
            mask: 255 where S >= smin and V in [min(vmin, vmax), max(vmin, vmax)]
        """
        hsv = cv2.cvtColor(image, cv2.COLOR_BGR2HSV)
        lo_v, hi_v = min(self.vmin, self.vmax), max(self.vmin, self.vmax)
        mask = cv2.inRange(
            hsv,
            (0.0, float(self.smin), float(lo_v)),
            (180.0, 256.0, float(hi_v)),
        )
        hue = np.ascontiguousarray(hsv[:, :, 0])
        return hue, mask

    def select_region(self, image: np.ndarray, rect: Rect) -> bool:
        """
        Build the hue histogram of `rect` and start tracking from it.

        Returns:
            False if the rect is empty after clipping to the image.
        """
        h, w = image.shape[:2]
        rect = clip_rect(rect, w, h)
        if rect_area(rect) <= 0:
            return False

        hue, mask = self.hue_and_mask(image)
        x, y, rw, rh = rect
        roi = hue[y:y + rh, x:x + rw]
        mask_roi = mask[y:y + rh, x:x + rw]

        hist = cv2.calcHist([roi], [0], mask_roi, [self.hist_size], list(HUE_RANGE))
        cv2.normalize(hist, hist, 0, 255, cv2.NORM_MINMAX)

        self.hist = hist
        self.window = rect
        self.box = None
        self.backproj = None
        self.tracking = True
        return True

    def stop(self) -> None:
        self.tracking = False

    def track(self, image: np.ndarray) -> Optional[TrackResult]:
        """Run one CamShift step; None when no region is being tracked."""
        if not self.tracking or self.hist is None or self.window is None:
            return None

        hue, mask = self.hue_and_mask(image)
        backproj = cv2.calcBackProject([hue], [0], self.hist, list(HUE_RANGE), 1)
        backproj = cv2.bitwise_and(backproj, mask)
        self.backproj = backproj

        rows, cols = backproj.shape[:2]
        window = clip_rect(self.hooks.search_window(image, self.box, self.window), cols, rows)
        if rect_area(window) <= 0:
            window = self._expand_window(self.window, cols, rows)

        box, window = cv2.CamShift(backproj, window, TERM_CRITERIA)
        box = (tuple(box[0]), tuple(box[1]), float(box[2]))
        window = tuple(int(v) for v in window)

        # Collapsed window: re-open a square around the last position
        if rect_area(window) <= 1:
            window = self._expand_window(window, cols, rows)

        self.box = box
        self.window = window

        center: Optional[Tuple[float, float]] = None
        if box[1][0] > 0 and box[1][1] > 0:
            center = box_center(box)
            self.hooks.on_track_result(image, box)

        return TrackResult(box=box, window=window, center=center)

    @staticmethod
    def _expand_window(rect: Rect, cols: int, rows: int) -> Rect:
        r = (min(cols, rows) + 5) // 6
        x, y = int(rect[0]), int(rect[1])
        return clip_rect((x - r, y - r, 2 * r, 2 * r), cols, rows)

    def backprojection_image(self) -> Optional[np.ndarray]:
        """Last masked back-projection as a BGR image (None before the first track)."""
        if self.backproj is None:
            return None
        return cv2.cvtColor(self.backproj, cv2.COLOR_GRAY2BGR)

    def histogram_image(self, height: int = 200, width: int = 320) -> np.ndarray:
        """Bar chart of the hue histogram, each bar drawn in its own hue."""
        img = np.zeros((height, width, 3), dtype=np.uint8)
        if self.hist is None:
            return img

        bins = self.hist.reshape(-1)
        bin_w = max(1, width // self.hist_size)
        buf = np.zeros((1, self.hist_size, 3), dtype=np.uint8)
        for i in range(self.hist_size):
            buf[0, i] = (int(i * 180.0 / self.hist_size), 255, 255)
        buf = cv2.cvtColor(buf, cv2.COLOR_HSV2BGR)

        for i in range(self.hist_size):
            val = int(float(bins[i]) * height / 255)
            color = tuple(int(c) for c in buf[0, i])
            cv2.rectangle(img, (i * bin_w, height), ((i + 1) * bin_w, height - val), color, -1)
        return img


__all__ = [
    "Rect",
    "RotatedBox",
    "TrackerHooks",
    "DefaultHooks",
    "TrackResult",
    "CamShiftTracker",
    "rect_area",
    "clip_rect",
    "box_center",
]
