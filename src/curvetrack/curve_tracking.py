"""
Curve Fitting Object Tracker - Video Runner
===========================================
Tracks a color region through a video (file or camera), fits a curve through
its recent positions and draws the predicted future path.

The pipeline includes:
1. Frame acquisition with optional rotate / scale transform
2. CamShift region tracking (curvetrack.camshift)
3. History + polynomial or spline fit + prediction (curvetrack.trajectory)
4. Prediction accuracy report (curvetrack.stats, logged every frame)
5. Overlay drawing and annotated output video

Run examples:
  curvetrack --video data/ball.mp4 --rect 310,220,40,40 --output output/ball_pred.mp4
  curvetrack --camera 0 --display --strategy spline
  python3 -m curvetrack.curve_tracking --video data/ball.mp4 --display --degree quad

Hot keys (with --display):
  ESC - quit    p - pause    c - stop tracking    h - show/hide histogram
  b - toggle back-projection view
  Drag with the left mouse button to select the object to track.
"""

from __future__ import annotations

import argparse
import logging
import os
from typing import Dict, List, Optional, Sequence, Tuple

import cv2
import numpy as np

from curvetrack.camshift import Rect, RotatedBox
from curvetrack.lsfit import CurveDegree
from curvetrack.pipeline import POLYNOMIAL, STRATEGIES, resolve_predictor_params
from curvetrack.session import MouseSelector, SessionFrame, TrackingSession
from curvetrack.trajectory import FramePrediction

WINDOW_NAME = "Curve Fit"
HIST_WINDOW_NAME = "Histogram"

HISTORY_COLOR = (255, 0, 0)
FUTURE_COLOR = (0, 255, 0)
LOOKBACK_COLOR = (255, 255, 0)
BOX_COLOR = (0, 0, 255)


# ============================================================
#              DRAWING
# ============================================================

def put_label(
    img_bgr: np.ndarray,
    text: str,
    *,
    xy: Tuple[int, int],
    scale: float = 0.7,
    thickness: int = 2,
    color: Tuple[int, int, int] = (255, 255, 255),
) -> None:
    """Text with a dark outline so it stays readable on any background."""
    cv2.putText(img_bgr, text, xy, cv2.FONT_HERSHEY_SIMPLEX, scale, (0, 0, 0), thickness + 2, cv2.LINE_AA)
    cv2.putText(img_bgr, text, xy, cv2.FONT_HERSHEY_SIMPLEX, scale, color, thickness, cv2.LINE_AA)


def _pt(p: Sequence[float]) -> Optional[Tuple[int, int]]:
    if not (np.isfinite(p[0]) and np.isfinite(p[1])):
        return None
    # Far extrapolations overflow cv2's int coordinates
    x = int(np.clip(round(float(p[0])), -1e6, 1e6))
    y = int(np.clip(round(float(p[1])), -1e6, 1e6))
    return (x, y)


def draw_history(image: np.ndarray, prediction: FramePrediction, radius: int = 4) -> None:
    """Object location history (blue circles)."""
    for s in prediction.history:
        p = _pt(s.position)
        if p is not None:
            cv2.circle(image, p, radius, HISTORY_COLOR, 2)


def draw_predictions(image: np.ndarray, prediction: FramePrediction, radius: int = 4) -> None:
    """Fitted lookback points (cyan) and predicted future points (green)."""
    for pts, color in ((prediction.lookback, LOOKBACK_COLOR), (prediction.predicted, FUTURE_COLOR)):
        for q in pts:
            p = _pt(q)
            if p is not None:
                cv2.circle(image, p, radius, color, 2)


def draw_track_box(image: np.ndarray, box: RotatedBox) -> None:
    if box[1][0] > 0 and box[1][1] > 0:
        cv2.ellipse(image, box, BOX_COLOR, 3, cv2.LINE_AA)


def draw_selection(image: np.ndarray, rect: Optional[Rect]) -> None:
    """Invert the pixels of the selection rectangle (in-progress mouse drag)."""
    if rect is None or rect[2] <= 0 or rect[3] <= 0:
        return
    x, y, w, h = rect
    roi = image[max(0, y):y + h, max(0, x):x + w]
    cv2.bitwise_not(roi, roi)


def annotate_frame(image: np.ndarray, result: SessionFrame, strategy: str) -> None:
    """Draw history, predictions, the track box and a status line onto `image`."""
    draw_history(image, result.prediction)
    draw_predictions(image, result.prediction)
    if result.track is not None:
        draw_track_box(image, result.track.box)

    status = "TRACKING" if result.track is not None and result.track.center is not None else "IDLE"
    put_label(image, f"Frame {result.frame} | {strategy} | {status}", xy=(20, 30), scale=0.6)

    if result.prediction.accuracy:
        first, last = result.prediction.accuracy[0], result.prediction.accuracy[-1]
        put_label(
            image,
            f"err@1 {first.mean:.1f}+-{first.stddev:.1f}  err@{last.step} {last.mean:.1f}+-{last.stddev:.1f}",
            xy=(20, 55),
            scale=0.5,
            thickness=1,
        )


# ============================================================
#              FRAME SOURCE
# ============================================================

def parse_rect(text: Optional[str]) -> Optional[Rect]:
    """Parse "x,y,w,h" into a rect; None for empty or malformed input."""
    if not text:
        return None
    parts = text.replace(" ", "").split(",")
    if len(parts) != 4:
        return None
    try:
        x, y, w, h = (int(p) for p in parts)
    except ValueError:
        return None
    return (x, y, w, h)


def transform_frame(frame: np.ndarray, rotate: float = 0.0, scale: int = 1) -> np.ndarray:
    """Rotate about the image centre (degrees) and downscale by an integer factor."""
    out = frame
    if rotate:
        h, w = out.shape[:2]
        m = cv2.getRotationMatrix2D((w / 2.0, h / 2.0), float(rotate), 1.0)
        out = cv2.warpAffine(out, m, (w, h))
    if scale and scale > 1:
        h, w = out.shape[:2]
        out = cv2.resize(out, (max(1, w // scale), max(1, h // scale)))
    return out


def _open_capture(video_path: Optional[str], camera: Optional[int]) -> cv2.VideoCapture:
    if camera is not None and camera >= 0:
        print(f"Using camera {camera}")
        cap = cv2.VideoCapture(int(camera))
        if not cap.isOpened():
            raise RuntimeError(f"Could not initialize capturing from camera {camera}")
        return cap

    if not video_path:
        raise ValueError("either video_path or camera must be given")
    video_abs = os.path.abspath(video_path)
    if not os.path.exists(video_abs):
        raise FileNotFoundError(f"Input video not found: {video_abs}")
    print(f"Using file {video_abs}")
    cap = cv2.VideoCapture(video_abs)
    if not cap.isOpened():
        raise RuntimeError(
            "OpenCV could not open the input video (file exists, but decode/open failed). "
            f"Input: {video_abs}"
        )
    return cap


# ============================================================
#              VIDEO PROCESSING
# ============================================================

def process_video_with_prediction(
    *,
    video_path: Optional[str] = None,
    camera: Optional[int] = None,
    output_path: Optional[str] = None,
    selection: Optional[Rect] = None,
    overrides: Optional[Dict[str, object]] = None,
    max_frames: Optional[int] = None,
    display: bool = False,
    paused: bool = False,
    rotate: float = 0.0,
    scale: int = 1,
) -> int:
    """
    Track a region through a video and draw its predicted trajectory.

    Args:
        video_path: Input video file (ignored when camera is given)
        camera: Camera device index
        output_path: Annotated output video (mp4v); None to skip writing
        selection: Initial region (x, y, w, h) to track from the first frame
        overrides: Predictor parameter overrides (see PredictorDefaults)
        max_frames: Stop after this many frames (None = all)
        display: Show a window with hot keys and mouse selection
        paused: Start paused (display mode only)
        rotate: Rotation applied to every frame, degrees
        scale: Integer downscale factor applied to every frame

    Returns:
        Number of frames processed.
    """
    params = resolve_predictor_params(overrides)
    session = TrackingSession(params=params)
    session.paused = bool(paused and display)

    cap = _open_capture(video_path, camera)
    total_frames = int(cap.get(cv2.CAP_PROP_FRAME_COUNT) or 0) if camera is None else 0
    fps = cap.get(cv2.CAP_PROP_FPS)
    if not fps or fps <= 0:
        fps = 30.0

    ok, frame = cap.read()
    if not ok or frame is None:
        cap.release()
        raise RuntimeError("Could not read the first frame")
    frame = transform_frame(frame, rotate, scale)
    h, w = frame.shape[:2]

    out = None
    if output_path:
        out_dir = os.path.dirname(os.path.abspath(output_path))
        if out_dir:
            os.makedirs(out_dir, exist_ok=True)
        fourcc = cv2.VideoWriter_fourcc(*"mp4v")
        out = cv2.VideoWriter(os.path.abspath(output_path), fourcc, float(fps), (int(w), int(h)))
        if not out.isOpened():
            cap.release()
            raise RuntimeError(f"Cannot create video writer for {output_path}")

    selector: Optional[MouseSelector] = None
    if display:
        cv2.namedWindow(WINDOW_NAME, cv2.WINDOW_AUTOSIZE)
        selector = MouseSelector(session)
        cv2.setMouseCallback(WINDOW_NAME, selector)

    if selection is not None:
        session.select(selection)

    progress_every = 60
    print(f"[progress] 0/{total_frames if total_frames > 0 else '?'} frames")

    frame_id = 0
    shown = frame
    try:
        while frame is not None:
            if not session.paused:
                annotated = frame.copy()
                try:
                    result = session.process_frame(frame)
                    annotated = session.view_image(frame)
                    annotate_frame(annotated, result, params.strategy)
                except Exception as e:
                    # Never crash the whole run - annotate the frame and continue.
                    put_label(annotated, f"ERROR: {type(e).__name__}: {e}", xy=(20, 80), scale=0.6)

                if out is not None:
                    out.write(annotated)
                shown = annotated
                frame_id += 1
                if (frame_id % progress_every) == 0:
                    print(f"[progress] {frame_id}/{total_frames if total_frames > 0 else '?'} frames")
                if max_frames and frame_id >= max_frames:
                    break

                ok, nxt = cap.read()
                frame = transform_frame(nxt, rotate, scale) if ok and nxt is not None else None

            if display:
                view = shown.copy()
                if selector is not None and selector.dragging:
                    draw_selection(view, selector.current)
                cv2.imshow(WINDOW_NAME, view)
                if session.show_histogram:
                    cv2.imshow(HIST_WINDOW_NAME, session.tracker.histogram_image())

                key = cv2.waitKey(10) & 0xFF
                if key == 27:
                    break
                if key == ord("p"):
                    session.paused = not session.paused
                elif key == ord("c"):
                    session.stop_tracking()
                elif key == ord("b"):
                    session.show_backprojection = not session.show_backprojection
                elif key == ord("h"):
                    session.show_histogram = not session.show_histogram
                    if not session.show_histogram:
                        cv2.destroyWindow(HIST_WINDOW_NAME)
    finally:
        cap.release()
        if out is not None:
            out.release()
        if display:
            cv2.destroyAllWindows()

    if total_frames > 0:
        print(f"[progress] done: {frame_id}/{total_frames} frames")
    else:
        print(f"[progress] done: {frame_id} frames")
    return frame_id


# ============================================================
#              COMMAND LINE
# ============================================================

def _parse_degree(text: str) -> int:
    try:
        return int(text)
    except ValueError:
        pass
    try:
        return int(CurveDegree[text.upper()])
    except KeyError:
        names = ", ".join(d.name.lower() for d in CurveDegree)
        raise argparse.ArgumentTypeError(f"invalid degree {text!r} (integer or one of: {names})")


def build_arg_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        prog="curvetrack",
        description="Curve Fitting Object Tracker",
    )
    src = p.add_argument_group("input / output")
    src.add_argument("--video", default="", help="Input video path")
    src.add_argument("--camera", type=int, default=-1, help="Camera device index (overrides --video)")
    src.add_argument("--output", default="", help="Annotated output video path (empty = no output file)")
    src.add_argument("--rect", default="", help="Initial tracking region X,Y,W,H")
    src.add_argument("--max-frames", type=int, default=None)
    src.add_argument("--display", action="store_true", help="Show a window (mouse selection, hot keys)")
    src.add_argument("--paused", action="store_true", help="Start paused (with --display)")
    src.add_argument("--rotate", type=float, default=0.0, help="Rotate input frames (degrees)")
    src.add_argument("--scale", type=int, default=1, help="Downscale input frames by this factor")

    fit = p.add_argument_group("prediction")
    fit.add_argument("--strategy", choices=STRATEGIES, default=None)
    fit.add_argument("--degree", type=_parse_degree, default=None, help="Polynomial degree (1-6 or lin/quad/cubic/...)")
    fit.add_argument("--window", type=int, default=None, help="History window length")
    fit.add_argument("--horizon", type=int, default=None, help="Number of predicted future frames")
    fit.add_argument("--lookback", type=int, default=None, help="Fitted points drawn behind the current frame")
    weighted = fit.add_mutually_exclusive_group()
    weighted.add_argument("--weighted", dest="weighted", action="store_true", default=None)
    weighted.add_argument("--unweighted", dest="weighted", action="store_false")
    p.set_defaults(weighted=None)

    trk = p.add_argument_group("tracker")
    trk.add_argument("--vmin", type=int, default=None)
    trk.add_argument("--vmax", type=int, default=None)
    trk.add_argument("--smin", type=int, default=None)
    return p


def overrides_from_args(args: argparse.Namespace) -> Dict[str, object]:
    return {
        "strategy": args.strategy,
        "fit_degree": args.degree,
        "history_window_length": args.window,
        "prediction_horizon": args.horizon,
        "lookback": args.lookback,
        "weighted": args.weighted,
        "vmin": args.vmin,
        "vmax": args.vmax,
        "smin": args.smin,
    }


def main(argv: Optional[List[str]] = None) -> int:
    """
    Main entry point: parse arguments and run the tracker.

    Returns:
        Process exit code.
    """
    p = build_arg_parser()
    args = p.parse_args(argv)

    logging.basicConfig(level=logging.INFO, format="%(message)s")

    camera = args.camera if args.camera >= 0 else None
    if camera is None and not args.video:
        p.error("one of --video or --camera is required")

    selection = parse_rect(args.rect)
    if args.rect and selection is None:
        p.error(f"--rect must look like X,Y,W,H (got {args.rect!r})")
    if selection is None and not args.display:
        print("   NOTE: no --rect and no --display: nothing will be tracked")

    overrides = overrides_from_args(args)
    try:
        params = resolve_predictor_params(overrides)
    except ValueError as e:
        p.error(str(e))

    print("Curve fitting object tracker")
    print(f"   input   : {'camera ' + str(camera) if camera is not None else args.video}")
    print(f"   output  : {args.output or '-'}")
    print(
        "   strategy:", params.strategy,
        "degree=", params.fit_degree if params.strategy == POLYNOMIAL else "-",
        "window=", params.history_window_length,
        "horizon=", params.prediction_horizon,
        "weighted=", params.weighted,
    )

    try:
        process_video_with_prediction(
            video_path=args.video or None,
            camera=camera,
            output_path=args.output or None,
            selection=selection,
            overrides=overrides,
            max_frames=args.max_frames,
            display=bool(args.display),
            paused=bool(args.paused),
            rotate=float(args.rotate),
            scale=int(args.scale),
        )
    except (FileNotFoundError, RuntimeError) as e:
        print(f"***{e}***")
        return 1
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
