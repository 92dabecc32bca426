import argparse

import cv2
import numpy as np
import pytest

from curvetrack.camshift import TrackResult
from curvetrack.curve_tracking import (
    _parse_degree,
    annotate_frame,
    build_arg_parser,
    main,
    overrides_from_args,
    parse_rect,
    process_video_with_prediction,
    transform_frame,
)
from curvetrack.pipeline import POLYNOMIAL, Sample, resolve_predictor_params
from curvetrack.session import SessionFrame, TrackingSession
from curvetrack.trajectory import FramePrediction


def test_parse_rect():
    assert parse_rect("1,2,30,40") == (1, 2, 30, 40)
    assert parse_rect(" 1, 2, 3, 4 ") == (1, 2, 3, 4)
    assert parse_rect("") is None
    assert parse_rect("1,2,3") is None
    assert parse_rect("a,b,c,d") is None


def test_parse_degree():
    assert _parse_degree("2") == 2
    assert _parse_degree("cubic") == 3
    assert _parse_degree("SEXT") == 6
    with pytest.raises(argparse.ArgumentTypeError):
        _parse_degree("tenth")


def test_cli_overrides_resolve():
    args = build_arg_parser().parse_args(
        ["--video", "in.mp4", "--degree", "quad", "--horizon", "12", "--unweighted"]
    )
    params = resolve_predictor_params(overrides_from_args(args))
    assert params.fit_degree == 2
    assert params.prediction_horizon == 12
    assert params.weighted is False
    assert params.history_window_length == 50


def test_weighted_flag_defaults_to_none():
    args = build_arg_parser().parse_args(["--video", "in.mp4"])
    assert args.weighted is None
    assert resolve_predictor_params(overrides_from_args(args)).weighted is True


def test_transform_frame_scales_down():
    frame = np.zeros((100, 60, 3), dtype=np.uint8)
    assert transform_frame(frame, scale=2).shape == (50, 30, 3)
    assert transform_frame(frame, rotate=90.0).shape == (100, 60, 3)
    assert transform_frame(frame) is frame


def test_annotate_frame_draws():
    image = np.zeros((120, 160, 3), dtype=np.uint8)
    prediction = FramePrediction(
        frame=3,
        predicted=[(50.0, 50.0), (60.0, 55.0)],
        lookback=[(40.0, 45.0)],
        history=(Sample(1, 30.0, 40.0), Sample(3, 40.0, 45.0)),
    )
    track = TrackResult(box=((40.0, 45.0), (20.0, 10.0), 0.0), window=(30, 40, 20, 10), center=(40.0, 45.0))
    annotate_frame(image, SessionFrame(frame=3, track=track, prediction=prediction), POLYNOMIAL)
    assert image.sum() > 0


def test_main_missing_video_returns_error(tmp_path):
    missing = tmp_path / "nope.mp4"
    assert main(["--video", str(missing), "--rect", "1,1,10,10"]) == 1


def test_main_requires_input():
    with pytest.raises(SystemExit):
        main([])


def write_square_video(path, frames=20, size=(320, 240)):
    w, h = size
    writer = cv2.VideoWriter(str(path), cv2.VideoWriter_fourcc(*"MJPG"), 25.0, (w, h))
    if not writer.isOpened():
        pytest.skip("MJPG writer not available in this OpenCV build")
    for i in range(frames):
        img = np.zeros((h, w, 3), dtype=np.uint8)
        x, y = 60 + 4 * i, 80 + 2 * i
        img[y:y + 30, x:x + 30] = (0, 0, 255)
        writer.write(img)
    writer.release()


def test_process_video_writes_annotated_output(tmp_path):
    src = tmp_path / "square.avi"
    dst = tmp_path / "out" / "square_pred.mp4"
    write_square_video(src)

    count = process_video_with_prediction(
        video_path=str(src),
        output_path=str(dst),
        selection=(60, 80, 30, 30),
        overrides={"prediction_horizon": 5, "history_window_length": 10},
        max_frames=12,
    )
    assert count == 12
    assert dst.exists()

    cap = cv2.VideoCapture(str(dst))
    ok, img = cap.read()
    cap.release()
    assert ok
    assert img.shape == (240, 320, 3)


def test_process_video_survives_frame_errors(tmp_path, monkeypatch):
    src = tmp_path / "square.avi"
    write_square_video(src, frames=6)

    def broken(self, image):
        raise ValueError("boom")

    monkeypatch.setattr(TrackingSession, "process_frame", broken)
    assert process_video_with_prediction(video_path=str(src), selection=(60, 80, 30, 30)) == 6


@pytest.mark.parametrize("flag", [["--horizon", "0"], ["--degree", "7"], ["--window", "5", "--horizon", "10"]])
def test_main_reports_invalid_parameters(flag, capsys):
    with pytest.raises(SystemExit) as exc:
        main(["--video", "in.mp4"] + flag)
    assert exc.value.code == 2
    assert "error" in capsys.readouterr().err
