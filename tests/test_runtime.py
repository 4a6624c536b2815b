import csv
import json

import numpy as np
import pytest

from cli.main import build_configs, build_parser, main
from pattern_tracking.common import Box, TrackReport, TrackStatus
from pattern_tracking.config import (
    CameraConfig,
    DetectorConfig,
    DisplayConfig,
    PreprocessConfig,
    TrackerConfig,
)
from pattern_tracking.live_tuning import RuntimeParamWatcher
from pattern_tracking.processor import PatternTrackingProcessor, prepare_gray, to_bgr
from pattern_tracking.report_log import HEADER, ReportLog
from pattern_tracking.tracker import PatternTracker

from conftest import BrightPatchDetector


# ---------------------------------------------------------------------- #
#   L I V E   T U N I N G
# ---------------------------------------------------------------------- #
def test_watcher_without_file_is_idle(tmp_path):
    watcher = RuntimeParamWatcher(tmp_path / "missing.json")
    assert watcher.params == {}
    assert not watcher.maybe_reload()


def test_watcher_applies_and_reloads(tmp_path):
    path = tmp_path / "params.json"
    path.write_text(json.dumps({"grace_frames": 9, "colour": "red"}))
    watcher = RuntimeParamWatcher(path)
    assert watcher.params == {"grace_frames": 9}
    assert watcher.get("grace_frames") == 9

    tracker = PatternTracker(BrightPatchDetector())
    watcher.apply_to(tracker)
    assert tracker.cfg.grace_frames == 9
    assert not watcher.maybe_reload()

    path.write_text(json.dumps({"grace_frames": 4, "full_scan_interval": 10}))
    assert watcher.maybe_reload()
    watcher.apply_to(tracker)
    assert tracker.cfg.grace_frames == 4
    assert tracker.cfg.full_scan_interval == 10


def test_watcher_keeps_params_on_bad_json(tmp_path):
    path = tmp_path / "params.json"
    path.write_text(json.dumps({"min_iou_accept": 0.2}))
    watcher = RuntimeParamWatcher(path)
    path.write_text("{not json at all")
    assert not watcher.maybe_reload()
    assert watcher.params == {"min_iou_accept": 0.2}
    # Broken file is not re-read every frame
    assert not watcher.maybe_reload()


# ---------------------------------------------------------------------- #
#   C S V   L O G
# ---------------------------------------------------------------------- #
def test_report_log_rows(tmp_path):
    path = tmp_path / "logs" / "track.csv"
    with ReportLog(path) as log:
        log.write(TrackReport(1, Box(1.5, 2, 3, 4), TrackStatus.STABLE, 0.5, 0, 0.2, "full"))
        log.write(TrackReport(2, Box(), TrackStatus.LOST, 0.1, 7, 0.2))
        assert log.rows == 2

    with path.open(newline="") as fh:
        rows = list(csv.reader(fh))
    assert rows[0] == HEADER
    assert rows[1][:3] == ["1", "stable", "1.500"]
    assert rows[1][-1] == "full"
    assert rows[2][1] == "lost"
    assert rows[2][7] == "7"


def test_report_log_requires_open(tmp_path):
    with pytest.raises(RuntimeError):
        ReportLog(tmp_path / "x.csv").write(
            TrackReport(1, Box(), TrackStatus.LOST, 0.0, 1, 0.3)
        )


# ---------------------------------------------------------------------- #
#   P R O C E S S O R
# ---------------------------------------------------------------------- #
def test_prepare_gray_shapes():
    cfg = PreprocessConfig()
    bgr = np.zeros((480, 640, 3), np.uint8)
    assert prepare_gray(bgr, cfg).shape == (240, 320)
    bgra = np.zeros((480, 640, 4), np.uint8)
    assert prepare_gray(bgra, cfg).shape == (240, 320)
    gray = np.zeros((240, 320), np.uint8)
    assert prepare_gray(gray, PreprocessConfig(blur_ksize=0)).shape == (240, 320)


def test_to_bgr_channels():
    assert to_bgr(np.zeros((10, 10), np.uint8)).shape == (10, 10, 3)
    assert to_bgr(np.zeros((10, 10, 4), np.uint8)).shape == (10, 10, 3)


def make_processor():
    disp = DisplayConfig(
        show_window=False,
        print_boxes=True,
        csv_path=None,
        params_path=None,
    )
    proc = PatternTrackingProcessor(
        CameraConfig(),
        PreprocessConfig(blur_ksize=0),
        DetectorConfig(),
        TrackerConfig(),
        disp,
    )
    proc.tracker.detector = BrightPatchDetector()
    return proc


def test_process_frame_scales_box_to_display(capsys):
    proc = make_processor()
    frame = np.zeros((480, 640, 3), np.uint8)
    frame[100:200, 100:200] = 255

    rpt = proc.process_frame(frame)
    assert rpt.status is TrackStatus.STABLE
    assert rpt.box == Box(50, 50, 50, 50)
    assert proc._display_box(rpt, (640, 480)) == (100, 100, 100, 100)

    proc._print_report(rpt, (640, 480))
    assert "[Track] BBox (100,100) w=100 h=100" in capsys.readouterr().out


def test_overlay_draws_on_frame():
    proc = make_processor()
    img = np.zeros((480, 640, 3), np.uint8)
    rpt = TrackReport(1, Box(50, 50, 50, 50), TrackStatus.HOLD, 1.0, 1, 0.2)
    proc._draw_overlay(img, rpt)
    assert img.any()


# ---------------------------------------------------------------------- #
#   C L I
# ---------------------------------------------------------------------- #
def test_cli_builds_configs():
    args = build_parser().parse_args([
        "--source", "clip.mp4", "--pattern", "9x6", "--pattern", "7x5",
        "--strategy", "chain", "--grace", "8", "--periodic-only",
        "--no-window", "--quiet", "--csv", "out.csv", "--proc-size", "640x480",
    ])
    cam, pre, det, trk, disp = build_configs(args)
    assert cam.source == "clip.mp4"
    assert (pre.proc_width, pre.proc_height) == (640, 480)
    assert det.pattern_sizes == [(9, 6), (7, 5)]
    assert det.strategy == "chain"
    assert trk.grace_frames == 8
    assert not trk.full_scan_on_roi_miss
    assert not disp.show_window and not disp.print_boxes
    assert disp.csv_path == "out.csv"


def test_cli_defaults():
    cam, _, det, trk, disp = build_configs(build_parser().parse_args([]))
    assert cam.source == "0"
    assert det.pattern_sizes == [(11, 8)]
    assert trk.full_scan_interval == 3
    assert trk.full_scan_on_roi_miss
    assert disp.params_path == "runtime_params.json"


def test_cli_rejects_bad_pattern():
    with pytest.raises(SystemExit):
        build_parser().parse_args(["--pattern", "elevenByEight"])


def test_cli_invalid_tracker_settings_exit_code():
    assert main(["--full-interval", "0"]) == 2
