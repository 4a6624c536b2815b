# processor.py
"""Glue logic that wires camera → preprocessing → tracker → display/log."""
from __future__ import annotations

import time
import traceback
from typing import Optional, Tuple

import cv2
import numpy as np

from pattern_tracking.camera import Camera
from pattern_tracking.common import TrackReport, TrackStatus
from pattern_tracking.config import (
    CameraConfig,
    DetectorConfig,
    DisplayConfig,
    PreprocessConfig,
    TrackerConfig,
)
from pattern_tracking.detector import build_detector
from pattern_tracking.live_tuning import RuntimeParamWatcher
from pattern_tracking.report_log import ReportLog
from pattern_tracking.tracker import PatternTracker

_STATUS_TEXT = {
    TrackStatus.STABLE: "Chessboard (stable)",
    TrackStatus.HOLD: "Chessboard (hold)",
    TrackStatus.SEARCHING: "Searching (full scan)",
    TrackStatus.LOST: "Lost",
}
_GREEN = (0, 255, 0)
_ESC = 27


def to_bgr(frame: np.ndarray) -> np.ndarray:
    if frame.ndim == 2 or (frame.ndim == 3 and frame.shape[2] == 1):
        return cv2.cvtColor(frame, cv2.COLOR_GRAY2BGR)
    if frame.ndim == 3 and frame.shape[2] == 4:
        return cv2.cvtColor(frame, cv2.COLOR_BGRA2BGR)
    return frame


def prepare_gray(frame: np.ndarray, cfg: PreprocessConfig) -> np.ndarray:
    """Single gray conversion, downscale to the working size, optional blur."""
    if frame.ndim == 3 and frame.shape[2] == 4:
        gray = cv2.cvtColor(frame, cv2.COLOR_BGRA2GRAY)
    elif frame.ndim == 3 and frame.shape[2] == 3:
        gray = cv2.cvtColor(frame, cv2.COLOR_BGR2GRAY)
    else:
        gray = frame.reshape(frame.shape[0], frame.shape[1])
    size = (cfg.proc_width, cfg.proc_height)
    if (gray.shape[1], gray.shape[0]) != size:
        gray = cv2.resize(gray, size, interpolation=cv2.INTER_AREA)
    if cfg.blur_ksize > 1:
        k = cfg.blur_ksize | 1
        gray = cv2.GaussianBlur(gray, (k, k), 0)
    return gray


class PatternTrackingProcessor:
    """The main high-level orchestrator."""

    def __init__(
        self,
        camera_cfg: CameraConfig,
        preprocess_cfg: PreprocessConfig,
        detector_cfg: DetectorConfig,
        tracker_cfg: TrackerConfig,
        display_cfg: DisplayConfig,
    ):
        # Save configs
        self.camera_cfg = camera_cfg
        self.preprocess_cfg = preprocess_cfg
        self.detector_cfg = detector_cfg
        self.tracker_cfg = tracker_cfg
        self.display_cfg = display_cfg

        # Build sub-systems
        self.camera = Camera(camera_cfg)
        self.detector = build_detector(detector_cfg)
        self.tracker = PatternTracker(self.detector, tracker_cfg)
        self.watcher: Optional[RuntimeParamWatcher] = None
        self.log: Optional[ReportLog] = None

        # Runtime metrics
        self.last_tick: Optional[float] = None
        self.disp_fps = 0.0
        self.total_frames = 0

        # Recovery
        self.cam_reopens = 0
        self.last_valid_frame: Optional[np.ndarray] = None

    # ---------------------------------------------------------------------
    #                         Setup / teardown
    # ---------------------------------------------------------------------
    def setup(self) -> bool:
        """Open source, window, CSV log and live-tuning watcher."""
        if not self.camera.open():
            return False
        self.cam_reopens = 0

        if self.display_cfg.params_path:
            self.watcher = RuntimeParamWatcher(self.display_cfg.params_path)
            self.watcher.apply_to(self.tracker)
        if self.display_cfg.csv_path:
            self.log = ReportLog(self.display_cfg.csv_path).open()

        if self.display_cfg.show_window:
            cv2.namedWindow(self.display_cfg.window_name, cv2.WINDOW_AUTOSIZE)
        print(
            f"[Processor] Setup complete – detector={self.detector.name}, "
            f"work={self.preprocess_cfg.proc_width}x{self.preprocess_cfg.proc_height}. "
            "Press 'q' or ESC to quit."
        )
        return True

    def cleanup(self) -> None:
        print("[Processor] Cleaning up...")
        self.camera.release()
        self.detector.close()
        if self.log:
            self.log.close()
        if self.display_cfg.show_window:
            cv2.destroyAllWindows()
        print(f"[Processor] Exited. Total frames: {self.total_frames}")

    # ---------------------------------------------------------------------
    #                        Drawing / UI helpers
    # ---------------------------------------------------------------------
    def _display_box(self, rpt: TrackReport, frame_size: Tuple[int, int]) -> Tuple[int, int, int, int]:
        """Scale the working-resolution box to the displayed frame."""
        w, h = frame_size
        fx = w / self.preprocess_cfg.proc_width
        fy = h / self.preprocess_cfg.proc_height
        return rpt.box.scaled(fx, fy).as_int()

    def _draw_overlay(self, img: np.ndarray, rpt: TrackReport) -> None:
        if rpt.has_box:
            x, y, w, h = self._display_box(rpt, (img.shape[1], img.shape[0]))
            cv2.rectangle(img, (x, y), (x + w, y + h), _GREEN, 2)
        cv2.putText(img, _STATUS_TEXT[rpt.status], (30, 30), cv2.FONT_HERSHEY_SIMPLEX, 0.8, _GREEN, 2)
        cv2.putText(img, f"FPS: {self.disp_fps:.1f}", (30, 60), cv2.FONT_HERSHEY_SIMPLEX, 0.8, _GREEN, 2)
        cv2.putText(img, f"Detect: {rpt.detect_ms:.1f} ms", (30, 90), cv2.FONT_HERSHEY_SIMPLEX, 0.7, _GREEN, 2)

    def _print_report(self, rpt: TrackReport, frame_size: Tuple[int, int]) -> None:
        if not (self.display_cfg.print_boxes and rpt.has_box):
            return
        x, y, w, h = self._display_box(rpt, frame_size)
        print(
            f"[Track] BBox ({x},{y}) w={w} h={h} detect={rpt.detect_ms:.1f}ms "
            f"missGrace={rpt.miss_grace} alpha={rpt.alpha:.2f} status={rpt.status.value}"
        )

    # ---------------------------------------------------------------------
    #                          Main per-frame loop
    # ---------------------------------------------------------------------
    def _handle_read_failure(self) -> bool:
        """Returns False once the stream is over for good."""
        if self.camera.is_file:
            print("[Processor] End of video stream")
            return False
        if self.cam_reopens >= self.camera_cfg.max_reopens:
            print("[Processor] Camera lost, giving up")
            return False

        self.cam_reopens += 1
        self.camera.release()
        if self.camera.open():
            self.cam_reopens = 0
        elif self.last_valid_frame is not None and self.display_cfg.show_window:
            disp = self.last_valid_frame.copy()
            cv2.putText(disp, "Cam Err", (50, 50), cv2.FONT_HERSHEY_SIMPLEX, 0.8, (0, 0, 255), 2)
            cv2.imshow(self.display_cfg.window_name, disp)
        time.sleep(0.05)
        return True

    def process_frame(self, frame: np.ndarray) -> TrackReport:
        """Track one raw camera frame; no display side effects."""
        if self.watcher and self.watcher.maybe_reload():
            self.watcher.apply_to(self.tracker)
        gray = prepare_gray(frame, self.preprocess_cfg)
        rpt = self.tracker.update(gray)
        if self.log:
            self.log.write(rpt)
        return rpt

    def _step(self) -> bool:
        """Returns False if the caller should exit the main loop."""
        _, frame = self.camera.read()
        if frame is None:
            return self._handle_read_failure()

        # FPS of the previous iteration
        now = time.perf_counter()
        if self.last_tick is not None and now > self.last_tick:
            self.disp_fps = 1.0 / (now - self.last_tick)
        self.last_tick = now

        self.last_valid_frame = frame
        self.total_frames += 1

        rpt = self.process_frame(frame)
        self._print_report(rpt, (frame.shape[1], frame.shape[0]))

        if self.display_cfg.show_window:
            out = to_bgr(frame).copy()
            self._draw_overlay(out, rpt)
            cv2.imshow(self.display_cfg.window_name, out)
        return True

    # ---------------------------------------------------------------------
    #                             Public run()
    # ---------------------------------------------------------------------
    def run(self) -> None:
        if not self.setup():
            self.cleanup()
            return

        try:
            while True:
                if not self._step():
                    break
                if self.display_cfg.show_window:
                    key = cv2.waitKey(1) & 0xFF
                    if key in (ord("q"), _ESC):
                        break
        except KeyboardInterrupt:
            print("\n[Processor] Stopped by user.")
        except Exception as exc:
            print(f"[Processor] Main loop error: {exc}")
            traceback.print_exc()
        finally:
            self.cleanup()
