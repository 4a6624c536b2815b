# camera.py
"""Thin VideoCapture wrapper for a webcam index or a recorded video file,
with optional exposure/gain/contrast controls."""

from __future__ import annotations

import time
from typing import Optional, Tuple

import cv2
import numpy as np

from pattern_tracking.config import CameraConfig


class Camera:
    def __init__(self, config: CameraConfig) -> None:
        self.config = config
        self.cap: Optional[cv2.VideoCapture] = None

        # Exposed runtime-queryable values
        self.actual_width: int = 0
        self.actual_height: int = 0
        self.actual_fps: float = 0.0
        self.actual_fourcc_str: str = ""

    # ------------------------------------------------------------------ #
    #   I N T E R N A L   H E L P E R S
    # ------------------------------------------------------------------ #
    @staticmethod
    def _get_fourcc_str(fourcc_val: int) -> str:
        if fourcc_val == 0:
            return ""
        return "".join(chr((fourcc_val >> (8 * i)) & 0xFF) for i in range(4))

    @property
    def is_file(self) -> bool:
        """A string source that is not a digit string is a file or stream URL."""
        src = self.config.source
        return isinstance(src, str) and not src.isdigit()

    def _device(self) -> int | str:
        src = self.config.source
        return int(src) if isinstance(src, str) and src.isdigit() else src

    def _apply_controls(self) -> None:
        if self.config.fourcc_str:
            self.cap.set(
                cv2.CAP_PROP_FOURCC, cv2.VideoWriter_fourcc(*self.config.fourcc_str)
            )
        self.cap.set(cv2.CAP_PROP_FRAME_WIDTH, self.config.width)
        self.cap.set(cv2.CAP_PROP_FRAME_HEIGHT, self.config.height)
        if self.config.fps_request > 0:
            self.cap.set(cv2.CAP_PROP_FPS, self.config.fps_request)
        # Exposure mode must be set before anything that depends on it
        if self.config.auto_exposure is not None:
            self.cap.set(cv2.CAP_PROP_AUTO_EXPOSURE, self.config.auto_exposure)
        if self.config.gain is not None:
            self.cap.set(cv2.CAP_PROP_GAIN, self.config.gain)
        if self.config.contrast is not None:
            self.cap.set(cv2.CAP_PROP_CONTRAST, self.config.contrast)

    # ------------------------------------------------------------------ #
    #   P U B L I C   A P I
    # ------------------------------------------------------------------ #
    def open(self) -> bool:
        """Open the source; live devices also get resolution/fps/controls."""
        device = self._device()
        if self.is_file:
            self.cap = cv2.VideoCapture(device)
        else:
            backend = cv2.CAP_V4L2 if self.config.use_v4l2 else cv2.CAP_ANY
            self.cap = cv2.VideoCapture(device, backend)
            if not self.cap.isOpened() and backend != cv2.CAP_ANY:
                # Fallback to default backend
                self.cap = cv2.VideoCapture(device)
        if not self.cap or not self.cap.isOpened():
            print(f"[Camera] Could not open source {self.config.source!r}")
            self.cap = None
            return False

        if not self.is_file:
            self._apply_controls()
            time.sleep(0.1)  # Let driver settle

        self.actual_fourcc_str = self._get_fourcc_str(
            int(self.cap.get(cv2.CAP_PROP_FOURCC))
        )
        self.actual_width = int(self.cap.get(cv2.CAP_PROP_FRAME_WIDTH))
        self.actual_height = int(self.cap.get(cv2.CAP_PROP_FRAME_HEIGHT))
        self.actual_fps = self.cap.get(cv2.CAP_PROP_FPS)

        print(
            f"[Camera] {self.actual_width}x{self.actual_height}@{self.actual_fps:.1f} FPS "
            f"(FOURCC='{self.actual_fourcc_str}', {'file' if self.is_file else 'live'})"
        )
        if self.actual_width == 0 or self.actual_height == 0:
            print("[Camera] Error: source returned zero resolution")
            self.release()
            return False
        return True

    # ------------------------------------------------------------------ #
    #   S T A N D A R D   W R A P P E R S
    # ------------------------------------------------------------------ #
    def read(self) -> Tuple[float, Optional[np.ndarray]]:
        if not self.is_opened():
            return time.time(), None
        ts = time.time()
        ret, frame = self.cap.read()
        return (ts, frame) if ret and frame is not None else (ts, None)

    def is_opened(self) -> bool:
        return bool(self.cap and self.cap.isOpened())

    def release(self) -> None:
        if self.cap:
            print("[Camera] Releasing capture device")
            self.cap.release()
            self.cap = None

    def get_properties(self) -> Tuple[int, int, float, str]:
        return (
            self.actual_width,
            self.actual_height,
            self.actual_fps,
            self.actual_fourcc_str,
        )
