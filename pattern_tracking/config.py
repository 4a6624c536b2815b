# config.py
"""Typed configuration blobs for the whole system."""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import List, Tuple


@dataclass
class CameraConfig:
    source: int | str = 0             # device index or video file path
    width: int = 640
    height: int = 480
    fps_request: int = 30
    use_v4l2: bool = True
    fourcc_str: str = "MJPG"
    max_reopens: int = 5
    gain: int | None = None
    contrast: int | None = None
    auto_exposure: int | None = None  # 1=manual, 3=auto


@dataclass
class PreprocessConfig:
    # Working resolution every box in the tracker refers to
    proc_width: int = 320
    proc_height: int = 240
    blur_ksize: int = 5               # 0 or 1 disables the blur


@dataclass
class DetectorConfig:
    # chessboard | legacy | contour | corners | chain
    strategy: str = "chessboard"
    # Inner-corner counts (cols, rows), probed in order
    pattern_sizes: List[Tuple[int, int]] = field(default_factory=lambda: [(11, 8)])
    # Canny-contour fallback (areas are at working resolution)
    canny_low: int = 30
    canny_high: int = 150
    min_contour_area: float = 1250.0
    min_aspect: float = 0.7
    max_aspect: float = 1.3
    # Shi-Tomasi corner-cluster fallback
    max_corners: int = 100
    corner_quality: float = 0.01
    corner_min_distance: float = 10.0
    cluster_radius: int = 5
    cluster_kernel: int = 15
    min_cluster_area: float = 1250.0


@dataclass
class TrackerConfig:
    # Full-frame scan every N frames
    full_scan_interval: int = 3
    # Also scan the full frame whenever the ROI attempt is missing or fails
    full_scan_on_roi_miss: bool = True
    # Consecutive ROI misses before the ROI seed is dropped
    roi_miss_reset: int = 5
    # Miss frames during which the last box is still reported
    grace_frames: int = 6
    # IoU below this marks a candidate as a suspected outlier
    min_iou_accept: float = 0.15
    # Outliers are accepted once miss_grace exceeds this
    outlier_miss_grace: int = 2
    roi_expand_frac: float = 0.30
    full_expand_frac: float = 0.02
    roi_min_expand_px: int = 2
    # (shift_norm threshold, alpha) pairs, checked top-down with ">"
    alpha_steps: List[Tuple[float, float]] = field(
        default_factory=lambda: [(0.40, 0.70), (0.25, 0.55), (0.12, 0.40)]
    )
    alpha_floor: float = 0.20

    def validate(self) -> None:
        """Raise ``ValueError`` on settings the tracker cannot work with."""
        if self.full_scan_interval < 1:
            raise ValueError("full_scan_interval must be >= 1")
        if self.roi_miss_reset < 1:
            raise ValueError("roi_miss_reset must be >= 1")
        if self.grace_frames < 0 or self.outlier_miss_grace < 0:
            raise ValueError("grace counts must be >= 0")
        if not 0.0 <= self.min_iou_accept <= 1.0:
            raise ValueError("min_iou_accept must be within [0, 1]")
        if self.roi_expand_frac < 0.10:
            raise ValueError("roi_expand_frac must be >= 0.10")
        if self.roi_min_expand_px < 2:
            raise ValueError("roi_min_expand_px must be >= 2")
        for _, alpha in self.alpha_steps:
            if not 0.0 < alpha <= 1.0:
                raise ValueError(f"alpha {alpha} outside (0, 1]")
        if not 0.0 < self.alpha_floor <= 1.0:
            raise ValueError(f"alpha_floor {self.alpha_floor} outside (0, 1]")


@dataclass
class DisplayConfig:
    show_window: bool = True
    window_name: str = "Pattern Tracking"
    print_boxes: bool = True          # one [Track] line per reported box
    csv_path: str | None = None
    params_path: str | None = "runtime_params.json"
