# common.py
"""Objects that are shared across multiple modules."""
from __future__ import annotations

import math
from dataclasses import dataclass
from enum import Enum
from typing import Optional, Tuple

import numpy as np


class DetectMode(str, Enum):
    FAST = "fast"
    ACCURATE = "accurate"


class TrackStatus(str, Enum):
    STABLE = "stable"
    HOLD = "hold"
    SEARCHING = "searching"
    LOST = "lost"


@dataclass(frozen=True)
class Box:
    """
    Axis-aligned rectangle in working-resolution pixels.
    A zero-area box means "absent".
    """
    x: float = 0.0
    y: float = 0.0
    w: float = 0.0
    h: float = 0.0

    @property
    def area(self) -> float:
        if self.w <= 0 or self.h <= 0:
            return 0.0
        return self.w * self.h

    def is_empty(self) -> bool:
        return self.area <= 0.0

    @property
    def center(self) -> Tuple[float, float]:
        return (self.x + self.w / 2.0, self.y + self.h / 2.0)

    def intersection(self, other: "Box") -> "Box":
        x0 = max(self.x, other.x)
        y0 = max(self.y, other.y)
        x1 = min(self.x + self.w, other.x + other.w)
        y1 = min(self.y + self.h, other.y + other.h)
        if x1 <= x0 or y1 <= y0:
            return Box()
        return Box(x0, y0, x1 - x0, y1 - y0)

    def clip(self, width: int, height: int) -> "Box":
        return self.intersection(Box(0.0, 0.0, float(width), float(height)))

    def expand(self, frac: float, min_px: int = 2) -> "Box":
        """Grow by ``frac`` of each dimension (at least ``min_px``) on every side."""
        dx = max(min_px, int(self.w * frac))
        dy = max(min_px, int(self.h * frac))
        return Box(self.x - dx, self.y - dy, self.w + 2 * dx, self.h + 2 * dy)

    def scaled(self, fx: float, fy: float) -> "Box":
        return Box(self.x * fx, self.y * fy, self.w * fx, self.h * fy)

    def as_int(self) -> Tuple[int, int, int, int]:
        return (round(self.x), round(self.y), round(self.w), round(self.h))

    def center_distance(self, other: "Box") -> float:
        (ax, ay), (bx, by) = self.center, other.center
        return math.hypot(ax - bx, ay - by)

    @classmethod
    def from_points(cls, pts: np.ndarray) -> "Box":
        """Tight integer bounding box, like ``cv2.boundingRect``."""
        pts = np.asarray(pts, dtype=np.float64).reshape(-1, 2)
        if len(pts) == 0:
            return cls()
        x0, y0 = np.floor(pts.min(axis=0))
        x1, y1 = np.floor(pts.max(axis=0))
        return cls(float(x0), float(y0), float(x1 - x0 + 1), float(y1 - y0 + 1))


@dataclass(frozen=True)
class Detection:
    """Outcome of a single detector call."""
    found: bool
    box: Box = Box()
    corners: Optional[np.ndarray] = None   # (N, 2) float32, image coords

    @classmethod
    def miss(cls) -> "Detection":
        return cls(False)

    def shifted(self, dx: float, dy: float) -> "Detection":
        if not self.found:
            return self
        corners = None
        if self.corners is not None:
            corners = self.corners + np.array([dx, dy], dtype=self.corners.dtype)
        b = self.box
        return Detection(True, Box(b.x + dx, b.y + dy, b.w, b.h), corners)


@dataclass(frozen=True)
class TrackReport:
    """
    A single-frame snapshot of tracker output.
    ``box`` is in working-resolution pixels and empty when nothing is reported.
    """
    frame_index: int
    box: Box
    status: TrackStatus
    detect_ms: float
    miss_grace: int
    alpha: float
    source: Optional[str] = None            # "roi" | "full" | None
    corners: Optional[np.ndarray] = None

    @property
    def has_box(self) -> bool:
        return not self.box.is_empty()
