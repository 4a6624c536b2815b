# detector.py
"""OpenCV calibration-pattern detectors behind one ``detect(gray, mode)`` call."""
from __future__ import annotations

from typing import List, Optional, Sequence, Tuple

import cv2
import numpy as np

from pattern_tracking.common import Box, Detection, DetectMode
from pattern_tracking.config import DetectorConfig


class PatternDetector:
    """Base class: find the pattern in a single-channel uint8 image."""

    name = "base"

    def detect(self, gray: np.ndarray, mode: DetectMode = DetectMode.FAST) -> Detection:
        raise NotImplementedError

    def close(self) -> None:
        pass


# ---------------------------------------------------------------------- #
#   C H E S S B O A R D
# ---------------------------------------------------------------------- #
class ChessboardDetector(PatternDetector):
    """
    Chessboard inner-corner detector.

    ``FAST`` runs without extra flags; ``ACCURATE`` asks OpenCV for sub-pixel
    refinement, which is only affordable on a small ROI. Several pattern
    sizes may be probed; the first one that matches wins.
    """

    name = "chessboard"

    SB_FLAGS = {
        DetectMode.FAST: 0,
        DetectMode.ACCURATE: cv2.CALIB_CB_ACCURACY,
    }
    LEGACY_FLAGS = {
        DetectMode.FAST: cv2.CALIB_CB_ADAPTIVE_THRESH
        | cv2.CALIB_CB_NORMALIZE_IMAGE
        | cv2.CALIB_CB_FAST_CHECK,
        DetectMode.ACCURATE: cv2.CALIB_CB_ADAPTIVE_THRESH
        | cv2.CALIB_CB_NORMALIZE_IMAGE,
    }
    SUBPIX_CRITERIA = (cv2.TERM_CRITERIA_EPS + cv2.TERM_CRITERIA_MAX_ITER, 30, 0.01)

    def __init__(self, pattern_sizes: Sequence[Tuple[int, int]], use_sb: bool = True):
        if not pattern_sizes:
            raise ValueError("at least one pattern size is required")
        for cols, rows in pattern_sizes:
            if cols < 2 or rows < 2:
                raise ValueError(f"pattern size {cols}x{rows} too small")
        self.pattern_sizes = [tuple(map(int, p)) for p in pattern_sizes]
        self.use_sb = use_sb
        if not use_sb:
            self.name = "legacy"

    def _find(self, gray: np.ndarray, size: Tuple[int, int], mode: DetectMode) -> Optional[np.ndarray]:
        if self.use_sb:
            found, corners = cv2.findChessboardCornersSB(gray, size, flags=self.SB_FLAGS[mode])
        else:
            found, corners = cv2.findChessboardCorners(gray, size, flags=self.LEGACY_FLAGS[mode])
            if found and mode is DetectMode.ACCURATE:
                corners = cv2.cornerSubPix(gray, corners, (5, 5), (-1, -1), self.SUBPIX_CRITERIA)
        if not found or corners is None:
            return None
        corners = corners.reshape(-1, 2).astype(np.float32)
        if len(corners) != size[0] * size[1]:
            return None
        return corners

    def detect(self, gray: np.ndarray, mode: DetectMode = DetectMode.FAST) -> Detection:
        for size in self.pattern_sizes:
            # The detector cannot fit the grid in anything smaller
            if gray.shape[0] < size[1] + 2 or gray.shape[1] < size[0] + 2:
                continue
            corners = self._find(gray, size, mode)
            if corners is not None:
                return Detection(True, Box.from_points(corners), corners)
        return Detection.miss()


# ---------------------------------------------------------------------- #
#   F A L L B A C K S
# ---------------------------------------------------------------------- #
class EdgeContourDetector(PatternDetector):
    """Largest near-square convex outline found with Canny edges."""

    name = "contour"

    def __init__(
        self,
        canny_low: int = 30,
        canny_high: int = 150,
        min_area: float = 1250.0,
        min_aspect: float = 0.7,
        max_aspect: float = 1.3,
    ):
        self.canny_low = canny_low
        self.canny_high = canny_high
        self.min_area = min_area
        self.min_aspect = min_aspect
        self.max_aspect = max_aspect
        self._kernel = cv2.getStructuringElement(cv2.MORPH_RECT, (3, 3))

    def detect(self, gray: np.ndarray, mode: DetectMode = DetectMode.FAST) -> Detection:
        edges = cv2.Canny(gray, self.canny_low, self.canny_high)
        edges = cv2.dilate(edges, self._kernel)
        edges = cv2.morphologyEx(edges, cv2.MORPH_CLOSE, self._kernel)
        contours, _ = cv2.findContours(edges, cv2.RETR_EXTERNAL, cv2.CHAIN_APPROX_SIMPLE)

        best = None
        best_area = 0.0
        for c in contours:
            area = cv2.contourArea(c)
            if area < self.min_area or area <= best_area:
                continue
            peri = cv2.arcLength(c, True)
            approx = cv2.approxPolyDP(c, 0.04 * peri, True)
            if len(approx) < 4 or not cv2.isContourConvex(approx):
                continue
            _, _, w, h = cv2.boundingRect(c)
            if h == 0 or not self.min_aspect <= w / h <= self.max_aspect:
                continue
            best, best_area = c, area

        if best is None:
            return Detection.miss()
        x, y, w, h = cv2.boundingRect(best)
        return Detection(True, Box(float(x), float(y), float(w), float(h)))


class CornerClusterDetector(PatternDetector):
    """
    Densest cluster of Shi-Tomasi corners.

    Every corner is stamped as a disc on a mask, the mask is closed so that
    neighbouring discs merge, and the largest resulting blob is taken as the
    pattern. The corners inside that blob's box are returned as well.
    """

    name = "corners"

    def __init__(
        self,
        max_corners: int = 100,
        quality: float = 0.01,
        min_distance: float = 10.0,
        radius: int = 5,
        kernel: int = 15,
        min_area: float = 1250.0,
    ):
        self.max_corners = max_corners
        self.quality = quality
        self.min_distance = min_distance
        self.radius = radius
        self.min_area = min_area
        self._kernel = cv2.getStructuringElement(cv2.MORPH_RECT, (kernel, kernel))

    def detect(self, gray: np.ndarray, mode: DetectMode = DetectMode.FAST) -> Detection:
        pts = cv2.goodFeaturesToTrack(gray, self.max_corners, self.quality, self.min_distance)
        if pts is None or len(pts) < 4:
            return Detection.miss()
        pts = pts.reshape(-1, 2)

        mask = np.zeros(gray.shape[:2], dtype=np.uint8)
        for px, py in pts:
            cv2.circle(mask, (int(round(px)), int(round(py))), self.radius, 255, -1)
        mask = cv2.morphologyEx(mask, cv2.MORPH_CLOSE, self._kernel)

        contours, _ = cv2.findContours(mask, cv2.RETR_EXTERNAL, cv2.CHAIN_APPROX_SIMPLE)
        if not contours:
            return Detection.miss()
        best = max(contours, key=cv2.contourArea)
        if cv2.contourArea(best) < self.min_area:
            return Detection.miss()

        x, y, w, h = cv2.boundingRect(best)
        inside = (
            (pts[:, 0] >= x) & (pts[:, 0] < x + w) & (pts[:, 1] >= y) & (pts[:, 1] < y + h)
        )
        corners = pts[inside].astype(np.float32)
        return Detection(True, Box(float(x), float(y), float(w), float(h)), corners)


class FallbackDetector(PatternDetector):
    """Try each detector in order, first hit wins."""

    name = "chain"

    def __init__(self, detectors: Sequence[PatternDetector]):
        if not detectors:
            raise ValueError("FallbackDetector needs at least one detector")
        self.detectors: List[PatternDetector] = list(detectors)
        self.last_hit: Optional[str] = None

    def detect(self, gray: np.ndarray, mode: DetectMode = DetectMode.FAST) -> Detection:
        for det in self.detectors:
            result = det.detect(gray, mode)
            if result.found:
                self.last_hit = det.name
                return result
        self.last_hit = None
        return Detection.miss()

    def close(self) -> None:
        for det in self.detectors:
            det.close()


# ---------------------------------------------------------------------- #
#   F A C T O R Y   /   R O I
# ---------------------------------------------------------------------- #
def build_detector(cfg: DetectorConfig) -> PatternDetector:
    def contour() -> EdgeContourDetector:
        return EdgeContourDetector(
            cfg.canny_low, cfg.canny_high, cfg.min_contour_area, cfg.min_aspect, cfg.max_aspect
        )

    def corners() -> CornerClusterDetector:
        return CornerClusterDetector(
            cfg.max_corners,
            cfg.corner_quality,
            cfg.corner_min_distance,
            cfg.cluster_radius,
            cfg.cluster_kernel,
            cfg.min_cluster_area,
        )

    if cfg.strategy == "chessboard":
        return ChessboardDetector(cfg.pattern_sizes)
    if cfg.strategy == "legacy":
        return ChessboardDetector(cfg.pattern_sizes, use_sb=False)
    if cfg.strategy == "contour":
        return contour()
    if cfg.strategy == "corners":
        return corners()
    if cfg.strategy == "chain":
        return FallbackDetector([ChessboardDetector(cfg.pattern_sizes), contour(), corners()])
    raise ValueError(f"Unknown detector strategy: {cfg.strategy!r}")


def detect_in_region(
    detector: PatternDetector,
    gray: np.ndarray,
    region: Box,
    mode: DetectMode,
) -> Detection:
    """
    Run ``detector`` on ``gray[region]`` and map the result back to full-image
    coordinates. A region that does not overlap the image is a miss.
    """
    ih, iw = gray.shape[:2]
    x, y, w, h = region.clip(iw, ih).as_int()
    if w <= 0 or h <= 0:
        return Detection.miss()
    result = detector.detect(np.ascontiguousarray(gray[y:y + h, x:x + w]), mode)
    if not result.found or result.box.is_empty():
        return Detection.miss()
    return result.shifted(float(x), float(y))
