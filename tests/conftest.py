from typing import List, Optional, Tuple

import cv2
import numpy as np
import pytest

from pattern_tracking.common import Box, Detection, DetectMode
from pattern_tracking.config import TrackerConfig
from pattern_tracking.detector import PatternDetector
from pattern_tracking.tracker import PatternTracker

W, H = 320, 240


class BrightPatchDetector(PatternDetector):
    """Treats every pixel at 255 as part of the pattern; records each call."""

    name = "bright"

    def __init__(self) -> None:
        self.calls: List[Tuple[Tuple[int, int], DetectMode]] = []

    def detect(self, gray: np.ndarray, mode: DetectMode = DetectMode.FAST) -> Detection:
        self.calls.append((gray.shape[:2], mode))
        rc = np.argwhere(gray == 255)
        if len(rc) == 0:
            return Detection.miss()
        xy = rc[:, ::-1].astype(np.float32)
        return Detection(True, Box.from_points(xy), xy)


def make_frame(rect: Optional[Tuple[int, int, int, int]] = None, size=(W, H)) -> np.ndarray:
    """Black working-resolution frame with an optional white (x, y, w, h) patch."""
    img = np.zeros((size[1], size[0]), dtype=np.uint8)
    if rect is not None:
        x, y, w, h = rect
        img[y:y + h, x:x + w] = 255
    return img


def make_chessboard(
    squares=(8, 6), square_px=24, origin=(64, 48), size=(W, H), blur=True
) -> np.ndarray:
    """White canvas with a black/white board of ``squares`` (cols, rows)."""
    img = np.full((size[1], size[0]), 255, dtype=np.uint8)
    ox, oy = origin
    for r in range(squares[1]):
        for c in range(squares[0]):
            if (r + c) % 2 == 0:
                x0, y0 = ox + c * square_px, oy + r * square_px
                img[y0:y0 + square_px, x0:x0 + square_px] = 0
    if blur:
        img = cv2.GaussianBlur(img, (5, 5), 0)
    return img


@pytest.fixture
def detector() -> BrightPatchDetector:
    return BrightPatchDetector()


@pytest.fixture
def tracker(detector) -> PatternTracker:
    return PatternTracker(detector, TrackerConfig())
