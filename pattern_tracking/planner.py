# planner.py
"""Per-frame search plan: ROI around the last hit first, full frame as needed."""
from __future__ import annotations

from dataclasses import dataclass
from typing import List, Optional

import numpy as np

from pattern_tracking.common import Box, Detection, DetectMode
from pattern_tracking.config import TrackerConfig
from pattern_tracking.detector import PatternDetector, detect_in_region


@dataclass(frozen=True)
class SearchAttempt:
    kind: str           # "roi" | "full"
    region: Box
    mode: DetectMode


@dataclass
class SearchOutcome:
    detection: Detection
    source: Optional[str]       # kind of the attempt that hit
    roi_tried: bool
    full_tried: bool
    periodic_full: bool


class SearchPlanner:
    """
    Decides where to look on a given frame and runs the attempts in order.

    A seeded track gets an ``ACCURATE`` search in a window around the last
    accepted box: the window is small, so the exhaustive mode is cheap there.
    The whole image is searched in ``FAST`` mode on every
    ``full_scan_interval``-th frame, and, with ``full_scan_on_roi_miss``,
    whenever the ROI search was not possible or came back empty.
    """

    def __init__(self, cfg: TrackerConfig):
        self.cfg = cfg

    def is_periodic(self, frame_index: int) -> bool:
        return frame_index % self.cfg.full_scan_interval == 0

    def roi_region(self, seed: Box, width: int, height: int) -> Box:
        clipped = seed.clip(width, height)
        if clipped.is_empty():
            return Box()
        return clipped.expand(self.cfg.roi_expand_frac, self.cfg.roi_min_expand_px).clip(width, height)

    def full_region(self, width: int, height: int) -> Box:
        full = Box(0.0, 0.0, float(width), float(height))
        return full.expand(self.cfg.full_expand_frac, self.cfg.roi_min_expand_px).clip(width, height)

    def plan(self, frame_index: int, seed: Box, width: int, height: int) -> List[SearchAttempt]:
        """
        Attempts in priority order. The full-frame entry is only executed if
        the ROI entry ahead of it misses, unless this is a periodic scan frame.
        """
        attempts: List[SearchAttempt] = []
        if not seed.is_empty():
            attempts.append(
                SearchAttempt("roi", self.roi_region(seed, width, height), DetectMode.ACCURATE)
            )
        if self.is_periodic(frame_index) or self.cfg.full_scan_on_roi_miss:
            attempts.append(SearchAttempt("full", self.full_region(width, height), DetectMode.FAST))
        return attempts

    def search(
        self,
        detector: PatternDetector,
        gray: np.ndarray,
        frame_index: int,
        seed: Box,
    ) -> SearchOutcome:
        ih, iw = gray.shape[:2]
        outcome = SearchOutcome(
            Detection.miss(), None, False, False, self.is_periodic(frame_index)
        )
        for attempt in self.plan(frame_index, seed, iw, ih):
            if attempt.kind == "roi":
                outcome.roi_tried = True
            else:
                outcome.full_tried = True
            # Degenerate regions count as a failed attempt
            result = detect_in_region(detector, gray, attempt.region, attempt.mode)
            if result.found:
                outcome.detection = result
                outcome.source = attempt.kind
                break
        return outcome
