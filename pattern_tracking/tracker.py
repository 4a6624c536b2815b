# tracker.py
"""Temporal tracking of the calibration pattern: ROI seeding, outlier gating,
adaptive smoothing and miss/grace bookkeeping, with live-tuning."""
from __future__ import annotations

import time
from dataclasses import dataclass, field, replace
from typing import Optional

import numpy as np

from pattern_tracking.common import Box, TrackReport, TrackStatus
from pattern_tracking.config import TrackerConfig
from pattern_tracking.detector import PatternDetector
from pattern_tracking.helpers import BoxSmoother, OutlierFilter
from pattern_tracking.planner import SearchOutcome, SearchPlanner


@dataclass
class TrackState:
    """Everything the tracker remembers between frames."""
    last_raw_box: Box = field(default_factory=Box)
    smoothed_box: Box = field(default_factory=Box)
    has_smoothed: bool = False
    consecutive_roi_misses: int = 0
    miss_grace: int = 0
    frame_index: int = 0
    adaptive_alpha: float = 0.30

    @property
    def seeded(self) -> bool:
        return not self.last_raw_box.is_empty()

    def drop_seed(self) -> None:
        self.last_raw_box = Box()

    def drop_track(self) -> None:
        self.last_raw_box = Box()
        self.smoothed_box = Box()
        self.has_smoothed = False


class PatternTracker:
    # ------------------------------------------------------------------ #
    #   I N I T
    # ------------------------------------------------------------------ #
    def __init__(self, detector: PatternDetector, cfg: Optional[TrackerConfig] = None):
        self.cfg = cfg if cfg is not None else TrackerConfig()
        self.cfg.validate()
        self.detector = detector
        self.planner = SearchPlanner(self.cfg)
        self.gate = OutlierFilter(self.cfg.min_iou_accept, self.cfg.outlier_miss_grace)
        self.smoother = BoxSmoother.from_config(self.cfg)
        self.state = TrackState()
        self.last_detect_ms = 0.0

    def reset(self) -> None:
        self.state = TrackState()
        self.last_detect_ms = 0.0

    # ------------------------------------------------------------------ #
    #   L I V E   T U N I N G   A P I
    # ------------------------------------------------------------------ #
    def apply_tuning(
        self,
        *,
        full_scan_interval: int | None = None,
        roi_miss_reset: int | None = None,
        grace_frames: int | None = None,
        min_iou_accept: float | None = None,
        outlier_miss_grace: int | None = None,
        roi_expand_frac: float | None = None,
    ) -> None:
        """
        Dynamically update thresholds while running.
        ``None`` leaves a value untouched; values that would not validate
        are ignored and the previous setting is kept.
        """
        updates = {
            "full_scan_interval": full_scan_interval,
            "roi_miss_reset": roi_miss_reset,
            "grace_frames": grace_frames,
            "min_iou_accept": min_iou_accept,
            "outlier_miss_grace": outlier_miss_grace,
            "roi_expand_frac": roi_expand_frac,
        }
        for key, value in updates.items():
            if value is None:
                continue
            try:
                candidate = replace(self.cfg, **{key: type(getattr(self.cfg, key))(value)})
                candidate.validate()
            except (TypeError, ValueError):
                continue
            setattr(self.cfg, key, getattr(candidate, key))

        self.gate.min_iou_accept = self.cfg.min_iou_accept
        self.gate.outlier_miss_grace = self.cfg.outlier_miss_grace

    # ------------------------------------------------------------------ #
    #   P E R - F R A M E   U P D A T E
    # ------------------------------------------------------------------ #
    def update(self, gray: np.ndarray) -> TrackReport:
        """Process one working-resolution grayscale frame."""
        st = self.state
        st.frame_index += 1

        # ----- search -----
        tic = time.perf_counter()
        outcome = self.planner.search(self.detector, gray, st.frame_index, st.last_raw_box)
        self.last_detect_ms = (time.perf_counter() - tic) * 1000.0

        # ----- gate -----
        det = outcome.detection
        accepted = False
        if det.found:
            prev = st.smoothed_box if st.has_smoothed else None
            accepted = self.gate.accept(det.box, prev, st.miss_grace)

        # ----- ROI seed bookkeeping -----
        if accepted:
            st.consecutive_roi_misses = 0
        elif outcome.roi_tried:
            st.consecutive_roi_misses += 1
            if st.consecutive_roi_misses >= self.cfg.roi_miss_reset:
                # Stale seed: stop searching around it
                st.drop_seed()
                st.consecutive_roi_misses = 0

        # ----- accept / miss -----
        if accepted:
            self._accept(det.box)
        else:
            st.miss_grace += 1
            if st.miss_grace > self.cfg.roi_miss_reset + self.cfg.grace_frames:
                st.drop_track()

        return self._report(outcome, accepted)

    def _accept(self, box: Box) -> None:
        st = self.state
        st.last_raw_box = box
        st.miss_grace = 0
        if not st.has_smoothed:
            st.smoothed_box, _ = self.smoother.update(None, box)
            st.has_smoothed = True
        else:
            st.smoothed_box, st.adaptive_alpha = self.smoother.update(st.smoothed_box, box)

    # ------------------------------------------------------------------ #
    #   R E P O R T
    # ------------------------------------------------------------------ #
    def reported_box(self) -> Box:
        st = self.state
        if st.has_smoothed and st.miss_grace <= self.cfg.grace_frames:
            return st.smoothed_box
        return Box()

    def _report(self, outcome: SearchOutcome, accepted: bool) -> TrackReport:
        st = self.state
        box = self.reported_box()
        if not box.is_empty():
            status = TrackStatus.STABLE if st.miss_grace == 0 else TrackStatus.HOLD
        elif outcome.periodic_full:
            status = TrackStatus.SEARCHING
        else:
            status = TrackStatus.LOST

        return TrackReport(
            frame_index=st.frame_index,
            box=box,
            status=status,
            detect_ms=self.last_detect_ms,
            miss_grace=st.miss_grace,
            alpha=st.adaptive_alpha,
            source=outcome.source if accepted else None,
            corners=outcome.detection.corners if accepted else None,
        )
