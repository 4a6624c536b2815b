# helpers.py
"""Box arithmetic, outlier gating and the adaptive box smoother."""
from __future__ import annotations

from typing import List, Optional, Sequence, Tuple

from pattern_tracking.common import Box
from pattern_tracking.config import TrackerConfig


def box_iou(a: Box, b: Box) -> float:
    """Intersection-over-union; 0 for disjoint or degenerate boxes."""
    inter = a.intersection(b).area
    if inter <= 0.0:
        return 0.0
    union = a.area + b.area - inter
    return inter / union if union > 0.0 else 0.0


def normalized_shift(prev: Box, new: Box) -> float:
    """Centre displacement relative to the larger side of ``prev``."""
    max_dim = max(prev.w, prev.h)
    if max_dim <= 1.0:
        return 0.0
    return prev.center_distance(new) / max_dim


def select_alpha(
    shift_norm: float,
    steps: Sequence[Tuple[float, float]],
    floor: float,
) -> float:
    """Pick the gain of the first ``(threshold, alpha)`` step that ``shift_norm`` exceeds."""
    for threshold, alpha in steps:
        if shift_norm > threshold:
            return alpha
    return floor


class OutlierFilter:
    """
    Gate new detections against the smoothed box.

    A candidate overlapping the smoothed box by at least ``min_iou_accept``
    passes. Anything else is a suspected outlier and only passes once the
    track has been missing for more than ``outlier_miss_grace`` frames.
    """

    def __init__(self, min_iou_accept: float = 0.15, outlier_miss_grace: int = 2):
        self.min_iou_accept = min_iou_accept
        self.outlier_miss_grace = outlier_miss_grace
        self.last_iou: Optional[float] = None

    def accept(self, candidate: Box, smoothed: Optional[Box], miss_grace: int) -> bool:
        if smoothed is None:
            # First-ever detection
            self.last_iou = None
            return True
        self.last_iou = box_iou(candidate, smoothed)
        if self.last_iou >= self.min_iou_accept:
            return True
        return miss_grace > self.outlier_miss_grace


class BoxSmoother:
    """
    Exponential smoother for (x, y, w, h) boxes with a gain that grows with
    the normalised centre shift: real motion is followed quickly, jitter is
    damped heavily.

    The smoothed box itself lives in the caller's track state; ``update``
    takes the previous value and returns the new one with the gain used.
    """

    def __init__(
        self,
        steps: Optional[List[Tuple[float, float]]] = None,
        floor: float = 0.20,
    ):
        self.steps = list(steps) if steps is not None else TrackerConfig().alpha_steps
        self.floor = floor

    @classmethod
    def from_config(cls, cfg: TrackerConfig) -> "BoxSmoother":
        return cls(cfg.alpha_steps, cfg.alpha_floor)

    def gain_for(self, prev: Box, bbox: Box) -> float:
        return select_alpha(normalized_shift(prev, bbox), self.steps, self.floor)

    def update(self, prev: Optional[Box], bbox: Box) -> Tuple[Box, float]:
        """
        prev: last smoothed box, or None before the first acceptance.
        Returns (smoothed box, alpha). The first sample is taken as-is.
        """
        if prev is None:
            return bbox, 1.0

        a = self.gain_for(prev, bbox)
        smoothed = Box(
            a * bbox.x + (1.0 - a) * prev.x,
            a * bbox.y + (1.0 - a) * prev.y,
            a * bbox.w + (1.0 - a) * prev.w,
            a * bbox.h + (1.0 - a) * prev.h,
        )
        return smoothed, a
