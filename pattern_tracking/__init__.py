"""Calibration-pattern tracking package – re-export high-level API."""
from .common import Box, Detection, DetectMode, TrackReport, TrackStatus  # noqa: F401
from .config import (                                                     # noqa: F401
    CameraConfig, DetectorConfig, DisplayConfig,
    PreprocessConfig, TrackerConfig,
)
from .detector import PatternDetector, build_detector                     # noqa: F401
from .tracker import PatternTracker, TrackState                           # noqa: F401
from .processor import PatternTrackingProcessor                           # noqa: F401
