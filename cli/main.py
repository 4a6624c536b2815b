# main.py
"""
Entry-point for the calibration-pattern tracker.

Usage
-----
    python cli/main.py                       # webcam 0, 11x8 chessboard
    python cli/main.py --source clip.mp4 --no-window --csv out/track.csv
    python cli/main.py --pattern 9x6 --pattern 7x5 --strategy chain

Live-tuning
-----------
While the program is running you can edit ``runtime_params.json`` (or the
file given with ``--params``) and the new tracker thresholds (grace frames,
full-scan interval, IoU gate, ...) take effect on the very next frame.
See ``pattern_tracking/live_tuning.py`` for the accepted keys.
"""
from __future__ import annotations

import argparse
import sys
from typing import List, Optional, Sequence, Tuple

from pattern_tracking.config import (
    CameraConfig,
    DetectorConfig,
    DisplayConfig,
    PreprocessConfig,
    TrackerConfig,
)
from pattern_tracking.processor import PatternTrackingProcessor


def _size(text: str) -> Tuple[int, int]:
    """Parse ``COLSxROWS`` / ``WxH``."""
    try:
        a, b = text.lower().split("x")
        size = (int(a), int(b))
    except ValueError:
        raise argparse.ArgumentTypeError(f"expected AxB, got {text!r}") from None
    if size[0] <= 0 or size[1] <= 0:
        raise argparse.ArgumentTypeError(f"sizes must be positive, got {text!r}")
    return size


def build_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(description="Track a chessboard calibration pattern in a video stream")
    ap.add_argument("--source", default="0", help="camera index or video file path")
    ap.add_argument("--width", type=int, default=640)
    ap.add_argument("--height", type=int, default=480)
    ap.add_argument("--pattern", type=_size, action="append",
                    help="inner corners COLSxROWS; repeat to probe several sizes")
    ap.add_argument("--strategy", default="chessboard",
                    choices=["chessboard", "legacy", "contour", "corners", "chain"])
    ap.add_argument("--proc-size", type=_size, default=(320, 240), help="working resolution WxH")
    ap.add_argument("--full-interval", type=int, default=3, help="full-frame scan every N frames")
    ap.add_argument("--grace", type=int, default=6, help="miss frames that still show the last box")
    ap.add_argument("--roi-reset", type=int, default=5, help="ROI misses before dropping the seed")
    ap.add_argument("--min-iou", type=float, default=0.15, help="IoU below which a hit is an outlier")
    ap.add_argument("--periodic-only", action="store_true",
                    help="scan the full frame only on the periodic schedule")
    ap.add_argument("--csv", default=None, help="write one CSV row per frame")
    ap.add_argument("--params", default="runtime_params.json", help="live-tuning JSON file")
    ap.add_argument("--no-window", action="store_true")
    ap.add_argument("--quiet", action="store_true", help="no per-frame [Track] lines")
    return ap


def build_configs(args: argparse.Namespace):
    cam_cfg = CameraConfig(source=args.source, width=args.width, height=args.height)
    pre_cfg = PreprocessConfig(proc_width=args.proc_size[0], proc_height=args.proc_size[1])
    det_cfg = DetectorConfig(strategy=args.strategy)
    if args.pattern:
        det_cfg.pattern_sizes = list(args.pattern)
    trk_cfg = TrackerConfig(
        full_scan_interval=args.full_interval,
        full_scan_on_roi_miss=not args.periodic_only,
        roi_miss_reset=args.roi_reset,
        grace_frames=args.grace,
        min_iou_accept=args.min_iou,
    )
    disp_cfg = DisplayConfig(
        show_window=not args.no_window,
        print_boxes=not args.quiet,
        csv_path=args.csv,
        params_path=args.params or None,
    )
    return cam_cfg, pre_cfg, det_cfg, trk_cfg, disp_cfg


# ────────────────────────────────────────────────────────────────────────────
#   M A I N
# ────────────────────────────────────────────────────────────────────────────
def main(argv: Optional[Sequence[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    cam_cfg, pre_cfg, det_cfg, trk_cfg, disp_cfg = build_configs(args)

    try:
        trk_cfg.validate()
    except ValueError as exc:
        print(f"[Main] Invalid tracker settings: {exc}", file=sys.stderr)
        return 2

    print("Initializing Pattern-Tracking System…")
    patterns: List[str] = [f"{c}x{r}" for c, r in det_cfg.pattern_sizes]
    print(
        f"Source: {cam_cfg.source!r}, {cam_cfg.width}x{cam_cfg.height}, "
        f"work={pre_cfg.proc_width}x{pre_cfg.proc_height}"
    )
    print(f"Detector: {det_cfg.strategy}, patterns={patterns}")
    print(
        f"Tracker: full every {trk_cfg.full_scan_interval} frames"
        f"{'' if trk_cfg.full_scan_on_roi_miss else ' (periodic only)'}, "
        f"grace={trk_cfg.grace_frames}, roi_reset={trk_cfg.roi_miss_reset}, "
        f"min_iou={trk_cfg.min_iou_accept}"
    )

    PatternTrackingProcessor(cam_cfg, pre_cfg, det_cfg, trk_cfg, disp_cfg).run()
    print("Main program finished.")
    return 0


if __name__ == "__main__":
    sys.exit(main())
