# report_log.py
"""Per-frame CSV log of tracker reports."""
from __future__ import annotations

import csv
from pathlib import Path
from typing import IO, Optional

from pattern_tracking.common import TrackReport

HEADER = [
    "frame", "status", "x", "y", "w", "h",
    "detect_ms", "miss_grace", "alpha", "source",
]


def _fmt(x):
    return f"{x:.3f}" if isinstance(x, float) else x


class ReportLog:
    """Append one row per ``TrackReport``; usable as a context manager."""

    def __init__(self, path: str | Path):
        self.path = Path(path).expanduser()
        self._fh: Optional[IO[str]] = None
        self._w = None
        self.rows = 0

    def open(self) -> "ReportLog":
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self._fh = self.path.open("w", newline="", encoding="utf-8")
        self._w = csv.writer(self._fh)
        self._w.writerow(HEADER)
        print(f"[ReportLog] Logging to {self.path}")
        return self

    def write(self, rpt: TrackReport) -> None:
        if self._w is None:
            raise RuntimeError("ReportLog.write() called before open()")
        b = rpt.box
        self._w.writerow([
            rpt.frame_index, rpt.status.value,
            _fmt(b.x), _fmt(b.y), _fmt(b.w), _fmt(b.h),
            _fmt(rpt.detect_ms), rpt.miss_grace, _fmt(rpt.alpha), rpt.source or "",
        ])
        self.rows += 1

    def close(self) -> None:
        if self._fh:
            self._fh.close()
            self._fh = None
            self._w = None

    def __enter__(self) -> "ReportLog":
        return self.open()

    def __exit__(self, *exc) -> None:
        self.close()
