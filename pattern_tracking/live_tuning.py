# live_tuning.py
"""Hot-reload tracker thresholds from a JSON file while the loop runs.

Example ``runtime_params.json``::

    {"grace_frames": 10, "min_iou_accept": 0.2, "full_scan_interval": 5}
"""
from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Dict, Tuple

from pattern_tracking.tracker import PatternTracker

TUNABLE_KEYS = (
    "full_scan_interval",
    "roi_miss_reset",
    "grace_frames",
    "min_iou_accept",
    "outlier_miss_grace",
    "roi_expand_frac",
)


class RuntimeParamWatcher:
    """Watch a JSON file and push changed tracker parameters on reload."""

    def __init__(self, path: str | Path = "runtime_params.json") -> None:
        self.path = Path(path).expanduser().resolve()
        self._stamp: Tuple[float, int] = (0.0, -1)  # (mtime, size)
        self.params: Dict[str, Any] = {}

        print(f"[Tuning] Watching: {self.path}")
        self._load(initial=True)

    # ------------------------------------------------------------------
    #   Internal helpers
    # ------------------------------------------------------------------
    def _load(self, *, initial: bool = False) -> bool:
        try:
            stat = self.path.stat()
        except FileNotFoundError:
            if initial:
                print(f"[Tuning] {self.path} not found – live-tuning idle until it exists.")
            return False
        # Stamp even a broken file so it is not re-read every frame
        self._stamp = (stat.st_mtime, stat.st_size)

        try:
            with self.path.open("r", encoding="utf-8") as fp:
                data = json.load(fp)
        except (OSError, json.JSONDecodeError) as exc:
            print(f"[Tuning] Could not read {self.path}: {exc} – keeping old params.")
            return False

        if not isinstance(data, dict):
            print(f"[Tuning] {self.path} must hold a JSON object – keeping old params.")
            return False

        unknown = sorted(set(data) - set(TUNABLE_KEYS))
        if unknown:
            print(f"[Tuning] Ignoring unknown keys: {', '.join(unknown)}")
        self.params = {k: v for k, v in data.items() if k in TUNABLE_KEYS}
        if not initial:
            print(f"[Tuning] Reloaded {self.params}")
        return True

    # ------------------------------------------------------------------
    #   Public API
    # ------------------------------------------------------------------
    def maybe_reload(self) -> bool:
        """
        If the watched file changed since the last call reload it and
        return **True**, else return **False**.
        """
        try:
            stat = self.path.stat()
        except FileNotFoundError:
            return False

        mtime, fsize = self._stamp
        if stat.st_size != fsize or stat.st_mtime != mtime:
            return self._load()
        return False

    def apply_to(self, tracker: PatternTracker) -> None:
        tracker.apply_tuning(**{k: self.params.get(k) for k in TUNABLE_KEYS})

    def get(self, key: str, default: Any | None = None) -> Any:
        return self.params.get(key, default)
