import pytest

from pattern_tracking.common import Box, DetectMode, TrackStatus
from pattern_tracking.config import TrackerConfig
from pattern_tracking.tracker import PatternTracker

from conftest import BrightPatchDetector, H, W, make_frame

PATCH = (10, 10, 50, 50)


def run(tracker, frames):
    return [tracker.update(f) for f in frames]


def track_then_miss(tracker, misses):
    run(tracker, [make_frame(PATCH)] * 3)
    return run(tracker, [make_frame()] * misses)


def test_first_detection_sets_smoothed_box_exactly(tracker):
    rpt = tracker.update(make_frame((200, 150, 40, 30)))
    assert tracker.state.has_smoothed
    assert tracker.state.smoothed_box == Box(200, 150, 40, 30)
    assert rpt.box == Box(200, 150, 40, 30)
    assert rpt.status is TrackStatus.STABLE
    assert rpt.source == "full"
    assert rpt.corners is not None


def test_frame_index_counts_every_frame(tracker):
    run(tracker, [make_frame()] * 4)
    assert tracker.state.frame_index == 4


def test_stable_track_uses_roi(tracker, detector):
    run(tracker, [make_frame(PATCH)] * 3)
    assert tracker.state.seeded
    # Frames 2 and 3 hit in the ROI, no full-frame call needed
    assert [mode for _, mode in detector.calls] == [
        DetectMode.FAST, DetectMode.ACCURATE, DetectMode.ACCURATE,
    ]
    assert tracker.state.adaptive_alpha == 0.20


@pytest.mark.parametrize("misses", range(1, 10))
def test_grace_window(misses):
    tracker = PatternTracker(BrightPatchDetector())
    reports = track_then_miss(tracker, misses)
    assert tracker.state.miss_grace == misses
    grace = tracker.cfg.grace_frames
    for n, rpt in enumerate(reports, start=1):
        assert rpt.has_box == (n <= grace)


def test_roi_seed_dropped_after_consecutive_misses(tracker, detector):
    track_then_miss(tracker, 4)
    assert tracker.state.seeded
    assert tracker.state.consecutive_roi_misses == 4
    tracker.update(make_frame())
    assert not tracker.state.seeded
    assert tracker.state.consecutive_roi_misses == 0
    # Still holding the smoothed box
    assert tracker.state.has_smoothed

    detector.calls.clear()
    tracker.update(make_frame())
    assert all(shape == (H, W) for shape, _ in detector.calls)


def test_full_reset_after_long_miss_run(tracker):
    cfg = tracker.cfg
    track_then_miss(tracker, cfg.roi_miss_reset + cfg.grace_frames)
    assert tracker.state.has_smoothed

    tracker.update(make_frame())
    st = tracker.state
    assert not st.has_smoothed
    assert not st.seeded
    assert st.smoothed_box.is_empty()

    # Far away re-acquisition is a fresh start, no blending with stale state
    rpt = tracker.update(make_frame((200, 150, 60, 60)))
    assert st.smoothed_box == Box(200, 150, 60, 60)
    assert rpt.status is TrackStatus.STABLE
    assert st.miss_grace == 0


def test_outlier_rejected_then_accepted_after_misses(tracker):
    tracker.state.smoothed_box = Box(100, 100, 100, 100)
    tracker.state.last_raw_box = Box(100, 100, 100, 100)
    tracker.state.has_smoothed = True
    tracker.state.miss_grace = 2
    thin = make_frame((100, 100, 100, 10))  # IoU 0.10 against the smoothed box

    rpt = tracker.update(thin)
    assert tracker.state.miss_grace == 3
    assert tracker.state.smoothed_box == Box(100, 100, 100, 100)
    assert tracker.state.last_raw_box == Box(100, 100, 100, 100)
    assert tracker.state.consecutive_roi_misses == 1
    assert rpt.status is TrackStatus.HOLD
    assert rpt.source is None

    rpt = tracker.update(thin)
    assert tracker.state.miss_grace == 0
    assert tracker.state.last_raw_box == Box(100, 100, 100, 10)
    assert tracker.state.consecutive_roi_misses == 0
    assert rpt.status is TrackStatus.STABLE


def test_end_to_end_hold_then_lost(tracker):
    grace = tracker.cfg.grace_frames
    frames = [make_frame(PATCH)] * 3 + [make_frame()] * 9
    reports = run(tracker, frames)

    held = reports[2].box
    assert held.as_int() == PATCH
    assert [r.status for r in reports[:3]] == [TrackStatus.STABLE] * 3
    for rpt in reports[3:3 + grace]:
        assert rpt.status is TrackStatus.HOLD
        assert rpt.box == held
    assert reports[9].status is TrackStatus.LOST
    assert reports[9].box.is_empty()
    assert reports[10].status is TrackStatus.LOST
    # Frame 12 is a periodic full-scan frame
    assert reports[11].status is TrackStatus.SEARCHING


def test_status_without_any_track():
    tracker = PatternTracker(BrightPatchDetector(), TrackerConfig(full_scan_on_roi_miss=False))
    statuses = [r.status for r in run(tracker, [make_frame()] * 6)]
    assert statuses == [
        TrackStatus.LOST, TrackStatus.LOST, TrackStatus.SEARCHING,
        TrackStatus.LOST, TrackStatus.LOST, TrackStatus.SEARCHING,
    ]


def test_periodic_only_waits_for_schedule():
    det = BrightPatchDetector()
    tracker = PatternTracker(det, TrackerConfig(full_scan_on_roi_miss=False))
    reports = run(tracker, [make_frame(PATCH)] * 3)
    assert [r.has_box for r in reports] == [False, False, True]
    assert len(det.calls) == 1


def test_motion_is_followed_with_adaptive_gain(tracker):
    tracker.update(make_frame((100, 100, 50, 50)))
    rpt = tracker.update(make_frame((115, 100, 50, 50)))  # shift 0.30 of 50
    assert tracker.state.adaptive_alpha == 0.55
    assert rpt.box.x == pytest.approx(100 + 0.55 * 15)
    assert rpt.box.w == pytest.approx(50)


def test_trackers_are_independent():
    a = PatternTracker(BrightPatchDetector())
    b = PatternTracker(BrightPatchDetector())
    a.update(make_frame(PATCH))
    assert a.state.has_smoothed
    assert not b.state.has_smoothed
    assert b.state.frame_index == 0


def test_reset_restores_initial_state(tracker):
    run(tracker, [make_frame(PATCH)] * 2)
    tracker.reset()
    assert tracker.state.frame_index == 0
    assert not tracker.state.has_smoothed


def test_apply_tuning_updates_and_ignores_invalid(tracker):
    tracker.apply_tuning(grace_frames=10, min_iou_accept=0.3, full_scan_interval=0)
    assert tracker.cfg.grace_frames == 10
    assert tracker.cfg.min_iou_accept == 0.3
    assert tracker.cfg.full_scan_interval == 3
    assert tracker.gate.min_iou_accept == 0.3

    tracker.apply_tuning(min_iou_accept=1.5, roi_expand_frac=0.05, roi_miss_reset="x")
    assert tracker.cfg.min_iou_accept == 0.3
    assert tracker.cfg.roi_expand_frac == 0.30
    assert tracker.cfg.roi_miss_reset == 5


@pytest.mark.parametrize(
    "kwargs",
    [
        {"full_scan_interval": 0},
        {"roi_expand_frac": 0.05},
        {"min_iou_accept": -0.1},
        {"grace_frames": -1},
    ],
)
def test_invalid_config_raises(kwargs):
    with pytest.raises(ValueError):
        PatternTracker(BrightPatchDetector(), TrackerConfig(**kwargs))
