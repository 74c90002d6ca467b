"""
Stats tracker tests: time accounting, streaks, rollover and remote sync
"""
from datetime import datetime

import pytest

from posture_coach.models import DailyStats, PostureState
from posture_coach.persistence import MemoryStatsStore
from posture_coach.stats_tracker import SessionStatsTracker, date_key_for, merge_seed

GOOD = PostureState.GOOD
BAD = PostureState.BAD
UNKNOWN = PostureState.UNKNOWN


def local_ms(*args) -> float:
    return datetime(*args).timestamp() * 1000


NOON = local_ms(2026, 6, 10, 12, 0, 0)


class RecordingSink:
    """Remote sink double that records pushes"""
    enabled = True

    def __init__(self, ok=True, seed=None):
        self.ok = ok
        self.seed = seed
        self.pushes = []

    def upsert_daily_stats(self, subject_id, date_key, total_ms, good_ms, bad_ms,
                           longest_streak_ms, alert_count):
        self.pushes.append({
            "subject_id": subject_id,
            "date_key": date_key,
            "total_ms": total_ms,
            "longest_streak_ms": longest_streak_ms,
            "alert_count": alert_count
        })
        return self.ok

    def fetch_daily_stats(self, subject_id, date_key):
        return self.seed


def run_ticks(tracker, state, start, end, step=50):
    now = start
    while now <= end:
        tracker.record_tick(state, now)
        now += step


@pytest.fixture
def tracker():
    t = SessionStatsTracker()
    t.load(NOON)
    return t


# ============================================================================
# ACCOUNTING
# ============================================================================

def test_first_tick_only_sets_reference(tracker):
    tracker.record_tick(GOOD, NOON)
    assert tracker.stats.total_ms == 0
    assert tracker.last_tick_time == NOON


def test_delta_goes_to_current_state(tracker):
    tracker.record_tick(GOOD, NOON)
    tracker.record_tick(GOOD, NOON + 1000)
    tracker.record_tick(BAD, NOON + 1500)
    tracker.record_tick(UNKNOWN, NOON + 2000)

    stats = tracker.stats
    assert stats.total_ms == 2000
    assert stats.good_ms == 1000
    assert stats.bad_ms == 500
    assert stats.good_ms + stats.bad_ms <= stats.total_ms


def test_longest_streak_tracks_running_good_run(tracker):
    run_ticks(tracker, GOOD, NOON, NOON + 5000)
    assert tracker.stats.longest_good_streak_ms == 5000

    # Leaving GOOD finalizes the run at the transition tick
    run_ticks(tracker, BAD, NOON + 5050, NOON + 6000)
    assert tracker.stats.longest_good_streak_ms == 5050

    run_ticks(tracker, GOOD, NOON + 6050, NOON + 8000)
    assert tracker.stats.longest_good_streak_ms == 5050


def test_suspend_ends_streak_and_resume_skips_paused_time(tracker):
    run_ticks(tracker, GOOD, NOON, NOON + 2000)
    tracker.suspend()

    assert tracker.last_tick_time is None
    assert tracker.good_streak_start_time is None

    tracker.resume()
    tracker.record_tick(GOOD, NOON + 60000)
    tracker.record_tick(GOOD, NOON + 61000)

    assert tracker.stats.total_ms == 3000
    assert tracker.stats.longest_good_streak_ms == 2000


def test_alert_increments_count_and_notifies_listener():
    heard = []
    tracker = SessionStatsTracker(alert_listener=lambda: heard.append(1))
    tracker.load(NOON)

    tracker.record_alert(NOON)
    tracker.record_alert(NOON + 1000)

    assert tracker.stats.alert_count == 2
    assert len(heard) == 2


def test_every_change_is_persisted_locally():
    store = MemoryStatsStore()
    tracker = SessionStatsTracker(local_store=store)
    tracker.load(NOON)
    run_ticks(tracker, BAD, NOON, NOON + 1000)

    saved = store.load("2026-06-10")
    assert saved.bad_ms == 1000


def test_load_resumes_from_local_store():
    store = MemoryStatsStore()
    store.save(DailyStats(date_key="2026-06-10", total_ms=5000, good_ms=4000, alert_count=2))

    tracker = SessionStatsTracker(local_store=store)
    stats = tracker.load(NOON)

    assert stats.total_ms == 5000
    assert stats.alert_count == 2


# ============================================================================
# DAY ROLLOVER
# ============================================================================

def test_rollover_starts_new_day():
    store = MemoryStatsStore()
    tracker = SessionStatsTracker(local_store=store)
    before_midnight = local_ms(2026, 6, 10, 23, 59, 58)
    tracker.load(before_midnight)

    tracker.record_tick(GOOD, before_midnight)
    tracker.record_tick(GOOD, before_midnight + 1000)
    tracker.record_tick(GOOD, local_ms(2026, 6, 11, 0, 0, 1))

    assert tracker.stats.date_key == "2026-06-11"
    assert tracker.stats.total_ms == 0
    assert store.load("2026-06-10").total_ms == 1000


def test_date_key_is_local_calendar_date():
    assert date_key_for(local_ms(2026, 1, 2, 0, 30)) == "2026-01-02"


# ============================================================================
# REMOTE SYNC
# ============================================================================

def test_sync_disabled_without_subject():
    sink = RecordingSink()
    tracker = SessionStatsTracker(remote_sink=sink)
    tracker.load(NOON)
    tracker.record_tick(GOOD, NOON)

    assert not tracker.remote_enabled
    assert tracker.sync_remote(NOON + 60000) is False
    assert sink.pushes == []


def test_sync_is_coalesced_per_interval():
    sink = RecordingSink()
    tracker = SessionStatsTracker(remote_sink=sink, subject_id="7", sync_interval_ms=30000)
    tracker.load(NOON)

    run_ticks(tracker, GOOD, NOON, NOON + 1000)
    assert tracker.sync_remote(NOON + 1000) is True

    run_ticks(tracker, GOOD, NOON + 1050, NOON + 10000)
    assert tracker.sync_remote(NOON + 10000) is False

    assert tracker.sync_remote(NOON + 31000) is True
    assert len(sink.pushes) == 2
    assert sink.pushes[-1]["total_ms"] == 10000
    assert sink.pushes[-1]["subject_id"] == "7"


def test_clean_snapshot_is_not_pushed():
    sink = RecordingSink()
    tracker = SessionStatsTracker(remote_sink=sink, subject_id="7")
    tracker.load(NOON)
    tracker.record_tick(GOOD, NOON)
    tracker.sync_remote(NOON)

    assert tracker.sync_remote(NOON + 120000) is False
    assert len(sink.pushes) == 1


def test_failed_push_stays_dirty_and_retries():
    sink = RecordingSink(ok=False)
    tracker = SessionStatsTracker(remote_sink=sink, subject_id="7", sync_interval_ms=30000)
    tracker.load(NOON)
    tracker.record_tick(BAD, NOON)

    assert tracker.sync_remote(NOON) is False
    assert tracker.remote_dirty

    sink.ok = True
    assert tracker.sync_remote(NOON + 30000) is True
    assert not tracker.remote_dirty


def test_load_prefers_remote_seed():
    remote = DailyStats(date_key="2026-06-10", total_ms=9000, good_ms=9000,
                        longest_good_streak_ms=1000, alert_count=3)
    tracker = SessionStatsTracker(remote_sink=RecordingSink(seed=remote), subject_id="7")

    stats = tracker.load(NOON)

    assert stats.total_ms == 9000
    assert stats.alert_count == 3


# ============================================================================
# SEED MERGE
# ============================================================================

def test_merge_seed_defaults_to_empty_day():
    assert merge_seed(None, None, "2026-06-10") == DailyStats(date_key="2026-06-10")


def test_merge_seed_keeps_local_when_ahead():
    local = DailyStats(date_key="2026-06-10", total_ms=8000, longest_good_streak_ms=500)
    remote = DailyStats(date_key="2026-06-10", total_ms=6000, longest_good_streak_ms=4000)

    merged = merge_seed(local, remote, "2026-06-10")

    assert merged.total_ms == 8000
    assert merged.longest_good_streak_ms == 4000


def test_live_streak_is_persisted_before_leaving_good():
    store = MemoryStatsStore()
    tracker = SessionStatsTracker(local_store=store)
    tracker.load(NOON)

    run_ticks(tracker, GOOD, NOON, NOON + 4000)

    # Still in GOOD: a crash here must not lose the running streak
    assert tracker.good_streak_start_time == NOON
    assert store.load("2026-06-10").longest_good_streak_ms == 4000


def test_changes_during_a_push_stay_dirty():
    sink = RecordingSink()
    tracker = SessionStatsTracker(remote_sink=sink, subject_id="7")
    tracker.load(NOON)
    tracker.record_tick(GOOD, NOON)

    snapshots = tracker.collect_due_snapshots(NOON)
    tracker.record_tick(GOOD, NOON + 1000)
    failed = tracker.push_snapshots(snapshots)

    assert tracker.finish_sync(snapshots, failed, NOON) is True
    assert tracker.remote_dirty
    assert sink.pushes[0]["total_ms"] == 0


def test_rollover_queues_previous_day_for_next_sync():
    sink = RecordingSink()
    tracker = SessionStatsTracker(remote_sink=sink, subject_id="7", sync_interval_ms=30000)
    before_midnight = local_ms(2026, 6, 10, 23, 59, 58)
    tracker.load(before_midnight)

    tracker.record_tick(GOOD, before_midnight)
    tracker.record_tick(GOOD, before_midnight + 1000)
    tracker.record_tick(GOOD, local_ms(2026, 6, 11, 0, 0, 1))

    # Rollover itself makes no network call
    assert sink.pushes == []

    assert tracker.sync_remote(local_ms(2026, 6, 11, 0, 0, 2)) is True
    assert [push["date_key"] for push in sink.pushes] == ["2026-06-10", "2026-06-11"]
    assert sink.pushes[0]["total_ms"] == 1000


def test_failed_previous_day_push_is_retried():
    sink = RecordingSink(ok=False)
    tracker = SessionStatsTracker(remote_sink=sink, subject_id="7", sync_interval_ms=0)
    tracker.load(local_ms(2026, 6, 10, 23, 59, 59))
    tracker.record_tick(GOOD, local_ms(2026, 6, 10, 23, 59, 59))
    tracker.record_tick(GOOD, local_ms(2026, 6, 11, 0, 0, 1))

    assert tracker.sync_remote(local_ms(2026, 6, 11, 0, 0, 2)) is False
    assert [s.date_key for s in tracker.pending_snapshots] == ["2026-06-10"]

    sink.ok = True
    assert tracker.sync_remote(local_ms(2026, 6, 11, 0, 0, 3)) is True
    assert tracker.pending_snapshots == []
