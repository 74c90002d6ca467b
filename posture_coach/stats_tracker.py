# Session Stats Tracker - Good/bad time accounting, streaks, alerts and sync
from datetime import datetime
from typing import Callable, List, Optional

from posture_coach import config
from posture_coach import logger
from posture_coach.models import DailyStats, PostureState
from posture_coach.persistence import MemoryStatsStore, NullPersistenceSink


def date_key_for(now_ms: float) -> str:
    """Calendar date (YYYY-MM-DD) of a ms timestamp in the local timezone"""
    return datetime.fromtimestamp(now_ms / 1000).strftime("%Y-%m-%d")


def merge_seed(local: Optional[DailyStats], remote: Optional[DailyStats], date_key: str) -> DailyStats:
    """
    Choose the starting snapshot for a day

    The remote snapshot wins when it exists, unless the local one has
    tracked more time (remote sync lags behind local writes). The longest
    streak is always the max of both.
    """
    if local is None and remote is None:
        return DailyStats(date_key=date_key)
    if remote is None:
        return local
    if local is None:
        return remote

    chosen = local if local.total_ms > remote.total_ms else remote
    longest = max(local.longest_good_streak_ms, remote.longest_good_streak_ms)
    return chosen.model_copy(update={"longest_good_streak_ms": longest, "date_key": date_key})


class SessionStatsTracker:
    """
    Accumulates DailyStats from classifier ticks

    Every mutation is written to the local store. Remote pushes are
    coalesced and sent from `sync_remote`, no more than once per sync
    interval.
    """

    def __init__(self, local_store=None, remote_sink=None, subject_id=None,
                 sync_interval_ms: float = None,
                 alert_listener: Optional[Callable[[], None]] = None):
        self.local_store = local_store if local_store is not None else MemoryStatsStore()
        self.remote_sink = remote_sink if remote_sink is not None else NullPersistenceSink()
        self.subject_id = subject_id
        self.sync_interval_ms = (config.REMOTE_SYNC_INTERVAL_SECONDS * 1000
                                 if sync_interval_ms is None else sync_interval_ms)
        self.alert_listener = alert_listener or (lambda: None)

        self.stats: Optional[DailyStats] = None
        self.last_tick_time: Optional[float] = None
        self.good_streak_start_time: Optional[float] = None
        self.current_state = PostureState.UNKNOWN

        self.remote_dirty = False
        self.pending_snapshots: List[DailyStats] = []
        self.last_sync_attempt: Optional[float] = None
        self.last_sync_success: Optional[float] = None

    @property
    def remote_enabled(self) -> bool:
        return self.subject_id is not None and self.remote_sink.enabled

    # ------------------------------------------------------------------
    # Loading / rollover
    # ------------------------------------------------------------------

    def fetch_remote(self, date_key: str) -> Optional[DailyStats]:
        """
        Remote snapshot for a date, or None

        Blocking network I/O; the session runner calls this from an executor.
        """
        if not self.remote_enabled:
            return None
        try:
            return self.remote_sink.fetch_daily_stats(self.subject_id, date_key)
        except Exception as e:
            logger.log_error("Remote Stats Load Failed", e, {"date_key": date_key})
            return None

    def load(self, now: float, fetch: bool = True, remote: Optional[DailyStats] = None) -> DailyStats:
        """
        Initialize today's stats from the remote store or local storage

        Args:
            now: Current time in ms
            fetch: Fetch the remote snapshot here (blocking)
            remote: Snapshot already fetched by the caller (used when fetch is False)
        """
        date_key = date_key_for(now)

        local = None
        try:
            local = self.local_store.load(date_key)
        except Exception as e:
            logger.log_error("Local Stats Load Failed", e, {"date_key": date_key})

        if fetch:
            remote = self.fetch_remote(date_key)
        if remote is not None and remote.date_key != date_key:
            remote = None

        self.stats = merge_seed(local, remote, date_key)
        self.last_tick_time = None
        self.good_streak_start_time = None
        self.current_state = PostureState.UNKNOWN

        logger.log_stats("Stats Initialized", {
            "date_key": date_key,
            "source": "remote" if remote is not None else ("local" if local is not None else "new"),
            "total_ms": round(self.stats.total_ms),
            "alert_count": self.stats.alert_count
        })
        return self.stats

    def _check_rollover(self, now: float):
        if self.stats is None:
            self.load(now)
            return

        date_key = date_key_for(now)
        if date_key == self.stats.date_key:
            return

        # Previous day stays in the store under its own key and is queued
        # for the next sync; the frame tick never waits on the network
        self._persist()
        if self.remote_dirty:
            self.pending_snapshots.append(self.stats.model_copy())
            self.remote_dirty = False

        previous = self.stats.date_key
        self.load(now, fetch=False)
        logger.log_stats("Day Rollover", {"from": previous, "to": date_key})

    # ------------------------------------------------------------------
    # Accounting
    # ------------------------------------------------------------------

    def record_tick(self, state: PostureState, now: float) -> DailyStats:
        """
        Account the time since the previous tick to the current state

        Args:
            state: Raw classification for this tick
            now: Tick time in ms
        """
        self._check_rollover(now)
        stats = self.stats

        if self.last_tick_time is not None:
            delta = max(0.0, now - self.last_tick_time)
            stats.total_ms += delta
            if state == PostureState.GOOD:
                stats.good_ms += delta
            elif state == PostureState.BAD:
                stats.bad_ms += delta
        self.last_tick_time = now

        self._update_streak(state, now)
        self.current_state = state
        self._mark_changed()
        return stats

    def _update_streak(self, state: PostureState, now: float):
        if state == PostureState.GOOD:
            if self.good_streak_start_time is None:
                self.good_streak_start_time = now
            else:
                self._keep_longest(now - self.good_streak_start_time)
        elif self.good_streak_start_time is not None:
            # Leaving GOOD finalizes the streak
            self._keep_longest(now - self.good_streak_start_time)
            self.good_streak_start_time = None

    def _keep_longest(self, streak_ms: float):
        if streak_ms > self.stats.longest_good_streak_ms:
            self.stats.longest_good_streak_ms = streak_ms

    def record_alert(self, now: float) -> DailyStats:
        """Count one posture alert and forward it to the checkpoint window"""
        self._check_rollover(now)
        self.stats.alert_count += 1
        self.alert_listener()
        self._mark_changed()
        logger.log_stats("Alert Counted", {
            "date_key": self.stats.date_key,
            "alert_count": self.stats.alert_count
        })
        return self.stats

    def suspend(self):
        """
        Stop accruing time (break started or session paused)

        The running good streak ends at the last accounted tick.
        """
        if self.good_streak_start_time is not None and self.last_tick_time is not None:
            self._keep_longest(self.last_tick_time - self.good_streak_start_time)
            self._mark_changed()
        self.good_streak_start_time = None
        self.last_tick_time = None
        self.current_state = PostureState.UNKNOWN

    def resume(self):
        """Resume accruing; the next tick only sets the reference time"""
        self.last_tick_time = None
        self.good_streak_start_time = None

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def _mark_changed(self):
        self._persist()
        if self.remote_enabled:
            self.remote_dirty = True

    def _persist(self) -> bool:
        try:
            self.local_store.save(self.stats)
            return True
        except Exception as e:
            logger.log_error("Local Stats Save Failed", e, {"date_key": self.stats.date_key})
            return False

    def collect_due_snapshots(self, now: float, force: bool = False) -> List[DailyStats]:
        """
        Snapshots to push if a sync is due

        Copies are taken on the event loop and the dirty flag is cleared
        here, so changes made while a push is in flight mark it dirty again.
        """
        if not self.remote_enabled:
            return []

        if not force and self.last_sync_attempt is not None:
            if now - self.last_sync_attempt < self.sync_interval_ms:
                return []

        snapshots = self.pending_snapshots
        self.pending_snapshots = []
        if self.remote_dirty and self.stats is not None:
            snapshots.append(self.stats.model_copy())
            self.remote_dirty = False

        if snapshots:
            self.last_sync_attempt = now
        return snapshots

    def push_snapshots(self, snapshots: List[DailyStats]) -> List[DailyStats]:
        """
        Send snapshots to the remote sink

        Blocking network I/O that touches no tracker state, so it can run
        in an executor thread.

        Returns:
            The snapshots that failed to push
        """
        failed = []
        for stats in snapshots:
            try:
                ok = self.remote_sink.upsert_daily_stats(
                    self.subject_id, stats.date_key, stats.total_ms, stats.good_ms,
                    stats.bad_ms, stats.longest_good_streak_ms, stats.alert_count
                )
            except Exception as e:
                logger.log_error("Stats Sync Failed", e, {"date_key": stats.date_key})
                ok = False
            if not ok:
                failed.append(stats)
        return failed

    def finish_sync(self, snapshots: List[DailyStats], failed: List[DailyStats], now: float) -> bool:
        """Requeue failed snapshots for the next sync interval"""
        for stats in failed:
            if self.stats is not None and stats.date_key == self.stats.date_key:
                self.remote_dirty = True
            else:
                self.pending_snapshots.append(stats)

        if failed:
            return False

        self.last_sync_success = now
        latest = snapshots[-1]
        logger.log_sync("Stats Pushed", {
            "subject_id": self.subject_id,
            "date_key": latest.date_key,
            "snapshots": len(snapshots),
            "total_ms": round(latest.total_ms)
        })
        return True

    def sync_remote(self, now: float, force: bool = False) -> bool:
        """
        Push pending and current snapshots if due (blocking)

        A failed push stays dirty and is retried on the next sync interval.

        Returns:
            True if a push succeeded
        """
        snapshots = self.collect_due_snapshots(now, force)
        if not snapshots:
            return False
        failed = self.push_snapshots(snapshots)
        return self.finish_sync(snapshots, failed, now)
