# Break Scheduler - Checkpoint-based adaptive breaks
from typing import Optional, Tuple

from posture_coach import config
from posture_coach import logger
from posture_coach.models import BreakSession, CheckpointWindow


def select_break(alert_count: int, interval_minutes: float,
                 zero_alert_policy: str = None) -> Tuple[int, str]:
    """
    Pick a break length from the alert rate of one checkpoint window

    Args:
        alert_count: Alerts counted in the window
        interval_minutes: Window length in minutes
        zero_alert_policy: "mandatory" (zero alerts -> lowest tier) or "skip"

    Returns:
        Tuple of (break minutes, reason). Minutes is 0 when no break is due.
    """
    if zero_alert_policy is None:
        zero_alert_policy = config.ZERO_ALERT_BREAK_POLICY
    if zero_alert_policy not in config.ZERO_ALERT_BREAK_POLICIES:
        raise ValueError(f"Unknown zero-alert break policy: {zero_alert_policy}")

    if alert_count == 0 and zero_alert_policy == "skip":
        return 0, ""

    alert_rate = alert_count / interval_minutes  # alerts per minute

    for min_rate, minutes, label in config.BREAK_TIERS:
        if alert_rate >= min_rate:
            reason = (f"{label} alert rate (~{alert_rate:.2f}/min) over last "
                      f"{interval_minutes:g}m ({alert_count} alerts).")
            return minutes, reason

    return 0, ""


class BreakScheduler:
    """
    Owns the checkpoint window and the (single) active break

    `tick` is driven by the ~1 Hz background task, independent of the
    frame loop, so expiry is detected while frame processing is paused.
    """

    def __init__(self, interval_minutes: float = None, zero_alert_policy: str = None):
        self.interval_minutes = config.CHECKPOINT_INTERVAL_MINUTES if interval_minutes is None else interval_minutes
        self.zero_alert_policy = zero_alert_policy or config.ZERO_ALERT_BREAK_POLICY
        if self.zero_alert_policy not in config.ZERO_ALERT_BREAK_POLICIES:
            raise ValueError(f"Unknown zero-alert break policy: {self.zero_alert_policy}")
        if self.interval_minutes <= 0:
            raise ValueError("Checkpoint interval must be positive")
        self.window = CheckpointWindow(interval_ms=self.interval_minutes * 60 * 1000)
        self.current_break = BreakSession()
        self.breaks_taken = 0

    @property
    def on_break(self) -> bool:
        return self.current_break.active

    def start(self, now: float):
        """Open a fresh checkpoint window"""
        self.window.window_start = now
        self.window.alerts_in_window = 0

    def record_alert(self):
        self.window.alerts_in_window += 1

    def time_until_checkpoint(self, now: float) -> Optional[float]:
        if self.window.window_start is None or self.on_break:
            return None
        return max(0.0, self.window.interval_ms - (now - self.window.window_start))

    def break_remaining_ms(self, now: float) -> Optional[float]:
        if not self.on_break:
            return None
        return max(0.0, self.current_break.end_time - now)

    def evaluate_checkpoint(self, now: float) -> Optional[Tuple[int, str]]:
        """
        Close the window if it has run its full interval

        Returns:
            (minutes, reason) when a window was evaluated, else None
        """
        if self.window.window_start is None:
            return None
        if now - self.window.window_start < self.window.interval_ms:
            return None

        alerts = self.window.alerts_in_window
        minutes, reason = select_break(alerts, self.interval_minutes, self.zero_alert_policy)

        logger.log_break("Checkpoint Evaluated", {
            "alerts": alerts,
            "rate_per_min": f"{alerts / self.interval_minutes:.2f}",
            "break_minutes": minutes
        })

        self.start(now)
        return minutes, reason

    def tick(self, now: float) -> Optional[str]:
        """
        Background tick

        Returns:
            "break_started", "break_ended" or None
        """
        if self.on_break:
            if now >= self.current_break.end_time:
                self.end_break(now, completed=True)
                return "break_ended"
            return None

        evaluated = self.evaluate_checkpoint(now)
        if evaluated is None:
            return None

        minutes, reason = evaluated
        if minutes <= 0:
            return None

        self.begin_break(now, minutes, reason)
        return "break_started"

    def begin_break(self, now: float, minutes: int, reason: str) -> BreakSession:
        if self.on_break:
            return self.current_break

        self.current_break = BreakSession(
            active=True,
            start_time=now,
            end_time=now + minutes * 60 * 1000,
            duration_minutes=minutes,
            reason=reason
        )
        self.breaks_taken += 1
        logger.log_break("Break Started", {
            "minutes": minutes,
            "reason": reason
        })
        return self.current_break

    def end_break(self, now: float, completed: bool = False) -> Optional[BreakSession]:
        """
        Finish the active break (expiry or manual dismissal)

        The checkpoint window restarts so alerts from before the break
        cannot trigger another one right away.
        """
        if not self.on_break:
            return None

        finished = self.current_break
        self.current_break = BreakSession()
        self.start(now)

        logger.log_break("Break Ended", {
            "completed": completed,
            "planned_minutes": finished.duration_minutes
        })
        return finished
