# Display helpers for daily stats and break countdowns
from typing import Dict, Optional

from posture_coach import config
from posture_coach.models import DailyStats


def format_time(ms: float) -> str:
    """Compact duration: 0s, 42s, 7m"""
    if ms < 1000:
        return "0s"
    seconds = int(ms / 1000 + 0.5)
    if seconds < 60:
        return f"{seconds}s"
    return f"{seconds // 60}m"


def format_time_hms(ms: float) -> str:
    total_seconds = int(ms // 1000)
    hours = total_seconds // 3600
    minutes = (total_seconds % 3600) // 60
    seconds = total_seconds % 60
    return f"{hours:02d}:{minutes:02d}:{seconds:02d}"


def format_countdown(ms: Optional[float]) -> str:
    if ms is None:
        return "--"
    total_seconds = int(max(0.0, ms) // 1000)
    return f"{total_seconds // 60}:{total_seconds % 60:02d}"


def quality_score(stats: DailyStats) -> float:
    """Share of classified (good + bad) time spent in good posture, 0-100"""
    classified_ms = stats.good_ms + stats.bad_ms
    if classified_ms <= 0:
        return 0.0
    return stats.good_ms / classified_ms * 100


def discipline_feedback(alert_count: int) -> str:
    if alert_count == 0:
        return "Perfect discipline so far!"
    if alert_count < config.DISCIPLINE_MINOR_ALERTS:
        return "Minor adjustments needed."
    return "Take more frequent breaks."


def build_stats_summary(stats: DailyStats) -> Dict:
    return {
        "date_key": stats.date_key,
        "session_time": format_time_hms(stats.total_ms),
        "good_time": format_time(stats.good_ms),
        "bad_time": format_time(stats.bad_ms),
        "quality_score": round(quality_score(stats)),
        "longest_good_streak": format_time(stats.longest_good_streak_ms),
        "alert_count": stats.alert_count,
        "feedback": discipline_feedback(stats.alert_count)
    }
