"""
Simulator tests: scripted pose source and offline replay
"""
from datetime import datetime

from posture_coach.models import PostureState
from posture_coach.notifications import LoggerNotificationSink
from posture_coach.session import build_session_context
from posture_coach.simulator import SyntheticPoseSource, calibrate, main, replay

NOON = datetime(2026, 6, 10, 12, 0, 0).timestamp() * 1000


def steady_source(script):
    return SyntheticPoseSource(script=script, dropout_rate=0.0, jitter=False)


def test_script_phases_loop():
    source = steady_source([(10, "upright"), (5, "away")])
    source.start_ms = 0

    assert source.posture_at(9999) == "upright"
    assert source.posture_at(10000) == "away"
    assert source.posture_at(15000) == "upright"
    assert source.frame_at(12000).primary_pose is None


def test_replay_of_scripted_slouch():
    ctx = build_session_context(notifier=LoggerNotificationSink(muted=True), checkpoint_interval_minutes=10)
    source = steady_source([(20, "slouch"), (20, "upright")])
    calibrate(ctx, source, NOON)

    breaks = replay(ctx, source, duration_s=40, start_ms=NOON)

    stats = ctx.stats.stats
    assert breaks == 0
    assert stats.alert_count == 1
    assert ctx.last_result.state == PostureState.GOOD
    assert stats.bad_ms >= 19000
    assert stats.good_ms + stats.bad_ms <= stats.total_ms


def test_replay_takes_breaks_at_checkpoints():
    ctx = build_session_context(notifier=LoggerNotificationSink(muted=True), checkpoint_interval_minutes=1)
    source = steady_source([(60, "upright")])
    calibrate(ctx, source, NOON)

    breaks = replay(ctx, source, duration_s=300, start_ms=NOON, fps=5)

    # 1 minute window + 2 minute zero-alert break, repeated
    assert breaks == 2
    assert ctx.stats.stats.alert_count == 0


def test_cli_runs_offline(tmp_path):
    main([
        "--minutes", "0.5",
        "--fps", "5",
        "--stats-file", str(tmp_path / "stats.json"),
        "--seed", "1"
    ])
    assert (tmp_path / "stats.json").exists()
