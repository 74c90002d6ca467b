"""
Synthetic Pose Source & Session Simulator

Simulates a webcam pose model feeding the posture coach
- Random-walk jitter around an upright or slouched pose
- Scripted phases (upright / slouch / away)
- Offline replay at simulated time, or a real-time run on the asyncio loops

Usage:
    python -m posture_coach.simulator --minutes 30 --checkpoint-minutes 10
    python -m posture_coach.simulator --realtime --minutes 1
"""

import argparse
import asyncio
import random
import sys
from typing import List, Optional, Tuple

from posture_coach import config
from posture_coach import logger
from posture_coach.calibration import CalibrationError
from posture_coach.models import Keypoint, Pose, PoseFrame
from posture_coach.notifications import LoggerNotificationSink
from posture_coach.persistence import HttpStatsSink, LocalStatsStore
from posture_coach.session import (
    PostureSession, background_tick, build_session_context, dismiss_break, process_frame, wall_clock_ms
)
from posture_coach.summary import build_stats_summary

# Pose geometry (pixels) for a subject ~60cm from a 640x480 camera
SHOULDER_Y = 300.0
SHOULDER_SPAN = 160.0
CENTER_X = 320.0
POSTURE_OFFSETS = {
    "upright": -50.0,   # Nose 50px above the shoulder line
    "slouch": -20.0,    # Head dropped towards the shoulders
}

# Random walk configuration
JITTER_MAX = 1.5  # Max px change per frame
JITTER_LIMIT = 4.0  # Max px drift from the target pose

DEFAULT_SCRIPT = [
    (120, "upright"),
    (60, "slouch"),
    (2, "upright"),
    (45, "slouch"),
    (10, "away"),
    (180, "upright"),
    (90, "slouch"),
]


class JitterTracker:
    """Tracks keypoint noise with a bounded random walk"""

    def __init__(self):
        self.current = {"nose_y": 0.0, "span": 0.0}

    def next_values(self):
        for key, value in self.current.items():
            delta = random.uniform(-JITTER_MAX, JITTER_MAX)
            self.current[key] = max(-JITTER_LIMIT, min(JITTER_LIMIT, value + delta))
        return dict(self.current)


def build_pose(offset: float, span: float = SHOULDER_SPAN, score: float = 0.9) -> Pose:
    """Pose whose nose sits `offset` px from the shoulder line"""
    half_span = span / 2
    return Pose(keypoints=[
        Keypoint(name=config.NOSE, x=CENTER_X, y=SHOULDER_Y + offset, score=score),
        Keypoint(name=config.LEFT_SHOULDER, x=CENTER_X + half_span, y=SHOULDER_Y, score=score),
        Keypoint(name=config.RIGHT_SHOULDER, x=CENTER_X - half_span, y=SHOULDER_Y, score=score),
    ])


class SyntheticPoseSource:
    """
    Scripted pose generator implementing the pose source contract

    The script is a list of (seconds, posture) phases that loops forever.
    """

    def __init__(self, script: List[Tuple[float, str]] = None, dropout_rate: float = 0.01,
                 jitter: bool = True, start_ms: Optional[float] = None):
        self.script = script or DEFAULT_SCRIPT
        self.cycle_ms = sum(seconds for seconds, _ in self.script) * 1000
        self.dropout_rate = dropout_rate
        self.tracker = JitterTracker() if jitter else None
        self.start_ms = start_ms
        self.forced_posture: Optional[str] = None

    def posture_at(self, timestamp_ms: float) -> str:
        if self.forced_posture:
            return self.forced_posture
        if self.start_ms is None:
            self.start_ms = timestamp_ms
        position = (timestamp_ms - self.start_ms) % self.cycle_ms
        for seconds, posture in self.script:
            if position < seconds * 1000:
                return posture
            position -= seconds * 1000
        return self.script[-1][1]

    def frame_at(self, timestamp_ms: float) -> PoseFrame:
        posture = self.posture_at(timestamp_ms)
        dropped = self.forced_posture is None and random.random() < self.dropout_rate

        if posture == "away" or dropped:
            return PoseFrame(poses=[], timestamp_ms=timestamp_ms)

        noise = self.tracker.next_values() if self.tracker else {"nose_y": 0.0, "span": 0.0}
        pose = build_pose(POSTURE_OFFSETS[posture] + noise["nose_y"], SHOULDER_SPAN + noise["span"])
        return PoseFrame(poses=[pose], timestamp_ms=timestamp_ms)

    async def detect(self, timestamp_ms: float) -> PoseFrame:
        return self.frame_at(timestamp_ms)


def calibrate(ctx, source: SyntheticPoseSource, now: float):
    """Run both calibration steps against the synthetic subject"""
    source.forced_posture = "upright"
    ctx.calibration.confirm_upright(source.frame_at(now))
    source.forced_posture = "slouch"
    ctx.calibration.confirm_relaxed(source.frame_at(now))
    source.forced_posture = None


def replay(ctx, source: SyntheticPoseSource, duration_s: float, fps: float = None,
           start_ms: float = None, auto_dismiss_breaks: bool = False):
    """
    Run a session at simulated time (no sleeping)

    Frame ticks every 1/fps seconds; background tick every second.

    Returns:
        Number of breaks started
    """
    fps = fps or config.FRAME_FPS
    step_ms = 1000.0 / fps
    now = wall_clock_ms() if start_ms is None else start_ms
    end = now + duration_s * 1000
    next_background = now
    breaks = 0

    ctx.stats.load(now)
    ctx.scheduler.start(now)
    source.start_ms = now

    while now < end:
        if now >= next_background:
            event = background_tick(ctx, now)
            next_background += 1000
            if event == "break_started":
                breaks += 1
                if auto_dismiss_breaks:
                    dismiss_break(ctx, now)

        if not ctx.scheduler.on_break:
            process_frame(ctx, source.frame_at(now), now)
        now += step_ms

    ctx.stats.suspend()
    return breaks


async def run_realtime(session: PostureSession, duration_s: float):
    await session.start()
    try:
        await asyncio.sleep(duration_s)
    finally:
        await session.stop()


def main(argv=None):
    parser = argparse.ArgumentParser(description="Posture coach session simulator")
    parser.add_argument("--minutes", type=float, default=30.0, help="Session length in minutes")
    parser.add_argument("--fps", type=float, default=config.FRAME_FPS, help="Frame rate")
    parser.add_argument("--checkpoint-minutes", type=float, default=config.CHECKPOINT_INTERVAL_MINUTES)
    parser.add_argument("--multiplier", type=float, default=config.THRESHOLD_MULTIPLIER,
                        help="Threshold multiplier (0.4-0.8)")
    parser.add_argument("--zero-alert-policy", choices=config.ZERO_ALERT_BREAK_POLICIES,
                        default=config.ZERO_ALERT_BREAK_POLICY)
    parser.add_argument("--stats-file", default=config.LOCAL_STATS_PATH, help="Local stats JSON file")
    parser.add_argument("--token", help="JWT for pushing stats to the sync API")
    parser.add_argument("--subject-id", help="Subject id the token belongs to")
    parser.add_argument("--api-url", default=config.REMOTE_API_BASE_URL)
    parser.add_argument("--realtime", action="store_true", help="Run on the asyncio loops in real time")
    parser.add_argument("--seed", type=int, help="Random seed")
    args = parser.parse_args(argv)

    if args.seed is not None:
        random.seed(args.seed)

    remote_sink = None
    if args.token:
        remote_sink = HttpStatsSink(token=args.token, base_url=args.api_url)

    ctx = build_session_context(
        local_store=LocalStatsStore(args.stats_file),
        remote_sink=remote_sink,
        subject_id=args.subject_id if args.token else None,
        notifier=LoggerNotificationSink(),
        threshold_multiplier=args.multiplier,
        checkpoint_interval_minutes=args.checkpoint_minutes,
        zero_alert_policy=args.zero_alert_policy
    )
    source = SyntheticPoseSource()

    logger.log_lifecycle("SIMULATION", f"{args.minutes:g} min @ {args.fps:g} FPS")

    try:
        calibrate(ctx, source, wall_clock_ms())
    except CalibrationError as e:
        logger.log_error("Calibration Failed", e)
        sys.exit(1)

    if args.realtime:
        session = PostureSession(ctx, source, fps=args.fps)
        asyncio.run(run_realtime(session, args.minutes * 60))
        breaks = ctx.scheduler.breaks_taken
    else:
        breaks = replay(ctx, source, args.minutes * 60, fps=args.fps)
        ctx.stats.sync_remote(wall_clock_ms(), force=True)

    summary = build_stats_summary(ctx.stats.stats)
    summary["breaks"] = breaks
    logger.log_success("Simulation Complete", summary)


if __name__ == "__main__":
    main()
