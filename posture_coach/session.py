"""
Posture Session Runner

Wires calibration, classification, stats and break scheduling together
and drives them from two asyncio tasks:
- frame task (~20 FPS): detect -> classify -> account stats -> alert edge
- background task (~1 Hz): checkpoint/break expiry and remote sync
"""
import asyncio
import time
from dataclasses import dataclass, field
from typing import Callable, Dict, Optional

from posture_coach import config
from posture_coach import logger
from posture_coach.break_scheduler import BreakScheduler
from posture_coach.calibration import CalibrationManager
from posture_coach.classifier import PostureClassifier
from posture_coach.models import ClassificationResult, PoseFrame
from posture_coach.notifications import NullNotificationSink
from posture_coach.stats_tracker import SessionStatsTracker, date_key_for
from posture_coach.summary import build_stats_summary, format_countdown


def wall_clock_ms() -> float:
    return time.time() * 1000


@dataclass
class SessionContext:
    """All mutable state of one tracking session"""
    calibration: CalibrationManager
    classifier: PostureClassifier
    stats: SessionStatsTracker
    scheduler: BreakScheduler
    notifier: object = field(default_factory=NullNotificationSink)
    frames_processed: int = 0
    last_result: Optional[ClassificationResult] = None


def build_session_context(local_store=None, remote_sink=None, subject_id=None,
                          notifier=None, threshold_multiplier: float = None,
                          checkpoint_interval_minutes: float = None,
                          bad_posture_duration_ms: float = None,
                          good_posture_required_ms: float = None,
                          sync_interval_ms: float = None,
                          zero_alert_policy: str = None) -> SessionContext:
    """
    Create a SessionContext with every collaborator wired

    Unset arguments fall back to config; missing sinks get no-op stand-ins.
    """
    scheduler = BreakScheduler(
        interval_minutes=checkpoint_interval_minutes,
        zero_alert_policy=zero_alert_policy
    )
    stats = SessionStatsTracker(
        local_store=local_store,
        remote_sink=remote_sink,
        subject_id=subject_id,
        sync_interval_ms=sync_interval_ms,
        alert_listener=scheduler.record_alert
    )
    return SessionContext(
        calibration=CalibrationManager(threshold_multiplier=threshold_multiplier),
        classifier=PostureClassifier(
            bad_duration_ms=bad_posture_duration_ms,
            good_required_ms=good_posture_required_ms
        ),
        stats=stats,
        scheduler=scheduler,
        notifier=notifier if notifier is not None else NullNotificationSink()
    )


# ============================================================================
# TICK OPERATIONS
# ============================================================================

def process_frame(ctx: SessionContext, frame: Optional[PoseFrame], now: float) -> Optional[ClassificationResult]:
    """
    One frame tick: classification -> stats accounting -> alert edge

    Args:
        ctx: Session context
        frame: Detected poses (None when detection failed)
        now: Tick time in ms

    Returns:
        ClassificationResult, or None when not calibrated or on break
    """
    if not ctx.calibration.is_calibrated or ctx.scheduler.on_break:
        return None

    result = ctx.classifier.classify(frame, ctx.calibration.profile, now)
    ctx.stats.record_tick(result.state, now)

    if result.alert_edge:
        ctx.stats.record_alert(now)
        ctx.notifier.posture_alert()

    ctx.frames_processed += 1
    ctx.last_result = result

    if ctx.frames_processed % config.FRAME_LOG_EVERY == 0:
        stats = ctx.stats.stats
        logger.log_classifier(f"Frame #{ctx.frames_processed} Processed", {
            "state": result.state.value,
            "offset_change": f"{result.offset_change:.1f}" if result.offset_change is not None else "N/A",
            "bad_elapsed_ms": round(result.bad_elapsed_ms),
            "good_ms": round(stats.good_ms),
            "bad_ms": round(stats.bad_ms)
        })

    return result


def _resume_after_break(ctx: SessionContext, completed: bool):
    ctx.stats.resume()
    ctx.classifier.reset()
    ctx.notifier.break_ended(completed)


def background_tick(ctx: SessionContext, now: float, sync: bool = True) -> Optional[str]:
    """
    One background tick: break expiry / checkpoint evaluation, then remote sync

    Args:
        sync: Push stats inline (blocking). The async runner passes False
              and pushes from an executor instead.

    Returns:
        "break_started", "break_ended" or None
    """
    event = None
    if ctx.calibration.is_calibrated or ctx.scheduler.on_break:
        event = ctx.scheduler.tick(now)

    if event == "break_started":
        ctx.stats.suspend()
        ctx.notifier.break_started(ctx.scheduler.current_break)
    elif event == "break_ended":
        _resume_after_break(ctx, completed=True)

    if sync:
        ctx.stats.sync_remote(now)
    return event


def dismiss_break(ctx: SessionContext, now: float) -> bool:
    """End the active break early; behaves like reaching its end time"""
    finished = ctx.scheduler.end_break(now, completed=False)
    if finished is None:
        return False
    _resume_after_break(ctx, completed=False)
    return True


# ============================================================================
# ASYNC RUNNER
# ============================================================================

class PostureSession:
    """
    Runs a SessionContext against a pose source

    The pose source must provide `async detect(timestamp_ms) -> PoseFrame`.
    """

    def __init__(self, ctx: SessionContext, pose_source,
                 clock: Callable[[], float] = None,
                 fps: float = None, background_tick_seconds: float = None):
        self.ctx = ctx
        self.pose_source = pose_source
        self.clock = clock or wall_clock_ms
        self.fps = fps or config.FRAME_FPS
        self.background_tick_seconds = background_tick_seconds or config.BACKGROUND_TICK_SECONDS
        self.frame_task: Optional[asyncio.Task] = None
        self.background_task: Optional[asyncio.Task] = None
        self.sync_task: Optional[asyncio.Task] = None
        self.latest_frame: Optional[PoseFrame] = None
        self.detection_failures = 0

    @property
    def is_running(self) -> bool:
        return self.frame_task is not None and not self.frame_task.done()

    async def _detect(self) -> Optional[PoseFrame]:
        now = self.clock()
        try:
            frame = await self.pose_source.detect(now)
        except Exception as e:
            self.detection_failures += 1
            if self.detection_failures == 1 or self.detection_failures % config.FRAME_LOG_EVERY == 0:
                logger.log_error("Pose Detection Failed", e, {"failures": self.detection_failures})
            return None
        self.latest_frame = frame
        return frame

    async def _frame_loop(self):
        frame_interval = 1.0 / self.fps
        try:
            while True:
                frame_start = time.monotonic()

                if not self.ctx.scheduler.on_break:
                    frame = await self._detect()
                    try:
                        process_frame(self.ctx, frame, self.clock())
                    except Exception as e:
                        logger.log_error("Frame Processing Error", e, {
                            "frames_processed": self.ctx.frames_processed
                        })

                # Overran ticks are skipped, not replayed
                processing_time = time.monotonic() - frame_start
                await asyncio.sleep(max(0, frame_interval - processing_time))
        except asyncio.CancelledError:
            logger.log_info("Frame Loop Cancelled", {"frames_processed": self.ctx.frames_processed})
            raise

    async def _sync_remote(self, now: float, force: bool = False) -> bool:
        """Push due snapshots from an executor so the frame loop keeps running"""
        stats = self.ctx.stats
        snapshots = stats.collect_due_snapshots(now, force)
        if not snapshots:
            return False

        loop = asyncio.get_running_loop()
        failed = await loop.run_in_executor(None, stats.push_snapshots, snapshots)
        return stats.finish_sync(snapshots, failed, now)

    def _schedule_sync(self, now: float):
        # One push in flight at a time; later ticks pick up newer changes
        if self.sync_task is not None and not self.sync_task.done():
            return
        self.sync_task = asyncio.create_task(self._sync_remote(now))

    async def _background_loop(self):
        try:
            while True:
                try:
                    now = self.clock()
                    event = background_tick(self.ctx, now, sync=False)
                    if event:
                        logger.log_info("Background Event", {"event": event})
                    self._schedule_sync(now)
                except Exception as e:
                    logger.log_error("Background Tick Error", e)
                await asyncio.sleep(self.background_tick_seconds)
        except asyncio.CancelledError:
            logger.log_info("Background Loop Cancelled", {})
            raise

    async def start(self) -> Dict:
        if self.is_running:
            return {"success": False, "status": "already_running"}

        now = self.clock()
        if self.ctx.stats.stats is None:
            loop = asyncio.get_running_loop()
            remote = await loop.run_in_executor(None, self.ctx.stats.fetch_remote, date_key_for(now))
            self.ctx.stats.load(now, fetch=False, remote=remote)
        self.ctx.stats.resume()
        if self.ctx.calibration.is_calibrated:
            self.ctx.scheduler.start(now)

        self.frame_task = asyncio.create_task(self._frame_loop())
        self.background_task = asyncio.create_task(self._background_loop())

        logger.log_lifecycle("SESSION START", f"{self.fps} FPS")
        return {"success": True, "status": "started"}

    async def stop(self) -> Dict:
        """Cancel both loops and flush stats"""
        tasks = [t for t in (self.frame_task, self.background_task) if t is not None]
        if not tasks:
            return {"success": False, "status": "not_running"}

        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        self.frame_task = None
        self.background_task = None

        if self.sync_task is not None:
            await asyncio.gather(self.sync_task, return_exceptions=True)
            self.sync_task = None

        now = self.clock()
        self.ctx.stats.suspend()
        if self.ctx.stats.stats is not None:
            await self._sync_remote(now, force=True)

        logger.log_lifecycle("SESSION END", f"{self.ctx.frames_processed} frames")
        return {"success": True, "status": "stopped"}

    # ------------------------------------------------------------------
    # User actions
    # ------------------------------------------------------------------

    async def _frame_for_confirmation(self, frame: Optional[PoseFrame]) -> Optional[PoseFrame]:
        if frame is not None:
            return frame
        return await self._detect()

    def start_calibration(self):
        """(Re)start calibration from the upright step, discarding any profile"""
        if self.ctx.calibration.is_calibrated:
            self.ctx.stats.suspend()
        self.ctx.calibration.start()
        return self.ctx.calibration.stage

    async def confirm_upright(self, frame: Optional[PoseFrame] = None):
        """Confirm the upright pose (uses a fresh detection if no frame given)"""
        frame = await self._frame_for_confirmation(frame)
        was_calibrated = self.ctx.calibration.is_calibrated
        stage = self.ctx.calibration.confirm_upright(frame)
        if was_calibrated:
            # Re-calibration: no accrual until the new profile exists
            self.ctx.stats.suspend()
        return stage

    async def confirm_relaxed(self, frame: Optional[PoseFrame] = None):
        frame = await self._frame_for_confirmation(frame)
        profile = self.ctx.calibration.confirm_relaxed(frame)

        # New calibration starts a fresh episode and checkpoint window
        self.ctx.classifier.reset()
        self.ctx.stats.resume()
        self.ctx.scheduler.start(self.clock())
        return profile

    def set_threshold_multiplier(self, value: float):
        return self.ctx.calibration.set_threshold_multiplier(value)

    def dismiss_break(self) -> bool:
        return dismiss_break(self.ctx, self.clock())

    def status(self) -> Dict:
        now = self.clock()
        ctx = self.ctx
        profile = ctx.calibration.profile
        stats = ctx.stats.stats
        return {
            "running": self.is_running,
            "calibration_stage": ctx.calibration.stage.value,
            "threshold_px": profile.threshold_px if profile else None,
            "threshold_multiplier": ctx.calibration.threshold_multiplier,
            "posture_state": ctx.classifier.state.value,
            "alert_active": ctx.classifier.alert_active,
            "on_break": ctx.scheduler.on_break,
            "break_remaining": format_countdown(ctx.scheduler.break_remaining_ms(now)),
            "next_checkpoint": format_countdown(ctx.scheduler.time_until_checkpoint(now)),
            "frames_processed": ctx.frames_processed,
            "stats": build_stats_summary(stats) if stats else None
        }
