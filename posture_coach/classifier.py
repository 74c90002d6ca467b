# Posture Classifier - Per-frame classification with alert hysteresis
from typing import Optional

from posture_coach import config
from posture_coach import logger
from posture_coach.models import CalibrationProfile, ClassificationResult, PoseFrame, PostureState
from posture_coach.pose_utils import measure_pose


def classify_raw(frame: Optional[PoseFrame], profile: CalibrationProfile):
    """
    Classify a single frame without any temporal smoothing

    Args:
        frame: Detected poses for this tick (None if detection failed)
        profile: Active calibration profile

    Returns:
        Tuple of (PostureState, offset_change or None)
    """
    pose = frame.primary_pose if frame is not None else None
    measured = measure_pose(pose)
    if measured is None:
        return PostureState.UNKNOWN, None

    current_offset, current_span = measured

    # Shoulders on top of each other (side view): no distance reference
    if current_span <= 0 or profile.shoulder_span <= 0:
        return PostureState.UNKNOWN, None

    # Normalize to the distance the subject sat at during calibration
    distance_scale = current_span / profile.shoulder_span
    normalized_offset = current_offset / distance_scale

    offset_change = normalized_offset - profile.upright_offset
    if offset_change > profile.threshold_px:
        return PostureState.BAD, offset_change
    return PostureState.GOOD, offset_change


class PostureClassifier:
    """
    Raw per-tick posture state plus a debounced alert edge

    The bad timer starts on the first BAD tick and survives short non-bad
    flickers; it is cleared only after `good_required_ms` of continuous
    non-bad ticks. The alert edge fires once per episode when the timer
    reaches `bad_duration_ms`.
    """

    def __init__(self, bad_duration_ms: float = None, good_required_ms: float = None):
        self.bad_duration_ms = config.BAD_POSTURE_DURATION_MS if bad_duration_ms is None else bad_duration_ms
        self.good_required_ms = config.GOOD_POSTURE_REQUIRED_MS if good_required_ms is None else good_required_ms
        self.state = PostureState.UNKNOWN
        self.bad_posture_start_time: Optional[float] = None
        self.good_posture_start_time: Optional[float] = None
        self.alert_issued = False

    def reset(self):
        """Forget any running episode (used after a break)"""
        self.state = PostureState.UNKNOWN
        self.bad_posture_start_time = None
        self.good_posture_start_time = None
        self.alert_issued = False

    @property
    def alert_active(self) -> bool:
        return self.alert_issued and self.bad_posture_start_time is not None

    def classify(self, frame: Optional[PoseFrame], profile: CalibrationProfile,
                 now: float = None) -> ClassificationResult:
        """
        Classify one tick

        Args:
            frame: Detected poses (None when detection failed)
            profile: Active calibration profile
            now: Tick time in ms (defaults to the frame timestamp)

        Returns:
            ClassificationResult with the raw state and alert edge
        """
        if now is None:
            now = frame.timestamp_ms

        state, offset_change = classify_raw(frame, profile)
        alert_edge = False

        if state == PostureState.BAD:
            self.good_posture_start_time = None

            if self.bad_posture_start_time is None:
                self.bad_posture_start_time = now
                logger.log_classifier("Bad Posture Timer Started", {
                    "offset_change": round(offset_change, 1),
                    "threshold_px": profile.threshold_px
                })

            elapsed = now - self.bad_posture_start_time
            if elapsed >= self.bad_duration_ms and not self.alert_issued:
                self.alert_issued = True
                alert_edge = True
                logger.log_warning("Posture Alert", {
                    "bad_for_ms": round(elapsed),
                    "offset_change": round(offset_change, 1)
                })
        elif self.bad_posture_start_time is not None:
            if self.good_posture_start_time is None:
                self.good_posture_start_time = now
            elif now - self.good_posture_start_time >= self.good_required_ms:
                self.bad_posture_start_time = None
                self.good_posture_start_time = None
                self.alert_issued = False
                logger.log_classifier("Bad Posture Episode Cleared", {"state": state.value})
        else:
            self.good_posture_start_time = None

        self.state = state
        bad_elapsed = 0.0
        if self.bad_posture_start_time is not None:
            bad_elapsed = now - self.bad_posture_start_time

        return ClassificationResult(
            state=state,
            alert_edge=alert_edge,
            offset_change=offset_change,
            bad_elapsed_ms=bad_elapsed
        )
