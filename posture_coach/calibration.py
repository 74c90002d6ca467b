# Calibration Manager - Two-stage upright/relaxed calibration
from enum import Enum
from typing import Optional

from posture_coach import config
from posture_coach import logger
from posture_coach.models import CalibrationProfile, PoseFrame
from posture_coach.pose_utils import clamp_multiplier, compute_threshold_px, measure_pose


class CalibrationStage(str, Enum):
    NOT_STARTED = "not_started"
    AWAITING_UPRIGHT = "awaiting_upright"
    AWAITING_RELAXED = "awaiting_relaxed"
    CALIBRATED = "calibrated"


class CalibrationError(Exception):
    """Calibration step could not be confirmed; the stage does not advance."""
    kind = "calibration_error"


class PoseNotDetected(CalibrationError):
    kind = "pose_not_detected"

    def __init__(self, message: str = "No pose detected. Please ensure your upper body is visible and try again."):
        super().__init__(message)


class KeypointsMissing(CalibrationError):
    kind = "keypoints_missing"

    def __init__(self, message: str = "Could not detect key points (nose and shoulders). "
                                      "Please adjust your position and try again."):
        super().__init__(message)


class CalibrationManager:
    """
    Turns two confirmed poses into a CalibrationProfile

    The profile is only ever replaced as a whole, so a classifier reading
    `profile` sees either the previous calibration or the new one.
    """

    def __init__(self, threshold_multiplier: float = None):
        if threshold_multiplier is None:
            threshold_multiplier = config.THRESHOLD_MULTIPLIER
        self.threshold_multiplier = clamp_multiplier(threshold_multiplier)
        self.stage = CalibrationStage.NOT_STARTED
        self.profile: Optional[CalibrationProfile] = None
        self._upright_offset: Optional[float] = None
        self._shoulder_span: Optional[float] = None

    @property
    def is_calibrated(self) -> bool:
        return self.profile is not None

    def start(self):
        """Begin (or restart) calibration, discarding any previous profile"""
        self.profile = None
        self._upright_offset = None
        self._shoulder_span = None
        self.stage = CalibrationStage.AWAITING_UPRIGHT
        logger.log_calibration("Calibration Started", {"step": "1/2 upright"})

    def _measure(self, frame: Optional[PoseFrame]):
        if frame is None or frame.primary_pose is None:
            raise PoseNotDetected()
        measured = measure_pose(frame.primary_pose)
        if measured is None:
            raise KeypointsMissing()
        return measured

    def confirm_upright(self, frame: PoseFrame) -> CalibrationStage:
        """
        Record the upright reference pose

        Raises:
            PoseNotDetected: frame has no pose
            KeypointsMissing: nose or shoulders absent or below confidence
        """
        if self.stage == CalibrationStage.AWAITING_RELAXED:
            raise CalibrationError("Upright position already confirmed, confirm the relaxed position")

        offset, span = self._measure(frame)
        if span <= 0:
            raise KeypointsMissing("Shoulders overlap in the frame. Please face the camera and try again.")

        if self.stage != CalibrationStage.AWAITING_UPRIGHT:
            self.start()

        self._upright_offset = offset
        self._shoulder_span = span
        self.stage = CalibrationStage.AWAITING_RELAXED

        logger.log_calibration("Upright Position Recorded", {
            "upright_offset": round(offset, 1),
            "shoulder_span": round(span, 1)
        })
        return self.stage

    def confirm_relaxed(self, frame: PoseFrame) -> CalibrationProfile:
        """
        Record the relaxed pose and produce the final profile

        Raises:
            CalibrationError: upright position not confirmed yet
            PoseNotDetected: frame has no pose
            KeypointsMissing: nose or shoulders absent or below confidence
        """
        if self.stage != CalibrationStage.AWAITING_RELAXED:
            raise CalibrationError("Confirm the upright position before the relaxed one")

        relaxed_offset, _ = self._measure(frame)

        profile = CalibrationProfile(
            upright_offset=self._upright_offset,
            relaxed_offset=relaxed_offset,
            shoulder_span=self._shoulder_span,
            threshold_multiplier=self.threshold_multiplier,
            threshold_px=compute_threshold_px(self._upright_offset, relaxed_offset, self.threshold_multiplier)
        )
        self.profile = profile
        self.stage = CalibrationStage.CALIBRATED

        logger.log_calibration("Calibration Complete", {
            "upright_offset": round(profile.upright_offset, 1),
            "relaxed_offset": round(profile.relaxed_offset, 1),
            "multiplier": profile.threshold_multiplier,
            "threshold_px": profile.threshold_px
        })
        return profile

    def set_threshold_multiplier(self, value: float) -> Optional[CalibrationProfile]:
        """
        Change the sensitivity multiplier, recomputing the threshold in place of re-calibrating

        Returns:
            The replacement profile, or None if not calibrated yet
        """
        self.threshold_multiplier = clamp_multiplier(value)

        if self.profile is None:
            return None

        self.profile = self.profile.model_copy(update={
            "threshold_multiplier": self.threshold_multiplier,
            "threshold_px": compute_threshold_px(
                self.profile.upright_offset, self.profile.relaxed_offset, self.threshold_multiplier
            )
        })
        logger.log_calibration("Threshold Updated", {
            "multiplier": self.threshold_multiplier,
            "threshold_px": self.profile.threshold_px
        })
        return self.profile
