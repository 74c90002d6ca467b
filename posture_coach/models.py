# Data Models - Keypoints, Calibration, Stats and Break State
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field


class PostureState(str, Enum):
    UNKNOWN = "unknown"
    GOOD = "good"
    BAD = "bad"


class Keypoint(BaseModel):
    name: str
    x: float
    y: float
    score: float = Field(default=0.0, ge=0.0, le=1.0)


class Pose(BaseModel):
    keypoints: List[Keypoint] = Field(default_factory=list)
    score: Optional[float] = None

    def find(self, name: str) -> Optional[Keypoint]:
        for keypoint in self.keypoints:
            if keypoint.name == name:
                return keypoint
        return None


class PoseFrame(BaseModel):
    """Poses detected in one captured frame; only the first one is used."""
    poses: List[Pose] = Field(default_factory=list)
    timestamp_ms: float

    @property
    def primary_pose(self) -> Optional[Pose]:
        return self.poses[0] if self.poses else None


class CalibrationProfile(BaseModel):
    model_config = ConfigDict(frozen=True)

    upright_offset: float
    relaxed_offset: float
    shoulder_span: float
    threshold_multiplier: float
    threshold_px: int


class DailyStats(BaseModel):
    date_key: str
    total_ms: float = 0
    good_ms: float = 0
    bad_ms: float = 0
    longest_good_streak_ms: float = 0
    alert_count: int = 0


class CheckpointWindow(BaseModel):
    window_start: Optional[float] = None
    alerts_in_window: int = 0
    interval_ms: float


class BreakSession(BaseModel):
    active: bool = False
    start_time: Optional[float] = None
    end_time: Optional[float] = None
    duration_minutes: int = 0
    reason: str = ""


class ClassificationResult(BaseModel):
    """Outcome of one classifier tick."""
    state: PostureState
    alert_edge: bool = False
    offset_change: Optional[float] = None
    bad_elapsed_ms: float = 0
