# Pose Utilities - Keypoint extraction and nose-shoulder geometry (Procedural)
import math
from typing import Dict, Optional, Tuple

from posture_coach import config
from posture_coach.models import Keypoint, Pose


def extract_required_keypoints(pose: Optional[Pose],
                               min_score: float = None) -> Optional[Dict[str, Keypoint]]:
    """
    Pick nose and both shoulders from a pose

    Args:
        pose: Primary pose of a frame (may be None)
        min_score: Minimum keypoint confidence (default from config)

    Returns:
        Dict of keypoint name -> Keypoint, or None if any is missing or below min_score
    """
    if pose is None:
        return None

    if min_score is None:
        min_score = config.KEYPOINT_MIN_SCORE

    found = {}
    for name in config.REQUIRED_KEYPOINTS:
        keypoint = pose.find(name)
        if keypoint is None or keypoint.score < min_score:
            return None
        found[name] = keypoint

    return found


def nose_shoulder_offset(keypoints: Dict[str, Keypoint]) -> float:
    """Vertical distance between the nose and the average shoulder height"""
    shoulder_avg_y = (keypoints[config.LEFT_SHOULDER].y + keypoints[config.RIGHT_SHOULDER].y) / 2
    return keypoints[config.NOSE].y - shoulder_avg_y


def shoulder_span(keypoints: Dict[str, Keypoint]) -> float:
    """Horizontal distance between the shoulders"""
    return abs(keypoints[config.LEFT_SHOULDER].x - keypoints[config.RIGHT_SHOULDER].x)


def measure_pose(pose: Optional[Pose]) -> Optional[Tuple[float, float]]:
    """Return (offset, span) for a usable pose, or None"""
    keypoints = extract_required_keypoints(pose)
    if keypoints is None:
        return None
    return nose_shoulder_offset(keypoints), shoulder_span(keypoints)


def clamp_multiplier(value: float) -> float:
    return min(config.THRESHOLD_MULTIPLIER_MAX, max(config.THRESHOLD_MULTIPLIER_MIN, float(value)))


def compute_threshold_px(upright_offset: float, relaxed_offset: float, multiplier: float) -> int:
    """
    Personalized posture threshold in pixels

    The multiplier is clamped to [0.4, 0.8] before use. Halves round up.
    """
    difference = abs(relaxed_offset - upright_offset)
    return int(math.floor(difference * clamp_multiplier(multiplier) + 0.5))
