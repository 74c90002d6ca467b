"""
Posture classifier tests

Frames are fed at 20 FPS (50ms) with explicit tick times.
"""
import pytest

from posture_coach.classifier import PostureClassifier, classify_raw
from posture_coach.conftest import empty_frame, make_frame
from posture_coach.models import CalibrationProfile, PostureState

STEP_MS = 50
GOOD = make_frame(-50)
BAD = make_frame(-20)


@pytest.fixture
def profile():
    return CalibrationProfile(
        upright_offset=-50,
        relaxed_offset=-20,
        shoulder_span=160,
        threshold_multiplier=0.4,
        threshold_px=12
    )


def feed(classifier, profile, frame, start, end):
    """Feed `frame` every STEP_MS over [start, end]; return alert tick times"""
    alerts = []
    now = start
    while now <= end:
        if classifier.classify(frame, profile, now).alert_edge:
            alerts.append(now)
        now += STEP_MS
    return alerts


# ============================================================================
# RAW CLASSIFICATION
# ============================================================================

def test_upright_is_good(profile):
    state, change = classify_raw(GOOD, profile)
    assert state == PostureState.GOOD
    assert change == 0


def test_slouch_past_threshold_is_bad(profile):
    state, change = classify_raw(BAD, profile)
    assert state == PostureState.BAD
    assert change == 30


def test_change_equal_to_threshold_is_good(profile):
    state, _ = classify_raw(make_frame(-38), profile)
    assert state == PostureState.GOOD


def test_missing_keypoints_are_unknown(profile):
    assert classify_raw(empty_frame(), profile)[0] == PostureState.UNKNOWN
    assert classify_raw(None, profile)[0] == PostureState.UNKNOWN
    assert classify_raw(make_frame(-20, score=0.1), profile)[0] == PostureState.UNKNOWN


def test_offset_is_normalized_by_shoulder_span(profile):
    # Sitting twice as close doubles every pixel distance
    assert classify_raw(make_frame(-100, span=320), profile)[0] == PostureState.GOOD
    assert classify_raw(make_frame(-40, span=320), profile)[0] == PostureState.BAD


# ============================================================================
# ALERT HYSTERESIS
# ============================================================================

def test_no_alert_before_duration(profile):
    classifier = PostureClassifier()
    assert feed(classifier, profile, BAD, 0, 14950) == []
    assert classifier.bad_posture_start_time == 0


def test_alert_fires_once_at_duration(profile):
    classifier = PostureClassifier()
    alerts = feed(classifier, profile, BAD, 0, 30000)
    assert alerts == [15000]
    assert classifier.alert_active


def test_short_good_flicker_keeps_bad_timer(profile):
    classifier = PostureClassifier()
    feed(classifier, profile, BAD, 0, 4950)
    feed(classifier, profile, GOOD, 5000, 5950)  # 950ms of good
    alerts = feed(classifier, profile, BAD, 6000, 16000)

    assert classifier.bad_posture_start_time == 0
    assert alerts == [15000]


def test_sustained_good_clears_episode(profile):
    classifier = PostureClassifier()
    feed(classifier, profile, BAD, 0, 4950)
    feed(classifier, profile, GOOD, 5000, 6000)  # Exactly 1000ms of good

    assert classifier.bad_posture_start_time is None

    alerts = feed(classifier, profile, BAD, 6050, 22000)
    assert alerts == [21050]


def test_unknown_ticks_count_as_not_bad(profile):
    classifier = PostureClassifier()
    feed(classifier, profile, BAD, 0, 1000)
    feed(classifier, profile, empty_frame(), 1050, 2050)
    assert classifier.bad_posture_start_time is None


def test_new_episode_can_alert_again(profile):
    classifier = PostureClassifier()
    first = feed(classifier, profile, BAD, 0, 15000)
    feed(classifier, profile, GOOD, 15050, 16050)
    second = feed(classifier, profile, BAD, 16100, 31100)

    assert first == [15000]
    assert second == [31100]
    assert not PostureClassifier().alert_active


def test_reset_forgets_episode(profile):
    classifier = PostureClassifier()
    feed(classifier, profile, BAD, 0, 15000)
    classifier.reset()

    assert classifier.bad_posture_start_time is None
    assert not classifier.alert_issued
    assert classifier.state == PostureState.UNKNOWN


def test_custom_durations(profile):
    classifier = PostureClassifier(bad_duration_ms=1000, good_required_ms=100)
    assert feed(classifier, profile, BAD, 0, 1000) == [1000]


def test_result_reports_bad_elapsed(profile):
    classifier = PostureClassifier()
    classifier.classify(BAD, profile, 1000)
    result = classifier.classify(BAD, profile, 3500)
    assert result.bad_elapsed_ms == 2500
    assert result.state == PostureState.BAD


def test_bad_run_of_14999ms_gives_no_alert(profile):
    classifier = PostureClassifier()
    feed(classifier, profile, BAD, 0, 14950)
    result = classifier.classify(BAD, profile, 14999)

    assert not result.alert_edge
    assert not classifier.alert_issued
    assert result.bad_elapsed_ms == 14999


def test_overlapping_shoulders_are_unknown(profile):
    state, change = classify_raw(make_frame(-20, span=0), profile)
    assert state == PostureState.UNKNOWN
    assert change is None
