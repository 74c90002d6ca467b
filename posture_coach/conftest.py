"""
Shared fixtures for posture coach tests

Tests run against in-process stores and an in-memory SQLite database,
so no running server is needed.
"""
import pytest
from sqlalchemy import create_engine
from sqlalchemy.pool import StaticPool

from posture_coach import config
from posture_coach import database
from posture_coach.models import Keypoint, Pose, PoseFrame

SHOULDER_Y = 300.0


def make_frame(offset: float = -50.0, span: float = 160.0, score: float = 0.9,
               timestamp_ms: float = 0.0, missing: str = None) -> PoseFrame:
    """Frame with one pose whose nose sits `offset` px from the shoulder line"""
    keypoints = [
        Keypoint(name=config.NOSE, x=320.0, y=SHOULDER_Y + offset, score=score),
        Keypoint(name=config.LEFT_SHOULDER, x=320.0 + span / 2, y=SHOULDER_Y, score=score),
        Keypoint(name=config.RIGHT_SHOULDER, x=320.0 - span / 2, y=SHOULDER_Y, score=score),
    ]
    if missing:
        keypoints = [k for k in keypoints if k.name != missing]
    return PoseFrame(poses=[Pose(keypoints=keypoints)], timestamp_ms=timestamp_ms)


def empty_frame(timestamp_ms: float = 0.0) -> PoseFrame:
    return PoseFrame(poses=[], timestamp_ms=timestamp_ms)


@pytest.fixture
def upright_frame():
    return make_frame(-50.0)


@pytest.fixture
def slouch_frame():
    return make_frame(-20.0)


@pytest.fixture
def sqlite_engine(monkeypatch):
    """Point the database module at a fresh in-memory SQLite database"""
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool
    )
    monkeypatch.setattr(database, "engine", engine)
    database.metadata.create_all(engine)
    yield engine
    engine.dispose()
