"""
Shared fixtures for posture service tests.

Frames are built around a reference pose: shoulders at y=0.6 and a
0.2 x 0.2 face box (area 0.04) centered at (0.5, 0.3).
"""

import pytest

from posture_service.models import (
    FaceLandmark,
    Landmark,
    LandmarkFrame,
    PoseLandmark,
)


BASE_SHOULDER_Y = 0.6
BASE_FACE_SIZE = 0.2


def build_pose(shoulder_y=BASE_SHOULDER_Y, tilt=0.0):
    return {
        PoseLandmark.LEFT_SHOULDER.value: Landmark(0.6, shoulder_y),
        PoseLandmark.RIGHT_SHOULDER.value: Landmark(0.4, shoulder_y + tilt),
    }


def build_face(scale=1.0):
    half = BASE_FACE_SIZE * scale / 2
    return {
        FaceLandmark.FOREHEAD_TOP.value: Landmark(0.5, 0.3 - half),
        FaceLandmark.CHIN.value: Landmark(0.5, 0.3 + half),
        FaceLandmark.LEFT_CHEEK.value: Landmark(0.5 + half, 0.3),
        FaceLandmark.RIGHT_CHEEK.value: Landmark(0.5 - half, 0.3),
    }


def build_frame(face_scale=1.0, shoulder_y=BASE_SHOULDER_Y, tilt=0.0, timestamp_ms=0.0):
    return LandmarkFrame(
        pose_landmarks=build_pose(shoulder_y, tilt),
        face_landmarks=build_face(face_scale),
        timestamp_ms=timestamp_ms,
    )


def to_payload_list(points, length):
    """Estimator-style array: position in the list is the landmark index."""
    filler = {"x": 0.0, "y": 0.0, "z": 0.0}
    items = [dict(filler) for _ in range(length)]
    for idx, lm in points.items():
        items[idx] = {"x": lm.x, "y": lm.y, "z": lm.z, "visibility": lm.visibility}
    return items


class FakeClock:
    """Controllable epoch-seconds clock."""

    def __init__(self, now=1_700_000_000.0):
        self.now = now

    def advance(self, seconds):
        self.now += seconds

    def __call__(self):
        return self.now


@pytest.fixture
def make_frame():
    return build_frame


@pytest.fixture
def frame_payload():
    """Build a JSON body for the landmarks endpoints."""
    def _payload(face_scale=1.0, shoulder_y=BASE_SHOULDER_Y, tilt=0.0, timestamp_ms=None):
        body = {
            "pose_landmarks": to_payload_list(build_pose(shoulder_y, tilt), 33),
            "face_landmarks": to_payload_list(build_face(face_scale), 468),
        }
        if timestamp_ms is not None:
            body["timestamp_ms"] = timestamp_ms
        return body
    return _payload


@pytest.fixture
def lean_payload():
    """Side-view body landmarks for the waist stretch, leaning by dx."""
    def _payload(dx, timestamp_ms, image_size=None):
        pose = {
            PoseLandmark.LEFT_HIP.value: Landmark(0.5, 0.8, visibility=0.9),
            PoseLandmark.LEFT_SHOULDER.value: Landmark(0.5 + dx, 0.5, visibility=0.9),
        }
        body = {"pose_landmarks": to_payload_list(pose, 33), "timestamp_ms": timestamp_ms}
        if image_size is not None:
            body["image_width"], body["image_height"] = image_size
        return body
    return _payload


@pytest.fixture
def clock():
    return FakeClock()
