"""Tests for landmark containers and 2D geometry helpers."""

import pytest

from posture_service.models import (
    Landmark,
    LandmarkFrame,
    PoseLandmark,
    angle_from_vertical,
    distance,
    segment_angle,
)


def test_distance_is_euclidean():
    assert distance(Landmark(0.0, 0.0), Landmark(0.3, 0.4)) == pytest.approx(0.5)


def test_angle_from_vertical_straight_up_is_zero():
    hip = Landmark(0.5, 0.8)
    shoulder = Landmark(0.5, 0.5)
    assert angle_from_vertical(hip, shoulder) == pytest.approx(0.0)


def test_angle_from_vertical_sign_follows_lean_direction():
    hip = Landmark(0.5, 0.8)
    assert angle_from_vertical(hip, Landmark(0.8, 0.5)) == pytest.approx(45.0)
    assert angle_from_vertical(hip, Landmark(0.2, 0.5)) == pytest.approx(-45.0)


def test_angle_from_vertical_zero_length_segment():
    point = Landmark(0.5, 0.5)
    assert angle_from_vertical(point, point) == 0.0


def test_segment_angle_ignores_direction():
    assert segment_angle(Landmark(0.0, 0.0), Landmark(1.0, 0.0)) == pytest.approx(0.0)
    assert segment_angle(Landmark(1.0, 1.0), Landmark(0.0, 0.0)) == pytest.approx(45.0)
    assert segment_angle(Landmark(0.2, 0.1), Landmark(0.2, 0.9)) == pytest.approx(90.0)


def test_landmark_visibility():
    assert Landmark(0, 0).is_visible(0.5)
    assert Landmark(0, 0, visibility=0.6).is_visible(0.5)
    assert not Landmark(0, 0, visibility=0.5).is_visible(0.5)


def test_frame_from_lists_uses_position_as_index():
    pose = [{"x": float(i) / 100, "y": 0.5} for i in range(33)]
    frame = LandmarkFrame.from_lists(pose=pose, timestamp_ms=42.0)

    assert frame.pose(PoseLandmark.LEFT_SHOULDER) == Landmark(0.11, 0.5)
    assert frame.face_landmarks is None
    assert frame.timestamp_ms == 42.0


def test_frame_landmarks_are_read_only():
    frame = LandmarkFrame(pose_landmarks={11: Landmark(0.1, 0.2)})
    with pytest.raises(TypeError):
        frame.pose_landmarks[12] = Landmark(0.3, 0.4)
