"""Tests for posture feature extraction."""

import pytest

from posture_service.models import (
    FaceLandmark,
    FeatureExtractor,
    Landmark,
    LandmarkFrame,
    extract_features,
)


def test_extracts_shoulders_and_face_area(make_frame):
    features = extract_features(make_frame(face_scale=1.5))

    assert features is not None
    assert features.left_shoulder.y == pytest.approx(0.6)
    assert features.face_area == pytest.approx(0.3 * 0.3)


def test_shoulder_height_and_tilt(make_frame):
    features = extract_features(make_frame(shoulder_y=0.5, tilt=0.1))

    assert features.shoulder_height == pytest.approx(0.55)
    assert features.shoulder_tilt == pytest.approx(0.1)


def test_missing_face_returns_none(make_frame):
    frame = make_frame()
    assert extract_features(LandmarkFrame(pose_landmarks=frame.pose_landmarks)) is None


def test_missing_pose_returns_none(make_frame):
    frame = make_frame()
    assert extract_features(LandmarkFrame(face_landmarks=frame.face_landmarks)) is None


def test_incomplete_face_returns_none(make_frame):
    frame = make_frame()
    face = dict(frame.face_landmarks)
    del face[FaceLandmark.CHIN.value]

    assert extract_features(LandmarkFrame(frame.pose_landmarks, face)) is None


def test_degenerate_face_box_returns_none(make_frame):
    frame = make_frame()
    point = Landmark(0.5, 0.3)
    face = {p.value: point for p in FaceLandmark}

    assert extract_features(LandmarkFrame(frame.pose_landmarks, face)) is None


def test_hold_last_baseline_policy(make_frame):
    baseline = extract_features(make_frame())
    empty = LandmarkFrame()

    assert FeatureExtractor().extract(empty, baseline) is None
    assert FeatureExtractor(hold_last_baseline=True).extract(empty, baseline) is baseline
