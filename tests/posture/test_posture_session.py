"""Tests for the posture session handler (calibration, tally and pomodoro phases)."""

import pytest

from posture_service.models import (
    InvalidSessionStateError,
    LandmarkFrame,
    PostureLabel,
    PostureSessionHandler,
    PostureTally,
    SessionMode,
    SessionNotFoundError,
)


@pytest.fixture
def handler(clock):
    return PostureSessionHandler(clock=clock)


@pytest.fixture
def session_id(handler):
    return handler.create_session("user-1", "Write report", "cat-1", category_name="Work").session_id


def start_working(handler, session_id, make_frame):
    """Smile to start work, then calibrate on an upright frame."""
    handler.process_expression(session_id, 0.9)
    handler.process_landmarks(session_id, make_frame())


def test_new_session_waits_for_smile(handler, session_id):
    status = handler.get_session_status(session_id)
    assert status["mode"] == SessionMode.WAIT_FOR_WORKING.value
    assert status["cycle"] == 1
    assert status["work_minutes"] == 25
    assert not status["has_baseline"]


def test_first_valid_frame_becomes_baseline(handler, session_id, make_frame):
    skipped = handler.process_landmarks(session_id, LandmarkFrame())
    assert skipped["status"] == "skipped"

    captured = handler.process_landmarks(session_id, make_frame())
    assert captured["status"] == "baseline_captured"

    # not working yet
    assert handler.process_landmarks(session_id, make_frame())["status"] == "ignored"
    assert handler.get_session(session_id).frames_skipped == 1


def test_smile_starts_work_and_recalibrates(handler, session_id, make_frame):
    handler.process_landmarks(session_id, make_frame())

    result = handler.process_expression(session_id, 0.9)
    assert result["smile_edge"]
    assert result["capture_baseline"]
    assert result["mode"] == SessionMode.WORK.value
    assert result["mode_changed"]
    assert handler.get_session(session_id).baseline is None

    assert handler.process_landmarks(session_id, make_frame())["status"] == "baseline_captured"


def test_classified_frames_are_tallied(handler, session_id, make_frame):
    start_working(handler, session_id, make_frame)

    labels = [
        handler.process_landmarks(session_id, frame)["label"]
        for frame in [
            make_frame(),
            make_frame(face_scale=1.1, shoulder_y=0.65),
            make_frame(face_scale=1.1, shoulder_y=0.65),
            make_frame(tilt=0.1),
        ]
    ]
    assert labels == ["good", "catSpine", "catSpine", "distorting"]

    session = handler.get_session(session_id)
    assert session.tally.to_dict() == {
        "good": 1, "catSpine": 2, "shallowSitting": 0, "distorting": 1
    }
    assert session.last_label == PostureLabel.DISTORTING


def test_incomplete_frame_during_work_is_skipped(handler, session_id, make_frame):
    start_working(handler, session_id, make_frame)

    result = handler.process_landmarks(session_id, LandmarkFrame(pose_landmarks=make_frame().pose_landmarks))
    assert result["status"] == "skipped"
    assert handler.get_session(session_id).tally.total == 0


def test_missing_expression_sample_changes_nothing(handler, session_id):
    result = handler.process_expression(session_id, None)
    assert not result["mode_changed"]
    assert result["mode"] == SessionMode.WAIT_FOR_WORKING.value


def test_complete_work_produces_record(handler, session_id, make_frame, clock):
    start_working(handler, session_id, make_frame)
    handler.process_landmarks(session_id, make_frame(face_scale=0.9, shoulder_y=0.65))
    clock.advance(25 * 60)

    record = handler.complete_work(session_id)
    data = record.to_dict()

    assert data["user_id"] == "user-1"
    assert data["task_name"] == "Write report"
    assert data["duration"] == pytest.approx(25.0)
    assert data["pose_score"]["shallowSitting"] == 1
    assert data["completed"] is True

    session = handler.get_session(session_id)
    assert session.mode == SessionMode.WAIT
    assert session.baseline is None


def test_break_cycle(handler, session_id, make_frame):
    start_working(handler, session_id, make_frame)
    handler.process_landmarks(session_id, make_frame())
    handler.complete_work(session_id)

    handler.process_expression(session_id, 0.1)
    result = handler.process_expression(session_id, 0.9)
    assert result["mode"] == SessionMode.BREAK.value
    assert handler.get_session(session_id).break_minutes == 5

    status = handler.complete_break(session_id)
    assert status["mode"] == SessionMode.WAIT_FOR_WORKING.value
    assert status["cycle"] == 2
    assert status["tally"]["good"] == 0


def test_smile_held_through_work_still_starts_break(handler, session_id, make_frame):
    start_working(handler, session_id, make_frame)
    assert handler.process_expression(session_id, 0.9)["mode"] == SessionMode.WORK.value

    handler.complete_work(session_id)
    session = handler.get_session(session_id)
    assert not session.detector.is_smiling
    assert session.detector.baseline_pending

    result = handler.process_expression(session_id, 0.9)
    assert result["smile_edge"]
    assert result["capture_baseline"]
    assert result["mode"] == SessionMode.BREAK.value


def test_failed_persist_keeps_session_in_work(handler, session_id, make_frame):
    start_working(handler, session_id, make_frame)
    handler.process_landmarks(session_id, make_frame(tilt=0.1))

    def fail(record):
        raise OSError("disk full")

    with pytest.raises(OSError):
        handler.complete_work(session_id, persist=fail)

    session = handler.get_session(session_id)
    assert session.mode == SessionMode.WORK
    assert session.baseline is not None
    assert session.tally.distorting == 1

    saved = []
    record = handler.complete_work(session_id, persist=saved.append)
    assert saved == [record]
    assert record.pose_score["distorting"] == 1
    assert session.mode == SessionMode.WAIT


def test_every_fourth_break_is_long(handler, session_id):
    session = handler.get_session(session_id)
    session.cycle = 4
    session.mode = SessionMode.WAIT

    handler.process_expression(session_id, 0.9)
    assert session.mode == SessionMode.BREAK
    assert session.break_minutes == 15


def test_phase_operations_check_mode(handler, session_id):
    with pytest.raises(InvalidSessionStateError):
        handler.complete_work(session_id)
    with pytest.raises(InvalidSessionStateError):
        handler.complete_break(session_id)

    handler.start_work(session_id)
    with pytest.raises(InvalidSessionStateError):
        handler.start_work(session_id)


def test_reset_returns_to_first_cycle(handler, session_id, make_frame):
    start_working(handler, session_id, make_frame)
    handler.process_landmarks(session_id, make_frame(tilt=0.1))

    status = handler.reset_session(session_id)
    assert status["mode"] == SessionMode.WAIT_FOR_WORKING.value
    assert status["tally"]["distorting"] == 0
    assert not status["has_baseline"]
    assert not status["is_smiling"]


def test_unknown_session(handler):
    with pytest.raises(SessionNotFoundError):
        handler.process_landmarks("missing", LandmarkFrame())
    assert handler.get_session("missing") is None
    assert not handler.cleanup_session("missing")


def test_sessions_are_independent(handler, make_frame):
    a = handler.create_session("user-1", "A", "cat-1").session_id
    b = handler.create_session("user-2", "B", "cat-1").session_id

    handler.process_expression(a, 0.9)
    assert handler.get_session(a).mode == SessionMode.WORK
    assert handler.get_session(b).mode == SessionMode.WAIT_FOR_WORKING


def test_tally_ratios():
    tally = PostureTally()
    assert tally.ratios()["good"] == 0.0

    for label in [PostureLabel.GOOD, PostureLabel.GOOD, PostureLabel.CAT_SPINE]:
        tally.record(label)

    assert tally.ratios() == {
        "good": 66.7, "catSpine": 33.3, "shallowSitting": 0.0, "distorting": 0.0
    }
