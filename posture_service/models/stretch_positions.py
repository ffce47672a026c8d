"""
PosturePomo Posture Service - Stretch Position Labelers

Turn a landmark frame into the body position a stretch step expects:
shoulder stretches (arm held across the chest) and waist stretches
(forward / backward lean measured from the side).
"""

from enum import Enum
from typing import Mapping, Optional, Tuple

from .geometry import angle_from_vertical, segment_angle
from .landmarks import Landmark, LandmarkFrame, PoseLandmark


class StretchPosition(str, Enum):
    """Positions a stretch sequence can require."""
    CENTER = "center"
    LEFT_STRETCH = "left_stretch"
    RIGHT_STRETCH = "right_stretch"
    FORWARD = "forward"
    BACKWARD = "backward"


class Side(str, Enum):
    LEFT = "left"
    RIGHT = "right"

    @property
    def opposite(self) -> "Side":
        return Side.RIGHT if self is Side.LEFT else Side.LEFT


# Lean thresholds in degrees
FORWARD_THRESHOLD = -25.0
BACKWARD_THRESHOLD = 25.0
CENTER_THRESHOLD = 10.0

# Shoulder stretch thresholds in degrees
ARM_LEVEL_MAX_ANGLE = 10.0
FOREARM_MAX_TILT = 45.0

MIN_VISIBILITY = 0.5

ARM_JOINTS = {
    Side.LEFT: (PoseLandmark.LEFT_SHOULDER, PoseLandmark.LEFT_ELBOW, PoseLandmark.LEFT_WRIST),
    Side.RIGHT: (PoseLandmark.RIGHT_SHOULDER, PoseLandmark.RIGHT_ELBOW, PoseLandmark.RIGHT_WRIST),
}


# ═══════════════════════════════════════════════════════════════════════════════
# WAIST (LEAN) LABELER
# ═══════════════════════════════════════════════════════════════════════════════

def classify_lean(
    angle: float,
    previous: StretchPosition = StretchPosition.CENTER
) -> StretchPosition:
    """
    Label a hip->shoulder angle.

    Angles between the center band and the lean thresholds keep the previous
    position.
    """
    if angle <= FORWARD_THRESHOLD:
        return StretchPosition.FORWARD
    if angle >= BACKWARD_THRESHOLD:
        return StretchPosition.BACKWARD
    if abs(angle) <= CENTER_THRESHOLD:
        return StretchPosition.CENTER
    return previous


def waist_position(
    frame: LandmarkFrame,
    previous: StretchPosition = StretchPosition.CENTER,
    min_visibility: float = MIN_VISIBILITY
) -> Optional[Tuple[StretchPosition, float]]:
    """
    Lean position from the left hip and left shoulder.

    The angle is measured in pixels when the frame carries its image size,
    since normalized coordinates stretch the horizontal axis on non-square
    video. Without a size it falls back to normalized coordinates.

    Returns:
        (position, angle in degrees), or None if either landmark is missing
        or not visible enough
    """
    shoulder = frame.pose(PoseLandmark.LEFT_SHOULDER)
    hip = frame.pose(PoseLandmark.LEFT_HIP)
    if shoulder is None or hip is None:
        return None
    if not (shoulder.is_visible(min_visibility) and hip.is_visible(min_visibility)):
        return None

    if frame.image_size is not None:
        hip = hip.scaled(*frame.image_size)
        shoulder = shoulder.scaled(*frame.image_size)

    angle = angle_from_vertical(hip, shoulder)
    return classify_lean(angle, previous), angle


# ═══════════════════════════════════════════════════════════════════════════════
# SHOULDER LABELER
# ═══════════════════════════════════════════════════════════════════════════════

def _arm(landmarks: Mapping[int, Landmark], side: Side) -> Optional[Tuple[Landmark, Landmark, Landmark]]:
    points = tuple(landmarks.get(joint.value) for joint in ARM_JOINTS[side])
    if any(p is None for p in points):
        return None
    return points


def is_stretching_shoulder(landmarks: Optional[Mapping[int, Landmark]], side: Side) -> bool:
    """
    Whether the arm on `side` is held level across the body, braced by the
    opposite forearm.

    All must hold:
    - the shoulder->wrist segment on `side` is within 10 deg of horizontal
    - the opposite forearm is within 45 deg of vertical
    - the wrist on `side` lies beyond its shoulder in the stretch direction
    - the opposite elbow is below the opposite wrist
    """
    if not landmarks:
        return False

    arm = _arm(landmarks, side)
    opposite_arm = _arm(landmarks, side.opposite)
    if arm is None or opposite_arm is None:
        return False

    shoulder, _, wrist = arm
    _, opposite_elbow, opposite_wrist = opposite_arm

    if segment_angle(shoulder, wrist) > ARM_LEVEL_MAX_ANGLE:
        return False

    if 90.0 - segment_angle(opposite_wrist, opposite_elbow) > FOREARM_MAX_TILT:
        return False

    if side is Side.LEFT:
        beyond = wrist.x < shoulder.x
    else:
        beyond = wrist.x > shoulder.x

    return beyond and opposite_elbow.y > opposite_wrist.y


def shoulder_position(frame: LandmarkFrame) -> Optional[StretchPosition]:
    """Stretch side for a frame; None when the frame has no body landmarks."""
    if not frame.pose_landmarks:
        return None

    if is_stretching_shoulder(frame.pose_landmarks, Side.LEFT):
        return StretchPosition.LEFT_STRETCH
    if is_stretching_shoulder(frame.pose_landmarks, Side.RIGHT):
        return StretchPosition.RIGHT_STRETCH
    return StretchPosition.CENTER
