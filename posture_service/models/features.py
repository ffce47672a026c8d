"""
PosturePomo Posture Service - Feature Extractor

Reduces a landmark frame to the compact record the posture classifier compares:
both shoulder points and the area of the face box.
"""

import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional

from .geometry import distance
from .landmarks import FaceLandmark, Landmark, LandmarkFrame, PoseLandmark

logger = logging.getLogger(__name__)


REQUIRED_POSE = (PoseLandmark.LEFT_SHOULDER, PoseLandmark.RIGHT_SHOULDER)
REQUIRED_FACE = (
    FaceLandmark.FOREHEAD_TOP,
    FaceLandmark.CHIN,
    FaceLandmark.LEFT_CHEEK,
    FaceLandmark.RIGHT_CHEEK,
)


@dataclass(frozen=True)
class PoseFeatures:
    """Per-frame posture features. Derived, never persisted."""
    left_shoulder: Landmark
    right_shoulder: Landmark
    face_area: float

    @property
    def shoulder_height(self) -> float:
        """Mean shoulder y; larger means lower in the image."""
        return (self.left_shoulder.y + self.right_shoulder.y) / 2

    @property
    def shoulder_tilt(self) -> float:
        return abs(self.left_shoulder.y - self.right_shoulder.y)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "left_shoulder": {"x": self.left_shoulder.x, "y": self.left_shoulder.y},
            "right_shoulder": {"x": self.right_shoulder.x, "y": self.right_shoulder.y},
            "face_area": self.face_area,
        }


def extract_features(frame: LandmarkFrame) -> Optional[PoseFeatures]:
    """
    Extract posture features from a frame.

    Returns None when the pose or face set is missing or incomplete, or when
    the face box collapses to zero area. Callers skip such frames.
    """
    if not frame.has_pose(REQUIRED_POSE) or not frame.has_face(REQUIRED_FACE):
        logger.debug(
            "Missing landmarks: pose=%s face=%s",
            frame.pose_landmarks is not None,
            frame.face_landmarks is not None
        )
        return None

    height = distance(frame.face(FaceLandmark.FOREHEAD_TOP), frame.face(FaceLandmark.CHIN))
    width = distance(frame.face(FaceLandmark.RIGHT_CHEEK), frame.face(FaceLandmark.LEFT_CHEEK))
    face_area = height * width

    if face_area <= 0:
        logger.debug("Degenerate face box, skipping frame")
        return None

    return PoseFeatures(
        left_shoulder=frame.pose(PoseLandmark.LEFT_SHOULDER),
        right_shoulder=frame.pose(PoseLandmark.RIGHT_SHOULDER),
        face_area=face_area,
    )


class FeatureExtractor:
    """
    Feature extraction with an optional hold-last-baseline policy.

    With hold_last_baseline=True an invalid frame yields the baseline passed in
    instead of None, so a caller that treats the result as "current features"
    sees an unchanged posture for that frame.
    """

    def __init__(self, hold_last_baseline: bool = False):
        self.hold_last_baseline = hold_last_baseline

    def extract(
        self,
        frame: LandmarkFrame,
        baseline: Optional[PoseFeatures] = None
    ) -> Optional[PoseFeatures]:
        features = extract_features(frame)
        if features is None and self.hold_last_baseline:
            return baseline
        return features
