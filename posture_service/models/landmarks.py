"""
PosturePomo Posture Service - Landmark Types

Estimator-agnostic landmark containers. A LandmarkFrame is produced once per
estimator callback (MediaPipe Holistic / Pose on the client) and consumed
synchronously by the feature extractor and the stretch labelers.
"""

from dataclasses import dataclass, replace
from enum import Enum
from types import MappingProxyType
from typing import Any, Dict, Iterable, Mapping, Optional, Sequence, Tuple

import numpy as np


# ═══════════════════════════════════════════════════════════════════════════════
# LANDMARK INDICES
# ═══════════════════════════════════════════════════════════════════════════════

class PoseLandmark(Enum):
    """MediaPipe body landmark indices."""
    NOSE = 0
    LEFT_EYE_INNER = 1
    LEFT_EYE = 2
    LEFT_EYE_OUTER = 3
    RIGHT_EYE_INNER = 4
    RIGHT_EYE = 5
    RIGHT_EYE_OUTER = 6
    LEFT_EAR = 7
    RIGHT_EAR = 8
    MOUTH_LEFT = 9
    MOUTH_RIGHT = 10
    LEFT_SHOULDER = 11
    RIGHT_SHOULDER = 12
    LEFT_ELBOW = 13
    RIGHT_ELBOW = 14
    LEFT_WRIST = 15
    RIGHT_WRIST = 16
    LEFT_PINKY = 17
    RIGHT_PINKY = 18
    LEFT_INDEX = 19
    RIGHT_INDEX = 20
    LEFT_THUMB = 21
    RIGHT_THUMB = 22
    LEFT_HIP = 23
    RIGHT_HIP = 24
    LEFT_KNEE = 25
    RIGHT_KNEE = 26
    LEFT_ANKLE = 27
    RIGHT_ANKLE = 28
    LEFT_HEEL = 29
    RIGHT_HEEL = 30
    LEFT_FOOT_INDEX = 31
    RIGHT_FOOT_INDEX = 32


class FaceLandmark(Enum):
    """Face mesh indices bounding the face box."""
    FOREHEAD_TOP = 10
    CHIN = 152
    LEFT_CHEEK = 356
    RIGHT_CHEEK = 127


# ═══════════════════════════════════════════════════════════════════════════════
# DATA CLASSES
# ═══════════════════════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class Landmark:
    """A single landmark in normalized image coordinates (y grows downward)."""
    x: float
    y: float
    z: float = 0.0
    visibility: Optional[float] = None  # estimator confidence [0..1], if reported

    def to_numpy(self) -> np.ndarray:
        return np.array([self.x, self.y])

    def scaled(self, width: float, height: float) -> "Landmark":
        """The same point in pixel coordinates of a width x height image."""
        return replace(self, x=self.x * width, y=self.y * height)

    def is_visible(self, min_visibility: float) -> bool:
        # Estimators that do not report visibility are trusted
        if self.visibility is None:
            return True
        return self.visibility > min_visibility


def _freeze(points: Optional[Mapping[int, Landmark]]) -> Optional[Mapping[int, Landmark]]:
    if points is None:
        return None
    return MappingProxyType(dict(points))


@dataclass(frozen=True)
class LandmarkFrame:
    """
    One estimator result: body landmarks plus face landmarks.

    Either set is None when the estimator found nothing for it this frame.
    image_width / image_height are the source video size in pixels, when the
    client reports it.
    """
    pose_landmarks: Optional[Mapping[int, Landmark]] = None
    face_landmarks: Optional[Mapping[int, Landmark]] = None
    timestamp_ms: float = 0.0
    image_width: Optional[float] = None
    image_height: Optional[float] = None

    def __post_init__(self):
        for size in (self.image_width, self.image_height):
            if size is not None and size <= 0:
                raise ValueError(f"Image size must be positive, got {size}")
        object.__setattr__(self, "pose_landmarks", _freeze(self.pose_landmarks))
        object.__setattr__(self, "face_landmarks", _freeze(self.face_landmarks))

    def pose(self, joint: PoseLandmark) -> Optional[Landmark]:
        if not self.pose_landmarks:
            return None
        return self.pose_landmarks.get(joint.value)

    def face(self, point: FaceLandmark) -> Optional[Landmark]:
        if not self.face_landmarks:
            return None
        return self.face_landmarks.get(point.value)

    @property
    def image_size(self) -> Optional[Tuple[float, float]]:
        if self.image_width is None or self.image_height is None:
            return None
        return self.image_width, self.image_height

    def has_pose(self, joints: Iterable[PoseLandmark]) -> bool:
        return all(self.pose(j) is not None for j in joints)

    def has_face(self, points: Iterable[FaceLandmark]) -> bool:
        return all(self.face(p) is not None for p in points)

    @classmethod
    def from_lists(
        cls,
        pose: Optional[Sequence[Dict[str, Any]]] = None,
        face: Optional[Sequence[Dict[str, Any]]] = None,
        timestamp_ms: float = 0.0,
        image_width: Optional[float] = None,
        image_height: Optional[float] = None
    ) -> "LandmarkFrame":
        """
        Build a frame from estimator arrays (position in the list is the index),
        the shape MediaPipe delivers `poseLandmarks` / `faceLandmarks` in.
        """
        def to_points(items):
            if items is None:
                return None
            return {
                idx: Landmark(
                    x=float(item["x"]),
                    y=float(item["y"]),
                    z=float(item.get("z") or 0.0),
                    visibility=item.get("visibility")
                )
                for idx, item in enumerate(items)
            }

        return cls(
            pose_landmarks=to_points(pose),
            face_landmarks=to_points(face),
            timestamp_ms=timestamp_ms,
            image_width=image_width,
            image_height=image_height
        )

    def to_dict(self) -> Dict[str, Any]:
        """Convert to a JSON-serializable dict."""
        def dump(points):
            if points is None:
                return None
            return {
                str(idx): {"x": lm.x, "y": lm.y, "z": lm.z, "visibility": lm.visibility}
                for idx, lm in points.items()
            }

        return {
            "timestamp_ms": self.timestamp_ms,
            "image_width": self.image_width,
            "image_height": self.image_height,
            "pose_landmarks": dump(self.pose_landmarks),
            "face_landmarks": dump(self.face_landmarks),
        }
