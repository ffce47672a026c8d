"""
PosturePomo Posture Service - Posture Classifier

Rule-based comparison of the current frame against the baseline captured at
the start of a work session. Emits exactly one PostureLabel per frame.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Dict, Optional

from core.config import settings

from .features import PoseFeatures


class ThresholdConfigError(ValueError):
    """Raised when classifier thresholds would misclassify every frame."""


class PostureLabel(str, Enum):
    """Posture labels, values match the persisted tally keys."""
    GOOD = "good"
    CAT_SPINE = "catSpine"
    SHALLOW_SITTING = "shallowSitting"
    DISTORTING = "distorting"


@dataclass(frozen=True)
class ThresholdConfig:
    """
    Classifier thresholds.

    Ratio thresholds compare face areas and must exceed 1.0; the shoulder
    thresholds are in normalized image units and must be positive.
    """
    shoulder_threshold: float = 0.02
    face_area_threshold_up: float = 1.05
    face_area_threshold_down: float = 1.05
    distortion_threshold: float = 0.05

    def __post_init__(self):
        for name in ("shoulder_threshold", "face_area_threshold_up",
                     "face_area_threshold_down", "distortion_threshold"):
            if getattr(self, name) <= 0:
                raise ThresholdConfigError(f"{name} must be > 0, got {getattr(self, name)}")
        for name in ("face_area_threshold_up", "face_area_threshold_down"):
            if getattr(self, name) <= 1.0:
                raise ThresholdConfigError(f"{name} must be > 1.0, got {getattr(self, name)}")

    @classmethod
    def from_settings(cls) -> "ThresholdConfig":
        return cls(
            shoulder_threshold=settings.SHOULDER_THRESHOLD,
            face_area_threshold_up=settings.FACE_AREA_THRESHOLD_UP,
            face_area_threshold_down=settings.FACE_AREA_THRESHOLD_DOWN,
            distortion_threshold=settings.DISTORTION_THRESHOLD,
        )

    def to_dict(self) -> Dict[str, float]:
        return {
            "shoulder_threshold": self.shoulder_threshold,
            "face_area_threshold_up": self.face_area_threshold_up,
            "face_area_threshold_down": self.face_area_threshold_down,
            "distortion_threshold": self.distortion_threshold,
        }


@dataclass(frozen=True)
class PostureChecks:
    """The four predicates behind a classification."""
    bigger_face: bool
    smaller_face: bool
    lower_shoulders: bool
    distorted: bool

    def to_dict(self) -> Dict[str, bool]:
        return {
            "bigger_face": self.bigger_face,
            "smaller_face": self.smaller_face,
            "lower_shoulders": self.lower_shoulders,
            "distorted": self.distorted,
        }


class PostureClassifier:
    """
    Compares current features against a baseline.

    Precedence (first match wins):
    1. catSpine       - face closer and shoulders dropped (hunching forward)
    2. shallowSitting - face farther and shoulders dropped (sliding down the seat)
    3. distorting     - left/right shoulder height asymmetry
    4. good
    """

    def __init__(self, thresholds: Optional[ThresholdConfig] = None):
        self.thresholds = thresholds or ThresholdConfig.from_settings()

    def is_bigger_face(self, baseline: PoseFeatures, current: PoseFeatures) -> bool:
        return current.face_area / baseline.face_area > self.thresholds.face_area_threshold_up

    def is_smaller_face(self, baseline: PoseFeatures, current: PoseFeatures) -> bool:
        return baseline.face_area / current.face_area > self.thresholds.face_area_threshold_down

    def is_lower_shoulders(self, baseline: PoseFeatures, current: PoseFeatures) -> bool:
        # y grows downward: a positive difference means the shoulders sank
        drop = current.shoulder_height - baseline.shoulder_height
        return drop > self.thresholds.shoulder_threshold

    def is_distorted(self, current: PoseFeatures) -> bool:
        return current.shoulder_tilt > self.thresholds.distortion_threshold

    def evaluate(self, baseline: PoseFeatures, current: PoseFeatures) -> PostureChecks:
        return PostureChecks(
            bigger_face=self.is_bigger_face(baseline, current),
            smaller_face=self.is_smaller_face(baseline, current),
            lower_shoulders=self.is_lower_shoulders(baseline, current),
            distorted=self.is_distorted(current),
        )

    def classify(self, baseline: PoseFeatures, current: PoseFeatures) -> PostureLabel:
        return self.label_for(self.evaluate(baseline, current))

    @staticmethod
    def label_for(checks: PostureChecks) -> PostureLabel:
        if checks.bigger_face and checks.lower_shoulders:
            return PostureLabel.CAT_SPINE
        if checks.smaller_face and checks.lower_shoulders:
            return PostureLabel.SHALLOW_SITTING
        if checks.distorted:
            return PostureLabel.DISTORTING
        return PostureLabel.GOOD
