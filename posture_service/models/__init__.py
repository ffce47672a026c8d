"""
PosturePomo Posture Service Models

Rule-based posture classification, smile edge detection and guided stretch
sequences over landmark frames delivered by the client-side estimators.
"""

from .landmarks import (
    Landmark,
    LandmarkFrame,
    PoseLandmark,
    FaceLandmark,
)

from .geometry import (
    distance,
    angle_from_vertical,
    segment_angle,
)

from .features import (
    PoseFeatures,
    FeatureExtractor,
    extract_features,
)

from .posture_classifier import (
    PostureClassifier,
    PostureChecks,
    PostureLabel,
    ThresholdConfig,
    ThresholdConfigError,
)

from .expression import (
    ExpressionEdgeDetector,
    ExpressionEvent,
)

from .stretch_positions import (
    StretchPosition,
    Side,
    classify_lean,
    waist_position,
    is_stretching_shoulder,
    shoulder_position,
)

from .stretch_sequence import (
    StretchKind,
    StretchStep,
    StretchSnapshot,
    StretchSequence,
    StretchRoutine,
    StretchRoutineHandler,
    PositionDebouncer,
    OutOfOrderFrameError,
    shoulder_stretch_sequence,
    waist_stretch_sequence,
    create_routine,
    get_stretch_handler,
)

from .posture_session import (
    PostureSession,
    PostureSessionHandler,
    PostureTally,
    SessionMode,
    WorkRecord,
    SessionNotFoundError,
    InvalidSessionStateError,
    get_session_handler,
)

__all__ = [
    # Landmarks & geometry
    "Landmark",
    "LandmarkFrame",
    "PoseLandmark",
    "FaceLandmark",
    "distance",
    "angle_from_vertical",
    "segment_angle",
    # Features & classification
    "PoseFeatures",
    "FeatureExtractor",
    "extract_features",
    "PostureClassifier",
    "PostureChecks",
    "PostureLabel",
    "ThresholdConfig",
    "ThresholdConfigError",
    # Expression
    "ExpressionEdgeDetector",
    "ExpressionEvent",
    # Stretch
    "StretchPosition",
    "Side",
    "classify_lean",
    "waist_position",
    "is_stretching_shoulder",
    "shoulder_position",
    "StretchKind",
    "StretchStep",
    "StretchSnapshot",
    "StretchSequence",
    "StretchRoutine",
    "StretchRoutineHandler",
    "PositionDebouncer",
    "OutOfOrderFrameError",
    "shoulder_stretch_sequence",
    "waist_stretch_sequence",
    "create_routine",
    "get_stretch_handler",
    # Sessions
    "PostureSession",
    "PostureSessionHandler",
    "PostureTally",
    "SessionMode",
    "WorkRecord",
    "SessionNotFoundError",
    "InvalidSessionStateError",
    "get_session_handler",
]
