"""
PosturePomo Posture Service - Expression Edge Detector

Debounces the per-sample "happy" confidence into a rising-edge smile event.
The client samples expressions on its own timer (about once per second).
"""

import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional

logger = logging.getLogger(__name__)


DEFAULT_SMILE_THRESHOLD = 0.7


@dataclass(frozen=True)
class ExpressionEvent:
    """Result of one expression sample."""
    is_smiling: bool
    smile_edge: bool
    capture_baseline: bool
    confidence: Optional[float]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "is_smiling": self.is_smiling,
            "smile_edge": self.smile_edge,
            "capture_baseline": self.capture_baseline,
            "confidence": self.confidence,
        }


class ExpressionEdgeDetector:
    """
    Rising-edge smile detector.

    A smile edge fires only when the sample is above threshold and the previous
    sample was not. While `baseline_pending` is set, the first edge also asks
    the caller to capture a baseline snapshot, then clears the flag.
    """

    def __init__(
        self,
        threshold: float = DEFAULT_SMILE_THRESHOLD,
        on_smile: Optional[Callable[[float], None]] = None,
        on_capture_baseline: Optional[Callable[[], None]] = None,
        baseline_pending: bool = True
    ):
        if not 0.0 < threshold < 1.0:
            raise ValueError(f"Smile threshold must be in (0, 1), got {threshold}")

        self.threshold = threshold
        self.on_smile = on_smile
        self.on_capture_baseline = on_capture_baseline
        self.baseline_pending = baseline_pending
        self.is_smiling = False
        self.edge_count = 0

    def update(self, confidence: Optional[float]) -> ExpressionEvent:
        """
        Feed one sample.

        Args:
            confidence: "happy" score in [0, 1], or None when no face was found

        Returns:
            ExpressionEvent describing the new state
        """
        if confidence is None:
            return ExpressionEvent(
                is_smiling=self.is_smiling,
                smile_edge=False,
                capture_baseline=False,
                confidence=None
            )

        if not 0.0 <= confidence <= 1.0:
            raise ValueError(f"Expression confidence must be in [0, 1], got {confidence}")

        was_smiling = self.is_smiling
        self.is_smiling = confidence > self.threshold

        smile_edge = self.is_smiling and not was_smiling
        capture_baseline = smile_edge and self.baseline_pending

        if smile_edge:
            self.edge_count += 1
            logger.debug(f"Smile detected, confidence: {confidence:.2f}")
            if capture_baseline:
                self.baseline_pending = False
                if self.on_capture_baseline:
                    self.on_capture_baseline()
            if self.on_smile:
                self.on_smile(confidence)

        return ExpressionEvent(
            is_smiling=self.is_smiling,
            smile_edge=smile_edge,
            capture_baseline=capture_baseline,
            confidence=confidence
        )

    def request_baseline(self):
        """Arm a baseline capture on the next smile edge."""
        self.baseline_pending = True

    def reset(self):
        self.is_smiling = False
