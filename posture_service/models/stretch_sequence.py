"""
PosturePomo Posture Service - Stretch Sequence Engine

Timed state machine for guided stretches. A sequence is an ordered list of
positions, each of which must be held continuously for its hold duration.
Finishing the list counts one loop; reaching max_loops completes the sequence.
"""

import logging
import math
import uuid
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, List, Optional, Sequence

from core.config import settings

from .landmarks import LandmarkFrame
from .stretch_positions import StretchPosition, shoulder_position, waist_position

logger = logging.getLogger(__name__)


class OutOfOrderFrameError(ValueError):
    """Raised when a stretch update arrives with an earlier timestamp."""


class StretchKind(str, Enum):
    """Supported guided stretches."""
    SHOULDER = "shoulder"
    WAIST = "waist"


@dataclass(frozen=True)
class StretchStep:
    """One required position and how long it must be held."""
    position: StretchPosition
    hold_ms: int

    def __post_init__(self):
        if self.hold_ms <= 0:
            raise ValueError(f"hold_ms must be > 0, got {self.hold_ms}")


@dataclass(frozen=True)
class StretchSnapshot:
    """Display state handed to the UI after every update."""
    next_position: Optional[StretchPosition]
    remaining_seconds: int
    remaining_loops: int
    completed: bool
    current_step: int
    total_steps: int
    holding: bool
    detected_position: Optional[StretchPosition] = None
    angle: Optional[float] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "next_position": self.next_position.value if self.next_position else None,
            "remaining_seconds": self.remaining_seconds,
            "remaining_loops": self.remaining_loops,
            "completed": self.completed,
            "current_step": self.current_step,
            "total_steps": self.total_steps,
            "holding": self.holding,
            "detected_position": self.detected_position.value if self.detected_position else None,
            "angle": round(self.angle, 1) if self.angle is not None else None,
        }


# ═══════════════════════════════════════════════════════════════════════════════
# STATE MACHINE
# ═══════════════════════════════════════════════════════════════════════════════

class StretchSequence:
    """
    Hold-timer state machine.

    A mismatching position discards any hold in progress; there is no timeout,
    so a sequence that never sees the expected position simply never advances.
    """

    def __init__(self, steps: Sequence[StretchStep], max_loops: int = 1):
        if not steps:
            raise ValueError("A stretch sequence needs at least one step")
        if max_loops < 1:
            raise ValueError(f"max_loops must be >= 1, got {max_loops}")

        self.steps: List[StretchStep] = list(steps)
        self.max_loops = max_loops
        self.reset()

    def reset(self):
        self.current_step = 0
        self.position_start_ms: Optional[float] = None
        self.loop_count = 0
        self.completed = False
        self._last_update_ms: Optional[float] = None

    @property
    def next_position(self) -> Optional[StretchPosition]:
        if self.completed:
            return None
        return self.steps[self.current_step].position

    @property
    def remaining_loops(self) -> int:
        return self.max_loops - self.loop_count

    @property
    def is_holding(self) -> bool:
        return self.position_start_ms is not None

    def check_order(self, now_ms: float):
        """Raise OutOfOrderFrameError if now_ms is earlier than the last update."""
        if self.completed:
            return
        if self._last_update_ms is not None and now_ms < self._last_update_ms:
            raise OutOfOrderFrameError(
                f"Update at {now_ms}ms arrived after {self._last_update_ms}ms"
            )

    def update(self, position: StretchPosition, now_ms: float) -> bool:
        """
        Feed one observed position.

        Returns:
            True exactly once, on the update that completes the last loop
        """
        if self.completed:
            return False

        self.check_order(now_ms)
        self._last_update_ms = now_ms

        step = self.steps[self.current_step]

        if position != step.position:
            self.position_start_ms = None
            return False

        if self.position_start_ms is None:
            self.position_start_ms = now_ms

        if now_ms - self.position_start_ms < step.hold_ms:
            return False

        logger.debug(f"Step {self.current_step + 1}/{len(self.steps)} '{step.position.value}' held")
        self.position_start_ms = None
        self.current_step += 1

        if self.current_step == len(self.steps):
            self.loop_count += 1
            logger.debug(f"Loop {self.loop_count}/{self.max_loops} finished")
            if self.loop_count == self.max_loops:
                self.completed = True
                return True
            self.current_step = 0

        return False

    def remaining_seconds(self, now_ms: float) -> int:
        """Whole seconds left on the current hold, never negative."""
        if self.completed:
            return 0

        hold_ms = self.steps[self.current_step].hold_ms
        if self.position_start_ms is None:
            return math.ceil(hold_ms / 1000)

        elapsed = max(0.0, now_ms - self.position_start_ms)
        return math.ceil(max(0.0, hold_ms - elapsed) / 1000)

    def snapshot(
        self,
        now_ms: float,
        detected_position: Optional[StretchPosition] = None,
        angle: Optional[float] = None
    ) -> StretchSnapshot:
        return StretchSnapshot(
            next_position=self.next_position,
            remaining_seconds=self.remaining_seconds(now_ms),
            remaining_loops=self.remaining_loops,
            completed=self.completed,
            current_step=self.current_step,
            total_steps=len(self.steps),
            holding=self.is_holding,
            detected_position=detected_position,
            angle=angle,
        )


class PositionDebouncer:
    """
    Suppresses one-frame flicker of the position label.

    A new label is accepted only if at least min_interval_ms passed since the
    last accepted change; until then the previously accepted label is reused.
    """

    def __init__(
        self,
        min_interval_ms: float = 500,
        initial: StretchPosition = StretchPosition.CENTER
    ):
        self.min_interval_ms = min_interval_ms
        self.current = initial
        self._last_change_ms: Optional[float] = None

    def accept(self, position: StretchPosition, now_ms: float) -> StretchPosition:
        if position != self.current:
            if self._last_change_ms is None or now_ms - self._last_change_ms >= self.min_interval_ms:
                self.current = position
                self._last_change_ms = now_ms
        return self.current


# ═══════════════════════════════════════════════════════════════════════════════
# PRESETS
# ═══════════════════════════════════════════════════════════════════════════════

def shoulder_stretch_sequence(max_loops: int = 1, hold_ms: int = 3000) -> StretchSequence:
    """Right, left, right, left shoulder stretch."""
    steps = [
        StretchStep(StretchPosition.RIGHT_STRETCH, hold_ms),
        StretchStep(StretchPosition.LEFT_STRETCH, hold_ms),
        StretchStep(StretchPosition.RIGHT_STRETCH, hold_ms),
        StretchStep(StretchPosition.LEFT_STRETCH, hold_ms),
    ]
    return StretchSequence(steps, max_loops=max_loops)


def waist_stretch_sequence(max_loops: int = 1, hold_ms: int = 2000) -> StretchSequence:
    """Forward bend, back bend, twice."""
    steps = [
        StretchStep(StretchPosition.FORWARD, hold_ms),
        StretchStep(StretchPosition.BACKWARD, hold_ms),
        StretchStep(StretchPosition.FORWARD, hold_ms),
        StretchStep(StretchPosition.BACKWARD, hold_ms),
    ]
    return StretchSequence(steps, max_loops=max_loops)


# ═══════════════════════════════════════════════════════════════════════════════
# ROUTINES
# ═══════════════════════════════════════════════════════════════════════════════

class StretchRoutine:
    """One guided stretch: labeler -> optional debounce -> sequence."""

    def __init__(
        self,
        kind: StretchKind,
        sequence: StretchSequence,
        debouncer: Optional[PositionDebouncer] = None,
        routine_id: Optional[str] = None
    ):
        self.routine_id = routine_id or str(uuid.uuid4())[:8]
        self.kind = kind
        self.sequence = sequence
        self.debouncer = debouncer
        self.last_position = StretchPosition.CENTER
        self.frames_without_landmarks = 0

    def _label(self, frame: LandmarkFrame):
        if self.kind == StretchKind.WAIST:
            result = waist_position(frame, previous=self.last_position)
            if result is None:
                return None, None
            return result
        return shoulder_position(frame), None

    def process_frame(self, frame: LandmarkFrame, now_ms: Optional[float] = None) -> StretchSnapshot:
        now_ms = frame.timestamp_ms if now_ms is None else now_ms

        position, angle = self._label(frame)
        if position is None:
            self.frames_without_landmarks += 1
            return self.sequence.snapshot(now_ms)

        # Reject stale frames before they touch the debouncer
        self.sequence.check_order(now_ms)

        if self.debouncer:
            position = self.debouncer.accept(position, now_ms)
        self.last_position = position

        if self.sequence.update(position, now_ms):
            logger.info(f"🧘 Stretch routine {self.routine_id} ({self.kind.value}) completed")

        return self.sequence.snapshot(now_ms, detected_position=position, angle=angle)

    def to_dict(self, now_ms: float) -> Dict[str, Any]:
        return {
            "routine_id": self.routine_id,
            "kind": self.kind.value,
            "sequence": [
                {"position": s.position.value, "hold_ms": s.hold_ms}
                for s in self.sequence.steps
            ],
            "max_loops": self.sequence.max_loops,
            "debounce_ms": self.debouncer.min_interval_ms if self.debouncer else None,
            "frames_without_landmarks": self.frames_without_landmarks,
            "state": self.sequence.snapshot(now_ms).to_dict(),
        }


def create_routine(
    kind: StretchKind,
    max_loops: Optional[int] = None,
    debounce_ms: Optional[int] = None
) -> StretchRoutine:
    """
    Build a routine from the presets.

    Waist routines debounce by default (lean angles flicker near thresholds);
    pass debounce_ms=0 to disable, or a positive value to debounce a shoulder
    routine as well.
    """
    max_loops = max_loops or settings.STRETCH_MAX_LOOPS

    if kind == StretchKind.WAIST:
        sequence = waist_stretch_sequence(max_loops=max_loops)
        if debounce_ms is None:
            debounce_ms = settings.POSITION_DEBOUNCE_MS
    else:
        sequence = shoulder_stretch_sequence(max_loops=max_loops)

    debouncer = PositionDebouncer(debounce_ms) if debounce_ms else None
    return StretchRoutine(kind, sequence, debouncer=debouncer)


class StretchRoutineHandler:
    """Registry of active stretch routines."""

    def __init__(self):
        self.active_routines: Dict[str, StretchRoutine] = {}

    def create_routine(
        self,
        kind: StretchKind,
        max_loops: Optional[int] = None,
        debounce_ms: Optional[int] = None
    ) -> StretchRoutine:
        routine = create_routine(kind, max_loops=max_loops, debounce_ms=debounce_ms)
        self.active_routines[routine.routine_id] = routine
        logger.info(f"Stretch routine {routine.routine_id} created ({kind.value}, loops={routine.sequence.max_loops})")
        return routine

    def get_routine(self, routine_id: str) -> Optional[StretchRoutine]:
        return self.active_routines.get(routine_id)

    def remove_routine(self, routine_id: str) -> bool:
        return self.active_routines.pop(routine_id, None) is not None


# ═══════════════════════════════════════════════════════════════════════════════
# MODULE-LEVEL SINGLETON
# ═══════════════════════════════════════════════════════════════════════════════

_routine_handler: Optional[StretchRoutineHandler] = None

def get_stretch_handler() -> StretchRoutineHandler:
    """Get or create the global stretch routine handler."""
    global _routine_handler
    if _routine_handler is None:
        _routine_handler = StretchRoutineHandler()
    return _routine_handler
