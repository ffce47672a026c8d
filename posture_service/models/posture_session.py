"""
PosturePomo Posture Service - Posture Session Handler

Owns the per-session state of a pomodoro work cycle: the calibration baseline,
the running posture tally, the smile detector and the work/break phase.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Dict, Optional
import logging
import time
import uuid

from core.config import settings

from .expression import ExpressionEdgeDetector
from .features import PoseFeatures, extract_features
from .landmarks import LandmarkFrame
from .posture_classifier import PostureClassifier, PostureLabel, ThresholdConfig

logger = logging.getLogger(__name__)


class SessionNotFoundError(KeyError):
    """Raised for an unknown session id."""


class InvalidSessionStateError(RuntimeError):
    """Raised when an operation does not apply to the session's current mode."""


class SessionMode(str, Enum):
    """Pomodoro phases."""
    WAIT_FOR_WORKING = "waitForWorking"
    WORK = "work"
    WAIT = "wait"
    BREAK = "break"


@dataclass
class PostureTally:
    """Cumulative posture counts for one work session."""
    good: int = 0
    cat_spine: int = 0
    shallow_sitting: int = 0
    distorting: int = 0

    _FIELDS = {
        PostureLabel.GOOD: "good",
        PostureLabel.CAT_SPINE: "cat_spine",
        PostureLabel.SHALLOW_SITTING: "shallow_sitting",
        PostureLabel.DISTORTING: "distorting",
    }

    def record(self, label: PostureLabel):
        name = self._FIELDS[label]
        setattr(self, name, getattr(self, name) + 1)

    def count(self, label: PostureLabel) -> int:
        return getattr(self, self._FIELDS[label])

    @property
    def total(self) -> int:
        return self.good + self.cat_spine + self.shallow_sitting + self.distorting

    def ratios(self) -> Dict[str, float]:
        """Share of each label in percent; all zero for an empty tally."""
        total = self.total
        return {
            label.value: round(self.count(label) / total * 100, 1) if total else 0.0
            for label in PostureLabel
        }

    def reset(self):
        self.good = 0
        self.cat_spine = 0
        self.shallow_sitting = 0
        self.distorting = 0

    def to_dict(self) -> Dict[str, int]:
        return {label.value: self.count(label) for label in PostureLabel}


@dataclass
class WorkRecord:
    """Finalized work session, handed to the persistence layer."""
    record_id: str
    session_id: str
    user_id: str
    category_id: str
    category_name: Optional[str]
    task_name: str
    start_time: float
    end_time: float
    pose_score: Dict[str, int]
    cycle: int

    @property
    def duration_minutes(self) -> float:
        return max(0.0, self.end_time - self.start_time) / 60

    def to_dict(self) -> Dict[str, Any]:
        return {
            "record_id": self.record_id,
            "session_id": self.session_id,
            "user_id": self.user_id,
            "category_id": self.category_id,
            "category_name": self.category_name,
            "task_name": self.task_name,
            "start_time": datetime.fromtimestamp(self.start_time, tz=timezone.utc).isoformat(),
            "end_time": datetime.fromtimestamp(self.end_time, tz=timezone.utc).isoformat(),
            "duration": round(self.duration_minutes, 2),
            "mode": SessionMode.WORK.value,
            "completed": True,
            "cycle": self.cycle,
            "pose_score": dict(self.pose_score),
        }


@dataclass
class PostureSession:
    """Complete per-session state. Mutated only by PostureSessionHandler."""
    session_id: str
    user_id: str
    category_id: str
    task_name: str
    classifier: PostureClassifier = field(repr=False)
    detector: ExpressionEdgeDetector = field(repr=False)
    category_name: Optional[str] = None
    work_minutes: int = 25
    mode: SessionMode = SessionMode.WAIT_FOR_WORKING

    # Calibration and tally
    baseline: Optional[PoseFeatures] = None
    tally: PostureTally = field(default_factory=PostureTally)
    last_label: Optional[PostureLabel] = None

    # Pomodoro cycle
    cycle: int = 1
    break_minutes: Optional[int] = None
    created_at: float = field(default_factory=time.time)
    work_started_at: Optional[float] = None

    # Frame accounting
    frames_classified: int = 0
    frames_skipped: int = 0

    def to_dict(self) -> Dict[str, Any]:
        """Convert to JSON-serializable dict."""
        return {
            "session_id": self.session_id,
            "user_id": self.user_id,
            "category_id": self.category_id,
            "category_name": self.category_name,
            "task_name": self.task_name,
            "mode": self.mode.value,
            "work_minutes": self.work_minutes,
            "break_minutes": self.break_minutes,
            "cycle": self.cycle,
            "has_baseline": self.baseline is not None,
            "is_smiling": self.detector.is_smiling,
            "last_label": self.last_label.value if self.last_label else None,
            "tally": self.tally.to_dict(),
            "ratios": self.tally.ratios(),
            "frames_classified": self.frames_classified,
            "frames_skipped": self.frames_skipped,
            "thresholds": self.classifier.thresholds.to_dict(),
        }


class PostureSessionHandler:
    """
    Manages posture sessions.

    Flow per cycle:
    waitForWorking --smile--> work --complete_work--> wait --smile--> break
    --complete_break--> waitForWorking
    """

    def __init__(
        self,
        thresholds: Optional[ThresholdConfig] = None,
        clock: Callable[[], float] = time.time
    ):
        """
        Initialize session handler.

        Args:
            thresholds: Default classifier thresholds (settings if None)
            clock: Wall clock in epoch seconds, for work durations
        """
        self.thresholds = thresholds or ThresholdConfig.from_settings()
        self.clock = clock
        self.active_sessions: Dict[str, PostureSession] = {}

    def create_session(
        self,
        user_id: str,
        task_name: str,
        category_id: str,
        category_name: Optional[str] = None,
        work_minutes: Optional[int] = None,
        thresholds: Optional[ThresholdConfig] = None
    ) -> PostureSession:
        session_id = str(uuid.uuid4())[:8]

        session = PostureSession(
            session_id=session_id,
            user_id=user_id,
            category_id=category_id,
            category_name=category_name,
            task_name=task_name,
            work_minutes=work_minutes or settings.WORK_MINUTES,
            classifier=PostureClassifier(thresholds or self.thresholds),
            detector=ExpressionEdgeDetector(threshold=settings.SMILE_THRESHOLD),
            created_at=self.clock(),
        )

        self.active_sessions[session_id] = session
        logger.info(f"Session {session_id} created for user {user_id} (task: {task_name})")
        return session

    def get_session(self, session_id: str) -> Optional[PostureSession]:
        """Get session by ID."""
        return self.active_sessions.get(session_id)

    def _require(self, session_id: str) -> PostureSession:
        session = self.active_sessions.get(session_id)
        if session is None:
            raise SessionNotFoundError(session_id)
        return session

    # ═══════════════════════════════════════════════════════════════════════════
    # FRAME PROCESSING
    # ═══════════════════════════════════════════════════════════════════════════

    def process_landmarks(self, session_id: str, frame: LandmarkFrame) -> Dict[str, Any]:
        """
        Process one landmark frame.

        Incomplete frames are skipped, the first valid frame without a baseline
        becomes the baseline, and frames during work are classified and tallied.
        """
        session = self._require(session_id)
        response: Dict[str, Any] = {"session_id": session_id, "mode": session.mode.value}

        features = extract_features(frame)
        if features is None:
            session.frames_skipped += 1
            response["status"] = "skipped"
            return response

        if session.baseline is None:
            session.baseline = features
            logger.info(f"📐 Baseline captured for session {session_id}")
            response["status"] = "baseline_captured"
            response["baseline"] = features.to_dict()
            return response

        if session.mode != SessionMode.WORK:
            response["status"] = "ignored"
            return response

        checks = session.classifier.evaluate(session.baseline, features)
        label = session.classifier.label_for(checks)
        session.tally.record(label)
        session.last_label = label
        session.frames_classified += 1

        response.update({
            "status": "classified",
            "label": label.value,
            "checks": checks.to_dict(),
            "tally": session.tally.to_dict(),
        })
        return response

    def process_expression(self, session_id: str, confidence: Optional[float]) -> Dict[str, Any]:
        """
        Process one expression sample.

        A smile edge starts work from waitForWorking and starts the break from
        wait. A baseline-capture signal drops the current baseline so the next
        valid frame recalibrates.
        """
        session = self._require(session_id)
        event = session.detector.update(confidence)

        response: Dict[str, Any] = {"session_id": session_id, **event.to_dict()}
        previous_mode = session.mode

        if event.capture_baseline:
            session.baseline = None
            logger.info(f"Baseline recalibration requested for session {session_id}")

        if event.smile_edge:
            if session.mode == SessionMode.WAIT_FOR_WORKING:
                self._start_work(session)
            elif session.mode == SessionMode.WAIT:
                self._start_break(session)

        response["mode"] = session.mode.value
        response["mode_changed"] = session.mode != previous_mode
        return response

    # ═══════════════════════════════════════════════════════════════════════════
    # PHASE TRANSITIONS
    # ═══════════════════════════════════════════════════════════════════════════

    def _start_work(self, session: PostureSession):
        session.mode = SessionMode.WORK
        session.work_started_at = self.clock()
        logger.info(f"▶️ Session {session.session_id} work started (cycle {session.cycle})")

    def _start_break(self, session: PostureSession):
        if session.cycle % settings.SESSIONS_BEFORE_LONG_BREAK == 0:
            session.break_minutes = settings.LONG_BREAK_MINUTES
        else:
            session.break_minutes = settings.BREAK_MINUTES
        session.mode = SessionMode.BREAK
        logger.info(f"☕ Session {session.session_id} break started ({session.break_minutes} min)")

    def start_work(self, session_id: str) -> Dict[str, Any]:
        """Start work without waiting for a smile."""
        session = self._require(session_id)
        if session.mode != SessionMode.WAIT_FOR_WORKING:
            raise InvalidSessionStateError(f"Cannot start work in mode '{session.mode.value}'")
        self._start_work(session)
        return session.to_dict()

    def complete_work(
        self,
        session_id: str,
        persist: Optional[Callable[[WorkRecord], Any]] = None
    ) -> WorkRecord:
        """
        Finish the work phase and finalize its tally.

        Args:
            session_id: Session to finish
            persist: Called with the record before the session leaves work.
                If it raises, the session stays in work with its tally intact.

        Returns the WorkRecord; the session moves to wait with baseline
        capture and the smile state re-armed.
        """
        session = self._require(session_id)
        if session.mode != SessionMode.WORK:
            raise InvalidSessionStateError(f"Cannot complete work in mode '{session.mode.value}'")

        end_time = self.clock()
        record = WorkRecord(
            record_id=str(uuid.uuid4()),
            session_id=session.session_id,
            user_id=session.user_id,
            category_id=session.category_id,
            category_name=session.category_name,
            task_name=session.task_name,
            start_time=session.work_started_at or end_time,
            end_time=end_time,
            pose_score=session.tally.to_dict(),
            cycle=session.cycle,
        )

        if persist is not None:
            persist(record)

        session.mode = SessionMode.WAIT
        session.baseline = None
        session.work_started_at = None
        session.detector.reset()
        session.detector.request_baseline()

        logger.info(
            f"✅ Session {session.session_id} work completed: "
            f"{session.tally.total} frames, catSpine={session.tally.cat_spine}"
        )
        return record

    def complete_break(self, session_id: str) -> Dict[str, Any]:
        """Finish the break; the next cycle waits for a smile with a fresh tally."""
        session = self._require(session_id)
        if session.mode != SessionMode.BREAK:
            raise InvalidSessionStateError(f"Cannot complete break in mode '{session.mode.value}'")

        session.cycle += 1
        session.break_minutes = None
        session.tally.reset()
        session.last_label = None
        session.mode = SessionMode.WAIT_FOR_WORKING
        session.detector.request_baseline()
        return session.to_dict()

    def reset_session(self, session_id: str) -> Dict[str, Any]:
        """Return to the start of the first cycle."""
        session = self._require(session_id)

        session.mode = SessionMode.WAIT_FOR_WORKING
        session.baseline = None
        session.tally.reset()
        session.last_label = None
        session.cycle = 1
        session.break_minutes = None
        session.work_started_at = None
        session.frames_classified = 0
        session.frames_skipped = 0
        session.detector.reset()
        session.detector.request_baseline()

        logger.info(f"Session {session_id} reset")
        return session.to_dict()

    def get_session_status(self, session_id: str) -> Dict[str, Any]:
        """Get current session status."""
        return self._require(session_id).to_dict()

    def cleanup_session(self, session_id: str) -> bool:
        """Remove session from active sessions."""
        return self.active_sessions.pop(session_id, None) is not None


# ═══════════════════════════════════════════════════════════════════════════════
# MODULE-LEVEL SINGLETON
# ═══════════════════════════════════════════════════════════════════════════════

_handler_instance: Optional[PostureSessionHandler] = None

def get_session_handler() -> PostureSessionHandler:
    """Get or create the global session handler instance."""
    global _handler_instance
    if _handler_instance is None:
        _handler_instance = PostureSessionHandler()
    return _handler_instance
