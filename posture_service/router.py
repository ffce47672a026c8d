"""
PosturePomo Posture Service Router

Endpoints for posture sessions, guided stretch routines and finalized work
records. Landmark estimation runs on the client; this service receives
landmark arrays and expression confidences and returns classifications.
"""

from fastapi import APIRouter, WebSocket, WebSocketDisconnect, HTTPException, Query
from pydantic import BaseModel, Field
from typing import Optional, List, Dict, Any, Callable
import functools
import logging

from core.config import settings
from core.events import EventKind, SessionEvent, channel_registry
from core.websocket import connection_manager, WebSocketMessage, MessageType
from shared.storage import USER_ID_PATTERN, get_storage
from shared.utils import now_ms

from .models import (
    LandmarkFrame,
    ThresholdConfig,
    PostureSessionHandler,
    SessionNotFoundError,
    InvalidSessionStateError,
    StretchKind,
    StretchRoutineHandler,
    get_session_handler,
    get_stretch_handler
)

logger = logging.getLogger(__name__)

router = APIRouter()


def get_services():
    """Get the service singletons."""
    return get_session_handler(), get_stretch_handler()


def handle_exceptions(func):
    """Decorator mapping engine exceptions to HTTP errors."""
    @functools.wraps(func)
    async def wrapper(*args, **kwargs):
        try:
            return await func(*args, **kwargs)
        except HTTPException:
            raise
        except SessionNotFoundError as e:
            raise HTTPException(status_code=404, detail=f"Session {e.args[0]} not found")
        except InvalidSessionStateError as e:
            raise HTTPException(status_code=409, detail=str(e))
        except ValueError as e:
            raise HTTPException(status_code=400, detail=str(e))
        except Exception as e:
            logger.exception(f"Unhandled error in {func.__name__}: {e}")
            raise HTTPException(status_code=500, detail="Internal server error")
    return wrapper


# ============= Pydantic Models =============

class LandmarkPoint(BaseModel):
    x: float
    y: float
    z: float = 0.0
    visibility: Optional[float] = None


class LandmarkFrameRequest(BaseModel):
    """Estimator output for one video frame. List position is the landmark index."""
    pose_landmarks: Optional[List[LandmarkPoint]] = None
    face_landmarks: Optional[List[LandmarkPoint]] = None
    timestamp_ms: Optional[float] = None
    image_width: Optional[float] = Field(None, gt=0)
    image_height: Optional[float] = Field(None, gt=0)

    def to_frame(self) -> LandmarkFrame:
        def dump(points):
            return None if points is None else [p.model_dump() for p in points]

        return LandmarkFrame.from_lists(
            pose=dump(self.pose_landmarks),
            face=dump(self.face_landmarks),
            timestamp_ms=now_ms() if self.timestamp_ms is None else self.timestamp_ms,
            image_width=self.image_width,
            image_height=self.image_height
        )


class ExpressionRequest(BaseModel):
    confidence: Optional[float] = Field(None, ge=0.0, le=1.0)  # None when no face was found


class ThresholdRequest(BaseModel):
    shoulder_threshold: Optional[float] = None
    face_area_threshold_up: Optional[float] = None
    face_area_threshold_down: Optional[float] = None
    distortion_threshold: Optional[float] = None

    def to_config(self) -> ThresholdConfig:
        """Settings defaults overridden by the given fields."""
        overrides = self.model_dump(exclude_none=True)
        return ThresholdConfig(**{**ThresholdConfig.from_settings().to_dict(), **overrides})


class CreateSessionRequest(BaseModel):
    user_id: str = Field(..., pattern=USER_ID_PATTERN)
    task_name: str
    category_id: str
    category_name: Optional[str] = None
    work_minutes: Optional[int] = Field(None, gt=0)
    thresholds: Optional[ThresholdRequest] = None


class CreateStretchRequest(BaseModel):
    kind: StretchKind
    max_loops: Optional[int] = Field(None, ge=1)
    debounce_ms: Optional[int] = Field(None, ge=0)


def _session_room(session_id: str) -> str:
    return f"session:{session_id}"


def _stretch_room(routine_id: str) -> str:
    return f"stretch:{routine_id}"


# ============= Posture Sessions =============

@router.post("/sessions")
@handle_exceptions
async def create_session(request: CreateSessionRequest):
    """
    Start a posture session.

    The session waits for a smile (or POST work/start) before classifying.
    Returns a session ID for use with the WebSocket stream.
    """
    session_handler, _ = get_services()

    thresholds = request.thresholds.to_config() if request.thresholds else None
    session = session_handler.create_session(
        user_id=request.user_id,
        task_name=request.task_name,
        category_id=request.category_id,
        category_name=request.category_name,
        work_minutes=request.work_minutes,
        thresholds=thresholds
    )

    return {
        "status": "created",
        "session": session.to_dict(),
        "sampling": {
            "expression_interval_seconds": settings.EXPRESSION_INTERVAL_SECONDS,
            "posture_capture_interval_seconds": settings.POSTURE_CAPTURE_INTERVAL_SECONDS
        },
        "websocket_url": f"/api/posture/ws/session/{session.session_id}"
    }


@router.get("/sessions/{session_id}")
@handle_exceptions
async def get_session(session_id: str):
    session_handler, _ = get_services()
    return session_handler.get_session_status(session_id)


@router.delete("/sessions/{session_id}")
@handle_exceptions
async def delete_session(session_id: str):
    """End a session and stop its event channel without flushing queued frames."""
    session_handler, _ = get_services()

    if not session_handler.cleanup_session(session_id):
        raise SessionNotFoundError(session_id)
    await channel_registry.close(_session_room(session_id))

    return {"status": "deleted", "session_id": session_id}


@router.post("/sessions/{session_id}/landmarks")
@handle_exceptions
async def submit_landmarks(session_id: str, request: LandmarkFrameRequest):
    """Classify one landmark frame (or capture it as the baseline)."""
    session_handler, _ = get_services()
    return session_handler.process_landmarks(session_id, request.to_frame())


@router.post("/sessions/{session_id}/expression")
@handle_exceptions
async def submit_expression(session_id: str, request: ExpressionRequest):
    """Feed one smile confidence sample."""
    session_handler, _ = get_services()
    return session_handler.process_expression(session_id, request.confidence)


@router.post("/sessions/{session_id}/work/start")
@handle_exceptions
async def start_work(session_id: str):
    session_handler, _ = get_services()
    return session_handler.start_work(session_id)


@router.post("/sessions/{session_id}/work/complete")
@handle_exceptions
async def complete_work(session_id: str):
    """Finish the work phase and store its record."""
    session_handler, _ = get_services()

    store = get_storage()
    record = session_handler.complete_work(
        session_id,
        persist=lambda r: store.save_record(r.to_dict())
    )

    return {
        "status": "completed",
        "session_id": session_id,
        "record": record.to_dict()
    }


@router.post("/sessions/{session_id}/break/complete")
@handle_exceptions
async def complete_break(session_id: str):
    session_handler, _ = get_services()
    return session_handler.complete_break(session_id)


@router.post("/sessions/{session_id}/reset")
@handle_exceptions
async def reset_session(session_id: str):
    session_handler, _ = get_services()
    return session_handler.reset_session(session_id)


# ============= Stretch Routines =============

def _require_routine(stretch_handler: StretchRoutineHandler, routine_id: str):
    routine = stretch_handler.get_routine(routine_id)
    if routine is None:
        raise HTTPException(status_code=404, detail=f"Stretch routine {routine_id} not found")
    return routine


@router.post("/stretches")
@handle_exceptions
async def create_stretch(request: CreateStretchRequest):
    """Start a guided shoulder or waist stretch."""
    _, stretch_handler = get_services()

    routine = stretch_handler.create_routine(
        request.kind,
        max_loops=request.max_loops,
        debounce_ms=request.debounce_ms
    )

    return {
        "status": "created",
        "routine": routine.to_dict(now_ms()),
        "websocket_url": f"/api/posture/ws/stretch/{routine.routine_id}"
    }


@router.get("/stretches/{routine_id}")
@handle_exceptions
async def get_stretch(routine_id: str, at_ms: Optional[float] = None):
    """Routine state; remaining time is measured at `at_ms` (default: now)."""
    _, stretch_handler = get_services()
    routine = _require_routine(stretch_handler, routine_id)
    return routine.to_dict(now_ms() if at_ms is None else at_ms)


@router.post("/stretches/{routine_id}/frames")
@handle_exceptions
async def submit_stretch_frame(routine_id: str, request: LandmarkFrameRequest):
    _, stretch_handler = get_services()
    routine = _require_routine(stretch_handler, routine_id)
    return routine.process_frame(request.to_frame()).to_dict()


@router.delete("/stretches/{routine_id}")
@handle_exceptions
async def delete_stretch(routine_id: str):
    _, stretch_handler = get_services()

    if not stretch_handler.remove_routine(routine_id):
        raise HTTPException(status_code=404, detail=f"Stretch routine {routine_id} not found")
    await channel_registry.close(_stretch_room(routine_id))

    return {"status": "deleted", "routine_id": routine_id}


# ============= Work Records =============

@router.get("/records/{user_id}")
@handle_exceptions
async def get_records(user_id: str, limit: Optional[int] = Query(None, ge=1)):
    """Stored work records for a user, newest first."""
    records = get_storage().list_records(user_id, limit=limit)
    return {
        "user_id": user_id,
        "records": records,
        "total": len(records)
    }


# ============= WebSocket Endpoints =============

def _session_event_handler(session_handler: PostureSessionHandler, session_id: str):
    def handle(event: SessionEvent) -> Dict[str, Any]:
        if event.kind == EventKind.LANDMARKS:
            frame = LandmarkFrameRequest.model_validate(event.payload or {}).to_frame()
            result = session_handler.process_landmarks(session_id, frame)
            return {"type": MessageType.POSTURE_UPDATE, "payload": result}

        confidence = ExpressionRequest.model_validate(event.payload or {}).confidence
        result = session_handler.process_expression(session_id, confidence)
        return {"type": MessageType.EXPRESSION_UPDATE, "payload": result}

    return handle


def _stretch_event_handler(stretch_handler: StretchRoutineHandler, routine_id: str):
    def handle(event: SessionEvent) -> Dict[str, Any]:
        routine = stretch_handler.get_routine(routine_id)
        if routine is None:
            raise ValueError(f"Stretch routine {routine_id} not found")
        frame = LandmarkFrameRequest.model_validate(event.payload or {}).to_frame()
        return {"type": MessageType.STRETCH_UPDATE, "payload": routine.process_frame(frame).to_dict()}

    return handle


def _result_broadcaster(room: str):
    async def deliver(result: Dict[str, Any]):
        msg_type = result.get("type", MessageType.ERROR)
        payload = result.get("payload", result)

        await connection_manager.broadcast(room, WebSocketMessage(type=msg_type, payload=payload))

        if isinstance(payload, dict) and payload.get("mode_changed"):
            await connection_manager.broadcast(room, WebSocketMessage(
                type=MessageType.MODE_CHANGED,
                payload={"mode": payload["mode"]}
            ))

    return deliver


async def _stream(
    websocket: WebSocket,
    room: str,
    user_id: str,
    handler: Callable[[SessionEvent], Dict[str, Any]],
    accepted: Dict[str, EventKind]
):
    """Feed client messages into the room's event channel until disconnect."""
    try:
        client = await connection_manager.join(websocket, room, user_id)
    except ConnectionError:
        return

    channel = channel_registry.open(room, handler, on_result=_result_broadcaster(room))

    async def send_error(message: str):
        await connection_manager.send(client.client_id, WebSocketMessage(
            type=MessageType.ERROR, payload={"message": message}
        ))

    try:
        while True:
            data = await websocket.receive_text()
            connection_manager.touch(client.client_id)

            try:
                message = WebSocketMessage.from_json(data)
            except ValueError as e:
                await send_error(f"Malformed message: {e}")
                continue

            if message.type == MessageType.PING:
                await connection_manager.send(client.client_id, WebSocketMessage(type=MessageType.PONG))
                continue

            kind = accepted.get(message.type) if isinstance(message.type, str) else None
            if kind is None:
                await send_error(f"Unsupported message type: {message.type}")
                continue

            if not channel.publish(SessionEvent(kind=kind, payload=message.payload)):
                await send_error("Event dropped, channel is busy")

    except WebSocketDisconnect:
        logger.info(f"WebSocket for {room} disconnected ({client.client_id})")
    finally:
        if await connection_manager.leave(client.client_id) == 0:
            await channel_registry.close(room)


async def _reject(websocket: WebSocket, message: str):
    await websocket.accept()
    await websocket.send_json({"type": MessageType.ERROR.value, "payload": {"message": message}})
    await websocket.close()


@router.websocket("/ws/session/{session_id}")
async def posture_session_stream(websocket: WebSocket, session_id: str):
    """
    Real-time posture session stream.

    Client sends:
    - {"type": "landmarks", "payload": {"pose_landmarks": [...], "face_landmarks": [...]}}
    - {"type": "expression", "payload": {"confidence": 0.83}}

    Server pushes posture_update, expression_update and mode_changed messages.
    """
    session_handler, _ = get_services()

    session = session_handler.get_session(session_id)
    if not session:
        await _reject(websocket, f"Session {session_id} not found")
        return

    await _stream(
        websocket,
        room=_session_room(session_id),
        user_id=session.user_id,
        handler=_session_event_handler(session_handler, session_id),
        accepted={
            MessageType.LANDMARKS.value: EventKind.LANDMARKS,
            MessageType.EXPRESSION.value: EventKind.EXPRESSION,
        }
    )


@router.websocket("/ws/stretch/{routine_id}")
async def stretch_stream(websocket: WebSocket, routine_id: str, user_id: str = "anonymous"):
    """Real-time stretch guidance; the client sends landmarks messages only."""
    _, stretch_handler = get_services()

    if stretch_handler.get_routine(routine_id) is None:
        await _reject(websocket, f"Stretch routine {routine_id} not found")
        return

    await _stream(
        websocket,
        room=_stretch_room(routine_id),
        user_id=user_id,
        handler=_stretch_event_handler(stretch_handler, routine_id),
        accepted={MessageType.LANDMARKS.value: EventKind.STRETCH}
    )
