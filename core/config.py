"""
PosturePomo Configuration

Environment variables and application settings.
"""

from pydantic_settings import BaseSettings
from typing import List


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Application
    APP_NAME: str = "PosturePomo"
    DEBUG: bool = True

    # Local record storage (persistence hand-off)
    LOCAL_RECORDS_PATH: str = "records"

    # CORS
    CORS_ORIGINS: List[str] = ["http://localhost:3000", "http://localhost:8080"]

    # WebSocket
    WS_MAX_CONNECTIONS: int = 100
    WS_HEARTBEAT_INTERVAL: int = 30

    # Per-session event channel
    EVENT_QUEUE_SIZE: int = 100

    # Posture classification
    SHOULDER_THRESHOLD: float = 0.02
    FACE_AREA_THRESHOLD_UP: float = 1.05
    FACE_AREA_THRESHOLD_DOWN: float = 1.05
    DISTORTION_THRESHOLD: float = 0.05

    # Expression detection
    SMILE_THRESHOLD: float = 0.7

    # Sampling cadence (controlled by the client)
    EXPRESSION_INTERVAL_SECONDS: float = 1.0
    POSTURE_CAPTURE_INTERVAL_SECONDS: float = 5.0

    # Stretch routines
    POSITION_DEBOUNCE_MS: int = 500
    STRETCH_MAX_LOOPS: int = 1

    # Pomodoro cycle
    WORK_MINUTES: int = 25
    BREAK_MINUTES: int = 5
    LONG_BREAK_MINUTES: int = 15
    SESSIONS_BEFORE_LONG_BREAK: int = 4

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"


settings = Settings()
