from pydantic import BaseModel, ConfigDict, Field
from typing import Optional
from datetime import datetime
from enum import Enum


class FacingMode(str, Enum):
    user = "user"
    environment = "environment"


class SessionState(str, Enum):
    idle = "idle"
    countdown = "countdown"
    capturing = "capturing"
    complete = "complete"
    cancelled = "cancelled"


ACTIVE_STATES = (SessionState.countdown, SessionState.capturing)


class Frame(BaseModel):
    model_config = ConfigDict(frozen=True)

    data: bytes
    captured_at: datetime
    width: int
    height: int
    facing_mode: FacingMode = FacingMode.user


class SessionEvent(BaseModel):
    type: str
    state: SessionState
    countdown: Optional[int] = None
    photo_index: int = 0
    frame_count: int = 0
    photo_count: int = 0
    message: Optional[str] = None
    instruction: Optional[str] = None
    duration: Optional[float] = None
    error: Optional[str] = None


class SessionStatus(BaseModel):
    state: SessionState
    layout_id: str
    theme_id: str
    facing_mode: FacingMode
    device_id: Optional[int] = None
    countdown: Optional[int] = None
    photo_index: int = 0
    frame_count: int = 0
    photo_count: int
    instruction: Optional[str] = None
    error: Optional[str] = None


class SessionSelectRequest(BaseModel):
    layout_id: Optional[str] = None
    theme_id: Optional[str] = None


class FacingModeRequest(BaseModel):
    facing_mode: FacingMode
    device_id: Optional[int] = Field(default=None, ge=0)


class RecomposeRequest(BaseModel):
    layout_id: Optional[str] = None
    theme_id: Optional[str] = None


class SaveRequest(BaseModel):
    user_id: Optional[str] = None


class SessionStatusResponse(SessionStatus):
    has_result: bool = False
    message: Optional[str] = None


class CompositeResponse(BaseModel):
    success: bool
    layout_id: str
    theme_id: str
    width: int
    height: int
    filename: str
    result_url: str = "/api/session/result"


class StripSaveResponse(BaseModel):
    success: bool
    id: str
    filename: str
    download_url: str
