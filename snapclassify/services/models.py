from pydantic import BaseModel
from typing import Literal, Optional

from snapclassify.orchestrator.contracts import SessionSnapshot

class PredictionOut(BaseModel):
    label: str
    probability: float

class ErrorOut(BaseModel):
    code: str
    message: str
    recoverable: bool = True

class FrameOut(BaseModel):
    width: int
    height: int
    mirrored: bool
    source: Literal["camera", "upload"]

class StatusResponse(BaseModel):
    phase: str
    facing: Literal["user", "environment"]
    streaming: bool = False
    error: Optional[ErrorOut] = None
    frame: Optional[FrameOut] = None
    predictions: Optional[list[PredictionOut]] = None
    logs: list[str] = []

    @classmethod
    def from_snapshot(cls, snap: SessionSnapshot, logs: list[str] | None = None) -> "StatusResponse":
        return cls(
            phase=snap.phase,
            facing=snap.facing,
            streaming=snap.streaming,
            error=ErrorOut(code=snap.error.code, message=snap.error.message,
                           recoverable=snap.error.recoverable) if snap.error else None,
            frame=FrameOut(width=snap.frame.width, height=snap.frame.height,
                           mirrored=snap.frame.mirrored, source=snap.frame.source) if snap.frame else None,
            predictions=[PredictionOut(label=p.label, probability=p.probability)
                         for p in snap.predictions] if snap.predictions is not None else None,
            logs=logs or [],
        )

class ActionResponse(BaseModel):
    ok: bool
    phase: str
    error_code: Optional[str] = None
    message: Optional[str] = None
    predictions: Optional[list[PredictionOut]] = None

class UploadRequest(BaseModel):
    image: str  # base64 JPEG/PNG, optionally a data: URL

class HealthResponse(BaseModel):
    ok: bool
    phase: str
    model_state: str
    backend: Optional[str] = None
    camera_alive: bool
    live_tensors: int
    labels: int
