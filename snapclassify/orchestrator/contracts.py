from dataclasses import dataclass, field
from typing import Optional, Literal, Tuple

FacingMode = Literal["user", "environment"]
FacingConstraint = Literal["ideal", "exact"]
FrameSource = Literal["camera", "upload"]

def opposite_facing(facing: FacingMode) -> FacingMode:
    return "environment" if facing == "user" else "user"

@dataclass(frozen=True)
class CapturedFrame:
    width: int
    height: int
    payload: bytes = field(repr=False)   # JPEG bytes
    mirrored: bool = False               # True iff taken with the front camera
    source: FrameSource = "camera"

@dataclass(frozen=True)
class Prediction:
    label: str
    probability: float

PredictionResult = Tuple[Prediction, ...]

@dataclass(frozen=True)
class ErrorInfo:
    code: str
    message: str
    recoverable: bool = True

@dataclass(frozen=True)
class SessionSnapshot:
    phase: str
    facing: FacingMode
    error: Optional[ErrorInfo] = None
    frame: Optional[CapturedFrame] = None
    predictions: Optional[PredictionResult] = None
    streaming: bool = False
