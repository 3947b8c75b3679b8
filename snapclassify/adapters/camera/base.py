from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional

import numpy as np

from snapclassify.orchestrator.contracts import FacingMode, FacingConstraint


@dataclass(frozen=True)
class StreamConstraints:
    facing: FacingMode
    constraint: FacingConstraint = "ideal"
    width: Optional[int] = None     # resolution hints, best effort
    height: Optional[int] = None


class MediaTrack(ABC):
    @property
    @abstractmethod
    def live(self) -> bool:
        ...

    @abstractmethod
    async def stop(self):
        """Stop the track and release the device. Idempotent."""
        ...


class MediaStream(ABC):
    """A live device stream. Owned by exactly one CameraManager."""

    facing: FacingMode
    tracks: list[MediaTrack]

    @property
    def active(self) -> bool:
        return any(t.live for t in self.tracks)

    async def stop(self):
        for track in self.tracks:
            await track.stop()

    @abstractmethod
    async def read_frame(self) -> Optional[np.ndarray]:
        """Current video frame as an HxWx3 BGR array, or None if unavailable."""
        ...


class MediaDevices(ABC):
    @abstractmethod
    async def request_stream(self, constraints: StreamConstraints) -> MediaStream:
        """Raises one of the CameraError subclasses on failure."""
        ...
