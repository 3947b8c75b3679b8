"""Mock camera: serves images from a folder, or a synthetic gradient."""
import asyncio
import random
from pathlib import Path
from typing import Optional

import cv2
import numpy as np

from snapclassify.adapters.camera.base import MediaDevices, MediaStream, MediaTrack, StreamConstraints
from snapclassify.orchestrator.errors import CameraError


def synthetic_frame(width: int = 320, height: int = 240, facing: str = "environment") -> np.ndarray:
    """Horizontal gradient with a marker block in the top-left corner (BGR)."""
    ramp = np.linspace(0, 255, width, dtype=np.uint8)
    img = np.zeros((height, width, 3), dtype=np.uint8)
    img[:, :, 0] = ramp
    img[:, :, 1] = ramp[::-1]
    img[:, :, 2] = 200 if facing == "user" else 60
    img[: height // 4, : width // 4] = (0, 0, 255)
    return img


class MockTrack(MediaTrack):
    def __init__(self, devices: "MockMediaDevices"):
        self._devices = devices
        self._live = True

    @property
    def live(self) -> bool:
        return self._live

    async def stop(self):
        if self._live:
            self._live = False
            self._devices.stopped += 1


class MockStream(MediaStream):
    def __init__(self, devices: "MockMediaDevices", facing, frame: np.ndarray):
        self.facing = facing
        self.tracks = [MockTrack(devices)]
        self._devices = devices
        self._frame = frame

    async def read_frame(self) -> Optional[np.ndarray]:
        if self._devices.read_gate is not None:
            self._devices.reads_pending += 1
            await self._devices.read_gate.wait()
            self._devices.reads_pending -= 1
        if not self.active:
            return None
        return self._frame.copy()


class MockMediaDevices(MediaDevices):
    def __init__(self, status_store, images_dir: Optional[Path] = None, size=(320, 240)):
        self.status = status_store
        self.images_dir = images_dir
        self.size = size
        self.fail_with: Optional[CameraError] = None
        self.gate: Optional[asyncio.Event] = None
        self.read_gate: Optional[asyncio.Event] = None
        self.reads_pending = 0
        self.requests: list[StreamConstraints] = []
        self.active_at_request: list[int] = []
        self.streams: list[MockStream] = []
        self.stopped = 0

    @property
    def active_streams(self) -> int:
        return sum(1 for s in self.streams if s.active)

    def _next_frame(self, facing) -> np.ndarray:
        if self.images_dir is not None:
            files = sorted(self.images_dir.glob("*.jpg")) + sorted(self.images_dir.glob("*.png"))
            if files:
                chosen = random.choice(files)
                self.status.log(f"mock_camera: serving {chosen.name}")
                img = cv2.imread(str(chosen), cv2.IMREAD_COLOR)
                if img is not None:
                    return img
        return synthetic_frame(self.size[0], self.size[1], facing)

    async def request_stream(self, constraints: StreamConstraints) -> MediaStream:
        self.requests.append(constraints)
        self.active_at_request.append(self.active_streams)
        self.status.log(f"mock_camera: request facing={constraints.facing} active={self.active_streams}")
        if self.gate is not None:
            await self.gate.wait()
        else:
            await asyncio.sleep(0)
        if self.fail_with is not None:
            raise self.fail_with
        stream = MockStream(self, constraints.facing, self._next_frame(constraints.facing))
        self.streams.append(stream)
        return stream
