"""
OpenCV device capture.

Facing modes map to device indexes (SNAP_CAMERA_INDEX_USER /
SNAP_CAMERA_INDEX_ENVIRONMENT). With an "ideal" constraint a missing mapping
falls back to whichever index is configured; "exact" refuses.
"""
import asyncio
import os
import sys
from typing import Optional

import cv2
import numpy as np

from snapclassify.adapters.camera.base import MediaDevices, MediaStream, MediaTrack, StreamConstraints
from snapclassify.orchestrator.errors import (
    DeviceNotFound, DeviceUnsupported, PermissionDenied, UnknownCameraError,
)


class CV2Track(MediaTrack):
    """One VideoCapture. Reads and release are serialized; VideoCapture is not thread-safe."""

    def __init__(self, cap: cv2.VideoCapture, index: int):
        self._cap = cap
        self.index = index
        self._lock = asyncio.Lock()

    @property
    def live(self) -> bool:
        return self._cap is not None and self._cap.isOpened()

    async def read(self) -> Optional[np.ndarray]:
        async with self._lock:
            if self._cap is None:
                return None
            ok, frame = await asyncio.to_thread(self._cap.read)
        if not ok or frame is None:
            return None
        return frame

    async def stop(self):
        # waits for an in-flight read to leave the worker thread
        async with self._lock:
            cap, self._cap = self._cap, None
            if cap is not None:
                await asyncio.to_thread(cap.release)


class CV2Stream(MediaStream):
    def __init__(self, track: CV2Track, facing):
        self.facing = facing
        self.tracks = [track]
        self._track = track

    async def read_frame(self) -> Optional[np.ndarray]:
        return await self._track.read()


class CV2MediaDevices(MediaDevices):
    def __init__(self, status_store, device_indexes: dict, warmup_frames: int = 3):
        self.status = status_store
        self._indexes = device_indexes
        self._warmup = warmup_frames

    def _resolve_index(self, c: StreamConstraints) -> int:
        index = self._indexes.get(c.facing)
        if index is not None:
            return index
        if c.constraint == "exact":
            raise DeviceUnsupported(f"no camera configured for facing={c.facing}")
        fallback = [i for i in self._indexes.values() if i is not None]
        if not fallback:
            raise DeviceNotFound("no camera index configured")
        self.status.log(f"cv2_camera: no device for facing={c.facing}, using index {fallback[0]}")
        return fallback[0]

    def _open_error(self, index: int):
        if sys.platform.startswith("linux"):
            node = f"/dev/video{index}"
            if not os.path.exists(node):
                return DeviceNotFound(f"{node} does not exist")
            if not os.access(node, os.R_OK | os.W_OK):
                return PermissionDenied(f"no read/write access to {node}")
        return UnknownCameraError(f"failed to open device {index}")

    def _open(self, index: int, c: StreamConstraints) -> cv2.VideoCapture:
        cap = cv2.VideoCapture(index)
        if not cap.isOpened():
            cap.release()
            raise self._open_error(index)
        try:
            if c.width:
                cap.set(cv2.CAP_PROP_FRAME_WIDTH, c.width)
            if c.height:
                cap.set(cv2.CAP_PROP_FRAME_HEIGHT, c.height)
            cap.set(cv2.CAP_PROP_BUFFERSIZE, 1)
            for _ in range(self._warmup):
                cap.grab()
        except cv2.error:
            cap.release()
            raise
        return cap

    async def request_stream(self, constraints: StreamConstraints) -> MediaStream:
        index = self._resolve_index(constraints)
        self.status.log(f"cv2_camera: opening device {index} facing={constraints.facing}")
        try:
            cap = await asyncio.to_thread(self._open, index, constraints)
        except (DeviceNotFound, PermissionDenied, UnknownCameraError):
            raise
        except cv2.error as e:
            raise UnknownCameraError(str(e)) from e
        w = int(cap.get(cv2.CAP_PROP_FRAME_WIDTH))
        h = int(cap.get(cv2.CAP_PROP_FRAME_HEIGHT))
        self.status.log(f"cv2_camera: device {index} open {w}x{h}")
        return CV2Stream(CV2Track(cap, index), constraints.facing)
