"""
Camera manager: the only owner of the live device stream.

At most one stream is bound at a time. Acquiring always releases the old
stream first and waits for its tracks to stop, so platforms that serialize
camera access never see two open requests.

Requests cannot be aborted once issued. Each acquire() takes a generation
number; teardown() bumps it, and a stream that resolves under a stale
generation (or after close()) is stopped on arrival instead of being bound.
"""
import asyncio
from typing import Optional

from snapclassify.adapters.camera.base import MediaDevices, MediaStream, StreamConstraints
from snapclassify.adapters.camera.raster import draw_still, to_frame
from snapclassify.orchestrator.contracts import (
    CapturedFrame, FacingConstraint, FacingMode, opposite_facing,
)
from snapclassify.orchestrator.errors import CameraError, UnknownCameraError


class CameraManager:
    def __init__(self, devices: MediaDevices, status_store, facing: FacingMode = "environment",
                 constraint: FacingConstraint = "ideal", width: int | None = None,
                 height: int | None = None, jpeg_quality: int = 90):
        self.devices = devices
        self.status = status_store
        self.facing: FacingMode = facing
        self.constraint: FacingConstraint = constraint
        self.width = width
        self.height = height
        self.jpeg_quality = jpeg_quality
        self._sink: Optional[MediaStream] = None
        self._generation = 0
        self._alive = True

    @property
    def alive(self) -> bool:
        return self._alive

    @property
    def stream(self) -> Optional[MediaStream]:
        return self._sink

    @property
    def streaming(self) -> bool:
        return self._sink is not None and self._sink.active

    async def acquire(self, facing: FacingMode | None = None) -> Optional[MediaStream]:
        """Bind a new stream. Returns None if torn down while the request was in flight."""
        if not self._alive:
            raise UnknownCameraError("camera manager is closed")
        facing = facing or self.facing
        await self._release()

        self._generation += 1
        gen = self._generation
        self.facing = facing
        constraints = StreamConstraints(facing=facing, constraint=self.constraint,
                                        width=self.width, height=self.height)
        self.status.log(f"camera: acquire facing={facing} ({self.constraint})")
        try:
            stream = await self.devices.request_stream(constraints)
        except CameraError as e:
            self.status.log(f"camera: acquire failed {e.code}: {e}")
            raise
        except Exception as e:
            self.status.log(f"camera: acquire failed {type(e).__name__}: {e}")
            raise UnknownCameraError(str(e)) from e

        if not self._alive or gen != self._generation:
            self.status.log("camera: stream resolved after teardown, stopping it")
            await stream.stop()
            return None

        self._sink = stream
        self.status.log(f"camera: streaming facing={facing}")
        return stream

    async def switch_facing(self) -> Optional[MediaStream]:
        target = opposite_facing(self.facing)
        self.status.log(f"camera: switch {self.facing} -> {target}")
        await self.teardown()
        return await self.acquire(target)

    async def capture_still(self, mirror: bool | None = None) -> CapturedFrame:
        stream = self._sink
        if stream is None or not stream.active:
            raise UnknownCameraError("no active stream to capture from")
        if mirror is None:
            mirror = self.facing == "user"

        frame = await stream.read_frame()
        if frame is None:
            raise UnknownCameraError("camera returned no frame")
        if self._sink is not stream:
            raise UnknownCameraError("stream closed during capture")

        img = draw_still(frame, mirror)
        captured = await asyncio.to_thread(to_frame, img, mirror, self.jpeg_quality)
        self.status.log(f"camera: captured {captured.width}x{captured.height} mirrored={captured.mirrored}")
        return captured

    async def teardown(self):
        """Stop all tracks, clear the sink, invalidate any in-flight acquire."""
        self._generation += 1
        await self._release()

    async def close(self):
        self._alive = False
        await self.teardown()

    async def _release(self):
        stream, self._sink = self._sink, None
        if stream is not None:
            await stream.stop()
            self.status.log(f"camera: stream stopped facing={stream.facing}")
