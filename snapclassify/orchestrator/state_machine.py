from typing import Optional

from snapclassify.adapters.camera.manager import CameraManager
from snapclassify.adapters.inference.engine import InferenceEngine
from snapclassify.adapters.model.loader import ModelLoader
from snapclassify.adapters.upload.decoder import decode_upload
from snapclassify.orchestrator.contracts import CapturedFrame, ErrorInfo, PredictionResult, SessionSnapshot
from snapclassify.orchestrator import errors
from snapclassify.orchestrator.phases import (
    INITIALIZING, READY, CAPTURING, PREVIEWING, CLASSIFYING, DONE, ERROR,
)


class CaptureSession:
    """
    Capture-and-classify flow for one user session.

    Every awaited step re-checks liveness and the capture sequence number when
    it resolves. Anything that finishes after close(), or after a newer capture
    has started, is released and dropped instead of being applied.
    """

    def __init__(self, loader: ModelLoader, camera: CameraManager, engine: InferenceEngine,
                 status_store, preview_step: bool = True, jpeg_quality: int = 90):
        self.loader = loader
        self.camera = camera
        self.engine = engine
        self.status = status_store
        self.preview_step = preview_step
        self.jpeg_quality = jpeg_quality

        self.phase: str = INITIALIZING
        self.error: Optional[errors.CaptureError] = None
        self.frame: Optional[CapturedFrame] = None
        self.predictions: Optional[PredictionResult] = None
        self._alive = True
        self._seq = 0

    # ── State ───────────────────────────────────────────────────────────────

    @property
    def alive(self) -> bool:
        return self._alive

    def snapshot(self) -> SessionSnapshot:
        err = None
        if self.error is not None:
            err = ErrorInfo(code=self.error.code, message=self.error.message, recoverable=self.error.recoverable)
        return SessionSnapshot(
            phase=self.phase,
            facing=self.camera.facing,
            error=err,
            frame=self.frame,
            predictions=self.predictions,
            streaming=self.camera.streaming,
        )

    def _set_phase(self, phase: str):
        if phase != self.phase:
            self.status.log(f"session: {self.phase} -> {phase}")
        self.phase = phase

    def _require(self, action: str, *phases: str):
        if not self._alive:
            raise errors.InvalidTransition(f"{action}: session is closed")
        if self.phase not in phases:
            raise errors.InvalidTransition(f"{action} not allowed in phase {self.phase}")

    def _current(self, seq: int, *phases: str) -> bool:
        return self._alive and seq == self._seq and (not phases or self.phase in phases)

    def _fail(self, err: errors.CaptureError):
        self.error = err
        self.status.set_error(err.code)
        self.status.log(f"session: error {err.code}: {err}")
        self._set_phase(ERROR)

    def _discard(self):
        self._seq += 1
        self.frame = None
        self.predictions = None

    # ── Lifecycle ───────────────────────────────────────────────────────────

    async def start(self) -> SessionSnapshot:
        self._require("start", INITIALIZING)
        try:
            handle = await self.loader.load()
        except errors.ModelLoadError as e:
            if self._alive:
                self._fail(e)
            return self.snapshot()

        if handle is None or not self._alive:
            if handle is not None:
                self.loader.dispose(handle)
            self.status.log("session: model arrived after close, not promoting to ready")
            return self.snapshot()

        self._set_phase(READY)
        return self.snapshot()

    async def close(self):
        if not self._alive:
            return
        self._alive = False
        self._discard()
        self.status.log("session: closing")
        await self.camera.close()
        self.loader.dispose()

    # ── Camera actions ──────────────────────────────────────────────────────

    async def open_camera(self) -> SessionSnapshot:
        self._require("open_camera", READY)
        self._discard()
        self.error = None
        self._set_phase(CAPTURING)
        await self._acquire()
        return self.snapshot()

    async def _acquire(self, switch: bool = False):
        seq = self._seq
        try:
            if switch:
                await self.camera.switch_facing()
            else:
                await self.camera.acquire()
        except errors.CameraError as e:
            if self._current(seq, CAPTURING, PREVIEWING):
                await self.camera.teardown()
                self._fail(e)

    async def switch_facing(self) -> SessionSnapshot:
        self._require("switch_facing", CAPTURING, PREVIEWING)
        # a still pending on the old stream resolves stale
        self._discard()
        self._set_phase(CAPTURING)
        await self._acquire(switch=True)
        return self.snapshot()

    async def capture(self) -> SessionSnapshot:
        self._require("capture", CAPTURING)
        if not self.camera.streaming:
            raise errors.InvalidTransition("capture: camera is not streaming yet")
        seq = self._seq
        try:
            frame = await self.camera.capture_still(mirror=self.camera.facing == "user")
        except errors.CameraError as e:
            if self._current(seq, CAPTURING):
                await self.camera.teardown()
                self._fail(e)
            return self.snapshot()

        if not self._current(seq, CAPTURING):
            self.status.log("session: capture resolved after the flow moved on, dropping frame")
            return self.snapshot()

        self.frame = frame
        if self.preview_step:
            self._set_phase(PREVIEWING)
            return self.snapshot()
        await self._classify()
        return self.snapshot()

    async def retake(self) -> SessionSnapshot:
        self._require("retake", PREVIEWING)
        self._discard()
        self._set_phase(CAPTURING)
        if not self.camera.streaming:
            await self._acquire()
        return self.snapshot()

    async def close_camera(self) -> SessionSnapshot:
        self._require("close_camera", CAPTURING, PREVIEWING)
        self._discard()
        await self.camera.teardown()
        self._set_phase(READY)
        return self.snapshot()

    # ── Classification ──────────────────────────────────────────────────────

    async def confirm(self) -> SessionSnapshot:
        self._require("confirm", PREVIEWING)
        await self._classify()
        return self.snapshot()

    async def supply_image(self, data: bytes) -> SessionSnapshot:
        self._require("supply_image", READY)
        frame = await decode_upload(data, quality=self.jpeg_quality)
        self._require("supply_image", READY)
        self._discard()
        self.error = None
        self.frame = frame
        self.status.log(f"session: external image {frame.width}x{frame.height}")
        await self._classify()
        return self.snapshot()

    async def _classify(self):
        seq = self._seq
        frame = self.frame
        self._set_phase(CLASSIFYING)
        await self.camera.teardown()
        if not self._current(seq, CLASSIFYING):
            return
        try:
            result = await self.engine.classify(frame, self.loader.handle)
        except errors.BusyError:
            if self._current(seq, CLASSIFYING):
                self.status.log("session: classifier busy, frame kept for confirm")
                self._set_phase(PREVIEWING)
            raise
        except errors.ModelDisposedError as e:
            if self._current(seq, CLASSIFYING):
                self._fail(e)
            return
        except errors.InferenceError as e:
            self.status.log(f"session: inference failed, showing no prediction ({e})")
            result = ()

        if not self._current(seq, CLASSIFYING):
            self.status.log("session: stale classification result dropped")
            return
        self.predictions = result
        self._set_phase(DONE)

    async def retry(self) -> SessionSnapshot:
        self._require("retry", DONE, CLASSIFYING, ERROR)
        if self.phase == ERROR:
            if self.error is not None and not self.error.recoverable:
                raise errors.InvalidTransition("the session must be restarted")
            self.error = None
            self.status.set_error(None)
            self._discard()
            self._set_phase(CAPTURING)
            await self._acquire()
            return self.snapshot()

        self._discard()
        await self.camera.teardown()
        self._set_phase(READY)
        return self.snapshot()
