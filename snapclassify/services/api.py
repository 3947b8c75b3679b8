import asyncio
import base64
import binascii
from contextlib import asynccontextmanager

from fastapi import FastAPI, HTTPException
from fastapi.responses import Response

from snapclassify.config import get_config
from snapclassify.orchestrator import errors
from snapclassify.orchestrator.state_machine import CaptureSession
from snapclassify.services.factory import build_session
from snapclassify.services.models import (
    ActionResponse, HealthResponse, PredictionOut, StatusResponse, UploadRequest,
)
from snapclassify.services.status_store import StatusStore


def _decode_b64(data: str) -> bytes:
    # accept both raw base64 and data:image/...;base64,<...> URLs
    if data.startswith("data:") and "," in data:
        data = data.split(",", 1)[1]
    return base64.b64decode(data, validate=True)


def create_app(session: CaptureSession, status: StatusStore) -> FastAPI:

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        status.log("api: starting model load")
        load_task = asyncio.create_task(session.start())
        try:
            yield
        finally:
            status.log("api: shutting down")
            await session.close()
            if not load_task.done():
                load_task.cancel()

    app = FastAPI(title="snapclassify", lifespan=lifespan)
    app.state.session = session
    app.state.status = status

    def respond(snap=None, err: errors.CaptureError | None = None) -> ActionResponse:
        snap = snap or session.snapshot()
        if err is None and snap.error is not None:
            return ActionResponse(ok=False, phase=snap.phase, error_code=snap.error.code, message=snap.error.message)
        if err is not None:
            return ActionResponse(ok=False, phase=snap.phase, error_code=err.code, message=err.message)
        preds = [PredictionOut(label=p.label, probability=p.probability)
                 for p in snap.predictions] if snap.predictions is not None else None
        return ActionResponse(ok=True, phase=snap.phase, predictions=preds)

    async def run(action, *args) -> ActionResponse:
        try:
            snap = await action(*args)
        except errors.CaptureError as e:
            status.log(f"api: {action.__name__} rejected {e.code}: {e}")
            return respond(err=e)
        return respond(snap)

    @app.get("/status", response_model=StatusResponse)
    def get_status():
        return StatusResponse.from_snapshot(session.snapshot(), logs=status.logs)

    @app.get("/health", response_model=HealthResponse)
    def health():
        handle = session.loader.handle
        return HealthResponse(
            ok=session.alive and session.phase != "error",
            phase=session.phase,
            model_state=session.loader.state,
            backend=handle.backend if handle is not None else None,
            camera_alive=session.camera.alive,
            live_tensors=session.engine.pool.num_tensors,
            labels=len(session.engine.labels),
        )

    @app.get("/frame")
    def get_frame():
        frame = session.frame
        if frame is None:
            raise HTTPException(status_code=404, detail="no frame held")
        return Response(content=frame.payload, media_type="image/jpeg")

    @app.post("/camera/open", response_model=ActionResponse)
    async def open_camera():
        return await run(session.open_camera)

    @app.post("/camera/switch", response_model=ActionResponse)
    async def switch_camera():
        return await run(session.switch_facing)

    @app.post("/camera/close", response_model=ActionResponse)
    async def close_camera():
        return await run(session.close_camera)

    @app.post("/capture", response_model=ActionResponse)
    async def capture():
        return await run(session.capture)

    @app.post("/retake", response_model=ActionResponse)
    async def retake():
        return await run(session.retake)

    @app.post("/confirm", response_model=ActionResponse)
    async def confirm():
        return await run(session.confirm)

    @app.post("/retry", response_model=ActionResponse)
    async def retry():
        return await run(session.retry)

    @app.post("/upload", response_model=ActionResponse)
    async def upload(req: UploadRequest):
        try:
            data = _decode_b64(req.image)
        except (binascii.Error, ValueError):
            status.log("api: upload base64 decode failed")
            return respond(err=errors.UploadDecodeError("base64 decode failed"))
        return await run(session.supply_image, data)

    return app


config = get_config()
status = StatusStore()
app = create_app(build_session(config, status), status)


if __name__ == "__main__":
    import logging
    import uvicorn

    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s [%(name)s] %(levelname)s: %(message)s",
        datefmt="%H:%M:%S",
    )
    uvicorn.run(app, host=config.host, port=config.port)
