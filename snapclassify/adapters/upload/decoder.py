"""Upload path: file bytes -> CapturedFrame. Never mirrored."""
import asyncio

from snapclassify.adapters.camera.raster import decode_image, to_frame
from snapclassify.orchestrator.contracts import CapturedFrame
from snapclassify.orchestrator.errors import UploadDecodeError

MAX_UPLOAD_BYTES = 20 * 1024 * 1024


def _decode(data: bytes, quality: int) -> CapturedFrame:
    img = decode_image(data)
    if img is None:
        raise UploadDecodeError("not a JPEG/PNG image")
    return to_frame(img, mirrored=False, quality=quality, source="upload")


async def decode_upload(data: bytes, quality: int = 90) -> CapturedFrame:
    if not data:
        raise UploadDecodeError("empty upload")
    if len(data) > MAX_UPLOAD_BYTES:
        raise UploadDecodeError(f"upload larger than {MAX_UPLOAD_BYTES} bytes")
    return await asyncio.to_thread(_decode, data, quality)
