import cv2
import numpy as np

from snapclassify.orchestrator.contracts import CapturedFrame, FrameSource


def draw_still(frame: np.ndarray, mirror: bool) -> np.ndarray:
    """Copy the frame into an off-screen buffer at native size, flipped horizontally if mirror."""
    if mirror:
        return cv2.flip(frame, 1)
    return frame.copy()


def encode_jpeg(img: np.ndarray, quality: int = 90) -> bytes:
    ok, buf = cv2.imencode(".jpg", img, [cv2.IMWRITE_JPEG_QUALITY, int(quality)])
    if not ok:
        raise ValueError("jpeg encode failed")
    return buf.tobytes()


def decode_image(data: bytes) -> np.ndarray | None:
    """BGR array, or None if the bytes are not a decodable image."""
    if not data:
        return None
    arr = np.frombuffer(data, dtype=np.uint8)
    return cv2.imdecode(arr, cv2.IMREAD_COLOR)


def to_frame(img: np.ndarray, mirrored: bool, quality: int = 90, source: FrameSource = "camera") -> CapturedFrame:
    h, w = img.shape[:2]
    return CapturedFrame(width=w, height=h, payload=encode_jpeg(img, quality), mirrored=mirrored, source=source)
