"""
Error taxonomy for the capture-and-classify pipeline.

Every error carries a stable ``code`` (also exported as an ERR_* constant for
the HTTP layer) and a user-facing ``message``.
"""

ERR_BUSY = "BUSY"
ERR_INVALID_TRANSITION = "INVALID_TRANSITION"
ERR_PERMISSION_DENIED = "PERMISSION_DENIED"
ERR_DEVICE_NOT_FOUND = "DEVICE_NOT_FOUND"
ERR_DEVICE_UNSUPPORTED = "DEVICE_UNSUPPORTED"
ERR_CAMERA_UNKNOWN = "CAMERA_UNKNOWN"
ERR_MODEL_LOAD = "MODEL_LOAD"
ERR_MODEL_DISPOSED = "MODEL_DISPOSED"
ERR_INFERENCE = "INFERENCE"
ERR_UPLOAD_DECODE = "UPLOAD_DECODE"


class CaptureError(Exception):
    code = "UNKNOWN"
    message = "Something went wrong."
    recoverable = True

    def __init__(self, detail: str | None = None):
        super().__init__(detail or self.message)
        self.detail = detail


# ── Camera ──────────────────────────────────────────────────────────────────

class CameraError(CaptureError):
    pass


class PermissionDenied(CameraError):
    code = ERR_PERMISSION_DENIED
    message = "Camera access was denied. Allow camera access and try again."


class DeviceNotFound(CameraError):
    code = ERR_DEVICE_NOT_FOUND
    message = "No camera was found on this device."


class DeviceUnsupported(CameraError):
    code = ERR_DEVICE_UNSUPPORTED
    message = "The camera does not support the requested mode."


class UnknownCameraError(CameraError):
    code = ERR_CAMERA_UNKNOWN
    message = "The camera could not be started."


# ── Model ───────────────────────────────────────────────────────────────────

class ModelLoadError(CaptureError):
    code = ERR_MODEL_LOAD
    message = "The classification model failed to load. Restart the session."
    recoverable = False

    def __init__(self, cause: BaseException | str):
        super().__init__(f"{type(cause).__name__}: {cause}" if isinstance(cause, BaseException) else cause)
        self.cause = cause


class ModelDisposedError(CaptureError):
    code = ERR_MODEL_DISPOSED
    message = "The classification model is no longer available."
    recoverable = False


# ── Inference / concurrency ─────────────────────────────────────────────────

class InferenceError(CaptureError):
    code = ERR_INFERENCE
    message = "The image could not be classified."


class BusyError(CaptureError):
    code = ERR_BUSY
    message = "A classification is already running."


class InvalidTransition(CaptureError):
    code = ERR_INVALID_TRANSITION
    message = "That action is not available right now."


class UploadDecodeError(CaptureError):
    code = ERR_UPLOAD_DECODE
    message = "The image file could not be read."
