"""
Preprocessing + inference for one captured frame.

Pipeline:
  1. decode JPEG payload -> RGB pixel tensor
  2. bilinear resize to the model input size
  3. float32 cast + normalize (unit [0,1] | symmetric [-1,1] | imagenet mean/std)
  4. add batch dim (NHWC, or transposed to NCHW)
  5. forward pass -> probability vector
  6. index -> label via the taxonomy
  7. stable sort desc (ties by index), top-K

Every tensor from steps 1-5 lives in one TensorScope and is disposed before
classify() returns or raises. One classify at a time per engine; a second
call is rejected with BusyError, never queued.
"""
import asyncio

import cv2
import numpy as np

from snapclassify.adapters.camera.raster import decode_image
from snapclassify.adapters.model.base import ModelHandle
from snapclassify.adapters.model.tensors import TensorPool, TensorScope
from snapclassify.orchestrator.contracts import CapturedFrame, Prediction, PredictionResult
from snapclassify.orchestrator.errors import BusyError, InferenceError, ModelDisposedError

IMAGENET_MEAN = np.array([0.485, 0.456, 0.406], dtype=np.float32)
IMAGENET_STD = np.array([0.229, 0.224, 0.225], dtype=np.float32)
INPUT_RANGES = ("unit", "symmetric", "imagenet")
ACTIVATIONS = ("none", "softmax")


def normalize(x: np.ndarray, input_range: str) -> np.ndarray:
    if input_range == "unit":
        return x / 255.0
    if input_range == "symmetric":
        return x / 127.5 - 1.0
    if input_range == "imagenet":
        return (x / 255.0 - IMAGENET_MEAN) / IMAGENET_STD
    raise ValueError(f"unknown input range {input_range!r}")


def softmax(x: np.ndarray) -> np.ndarray:
    z = np.exp(x - np.max(x))
    return z / z.sum()


def rank_predictions(probs: np.ndarray, labels: list[str], k: int) -> PredictionResult:
    # stable argsort on the negated vector keeps ascending index among equal scores
    order = np.argsort(-probs, kind="stable")[: max(0, k)]
    return tuple(Prediction(label=labels[i], probability=float(np.clip(probs[i], 0.0, 1.0))) for i in order)


class InferenceEngine:
    def __init__(self, pool: TensorPool, labels: list[str], status_store, top_k: int = 3,
                 input_range: str = "symmetric", output_activation: str = "none"):
        if input_range not in INPUT_RANGES:
            raise ValueError(f"input_range must be one of {INPUT_RANGES}")
        if output_activation not in ACTIVATIONS:
            raise ValueError(f"output_activation must be one of {ACTIVATIONS}")
        self.pool = pool
        self.labels = list(labels)
        self.status = status_store
        self.top_k = top_k
        self.input_range = input_range
        self.output_activation = output_activation
        self._in_flight = False

    @property
    def busy(self) -> bool:
        return self._in_flight

    async def classify(self, frame: CapturedFrame, handle: ModelHandle) -> PredictionResult:
        if handle is None or handle.disposed:
            raise ModelDisposedError("classify called without a live model")
        if self._in_flight:
            raise BusyError()

        self._in_flight = True
        try:
            with self.pool.scope() as scope:
                probs = await self._forward(scope, frame, handle)
            result = self._rank(probs)
        except (InferenceError, ModelDisposedError):
            raise
        except Exception as e:
            raise InferenceError(f"{type(e).__name__}: {e}") from e
        finally:
            self._in_flight = False

        top = result[0] if result else None
        self.status.log(
            f"engine: top={top.label if top else '-'} p={top.probability if top else 0:.3f} k={len(result)}"
        )
        return result

    async def _forward(self, scope: TensorScope, frame: CapturedFrame, handle: ModelHandle) -> np.ndarray:
        img = await asyncio.to_thread(decode_image, frame.payload)
        if img is None:
            raise InferenceError("frame payload is not a decodable image")

        pixels = scope.tensor(cv2.cvtColor(img, cv2.COLOR_BGR2RGB))
        h, w = handle.input_size
        resized = scope.tensor(cv2.resize(pixels.data, (w, h), interpolation=cv2.INTER_LINEAR))
        floats = scope.tensor(resized.data.astype(np.float32))
        normed = scope.tensor(normalize(floats.data, self.input_range).astype(np.float32))
        batch = scope.tensor(normed.data[np.newaxis, ...])
        if handle.input_layout == "NCHW":
            batch = scope.tensor(np.transpose(batch.data, (0, 3, 1, 2)))

        if handle.disposed:
            raise ModelDisposedError("model disposed during preprocessing")
        output = scope.track(await handle.predict(batch))

        probs = np.array(output.data, dtype=np.float64).reshape(-1)
        if self.output_activation == "softmax":
            probs = softmax(probs)
        return probs

    def _rank(self, probs: np.ndarray) -> PredictionResult:
        if probs.shape[0] != len(self.labels):
            raise InferenceError(
                f"model output width {probs.shape[0]} does not match {len(self.labels)} labels"
            )
        if not np.all(np.isfinite(probs)):
            raise InferenceError("model output contains non-finite values")
        return rank_predictions(probs, self.labels, self.top_k)
