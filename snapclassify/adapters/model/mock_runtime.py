"""
Mock runtime: a tiny deterministic linear classifier over a 4x4 colour grid.

No weights file needed. Same pixels in -> same distribution out, which is
all the capture flow needs for offline development.
"""
import asyncio

import numpy as np

from snapclassify.adapters.model.base import InferenceRuntime, ModelHandle
from snapclassify.adapters.model.tensors import Tensor, TensorPool
from snapclassify.orchestrator.errors import ModelLoadError

GRID = 4


class MockModelHandle(ModelHandle):
    backend = "mock-cpu"

    def __init__(self, pool: TensorPool, num_classes: int, input_size: int, seed: int, predict_delay: float):
        super().__init__(pool)
        self.input_size = (input_size, input_size)
        self.output_width = num_classes
        self._delay = predict_delay
        rng = np.random.default_rng(seed)
        self._weights = rng.normal(0.0, 4.0, size=(GRID * GRID * 3, num_classes)).astype(np.float32)
        self._bias = rng.normal(0.0, 0.5, size=(num_classes,)).astype(np.float32)

    async def predict(self, batch: Tensor) -> Tensor:
        if self.disposed:
            raise RuntimeError("predict on disposed model")
        x = batch.data
        if x.ndim != 4 or x.shape[1:3] != self.input_size or x.shape[3] != 3:
            raise ValueError(f"expected (1, {self.input_size[0]}, {self.input_size[1]}, 3), got {x.shape}")
        if self._delay:
            await asyncio.sleep(self._delay)
        h, w = self.input_size
        cells = x[0, : h - h % GRID, : w - w % GRID, :]
        cells = cells.reshape(GRID, h // GRID, GRID, w // GRID, 3).mean(axis=(1, 3))
        logits = cells.reshape(-1) @ self._weights + self._bias
        logits = logits - logits.max()
        probs = np.exp(logits)
        probs /= probs.sum()
        return self.pool.tensor(probs[np.newaxis, :].astype(np.float32))

    def _release(self):
        self._weights = None
        self._bias = None


class MockRuntime(InferenceRuntime):
    def __init__(self, status_store, pool: TensorPool, num_classes: int, input_size: int = 224,
                 load_delay: float = 0.0, predict_delay: float = 0.0, seed: int = 0, fail: bool = False):
        self.status = status_store
        self.pool = pool
        self.num_classes = num_classes
        self.input_size = input_size
        self.load_delay = load_delay
        self.predict_delay = predict_delay
        self.seed = seed
        self.fail = fail

    async def load(self, source: str) -> ModelHandle:
        self.status.log(f"mock_runtime: loading ({self.num_classes} classes, {self.input_size}px)")
        if self.load_delay:
            await asyncio.sleep(self.load_delay)
        if self.fail:
            raise ModelLoadError("mock runtime configured to fail")
        return MockModelHandle(self.pool, self.num_classes, self.input_size, self.seed, self.predict_delay)
