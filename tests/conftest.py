"""Shared fixtures and fakes for the snapclassify test suite.

Everything here runs offline: the mock camera serves a synthetic gradient and
the model fakes are plain numpy. Coroutine tests drive their own event loop
with ``asyncio.run`` so asyncio primitives are created inside the test.
"""

from __future__ import annotations

import asyncio
from typing import Optional

import cv2
import numpy as np
import pytest

from snapclassify.adapters.camera.mock_camera import MockMediaDevices, synthetic_frame
from snapclassify.adapters.camera.raster import to_frame
from snapclassify.adapters.model.base import InferenceRuntime, ModelHandle
from snapclassify.adapters.model.mock_runtime import MockRuntime
from snapclassify.adapters.model.tensors import Tensor, TensorPool
from snapclassify.config import Config
from snapclassify.services.factory import build_session
from snapclassify.services.status_store import StatusStore


# ── Fakes ───────────────────────────────────────────────────────────


class FixedHandle(ModelHandle):
    """Model that returns a fixed output vector; optionally held on a gate."""

    backend = "fixed"

    def __init__(self, pool: TensorPool, output, input_size=(32, 32), layout="NHWC",
                 gated: bool = False, fail: Optional[Exception] = None):
        super().__init__(pool)
        self.output = np.asarray(output, dtype=np.float32)
        self.input_size = input_size
        self.input_layout = layout
        self.output_width = self.output.shape[0]
        self.fail = fail
        self.calls = 0
        self.last_shape = None
        self.live_at_predict = None
        self.entered = asyncio.Event()
        self.gate = asyncio.Event()
        if not gated:
            self.gate.set()

    async def predict(self, batch: Tensor) -> Tensor:
        self.calls += 1
        self.last_shape = batch.shape
        self.live_at_predict = self.pool.num_tensors
        self.entered.set()
        await self.gate.wait()
        if self.fail is not None:
            raise self.fail
        return self.pool.tensor(self.output[np.newaxis, :])


class StaticRuntime(InferenceRuntime):
    """Runtime whose load() hands back a prepared handle, optionally after a gate."""

    def __init__(self, handle: ModelHandle, gated: bool = False):
        self.handle = handle
        self.gate = asyncio.Event()
        self.started = asyncio.Event()
        if not gated:
            self.gate.set()

    async def load(self, source: str) -> ModelHandle:
        self.started.set()
        await self.gate.wait()
        return self.handle


# ── Helpers ─────────────────────────────────────────────────────────


def jpeg_bytes(width: int = 320, height: int = 240, facing: str = "environment") -> bytes:
    ok, buf = cv2.imencode(".jpg", synthetic_frame(width, height, facing))
    assert ok
    return buf.tobytes()


def png_bytes(width: int = 64, height: int = 48) -> bytes:
    ok, buf = cv2.imencode(".png", synthetic_frame(width, height))
    assert ok
    return buf.tobytes()


def decode(payload: bytes) -> np.ndarray:
    return cv2.imdecode(np.frombuffer(payload, dtype=np.uint8), cv2.IMREAD_COLOR)


def make_config(**overrides) -> Config:
    cfg = Config()
    settings = dict(runtime="mock", camera_backend="mock", labels_path="", top_k=3, preview_step=True,
                    initial_facing="environment", facing_constraint="ideal", mock_input_size=64,
                    mock_load_delay=0.0, mock_predict_delay=0.0)
    settings.update(overrides)
    for key, value in settings.items():
        setattr(cfg, key, value)
    return cfg


# ── Fixtures ────────────────────────────────────────────────────────


@pytest.fixture
def status() -> StatusStore:
    return StatusStore()


@pytest.fixture
def pool() -> TensorPool:
    return TensorPool()


@pytest.fixture
def frame():
    return to_frame(synthetic_frame(), mirrored=False)


@pytest.fixture
def make_session(status, pool):
    """Factory: session on mock camera + mock runtime, both reachable for assertions."""

    def _make(runtime: Optional[InferenceRuntime] = None, devices: Optional[MockMediaDevices] = None,
              **config_overrides):
        cfg = make_config(**config_overrides)
        devices = devices or MockMediaDevices(status)
        session = build_session(cfg, status, pool=pool, runtime=runtime, devices=devices)
        return session, devices

    return _make


@pytest.fixture
def mock_runtime(status, pool):
    def _make(num_classes: int = 10, **kwargs) -> MockRuntime:
        return MockRuntime(status, pool, num_classes=num_classes, input_size=64, **kwargs)

    return _make
