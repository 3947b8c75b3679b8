"""
ONNX Runtime backend.

MODEL_SOURCE may be a local path or an http(s) URL. Execution providers are
tried in the configured order; whatever the installed onnxruntime build
actually offers is used, CPU last.
"""
import asyncio
from pathlib import Path

import httpx
import numpy as np
import onnxruntime as ort

from snapclassify.adapters.model.base import InferenceRuntime, ModelHandle
from snapclassify.adapters.model.tensors import Tensor, TensorPool
from snapclassify.orchestrator.errors import ModelLoadError

DEFAULT_INPUT_SIZE = 224
CPU = "CPUExecutionProvider"


def _static_dim(value, default: int) -> int:
    return value if isinstance(value, int) and value > 0 else default


class OnnxModelHandle(ModelHandle):
    def __init__(self, pool: TensorPool, session: ort.InferenceSession):
        super().__init__(pool)
        self._session = session
        inp = session.get_inputs()[0]
        self._input_name = inp.name
        shape = list(inp.shape)
        if len(shape) != 4:
            raise ValueError(f"expected a 4-d image input, got shape {shape}")
        if shape[1] == 3:
            self.input_layout = "NCHW"
            h, w = shape[2], shape[3]
        else:
            self.input_layout = "NHWC"
            h, w = shape[1], shape[2]
        self.input_size = (_static_dim(h, DEFAULT_INPUT_SIZE), _static_dim(w, DEFAULT_INPUT_SIZE))
        out_shape = session.get_outputs()[0].shape
        self.output_width = _static_dim(out_shape[-1] if out_shape else None, 0)
        self.backend = session.get_providers()[0]

    async def predict(self, batch: Tensor) -> Tensor:
        if self._session is None:
            raise RuntimeError("predict on disposed model")
        data = batch.data
        outputs = await asyncio.to_thread(self._session.run, None, {self._input_name: data})
        out = np.asarray(outputs[0], dtype=np.float32).reshape(1, -1)
        return self.pool.tensor(out)

    def _release(self):
        self._session = None


class OnnxRuntime(InferenceRuntime):
    def __init__(self, status_store, pool: TensorPool, providers: list[str] | None = None, timeout: float = 60.0):
        self.status = status_store
        self.pool = pool
        self.providers = providers or [CPU]
        self.timeout = timeout

    def select_providers(self) -> list[str]:
        available = set(ort.get_available_providers())
        chosen = [p for p in self.providers if p in available]
        if CPU not in chosen and CPU in available:
            chosen.append(CPU)
        if not chosen:
            raise ModelLoadError(f"no usable execution provider among {self.providers}")
        return chosen

    async def _fetch(self, source: str) -> bytes:
        if source.startswith(("http://", "https://")):
            self.status.log(f"onnx_runtime: GET {source}")
            async with httpx.AsyncClient(timeout=self.timeout, follow_redirects=True) as client:
                resp = await client.get(source)
                resp.raise_for_status()
                return resp.content
        return await asyncio.to_thread(Path(source).read_bytes)

    async def load(self, source: str) -> ModelHandle:
        if not source:
            raise ModelLoadError("no model source configured")
        try:
            providers = self.select_providers()
            self.status.log(f"onnx_runtime: providers={providers}")
            model_bytes = await self._fetch(source)
            session = await asyncio.to_thread(ort.InferenceSession, model_bytes, providers=providers)
            handle = OnnxModelHandle(self.pool, session)
        except ModelLoadError:
            raise
        except Exception as e:
            # httpx / OSError on fetch, onnxruntime's own pybind types on parse or backend init
            raise ModelLoadError(e) from e
        self.status.log(
            f"onnx_runtime: loaded {Path(source).name} backend={handle.backend} "
            f"input={handle.input_layout}{handle.input_size} outputs={handle.output_width or '?'}"
        )
        return handle
