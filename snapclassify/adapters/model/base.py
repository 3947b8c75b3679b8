from abc import ABC, abstractmethod
from typing import Literal

from snapclassify.adapters.model.tensors import Tensor, TensorPool

InputLayout = Literal["NHWC", "NCHW"]


class ModelHandle(ABC):
    """Loaded weights plus backend binding. All call sites depend only on this."""

    input_size: tuple[int, int]     # (height, width)
    input_layout: InputLayout = "NHWC"
    output_width: int
    backend: str

    def __init__(self, pool: TensorPool):
        self.pool = pool
        self._disposed = False

    @property
    def disposed(self) -> bool:
        return self._disposed

    @abstractmethod
    async def predict(self, batch: Tensor) -> Tensor:
        """Forward pass. Returns a new (1, output_width) tensor registered with the pool."""
        ...

    def dispose(self):
        if self._disposed:
            return
        self._disposed = True
        self._release()

    def _release(self):
        pass


class InferenceRuntime(ABC):
    @abstractmethod
    async def load(self, source: str) -> ModelHandle:
        """Select a backend and load the model. Raises ModelLoadError."""
        ...
