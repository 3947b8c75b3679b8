"""
Tensor accounting.

Tensors are thin wrappers over numpy buffers that are registered with a
TensorPool. The pool counts live tensors and offers ``scope()``, which yields
a TensorScope that disposes every tensor it tracked on exit, exception exits included.
"""
from contextlib import contextmanager
from typing import Iterator, List, Optional

import numpy as np


class TensorDisposedError(RuntimeError):
    pass


class Tensor:
    __slots__ = ("_data", "_pool", "_id")

    def __init__(self, data: np.ndarray, pool: "TensorPool", tensor_id: int):
        self._data: Optional[np.ndarray] = data
        self._pool = pool
        self._id = tensor_id

    @property
    def disposed(self) -> bool:
        return self._data is None

    @property
    def data(self) -> np.ndarray:
        if self._data is None:
            raise TensorDisposedError(f"tensor {self._id} has been disposed")
        return self._data

    @property
    def shape(self) -> tuple:
        return self.data.shape

    @property
    def dtype(self):
        return self.data.dtype

    def dispose(self):
        if self._data is None:
            return
        self._data = None
        self._pool._release(self)

    def __repr__(self):
        if self._data is None:
            return f"Tensor(id={self._id}, disposed)"
        return f"Tensor(id={self._id}, shape={self._data.shape}, dtype={self._data.dtype})"


class TensorScope:
    """Collects tensors for one operation; disposes all of them on exit."""

    def __init__(self, pool: "TensorPool"):
        self.pool = pool
        self._tensors: List[Tensor] = []

    def tensor(self, data) -> Tensor:
        return self.track(self.pool.tensor(data))

    def track(self, t: Tensor) -> Tensor:
        self._tensors.append(t)
        return t

    def __len__(self):
        return len(self._tensors)

    def dispose(self):
        while self._tensors:
            self._tensors.pop().dispose()


class TensorPool:
    def __init__(self):
        self._live: dict[int, Tensor] = {}
        self._next_id = 0

    @property
    def num_tensors(self) -> int:
        return len(self._live)

    @property
    def num_bytes(self) -> int:
        return sum(t.data.nbytes for t in self._live.values())

    def tensor(self, data) -> Tensor:
        arr = np.ascontiguousarray(data)
        self._next_id += 1
        t = Tensor(arr, self, self._next_id)
        self._live[t._id] = t
        return t

    @contextmanager
    def scope(self) -> Iterator[TensorScope]:
        s = TensorScope(self)
        try:
            yield s
        finally:
            s.dispose()

    def dispose_all(self):
        for t in list(self._live.values()):
            t.dispose()

    def _release(self, t: Tensor):
        self._live.pop(t._id, None)
