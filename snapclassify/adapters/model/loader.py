from typing import Literal, Optional

from snapclassify.adapters.model.base import InferenceRuntime, ModelHandle
from snapclassify.orchestrator.errors import ModelLoadError

LoaderState = Literal["unloaded", "loading", "ready", "failed"]


class ModelLoader:
    """
    Owns one ModelHandle for the session.

    unloaded -> loading -> ready | failed. No internal retry: a failed loader
    needs a fresh load() call. dispose() is idempotent and, if a load is still
    pending, makes that load dispose its handle on arrival.
    """

    def __init__(self, runtime: InferenceRuntime, source: str, status_store):
        self.runtime = runtime
        self.source = source
        self.status = status_store
        self.state: LoaderState = "unloaded"
        self.handle: Optional[ModelHandle] = None
        self.error: Optional[ModelLoadError] = None
        self._generation = 0

    async def load(self) -> Optional[ModelHandle]:
        """Returns the handle, or None if dispose() was called while loading."""
        if self.state == "ready" and self.handle is not None:
            return self.handle
        if self.state == "loading":
            raise ModelLoadError("load already in progress")

        self._generation += 1
        gen = self._generation
        self.state = "loading"
        self.error = None
        self.status.log(f"model_loader: loading source={self.source or '<builtin>'}")
        try:
            handle = await self.runtime.load(self.source)
        except ModelLoadError as e:
            if gen == self._generation:
                self.state = "failed"
                self.error = e
            self.status.log(f"model_loader: failed {e}")
            raise
        except Exception as e:
            err = ModelLoadError(e)
            if gen == self._generation:
                self.state = "failed"
                self.error = err
            self.status.log(f"model_loader: failed {err}")
            raise err from e

        if gen != self._generation:
            self.status.log("model_loader: load resolved after dispose, releasing handle")
            handle.dispose()
            return None

        self.handle = handle
        self.state = "ready"
        self.status.log(f"model_loader: ready backend={handle.backend}")
        return handle

    def dispose(self, handle: Optional[ModelHandle] = None):
        handle = handle or self.handle
        if self.state == "loading":
            self._generation += 1
        if handle is not None and not handle.disposed:
            handle.dispose()
            self.status.log("model_loader: handle disposed")
        if handle is None or handle is self.handle:
            self.handle = None
            self.state = "unloaded"
