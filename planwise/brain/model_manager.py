"""
Model lifecycle management.

ModelLifecycleManager exclusively owns the single live backend handle. load,
run and unload all take one lock, so at most one of them touches the backend
at any instant and no handle is ever used after it has been freed.
"""
import threading
import time
from enum import Enum
from typing import Optional

from planwise.brain.inference import CancelToken, InferenceBackend, InferenceCapability, ModelHandle, NO_HANDLE
from planwise.core.config import Config
from planwise.core.errors import (
    GenerationCancelled,
    GenerationFailure,
    GenerationTimeout,
    ModelLoadFailure,
    ModelNotLoaded,
)
from planwise.core.logger import get_logger


class ModelState(Enum):
    """Lifecycle states"""
    UNLOADED = "UNLOADED"
    LOADING = "LOADING"
    LOADED = "LOADED"
    ERROR = "ERROR"


class _LoadedModel:
    """A live handle. Can run prompts until released; released exactly once."""

    def __init__(self, backend: InferenceBackend, handle: ModelHandle):
        self._backend = backend
        self._handle = handle
        self._released = False

    @property
    def path(self) -> str:
        return self._handle.path

    def run(self, prompt: str, max_tokens: int, should_stop) -> str:
        if self._released:
            raise ModelNotLoaded(f"Model {self._handle.path} was already released")
        return self._backend.run(self._handle.value, prompt, max_tokens, should_stop)

    def release(self) -> None:
        if self._released:
            return
        self._released = True
        if not self._handle.is_sentinel:
            self._backend.unload(self._handle.value)


class ModelLifecycleManager:
    """
    Loads, runs and frees models through an InferenceCapability.

    Usable as a context manager; leaving the block unloads the model.
    """

    def __init__(self, capability: InferenceCapability, generation_timeout_sec: Optional[float] = None):
        self.logger = get_logger()
        self._capability = capability
        self._timeout = (
            Config.get_generation_deadline() if generation_timeout_sec is None else generation_timeout_sec
        )
        self._lock = threading.Lock()
        self._model: Optional[_LoadedModel] = None
        self._state = ModelState.UNLOADED
        self._last_unload_error: Optional[BaseException] = None

    # ------------------------------------------------------------------
    # read-only views
    # ------------------------------------------------------------------

    @property
    def capability(self) -> InferenceCapability:
        return self._capability

    @property
    def state(self) -> ModelState:
        return self._state

    @property
    def is_loaded(self) -> bool:
        return self._model is not None

    @property
    def loaded_path(self) -> Optional[str]:
        model = self._model
        return model.path if model is not None else None

    @property
    def last_unload_error(self) -> Optional[BaseException]:
        """Error from the most recent best-effort unload during a model switch"""
        return self._last_unload_error

    # ------------------------------------------------------------------
    # lifecycle
    # ------------------------------------------------------------------

    def load(self, model_path: str) -> None:
        """
        Make model_path the loaded model.

        No-op when it is already loaded. A different loaded model is freed
        first; a failure while freeing it is logged and does not block the
        new load.

        Raises:
            NativeBackendUnavailable: no inference backend on this machine
            ModelLoadFailure: the backend raised or returned the 0 handle
        """
        backend = self._capability.require()

        with self._lock:
            if self._model is not None and self._model.path == model_path:
                self.logger.debug(f"[MODEL] {model_path} already loaded")
                return

            if self._model is not None:
                self._switch_out()

            self._state = ModelState.LOADING
            self.logger.info(f"[MODEL] Loading {model_path} via {self._capability.name}")
            start = time.time()
            try:
                value = backend.load(model_path)
            except Exception as e:
                self._state = ModelState.ERROR
                self.logger.error(f"[MODEL] Load failed: {e}")
                raise ModelLoadFailure(model_path, e) from e

            if value == NO_HANDLE:
                self._state = ModelState.ERROR
                self.logger.error(f"[MODEL] Backend returned no handle for {model_path}")
                raise ModelLoadFailure(model_path)

            self._model = _LoadedModel(backend, ModelHandle(value, model_path))
            self._state = ModelState.LOADED
            self.logger.info(f"[MODEL] Loaded in {time.time() - start:.2f}s")

    def _switch_out(self) -> None:
        # Caller holds the lock
        model, self._model = self._model, None
        self._state = ModelState.UNLOADED
        try:
            model.release()
        except Exception as e:
            self._last_unload_error = e
            self.logger.warning(f"[MODEL] Unloading {model.path} failed: {e}")

    def run(self, prompt: str, max_tokens: Optional[int] = None, cancel_token: Optional[CancelToken] = None) -> str:
        """
        Generate text for prompt with the loaded model.

        Args:
            prompt: Full prompt string
            max_tokens: Generation limit (default: Config.MAX_TOKENS)
            cancel_token: Optional token; cancelling it stops generation

        Returns:
            The backend's text, unmodified

        Raises:
            ModelNotLoaded: no model is loaded
            GenerationCancelled: the token was cancelled
            GenerationTimeout: the generation deadline passed
            GenerationFailure: the backend failed
        """
        limit = max_tokens or Config.MAX_TOKENS
        token = cancel_token or CancelToken()

        with self._lock:
            model = self._model
            if model is None:
                raise ModelNotLoaded("No model loaded")

            if token.should_stop():
                raise GenerationCancelled("Generation cancelled before it started")

            deadline = CancelToken(self._timeout if self._timeout > 0 else None)

            def should_stop() -> bool:
                return token.should_stop() or deadline.expired()

            start = time.time()
            try:
                text = model.run(prompt, limit, should_stop)
            except GenerationCancelled as e:
                if deadline.expired():
                    self.logger.warning(f"[MODEL] Generation exceeded {self._timeout:.1f}s")
                    raise GenerationTimeout(f"Generation exceeded {self._timeout:.1f}s", cause=e) from e
                self.logger.info("[MODEL] Generation cancelled")
                raise
            except GenerationFailure:
                raise
            except Exception as e:
                self.logger.error(f"[MODEL] Generation failed: {e}")
                raise GenerationFailure(f"Generation failed: {e}", cause=e) from e

            self.logger.debug(f"[MODEL] Generated {len(text)} chars in {time.time() - start:.2f}s")
            return text

    def unload(self) -> None:
        """Free the loaded model. Safe to call any number of times."""
        with self._lock:
            model, self._model = self._model, None
            if model is None:
                return
            self._state = ModelState.UNLOADED
            self.logger.info(f"[MODEL] Unloading {model.path}")
            model.release()

    def __enter__(self) -> "ModelLifecycleManager":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> bool:
        self.unload()
        return False
