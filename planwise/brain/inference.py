"""
Inference backend boundary.

A backend is an opaque, fallible native capability with three calls:

    load(model_path) -> handle      (0 means failure)
    run(handle, prompt, max_tokens, should_stop) -> text
    unload(handle)

Whether a backend exists at all is decided once at startup and carried in an
InferenceCapability object that is passed to whoever needs it, instead of a
process-wide "library loaded" flag.
"""
from __future__ import annotations

import threading
import time
from dataclasses import dataclass
from typing import Callable, Optional, Protocol, runtime_checkable

from planwise.core.errors import NativeBackendUnavailable
from planwise.core.logger import get_logger

NO_HANDLE = 0

StopCheck = Callable[[], bool]


@runtime_checkable
class InferenceBackend(Protocol):
    """Native inference engine. Implementations need not be thread-safe."""

    def load(self, model_path: str) -> int: ...

    def run(self, handle: int, prompt: str, max_tokens: int, should_stop: StopCheck) -> str: ...

    def unload(self, handle: int) -> None: ...


@dataclass(frozen=True)
class ModelHandle:
    """Opaque backend handle plus the file it was loaded from"""
    value: int
    path: str

    @property
    def is_sentinel(self) -> bool:
        return self.value == NO_HANDLE


class CancelToken:
    """
    Cooperative cancellation for a generation call.

    Optionally carries a deadline; expired() reports when it has passed.
    """

    def __init__(self, timeout_sec: Optional[float] = None):
        self._event = threading.Event()
        self._deadline: Optional[float] = None
        if timeout_sec is not None and timeout_sec > 0:
            self._deadline = time.monotonic() + timeout_sec

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def expired(self) -> bool:
        return self._deadline is not None and time.monotonic() >= self._deadline

    def should_stop(self) -> bool:
        return self.cancelled or self.expired()


class InferenceCapability:
    """
    Explicit "is there a usable backend" object.

    Constructed once at startup and passed to ModelLifecycleManager. An
    unavailable capability keeps the reason so callers can report it.
    """

    def __init__(self, backend: Optional[InferenceBackend], name: str, reason: str = ""):
        self.backend = backend
        self.name = name
        self.reason = reason

    @classmethod
    def unavailable(cls, name: str, reason: str) -> "InferenceCapability":
        return cls(None, name, reason)

    @property
    def available(self) -> bool:
        return self.backend is not None

    def require(self) -> InferenceBackend:
        """Return the backend or raise NativeBackendUnavailable"""
        if self.backend is None:
            raise NativeBackendUnavailable(f"Inference backend '{self.name}' unavailable: {self.reason}")
        return self.backend

    def __repr__(self) -> str:
        state = "available" if self.available else f"unavailable ({self.reason})"
        return f"InferenceCapability({self.name!r}, {state})"


def detect_capability(backend_name: Optional[str] = None) -> InferenceCapability:
    """
    Probe for the configured backend and wrap the result.

    Args:
        backend_name: "llama_cpp", "llama_server" or "off" (default: Config.BACKEND)

    Returns:
        InferenceCapability, available or not; never raises for a missing backend
    """
    from planwise.core.config import Config

    logger = get_logger()
    name = (backend_name or Config.BACKEND).strip().lower()

    if name == "off":
        logger.info("[MODEL] Inference disabled, using command parser only")
        return InferenceCapability.unavailable(name, "disabled by configuration")

    if name == "llama_cpp":
        from planwise.brain.llama_native import LlamaCppBackend, llama_cpp_available

        ok, reason = llama_cpp_available()
        if not ok:
            logger.warning(f"[MODEL] llama-cpp-python not available: {reason}")
            return InferenceCapability.unavailable(name, reason)
        return InferenceCapability(LlamaCppBackend(), name)

    if name == "llama_server":
        from planwise.brain.llama_server import LlamaServerBackend, find_server_binary

        binary = find_server_binary(Config.LLAMA_SERVER_BINARY)
        if binary is None:
            reason = f"llama-server binary not found at {Config.LLAMA_SERVER_BINARY}"
            logger.warning(f"[MODEL] {reason}")
            return InferenceCapability.unavailable(name, reason)
        return InferenceCapability(LlamaServerBackend(binary_path=binary), name)

    raise ValueError(f"Unknown inference backend {backend_name!r}")
