from __future__ import annotations

import itertools
import os
import sys
import threading
import time
from typing import Callable, Dict, List, Optional

import pytest

sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from planwise.brain.inference import InferenceCapability  # noqa: E402
from planwise.core.logger import init_logger  # noqa: E402


class FakeBackend:
    """In-memory InferenceBackend.

    Records every call, hands out increasing handles and replies with scripted
    responses (or a callable). Tracks how many run() calls are inside the
    backend at once so tests can assert serialization.
    """

    def __init__(
        self,
        responses: Optional[List[str]] = None,
        run_delay: float = 0.0,
        respond: Optional[Callable[[str], str]] = None,
    ) -> None:
        self.responses = list(responses or [])
        self.respond = respond
        self.run_delay = run_delay
        self.load_calls: List[str] = []
        self.unload_calls: List[int] = []
        self.prompts: List[str] = []
        self.fail_load = False
        self.zero_handle = False
        self.fail_run: Optional[BaseException] = None
        self.fail_unload: Optional[BaseException] = None
        self.live: Dict[int, str] = {}
        self._ids = itertools.count(1)
        self._guard = threading.Lock()
        self.active_runs = 0
        self.max_active_runs = 0

    def load(self, model_path: str) -> int:
        self.load_calls.append(model_path)
        if self.fail_load:
            raise RuntimeError("cannot mmap model")
        if self.zero_handle:
            return 0
        handle = next(self._ids)
        self.live[handle] = model_path
        return handle

    def run(self, handle: int, prompt: str, max_tokens: int, should_stop) -> str:
        with self._guard:
            self.active_runs += 1
            self.max_active_runs = max(self.max_active_runs, self.active_runs)
        try:
            if handle not in self.live:
                raise RuntimeError(f"run on dead handle {handle}")
            self.prompts.append(prompt)
            if self.fail_run is not None:
                raise self.fail_run
            deadline = time.monotonic() + self.run_delay
            while time.monotonic() < deadline:
                if should_stop():
                    from planwise.core.errors import GenerationCancelled
                    raise GenerationCancelled("stopped")
                time.sleep(0.005)
            if self.respond is not None:
                return self.respond(prompt)
            if self.responses:
                return self.responses.pop(0)
            return ""
        finally:
            with self._guard:
                self.active_runs -= 1

    def unload(self, handle: int) -> None:
        self.unload_calls.append(handle)
        if self.fail_unload is not None:
            raise self.fail_unload
        self.live.pop(handle, None)


@pytest.fixture(autouse=True)
def _quiet_logger():
    init_logger("ERROR")
    yield


@pytest.fixture
def fake_backend() -> FakeBackend:
    return FakeBackend()


@pytest.fixture
def capability(fake_backend: FakeBackend) -> InferenceCapability:
    return InferenceCapability(fake_backend, "fake")


@pytest.fixture
def model_file(tmp_path):
    path = tmp_path / "tiny.gguf"
    path.write_bytes(b"GGUF")
    return str(path)
