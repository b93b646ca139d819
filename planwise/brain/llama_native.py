"""
In-process llama.cpp backend via llama-cpp-python.

Loads GGUF models straight into this process. Handles are small integers
mapped to llama_cpp.Llama instances; generation streams tokens so a stop
check can be polled between them.
"""
import itertools
from pathlib import Path
from typing import Dict, List, Optional, Tuple

from planwise.brain.inference import NO_HANDLE, StopCheck
from planwise.core.config import Config
from planwise.core.errors import GenerationCancelled, InvalidHandle
from planwise.core.logger import get_logger

# Turn markers for every supported dialect, so the model stops after its answer
DEFAULT_STOP_SEQUENCES: List[str] = ["</s>", "<|im_end|>", "<|user|>", "[INST]", "### Input:"]


def llama_cpp_available() -> Tuple[bool, str]:
    """Check whether llama-cpp-python and its shared library can be imported"""
    try:
        import llama_cpp  # noqa: F401
    except (ImportError, OSError) as e:
        return False, str(e)
    return True, ""


class LlamaCppBackend:
    """InferenceBackend backed by llama_cpp.Llama"""

    def __init__(
        self,
        n_ctx: Optional[int] = None,
        n_threads: Optional[int] = None,
        temperature: Optional[float] = None,
        top_p: Optional[float] = None,
        stop: Optional[List[str]] = None,
    ):
        self.logger = get_logger()
        self.n_ctx = n_ctx or Config.N_CTX
        self.n_threads = n_threads or Config.N_THREADS
        self.temperature = Config.TEMPERATURE if temperature is None else temperature
        self.top_p = Config.TOP_P if top_p is None else top_p
        self.stop = list(stop) if stop is not None else list(DEFAULT_STOP_SEQUENCES)
        self._models: Dict[int, object] = {}
        self._ids = itertools.count(1)

    def load(self, model_path: str) -> int:
        """
        Load a GGUF model.

        Returns:
            New handle, or 0 if the file is missing
        """
        if not Path(model_path).is_file():
            self.logger.error(f"[LLAMACPP] Model not found at {model_path}")
            return NO_HANDLE

        from llama_cpp import Llama

        self.logger.info(f"[LLAMACPP] Loading {model_path} (ctx={self.n_ctx}, threads={self.n_threads})")
        llm = Llama(
            model_path=model_path,
            n_ctx=self.n_ctx,
            n_threads=self.n_threads,
            verbose=False,
        )
        handle = next(self._ids)
        self._models[handle] = llm
        return handle

    def run(self, handle: int, prompt: str, max_tokens: int, should_stop: StopCheck) -> str:
        llm = self._models.get(handle)
        if llm is None:
            raise InvalidHandle(f"Unknown llama.cpp handle {handle}")

        stream = llm.create_completion(
            prompt=prompt,
            max_tokens=max_tokens,
            temperature=self.temperature,
            top_p=self.top_p,
            stop=self.stop,
            stream=True,
        )

        parts: List[str] = []
        for chunk in stream:
            if should_stop():
                raise GenerationCancelled(f"Generation stopped after {len(parts)} chunks")
            choices = chunk.get("choices") or []
            if choices:
                parts.append(choices[0].get("text", ""))

        return "".join(parts).strip()

    def unload(self, handle: int) -> None:
        if handle == NO_HANDLE:
            return
        llm = self._models.pop(handle, None)
        if llm is None:
            return
        close = getattr(llm, "close", None)
        if close is not None:
            close()
        self.logger.debug(f"[LLAMACPP] Freed handle {handle}")
