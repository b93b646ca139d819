"""
Configuration module for Planwise.
Centralizes all settings with environment variable overrides.
"""
import os


def _env_bool(name: str, default: str) -> bool:
    return os.environ.get(name, default).lower() in ("true", "1", "yes")


class Config:
    """Central configuration for Planwise"""

    # Inference backend: "llama_cpp" (in-process), "llama_server" (local subprocess) or "off"
    BACKEND: str = os.environ.get("PLANWISE_BACKEND", "llama_cpp")

    # Model selection. An explicit MODEL_PATH wins over the catalog's selection.
    MODEL_PATH: str = os.environ.get("PLANWISE_MODEL_PATH", "")
    MODELS_DIR: str = os.environ.get("PLANWISE_MODELS_DIR", "planwise/llm_models")

    # Generation settings
    MAX_TOKENS: int = int(os.environ.get("PLANWISE_MAX_TOKENS", "256"))
    # Deadline for a single generation; 0 disables it
    GENERATION_TIMEOUT_SEC: float = float(os.environ.get("PLANWISE_GENERATION_TIMEOUT_SEC", "30"))
    N_CTX: int = int(os.environ.get("PLANWISE_N_CTX", "2048"))
    N_THREADS: int = int(os.environ.get("PLANWISE_N_THREADS", "4"))
    TEMPERATURE: float = float(os.environ.get("PLANWISE_TEMPERATURE", "0.7"))
    TOP_P: float = float(os.environ.get("PLANWISE_TOP_P", "0.9"))

    # Prompt settings
    PROMPT_DIALECT: str = os.environ.get("PLANWISE_PROMPT_DIALECT", "plain")
    COMPACT_PROMPT: bool = _env_bool("PLANWISE_COMPACT_PROMPT", "false")

    # llama-server backend
    LLAMA_SERVER_BINARY: str = os.environ.get("PLANWISE_LLAMA_SERVER_BINARY", "planwise/llm_bin/llama-server")
    LLAMA_SERVER_PORT: int = int(os.environ.get("PLANWISE_LLAMA_SERVER_PORT", "8081"))
    LLAMA_SERVER_STARTUP_TIMEOUT_SEC: float = float(
        os.environ.get("PLANWISE_LLAMA_SERVER_STARTUP_TIMEOUT_SEC", "60")
    )
    LLAMA_SERVER_LOG_DIR: str = os.environ.get("PLANWISE_LLAMA_SERVER_LOG_DIR", "planwise/logs")

    # Logging
    LOG_LEVEL: str = os.environ.get("PLANWISE_LOG_LEVEL", "INFO")
    QUIET_MODE: bool = _env_bool("PLANWISE_QUIET_MODE", "false")

    @classmethod
    def get_generation_deadline(cls) -> float:
        """Generation timeout in seconds, or 0.0 when disabled"""
        return max(0.0, cls.GENERATION_TIMEOUT_SEC)
