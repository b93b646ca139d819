"""
Local GGUF model catalog.

Knows the supported models, scans the models directory for the ones that are
installed, and tracks which one is selected. Downloading is not handled here;
files are expected to be placed in the directory by other means.
"""
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Optional

from planwise.brain.prompt_builder import PromptDialect
from planwise.core.config import Config
from planwise.core.logger import get_logger

_MB = 1024 * 1024


@dataclass(frozen=True)
class ModelInfo:
    """A model Planwise knows how to prompt"""
    id: str
    name: str
    description: str
    size_bytes: int
    download_url: str
    file_name: str
    parameters: str
    dialect: PromptDialect = PromptDialect.PLAIN


@dataclass(frozen=True)
class InstalledModel:
    info: ModelInfo
    path: Path
    size_bytes: int


AVAILABLE_MODELS: List[ModelInfo] = [
    ModelInfo(
        id="tinyllama-1.1b-q4",
        name="TinyLlama 1.1B (Q4_K_M)",
        description="Smallest model, fastest inference. Good for basic tasks.",
        size_bytes=668 * _MB,
        download_url="https://huggingface.co/TheBloke/TinyLlama-1.1B-Chat-v1.0-GGUF/resolve/main/tinyllama-1.1b-chat-v1.0.Q4_K_M.gguf",
        file_name="tinyllama-1.1b-chat-v1.0.Q4_K_M.gguf",
        parameters="1.1B",
        dialect=PromptDialect.ZEPHYR,
    ),
    ModelInfo(
        id="phi-2-q4",
        name="Phi-2 2.7B (Q4_K_M)",
        description="Microsoft's efficient model. Great balance of size and capability.",
        size_bytes=1600 * _MB,
        download_url="https://huggingface.co/TheBloke/phi-2-GGUF/resolve/main/phi-2.Q4_K_M.gguf",
        file_name="phi-2.Q4_K_M.gguf",
        parameters="2.7B",
        dialect=PromptDialect.PLAIN,
    ),
    ModelInfo(
        id="llama-3.2-1b-q4",
        name="Llama 3.2 1B (Q4_K_M)",
        description="Meta's small instruct model. Optimized for low-memory devices.",
        size_bytes=750 * _MB,
        download_url="https://huggingface.co/bartowski/Llama-3.2-1B-Instruct-GGUF/resolve/main/Llama-3.2-1B-Instruct-Q4_K_M.gguf",
        file_name="Llama-3.2-1B-Instruct-Q4_K_M.gguf",
        parameters="1B",
        dialect=PromptDialect.LLAMA,
    ),
    ModelInfo(
        id="llama-3.2-3b-q4",
        name="Llama 3.2 3B (Q4_K_M)",
        description="Meta's 3B instruct model. Best quality for on-device inference.",
        size_bytes=2000 * _MB,
        download_url="https://huggingface.co/bartowski/Llama-3.2-3B-Instruct-GGUF/resolve/main/Llama-3.2-3B-Instruct-Q4_K_M.gguf",
        file_name="Llama-3.2-3B-Instruct-Q4_K_M.gguf",
        parameters="3B",
        dialect=PromptDialect.LLAMA,
    ),
]


def format_size(size_bytes: int) -> str:
    """Format a byte count for display, e.g. '668.0 MB'"""
    if size_bytes >= 1024 ** 3:
        return f"{size_bytes / 1024 ** 3:.1f} GB"
    if size_bytes >= _MB:
        return f"{size_bytes / _MB:.1f} MB"
    if size_bytes >= 1024:
        return f"{size_bytes / 1024:.1f} KB"
    return f"{size_bytes} B"


class LocalModelCatalog:
    """
    Installed-model view over a directory.

    The first installed model is auto-selected when nothing is selected.
    selected_model_path() is the model-path provider used by ActionResolver;
    an explicit Config.MODEL_PATH takes precedence over the selection.
    """

    def __init__(self, models_dir: Optional[str] = None, models: Optional[List[ModelInfo]] = None):
        self.logger = get_logger()
        self.models_dir = Path(models_dir or Config.MODELS_DIR)
        self.models = list(models) if models is not None else list(AVAILABLE_MODELS)
        self._installed: List[InstalledModel] = []
        self._selected_id: Optional[str] = None
        self.refresh()

    def refresh(self) -> List[InstalledModel]:
        """Rescan the models directory"""
        installed: List[InstalledModel] = []
        for info in self.models:
            path = self.models_dir / info.file_name
            if path.is_file():
                installed.append(InstalledModel(info=info, path=path, size_bytes=path.stat().st_size))
        self._installed = installed

        installed_ids = {m.info.id for m in installed}
        if self._selected_id not in installed_ids:
            self._selected_id = installed[0].info.id if installed else None

        self.logger.debug(f"[CATALOG] {len(installed)} model(s) installed in {self.models_dir}")
        return list(installed)

    def installed_models(self) -> List[InstalledModel]:
        return list(self._installed)

    def get_model_info(self, model_id: str) -> Optional[ModelInfo]:
        for info in self.models:
            if info.id == model_id:
                return info
        return None

    def select(self, model_id: str) -> bool:
        """Select an installed model; returns False if it is not installed"""
        if any(m.info.id == model_id for m in self._installed):
            self._selected_id = model_id
            self.logger.info(f"[CATALOG] Selected model {model_id}")
            return True
        self.logger.warning(f"[CATALOG] Model {model_id} is not installed")
        return False

    def selected_model(self) -> Optional[InstalledModel]:
        for model in self._installed:
            if model.info.id == self._selected_id:
                return model
        return None

    def selected_model_path(self) -> Optional[str]:
        if Config.MODEL_PATH:
            return Config.MODEL_PATH
        model = self.selected_model()
        return str(model.path.resolve()) if model is not None else None

    def selected_dialect(self) -> Optional[PromptDialect]:
        """Preferred prompt dialect of the selected model, if one is selected"""
        if Config.MODEL_PATH:
            return None
        model = self.selected_model()
        return model.info.dialect if model is not None else None

    def describe(self) -> Dict[str, Dict[str, object]]:
        """id -> display details for every known model"""
        installed_ids = {m.info.id for m in self._installed}
        return {
            info.id: {
                "name": info.name,
                "parameters": info.parameters,
                "size": format_size(info.size_bytes),
                "installed": info.id in installed_ids,
                "selected": info.id == self._selected_id,
            }
            for info in self.models
        }
