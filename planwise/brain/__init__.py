"""
Brain module for Planwise.
Local model inference, prompt building and model output parsing.

Native backends (llama_native, llama_server) are imported lazily by
detect_capability so a missing llama.cpp install never breaks imports.
"""
from planwise.brain.actions import (
    Action,
    ActionKind,
    Reply,
    CreateGoal,
    CreateTask,
    CompleteTask,
    DeleteGoal,
    DeleteTask,
    ShowProgress,
    to_dict,
    to_json,
)
from planwise.brain.inference import CancelToken, InferenceCapability, detect_capability
from planwise.brain.model_manager import ModelLifecycleManager, ModelState
from planwise.brain.prompt_builder import PromptDialect, build_prompt

__all__ = [
    "Action",
    "ActionKind",
    "Reply",
    "CreateGoal",
    "CreateTask",
    "CompleteTask",
    "DeleteGoal",
    "DeleteTask",
    "ShowProgress",
    "to_dict",
    "to_json",
    "CancelToken",
    "InferenceCapability",
    "detect_capability",
    "ModelLifecycleManager",
    "ModelState",
    "PromptDialect",
    "build_prompt",
]
