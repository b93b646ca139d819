"""Planwise exception hierarchy."""

from __future__ import annotations

from typing import Optional


class PlanwiseError(Exception):
    """Base exception for all Planwise errors."""


class NativeBackendUnavailable(PlanwiseError):
    """The inference library or binary is not present on this machine."""


class ModelNotSelected(PlanwiseError):
    """No model path is configured or installed."""


class ModelLoadFailure(PlanwiseError):
    """The backend could not load a model file."""

    def __init__(self, path: str, cause: Optional[BaseException] = None) -> None:
        self.path = path
        self.cause = cause
        detail = f": {cause}" if cause is not None else ""
        super().__init__(f"Failed to load model {path}{detail}")


class InvalidHandle(PlanwiseError):
    """A model handle was used that is not (or no longer) valid."""


class ModelNotLoaded(InvalidHandle):
    """Generation was requested while no model is loaded."""


class GenerationFailure(PlanwiseError):
    """The backend failed while generating text."""

    def __init__(self, message: str, cause: Optional[BaseException] = None) -> None:
        self.cause = cause
        super().__init__(message)


class GenerationCancelled(GenerationFailure):
    """Generation was stopped through a cancel token."""


class GenerationTimeout(GenerationCancelled):
    """Generation ran past its deadline."""


class JsonParseFailure(PlanwiseError):
    """Model output did not contain a decodable JSON object."""


class NoResolution(PlanwiseError):
    """Neither the model nor the fallback parser produced an action."""

    def __init__(self, user_message: str, cause: Optional[BaseException] = None) -> None:
        self.user_message = user_message
        self.cause = cause
        reason = f" (model unavailable: {cause})" if cause is not None else ""
        super().__init__(
            "Could not understand that request. Try a command like "
            f"'add task \"Read\" tomorrow for 20 minutes'{reason}"
        )
