"""
Structured actions the assistant can ask the app to perform.

Every resolution (model output, regex fallback or echoed text) ends up as one of
these variants. The wire form is the JSON contract the prompt asks the model for:

    {"action": "create_goal", "message": "...", "data": {"goalTitle": ...}}
"""
import json
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional, Union


DEFAULT_DURATION_MONTHS = 3
DEFAULT_DAILY_MINUTES = 30
DEFAULT_TASK_MINUTES = 30
DEFAULT_DUE_DATE = "today"


class ActionKind(Enum):
    """Action tags; the value is the wire string"""
    REPLY = "reply"
    CREATE_GOAL = "create_goal"
    CREATE_TASK = "create_task"
    COMPLETE_TASK = "complete_task"
    DELETE_GOAL = "delete_goal"
    DELETE_TASK = "delete_task"
    SHOW_PROGRESS = "show_progress"


def _require_text(name: str, value: Any) -> None:
    if not isinstance(value, str):
        raise ValueError(f"{name} must be a string, got {type(value).__name__}")


def _require_positive(name: str, value: Any) -> None:
    if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
        raise ValueError(f"{name} must be a positive integer, got {value!r}")


@dataclass(frozen=True)
class Reply:
    """Plain text reply, no side effects"""
    message: str

    kind = ActionKind.REPLY

    def __post_init__(self) -> None:
        _require_text("message", self.message)

    def data(self) -> Dict[str, Any]:
        return {}


@dataclass(frozen=True)
class CreateGoal:
    message: str
    goal_title: str
    duration_months: int = DEFAULT_DURATION_MONTHS
    daily_minutes: int = DEFAULT_DAILY_MINUTES

    kind = ActionKind.CREATE_GOAL

    def __post_init__(self) -> None:
        _require_text("message", self.message)
        _require_text("goal_title", self.goal_title)
        _require_positive("duration_months", self.duration_months)
        _require_positive("daily_minutes", self.daily_minutes)

    def data(self) -> Dict[str, Any]:
        return {
            "goalTitle": self.goal_title,
            "durationMonths": self.duration_months,
            "dailyMinutes": self.daily_minutes,
        }


@dataclass(frozen=True)
class CreateTask:
    """
    Create a task.

    due_date is "today", "tomorrow", "next_week" or a literal date string
    (normally YYYY-MM-DD). goal_title optionally links the task to a goal.
    """
    message: str
    task_title: str
    due_date: str = DEFAULT_DUE_DATE
    minutes: int = DEFAULT_TASK_MINUTES
    goal_title: Optional[str] = None

    kind = ActionKind.CREATE_TASK

    def __post_init__(self) -> None:
        _require_text("message", self.message)
        _require_text("task_title", self.task_title)
        _require_text("due_date", self.due_date)
        _require_positive("minutes", self.minutes)
        if self.goal_title is not None:
            _require_text("goal_title", self.goal_title)

    def data(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "taskTitle": self.task_title,
            "dueDate": self.due_date,
            "minutes": self.minutes,
        }
        if self.goal_title is not None:
            data["goalTitle"] = self.goal_title
        return data


@dataclass(frozen=True)
class CompleteTask:
    message: str
    task_title: str

    kind = ActionKind.COMPLETE_TASK

    def __post_init__(self) -> None:
        _require_text("message", self.message)
        _require_text("task_title", self.task_title)

    def data(self) -> Dict[str, Any]:
        return {"taskTitle": self.task_title}


@dataclass(frozen=True)
class DeleteGoal:
    message: str
    goal_title: str

    kind = ActionKind.DELETE_GOAL

    def __post_init__(self) -> None:
        _require_text("message", self.message)
        _require_text("goal_title", self.goal_title)

    def data(self) -> Dict[str, Any]:
        return {"goalTitle": self.goal_title}


@dataclass(frozen=True)
class DeleteTask:
    message: str
    task_title: str

    kind = ActionKind.DELETE_TASK

    def __post_init__(self) -> None:
        _require_text("message", self.message)
        _require_text("task_title", self.task_title)

    def data(self) -> Dict[str, Any]:
        return {"taskTitle": self.task_title}


@dataclass(frozen=True)
class ShowProgress:
    message: str

    kind = ActionKind.SHOW_PROGRESS

    def __post_init__(self) -> None:
        _require_text("message", self.message)

    def data(self) -> Dict[str, Any]:
        return {}


Action = Union[Reply, CreateGoal, CreateTask, CompleteTask, DeleteGoal, DeleteTask, ShowProgress]

ACTION_TYPES = (Reply, CreateGoal, CreateTask, CompleteTask, DeleteGoal, DeleteTask, ShowProgress)


def to_dict(action: Action) -> Dict[str, Any]:
    """Render an action in the structured-output JSON contract shape."""
    return {
        "action": action.kind.value,
        "message": action.message,
        "data": action.data(),
    }


def to_json(action: Action) -> str:
    """Serialize an action to the JSON contract (stable key order)."""
    return json.dumps(to_dict(action), ensure_ascii=False)


def describe(action: Action) -> str:
    """Human-readable sentence for an action, used when the model leaves message empty."""
    if isinstance(action, CreateGoal):
        return (
            f"I'll create a goal for \"{action.goal_title}\" - {action.duration_months} months "
            f"at {action.daily_minutes} minutes per day."
        )
    if isinstance(action, CreateTask):
        return f"I'll add the task \"{action.task_title}\" for {action.due_date}."
    if isinstance(action, CompleteTask):
        return f"Great job! I'll mark \"{action.task_title}\" as complete."
    if isinstance(action, DeleteGoal):
        return f"I'll delete the goal \"{action.goal_title}\"."
    if isinstance(action, DeleteTask):
        return f"I'll delete the task \"{action.task_title}\"."
    if isinstance(action, ShowProgress):
        return "Here's your progress summary!"
    return action.message
