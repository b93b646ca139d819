"""
Read-only goal/task snapshots embedded in prompts.

Snapshots are copied in by the storage layer right before a resolution call
and thrown away afterwards. Nothing here touches storage.
"""
from dataclasses import dataclass
from typing import List, Protocol, Sequence, Tuple, runtime_checkable


@dataclass(frozen=True)
class GoalContext:
    """Compact goal summary for prompts (end_date is YYYY-MM-DD)"""
    title: str
    daily_minutes: int
    end_date: str


@dataclass(frozen=True)
class TaskContext:
    """Compact task summary for prompts"""
    title: str
    is_completed: bool
    minutes: int = 0


@runtime_checkable
class ContextProvider(Protocol):
    """Supplies snapshots of the user's current goals and tasks."""

    def goal_snapshots(self) -> Sequence[GoalContext]: ...

    def task_snapshots(self) -> Sequence[TaskContext]: ...


class StaticContextProvider:
    """ContextProvider over fixed lists (CLI input, tests)."""

    def __init__(self, goals: Sequence[GoalContext] = (), tasks: Sequence[TaskContext] = ()):
        self._goals: Tuple[GoalContext, ...] = tuple(goals)
        self._tasks: Tuple[TaskContext, ...] = tuple(tasks)

    def goal_snapshots(self) -> Tuple[GoalContext, ...]:
        return self._goals

    def task_snapshots(self) -> Tuple[TaskContext, ...]:
        return self._tasks


def goals_from_dicts(items: List[dict]) -> List[GoalContext]:
    """Build goal snapshots from loose dicts (camelCase or snake_case keys)."""
    goals = []
    for item in items:
        goals.append(GoalContext(
            title=str(item.get("title", "")),
            daily_minutes=int(item.get("dailyMinutes", item.get("daily_minutes", 0)) or 0),
            end_date=str(item.get("endDate", item.get("end_date", ""))),
        ))
    return goals


def tasks_from_dicts(items: List[dict]) -> List[TaskContext]:
    """Build task snapshots from loose dicts (camelCase or snake_case keys)."""
    tasks = []
    for item in items:
        tasks.append(TaskContext(
            title=str(item.get("title", "")),
            is_completed=bool(item.get("isCompleted", item.get("is_completed", False))),
            minutes=int(item.get("minutes", 0) or 0),
        ))
    return tasks
