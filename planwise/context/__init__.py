"""planwise.context

Goal/task snapshots supplied to the prompt by the storage layer.
"""

from planwise.context.snapshots import (
    GoalContext,
    TaskContext,
    ContextProvider,
    StaticContextProvider,
)

__all__ = ["GoalContext", "TaskContext", "ContextProvider", "StaticContextProvider"]
