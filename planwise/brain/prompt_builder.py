"""
Prompt builder for Planwise.

Renders a JSON-only instruction, a compact goal/task context block and the
user's message into a single prompt string. Pure and deterministic: the same
inputs always produce the same prompt.

Dialects only change the wrapper markers; the instruction, context and user
text are identical across them.
"""
from enum import Enum
from typing import List, Sequence

from planwise.context.snapshots import GoalContext, TaskContext

# ============================================================================
# CONSTANTS
# ============================================================================
MAX_CONTEXT_GOALS = 5
MAX_CONTEXT_TASKS = 5

DONE_GLYPH = "✓"     # check mark
PENDING_GLYPH = "○"  # white circle

EMPTY_CONTEXT_LINE = "Context: No active goals or tasks yet."

# ============================================================================
# SYSTEM INSTRUCTIONS
# ============================================================================
SYSTEM_INSTRUCTION = """You are an assistant for a productivity/to-do app. You MUST reply in valid JSON only, with NO extra text before or after.

The JSON must be a single object with these keys:
- "action": one of "reply", "create_goal", "create_task", "complete_task", "delete_goal", "delete_task", "show_progress"
- "message": a short, friendly response to show the user
- "data": an object with fields relevant to the action

For "create_goal" data: {"goalTitle": string, "durationMonths": number, "dailyMinutes": number}
For "create_task" data: {"taskTitle": string, "dueDate": "today"|"tomorrow"|"YYYY-MM-DD", "minutes": number, "goalTitle": string (optional)}
For "complete_task" data: {"taskTitle": string}
For "delete_goal" data: {"goalTitle": string}
For "delete_task" data: {"taskTitle": string}
For "reply" and "show_progress": data can be empty {}

IMPORTANT: Output ONLY the JSON object. No markdown, no explanations, no code blocks."""

# Shorter instruction for small context windows; still lists every action
SYSTEM_INSTRUCTION_COMPACT = """Reply in JSON only. Format: {"action":"<type>","message":"<text>","data":{...}}
Actions: reply, create_goal, create_task, complete_task, delete_goal, delete_task, show_progress
create_goal data: goalTitle, durationMonths, dailyMinutes
create_task data: taskTitle, dueDate (today|tomorrow|YYYY-MM-DD), minutes, goalTitle (optional)
complete_task, delete_task data: taskTitle
delete_goal data: goalTitle
Output JSON only, no other text."""


class PromptDialect(Enum):
    """Prompt wrapper formats for different model families"""
    PLAIN = "plain"      # ### Instruction / ### Response markers
    CHATML = "chatml"    # <|im_start|> turn delimiters
    LLAMA = "llama"      # [INST] <<SYS>> bracketed instructions
    ZEPHYR = "zephyr"    # <|system|> / <|user|> / <|assistant|> with </s>

    @classmethod
    def from_name(cls, name: str) -> "PromptDialect":
        """Parse a dialect name (case-insensitive); raises ValueError if unknown"""
        key = (name or "").strip().lower()
        for dialect in cls:
            if dialect.value == key:
                return dialect
        valid = ", ".join(d.value for d in cls)
        raise ValueError(f"Unknown prompt dialect {name!r} (expected one of: {valid})")


def _format_goal(goal: GoalContext) -> str:
    return f"{goal.title}|{goal.daily_minutes}min|ends:{goal.end_date}"


def _format_task(task: TaskContext) -> str:
    status = DONE_GLYPH if task.is_completed else PENDING_GLYPH
    entry = f"{status}{task.title}"
    if task.minutes > 0:
        entry += f"|{task.minutes}min"
    return entry


def build_context(goals: Sequence[GoalContext] = (), tasks: Sequence[TaskContext] = ()) -> str:
    """
    Build the context block from goal and task snapshots.

    At most five of each are included, in caller order. When both lists are
    empty a placeholder sentence is used instead of an empty block.
    """
    lines: List[str] = []

    if goals:
        entries = [_format_goal(g) for g in list(goals)[:MAX_CONTEXT_GOALS]]
        lines.append("Context - Goals: " + "; ".join(entries))

    if tasks:
        entries = [_format_task(t) for t in list(tasks)[:MAX_CONTEXT_TASKS]]
        lines.append("Context - Today's Tasks: " + "; ".join(entries))

    if not lines:
        lines.append(EMPTY_CONTEXT_LINE)

    return "\n".join(lines)


def build_prompt(
    user_message: str,
    goals: Sequence[GoalContext] = (),
    tasks: Sequence[TaskContext] = (),
    dialect: PromptDialect = PromptDialect.PLAIN,
    compact: bool = False,
) -> str:
    """
    Build a complete prompt for the model.

    Args:
        user_message: The user's input, inserted verbatim
        goals: Current goal snapshots
        tasks: Today's task snapshots
        dialect: Wrapper format matching the model's chat template
        compact: Use the shorter system instruction

    Returns:
        Prompt string ending where the model should start its JSON answer
    """
    system = SYSTEM_INSTRUCTION_COMPACT if compact else SYSTEM_INSTRUCTION
    context = build_context(goals, tasks)

    if dialect is PromptDialect.CHATML:
        return (
            f"<|im_start|>system\n{system}\n{context}\n<|im_end|>\n"
            f"<|im_start|>user\n{user_message}\n<|im_end|>\n"
            "<|im_start|>assistant\n"
        )

    if dialect is PromptDialect.LLAMA:
        return (
            f"[INST] <<SYS>>\n{system}\n{context}\n<</SYS>>\n\n"
            f"{user_message} [/INST]"
        )

    if dialect is PromptDialect.ZEPHYR:
        return (
            f"<|system|>\n{system}\n{context}\n</s>\n"
            f"<|user|>\n{user_message}\n</s>\n"
            "<|assistant|>\n"
        )

    return (
        f"### Instruction:\n{system}\n{context}\n\n"
        f"### Input:\n{user_message}\n\n"
        "### Response (JSON only):\n"
    )
