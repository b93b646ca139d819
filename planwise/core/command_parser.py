"""
Deterministic command parser.

Regex cascade that turns plain commands into Actions without a model:

    create goal "Learn Guitar" in 2 months 20 minutes per day
    add task "Read" tomorrow for 20 minutes
    complete task Review notes
    delete goal Learn Guitar / delete task Read
    show progress / list my goals / list my tasks

COMMAND_FAMILIES is tried in order and the first extractor that returns an
Action wins. Within a family the full pattern comes before the simple one.
"""
import re
from dataclasses import replace
from typing import Callable, Optional, Tuple

from planwise.brain.actions import (
    Action,
    CompleteTask,
    CreateGoal,
    CreateTask,
    DeleteGoal,
    DeleteTask,
    Reply,
    ShowProgress,
    DEFAULT_DAILY_MINUTES,
    DEFAULT_DUE_DATE,
    DEFAULT_DURATION_MONTHS,
    DEFAULT_TASK_MINUTES,
    describe,
)
from planwise.core.logger import get_logger

PROGRESS_MESSAGE = "Here's your progress summary!"
LIST_GOALS_MESSAGE = "Here are your current goals."
LIST_TASKS_MESSAGE = "Here are your tasks for today."

COMMAND_KEYWORDS = ("create", "add", "delete", "remove", "complete", "finish", "done", "list", "show", "progress")

_TIME_UNIT = r"(?:hours?|hrs?|h|minutes?|mins?|m)"
_AMOUNT = r"\d+(?:\.\d+)?"
_DUE = r"(?:today|tomorrow|next\s+week|\d{4}-\d{2}-\d{2})"
_POLITE_TAIL = r"(?:\s+(?:please|thanks|thank\s+you))?[.!]?\s*$"

# ============================================================================
# PATTERNS
# ============================================================================

CREATE_GOAL_FULL = re.compile(
    r"\b(?:create|add|new|set|start)\s+(?:a\s+)?(?:new\s+)?goal\s+(?:to\s+)?[\"']?(?P<name>.+?)[\"']?"
    r"\s+(?:in|for|over|within)\s+(?P<months>\d+)\s*months?\b"
    r".*?(?P<amount>" + _AMOUNT + r")\s*(?P<unit>" + _TIME_UNIT + r")\b",
    re.IGNORECASE,
)

CREATE_GOAL_SIMPLE = re.compile(
    r"\b(?:create|add|new|set|start)\s+(?:a\s+)?(?:new\s+)?goal\s+(?:to\s+)?(?P<name>.+?)\s*$",
    re.IGNORECASE,
)

CREATE_TASK_FULL = re.compile(
    r"\b(?:add|create|new|schedule)\s+(?:a\s+)?(?:new\s+)?task\s+[\"']?(?P<name>.+?)[\"']?"
    r"\s+(?:(?:for|on|due)\s+)?(?P<due>" + _DUE + r")\b"
    r"(?:.*?(?P<amount>" + _AMOUNT + r")\s*(?P<unit>" + _TIME_UNIT + r")\b)?",
    re.IGNORECASE,
)

CREATE_TASK_SIMPLE = re.compile(
    r"\b(?:add|create|new|schedule)\s+(?:a\s+)?(?:new\s+)?task\s+(?P<name>.+?)\s*$",
    re.IGNORECASE,
)

# Anchored at the start: "how many tasks have I completed" is a question, not a command
COMPLETE_TASK = re.compile(
    r"^(?:please\s+)?"
    r"(?:i(?:'ve|\s+have)?(?:\s+just)?\s+(?:completed|finished)|i(?:'m|\s+am)(?:\s+just)?\s+done\s+with"
    r"|complete|finish|done\s+with|mark\s+(?:as\s+)?(?:done|complete))\s+"
    r"(?:the\s+)?(?:task\s+)?[\"']?(?P<name>.+?)[\"']?(?:\s+task)?" + _POLITE_TAIL,
    re.IGNORECASE,
)

DELETE_GOAL = re.compile(
    r"\b(?:delete|remove|drop)\s+(?:the\s+|my\s+)?goal\s+[\"']?(?P<name>.+?)[\"']?" + _POLITE_TAIL,
    re.IGNORECASE,
)

DELETE_TASK = re.compile(
    r"\b(?:delete|remove|drop)\s+(?:the\s+|my\s+)?task\s+[\"']?(?P<name>.+?)[\"']?" + _POLITE_TAIL,
    re.IGNORECASE,
)

SHOW_PROGRESS = re.compile(
    r"\b(?:how\s+am\s+i\s+doing|my\s+progress|show\s+(?:me\s+)?progress|progress\s+report|status|summary)\b",
    re.IGNORECASE,
)

LIST_GOALS = re.compile(
    r"\b(?:list|show|what\s+are)\s+(?:me\s+)?(?:all\s+)?(?:my\s+)?goals?\b",
    re.IGNORECASE,
)

LIST_TASKS = re.compile(
    r"\b(?:list|show|what\s+are)\s+(?:me\s+)?(?:all\s+)?(?:my\s+)?(?:today'?s\s+)?tasks?\b",
    re.IGNORECASE,
)

# Values searched for anywhere in the text by the simple patterns
GOAL_MONTHS = re.compile(r"\b(\d+)\s*months?\b", re.IGNORECASE)
TIME_AMOUNT = re.compile(r"\b(" + _AMOUNT + r")\s*(" + _TIME_UNIT + r")\b", re.IGNORECASE)
DUE_DATE = re.compile(r"\b(" + _DUE + r")\b", re.IGNORECASE)

# Trailing qualifier clauses removed from extracted names
GOAL_QUALIFIER = re.compile(
    r"(?:^|\s+)(?:(?:in|for|over|within|at|with)\s+)?" + _AMOUNT + r"\s*(?:months?|weeks?|" + _TIME_UNIT + r")\b.*$",
    re.IGNORECASE,
)
TASK_QUALIFIER = re.compile(
    r"(?:^|\s+)(?:(?:for|on|due|at|in)\s+)?(?:" + _AMOUNT + r"\s*" + _TIME_UNIT + r"\b|" + _DUE + r"\b).*$",
    re.IGNORECASE,
)
TASK_GOAL_LINK = re.compile(
    r"\s+(?:for|under)\s+(?:the\s+|my\s+)?[\"']?(?P<goal>.+?)[\"']?\s+goal\s*$",
    re.IGNORECASE,
)


# ============================================================================
# HELPERS
# ============================================================================

def _clean_name(name: str, qualifier: Optional[re.Pattern] = None) -> str:
    cleaned = (name or "").strip()
    if qualifier is not None:
        cleaned = qualifier.sub("", cleaned)
    return cleaned.strip().strip("\"'").strip()


def _to_minutes(amount: str, unit: str) -> int:
    value = float(amount)
    if unit.lower().startswith("h"):
        value *= 60
    return int(round(value))


def _search_minutes(text: str, default: int) -> int:
    m = TIME_AMOUNT.search(text)
    if not m:
        return default
    return _to_minutes(m.group(1), m.group(2)) or default


def normalize_due_date(value: str) -> str:
    """Map a due-date token to today, tomorrow, next_week or the literal date"""
    token = re.sub(r"\s+", "_", (value or "").strip().lower())
    if token in ("today", "tomorrow", "next_week"):
        return token
    return (value or "").strip() or DEFAULT_DUE_DATE


def _described(action: Action) -> Action:
    return replace(action, message=describe(action))


# ============================================================================
# EXTRACTORS
# ============================================================================

def _create_goal_full(m: re.Match, text: str) -> Optional[Action]:
    name = _clean_name(m.group("name"))
    if not name:
        return None
    return _described(CreateGoal(
        message="",
        goal_title=name,
        duration_months=int(m.group("months")) or DEFAULT_DURATION_MONTHS,
        daily_minutes=_to_minutes(m.group("amount"), m.group("unit")) or DEFAULT_DAILY_MINUTES,
    ))


def _create_goal_simple(m: re.Match, text: str) -> Optional[Action]:
    name = _clean_name(m.group("name"), GOAL_QUALIFIER)
    if not name:
        return None
    months_match = GOAL_MONTHS.search(text)
    months = int(months_match.group(1)) if months_match else DEFAULT_DURATION_MONTHS
    return _described(CreateGoal(
        message="",
        goal_title=name,
        duration_months=months or DEFAULT_DURATION_MONTHS,
        daily_minutes=_search_minutes(text, DEFAULT_DAILY_MINUTES),
    ))


def _split_goal_link(raw: str) -> Tuple[str, Optional[str]]:
    """Split a trailing "for <X> goal" clause off raw, returning (rest, goal title)"""
    link = TASK_GOAL_LINK.search(raw)
    if not link:
        return raw, None
    return raw[:link.start()], _clean_name(link.group("goal")) or None


def _create_task_full(m: re.Match, text: str) -> Optional[Action]:
    raw_name, goal_title = _split_goal_link(m.group("name"))
    name = _clean_name(raw_name)
    if not name:
        return None
    if goal_title is None:
        goal_title = _split_goal_link(text[m.end():])[1]
    minutes = DEFAULT_TASK_MINUTES
    if m.group("amount"):
        minutes = _to_minutes(m.group("amount"), m.group("unit")) or DEFAULT_TASK_MINUTES
    return _described(CreateTask(
        message="",
        task_title=name,
        due_date=normalize_due_date(m.group("due")),
        minutes=minutes,
        goal_title=goal_title,
    ))


def _create_task_simple(m: re.Match, text: str) -> Optional[Action]:
    raw_name, goal_title = _split_goal_link(m.group("name"))
    name = _clean_name(raw_name, TASK_QUALIFIER)
    if not name:
        return None
    due = DUE_DATE.search(text)
    return _described(CreateTask(
        message="",
        task_title=name,
        due_date=normalize_due_date(due.group(1)) if due else DEFAULT_DUE_DATE,
        minutes=_search_minutes(text, DEFAULT_TASK_MINUTES),
        goal_title=goal_title,
    ))


def _complete_task(m: re.Match, text: str) -> Optional[Action]:
    name = _clean_name(m.group("name"), TASK_QUALIFIER)
    return _described(CompleteTask(message="", task_title=name)) if name else None


def _delete_goal(m: re.Match, text: str) -> Optional[Action]:
    name = _clean_name(m.group("name"), GOAL_QUALIFIER)
    return _described(DeleteGoal(message="", goal_title=name)) if name else None


def _delete_task(m: re.Match, text: str) -> Optional[Action]:
    name = _clean_name(m.group("name"), TASK_QUALIFIER)
    return _described(DeleteTask(message="", task_title=name)) if name else None


def _show_progress(m: re.Match, text: str) -> Optional[Action]:
    return ShowProgress(PROGRESS_MESSAGE)


def _list_goals(m: re.Match, text: str) -> Optional[Action]:
    return Reply(LIST_GOALS_MESSAGE)


def _list_tasks(m: re.Match, text: str) -> Optional[Action]:
    return Reply(LIST_TASKS_MESSAGE)


Extractor = Callable[[re.Match, str], Optional[Action]]

COMMAND_FAMILIES: Tuple[Tuple[str, re.Pattern, Extractor], ...] = (
    ("create_goal_full", CREATE_GOAL_FULL, _create_goal_full),
    ("create_goal", CREATE_GOAL_SIMPLE, _create_goal_simple),
    ("create_task_full", CREATE_TASK_FULL, _create_task_full),
    ("create_task", CREATE_TASK_SIMPLE, _create_task_simple),
    ("complete_task", COMPLETE_TASK, _complete_task),
    ("delete_goal", DELETE_GOAL, _delete_goal),
    ("delete_task", DELETE_TASK, _delete_task),
    ("show_progress", SHOW_PROGRESS, _show_progress),
    ("list_goals", LIST_GOALS, _list_goals),
    ("list_tasks", LIST_TASKS, _list_tasks),
)


# ============================================================================
# PUBLIC API
# ============================================================================

def parse(user_text: str) -> Optional[Action]:
    """
    Resolve user text to an Action using only regexes.

    Returns:
        The first matching family's Action, or None
    """
    text = (user_text or "").strip()
    if not text:
        return None

    for name, pattern, extractor in COMMAND_FAMILIES:
        m = pattern.search(text)
        if not m:
            continue
        action = extractor(m, text)
        if action is not None:
            get_logger().debug(f"[FALLBACK] Matched {name}: {action.kind.value}")
            return action

    return None


def looks_like_command(user_text: str) -> bool:
    """True if the text contains a command keyword. Advisory only."""
    lower = (user_text or "").lower()
    return any(keyword in lower for keyword in COMMAND_KEYWORDS)
