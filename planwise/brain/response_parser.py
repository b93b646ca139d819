"""
Parse and validate JSON responses from the local model.

Small models wrap their JSON in prose or code fences, truncate it, or ignore
the schema entirely. parse() digs out the first JSON object and maps it to an
Action, returning None when that is impossible; it never raises.
parse_with_fallback() always returns an Action.
"""
import json
from dataclasses import replace
from typing import Any, Callable, Dict, Optional

from planwise.brain.actions import (
    Action,
    ActionKind,
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
from planwise.core.errors import JsonParseFailure
from planwise.core.logger import get_logger

REPHRASE_MESSAGE = "I'm processing your request. Could you try again or rephrase?"

DEFAULT_GOAL_TITLE = "New Goal"
DEFAULT_TASK_TITLE = "New Task"

# Accepted key spellings, first present non-null key wins
GOAL_TITLE_KEYS = ("goalTitle", "goal_title", "title")
TASK_TITLE_KEYS = ("taskTitle", "task_title", "title")
DURATION_MONTHS_KEYS = ("durationMonths", "duration_months")
DAILY_MINUTES_KEYS = ("dailyMinutes", "daily_minutes")
DUE_DATE_KEYS = ("dueDate", "due_date")
TASK_MINUTES_KEYS = ("minutes", "duration")
TASK_GOAL_KEYS = ("goalTitle", "goal_title")


# ============================================================================
# JSON EXTRACTION
# ============================================================================

def _scan_object_end(text: str) -> int:
    """
    Index of the brace closing the object that starts at text[0], or -1.

    Braces inside JSON string literals do not count.
    """
    depth = 0
    in_string = False
    escaped = False
    for i, ch in enumerate(text):
        if in_string:
            if escaped:
                escaped = False
            elif ch == "\\":
                escaped = True
            elif ch == '"':
                in_string = False
            continue
        if ch == '"':
            in_string = True
        elif ch == "{":
            depth += 1
        elif ch == "}":
            depth -= 1
            if depth == 0:
                return i
    return -1


def extract_json(text: str) -> Optional[str]:
    """
    Extract a candidate JSON object substring from model output.

    If the trimmed text starts with '{', cut at the brace that closes it (or
    keep everything when it never closes). Otherwise take the span from the
    first '{' to the last '}'. Returns None when there is no such span.
    """
    trimmed = (text or "").strip()
    if not trimmed:
        return None

    if trimmed.startswith("{"):
        end = _scan_object_end(trimmed)
        return trimmed[:end + 1] if end > 0 else trimmed

    start = trimmed.find("{")
    end = trimmed.rfind("}")
    if start >= 0 and end > start:
        return trimmed[start:end + 1]
    return None


def _decode_object(candidate: str) -> Dict[str, Any]:
    try:
        obj = json.loads(candidate)
    except (ValueError, RecursionError) as e:
        raise JsonParseFailure(f"Invalid JSON: {e}") from e
    if not isinstance(obj, dict):
        raise JsonParseFailure(f"Expected a JSON object, got {type(obj).__name__}")
    return obj


# ============================================================================
# FIELD COERCION
# ============================================================================

def _as_text(value: Any) -> str:
    if isinstance(value, str):
        return value
    return json.dumps(value, ensure_ascii=False)


def _as_positive_int(value: Any) -> Optional[int]:
    if isinstance(value, bool):
        return None
    try:
        if isinstance(value, str):
            value = float(value.strip())
        if isinstance(value, (int, float)):
            number = int(value)
        else:
            return None
    except (ValueError, OverflowError):
        return None
    return number if number > 0 else None


def _first_text(data: Dict[str, Any], keys) -> Optional[str]:
    for key in keys:
        if data.get(key) is not None:
            return _as_text(data[key])
    return None


def _text_or(data: Dict[str, Any], keys, default: str) -> str:
    value = _first_text(data, keys)
    return default if value is None else value


def _first_int(data: Dict[str, Any], keys) -> Optional[int]:
    for key in keys:
        if data.get(key) is not None:
            return _as_positive_int(data[key])
    return None


# ============================================================================
# PER-ACTION BUILDERS
# ============================================================================

def _create_goal(message: str, data: Dict[str, Any]) -> Action:
    return CreateGoal(
        message=message,
        goal_title=_text_or(data, GOAL_TITLE_KEYS, DEFAULT_GOAL_TITLE),
        duration_months=_first_int(data, DURATION_MONTHS_KEYS) or DEFAULT_DURATION_MONTHS,
        daily_minutes=_first_int(data, DAILY_MINUTES_KEYS) or DEFAULT_DAILY_MINUTES,
    )


def _create_task(message: str, data: Dict[str, Any]) -> Action:
    return CreateTask(
        message=message,
        task_title=_text_or(data, TASK_TITLE_KEYS, DEFAULT_TASK_TITLE),
        due_date=_text_or(data, DUE_DATE_KEYS, DEFAULT_DUE_DATE),
        minutes=_first_int(data, TASK_MINUTES_KEYS) or DEFAULT_TASK_MINUTES,
        goal_title=_first_text(data, TASK_GOAL_KEYS),
    )


def _complete_task(message: str, data: Dict[str, Any]) -> Action:
    return CompleteTask(message=message, task_title=_text_or(data, TASK_TITLE_KEYS, ""))


def _delete_goal(message: str, data: Dict[str, Any]) -> Action:
    return DeleteGoal(message=message, goal_title=_text_or(data, GOAL_TITLE_KEYS, ""))


def _delete_task(message: str, data: Dict[str, Any]) -> Action:
    return DeleteTask(message=message, task_title=_text_or(data, TASK_TITLE_KEYS, ""))


def _show_progress(message: str, data: Dict[str, Any]) -> Action:
    return ShowProgress(message=message)


def _reply(message: str, data: Dict[str, Any]) -> Action:
    return Reply(message=message if message.strip() else REPHRASE_MESSAGE)


_BUILDERS: Dict[str, Callable[[str, Dict[str, Any]], Action]] = {
    ActionKind.REPLY.value: _reply,
    ActionKind.CREATE_GOAL.value: _create_goal,
    ActionKind.CREATE_TASK.value: _create_task,
    ActionKind.COMPLETE_TASK.value: _complete_task,
    ActionKind.DELETE_GOAL.value: _delete_goal,
    ActionKind.DELETE_TASK.value: _delete_task,
    ActionKind.SHOW_PROGRESS.value: _show_progress,
}


# ============================================================================
# PUBLIC API
# ============================================================================

def parse(raw_text: str) -> Optional[Action]:
    """
    Parse model output into an Action.

    Args:
        raw_text: Raw response string from the model

    Returns:
        Parsed Action, or None if no JSON object could be decoded
    """
    logger = get_logger()

    candidate = extract_json(raw_text)
    if candidate is None:
        logger.debug("[PARSER] No JSON object in model output")
        return None

    try:
        obj = _decode_object(candidate)
    except JsonParseFailure as e:
        logger.debug(f"[PARSER] {e}")
        return None

    action_name = _as_text(obj.get("action") if obj.get("action") is not None else "reply")
    message = _as_text(obj["message"]) if obj.get("message") is not None else ""
    data = obj.get("data")
    if not isinstance(data, dict):
        data = {}

    builder = _BUILDERS.get(action_name.strip().lower())
    if builder is None:
        logger.debug(f"[PARSER] Unknown action {action_name!r}, treating as reply")
        return Reply(message if message.strip() else raw_text.strip())

    action = builder(message, data)
    if not action.message.strip():
        action = replace(action, message=describe(action))
    logger.debug(f"[PARSER] Parsed action: {action.kind.value}")
    return action


def is_valid_json(text: str) -> bool:
    """Check if text contains a decodable JSON object"""
    candidate = extract_json(text)
    if candidate is None:
        return False
    try:
        _decode_object(candidate)
    except JsonParseFailure:
        return False
    return True


def _strip_code_fence(text: str) -> str:
    cleaned = text.strip()
    if cleaned.startswith("```json"):
        cleaned = cleaned[len("```json"):]
    elif cleaned.startswith("```"):
        cleaned = cleaned[len("```"):]
    if cleaned.endswith("```"):
        cleaned = cleaned[:-len("```")]
    return cleaned.strip()


def parse_with_fallback(raw_text: str) -> Action:
    """
    Parse model output and always return an Action.

    Structured JSON wins; blank output becomes a rephrase request; anything
    else is returned as a Reply with any markdown code fence removed.
    """
    action = parse(raw_text)
    if action is not None:
        return action

    if not raw_text or not raw_text.strip():
        return Reply(REPHRASE_MESSAGE)

    cleaned = _strip_code_fence(raw_text)
    return Reply(cleaned or REPHRASE_MESSAGE)
