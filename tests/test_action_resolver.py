"""
Tests for ActionResolver.
Covers each step of the model -> command parser -> reply -> error cascade.
"""
import threading

import pytest

from planwise.brain.actions import CompleteTask, CreateGoal, CreateTask, Reply, ShowProgress
from planwise.brain.inference import CancelToken, InferenceCapability
from planwise.brain.model_manager import ModelLifecycleManager
from planwise.brain.prompt_builder import PromptDialect
from planwise.brain.response_parser import REPHRASE_MESSAGE
from planwise.context.snapshots import GoalContext, StaticContextProvider, TaskContext
from planwise.core.action_resolver import ActionResolver
from planwise.core.errors import ModelNotSelected, ModelLoadFailure, NativeBackendUnavailable, NoResolution


def make_resolver(capability, path="/models/a.gguf", **kwargs):
    manager = ModelLifecycleManager(capability)
    kwargs.setdefault("dialect", PromptDialect.PLAIN)
    kwargs.setdefault("compact", False)
    return ActionResolver(manager, lambda: path, **kwargs), manager


def test_model_json_wins(capability, fake_backend):
    fake_backend.responses = [
        '{"action":"create_goal","message":"ok","data":{"goalTitle":"Learn Guitar","durationMonths":2,"dailyMinutes":20}}'
    ]
    resolver, manager = make_resolver(capability)

    action = resolver.resolve("I want to learn guitar")

    assert action == CreateGoal(message="ok", goal_title="Learn Guitar", duration_months=2, daily_minutes=20)
    assert fake_backend.load_calls == ["/models/a.gguf"]
    assert manager.is_loaded


def test_model_loaded_lazily_once(capability, fake_backend):
    fake_backend.responses = ['{"action":"reply","message":"one"}', '{"action":"reply","message":"two"}']
    resolver, _ = make_resolver(capability)

    assert resolver.resolve("hi") == Reply("one")
    assert resolver.resolve("hi again") == Reply("two")
    assert fake_backend.load_calls == ["/models/a.gguf"]


def test_unparseable_model_output_uses_command_parser(capability, fake_backend):
    fake_backend.responses = ["I think you finished something?"]
    resolver, _ = make_resolver(capability)

    action = resolver.resolve("complete task Review notes")

    assert isinstance(action, CompleteTask)
    assert action.task_title == "Review notes"


def test_unparseable_model_output_without_command_is_echoed(capability, fake_backend):
    fake_backend.responses = ["```json\nSounds like a plan!\n```"]
    resolver, _ = make_resolver(capability)

    assert resolver.resolve("what a nice day") == Reply("Sounds like a plan!")


def test_empty_model_output_without_command_asks_to_rephrase(capability, fake_backend):
    fake_backend.responses = [""]
    resolver, _ = make_resolver(capability)

    assert resolver.resolve("what a nice day") == Reply(REPHRASE_MESSAGE)


def test_load_failure_falls_back_to_commands(capability, fake_backend):
    fake_backend.fail_load = True
    resolver, _ = make_resolver(capability)

    action = resolver.resolve('add task "Read" tomorrow for 20 minutes')

    assert isinstance(action, CreateTask)
    assert (action.task_title, action.due_date, action.minutes) == ("Read", "tomorrow", 20)


def test_unavailable_backend_falls_back_to_commands():
    capability = InferenceCapability.unavailable("llama_cpp", "not installed")
    resolver, _ = make_resolver(capability)

    assert isinstance(resolver.resolve("show progress"), ShowProgress)


def test_no_model_and_no_command_raises(capability, fake_backend):
    fake_backend.fail_load = True
    resolver, _ = make_resolver(capability)

    with pytest.raises(NoResolution) as exc_info:
        resolver.resolve("what a nice day")

    assert exc_info.value.user_message == "what a nice day"
    assert isinstance(exc_info.value.cause, ModelLoadFailure)


def test_missing_model_path(capability, fake_backend):
    resolver, _ = make_resolver(capability, path=None)

    assert isinstance(resolver.resolve("show progress"), ShowProgress)
    with pytest.raises(NoResolution) as exc_info:
        resolver.resolve("good morning")
    assert isinstance(exc_info.value.cause, ModelNotSelected)
    assert fake_backend.load_calls == []


def test_unavailable_backend_error_is_the_cause():
    resolver, _ = make_resolver(InferenceCapability.unavailable("llama_cpp", "not installed"))
    with pytest.raises(NoResolution) as exc_info:
        resolver.resolve("good morning")
    assert isinstance(exc_info.value.cause, NativeBackendUnavailable)


def test_blank_message_asks_to_rephrase(capability, fake_backend):
    resolver, _ = make_resolver(capability)

    assert resolver.resolve("") == Reply(REPHRASE_MESSAGE)
    assert resolver.resolve("   ") == Reply(REPHRASE_MESSAGE)
    assert fake_backend.load_calls == []


def test_cancelled_generation_falls_back(capability, fake_backend):
    resolver, _ = make_resolver(capability)
    token = CancelToken()
    token.cancel()

    assert isinstance(resolver.resolve("show progress", cancel_token=token), ShowProgress)
    assert fake_backend.prompts == []


def test_prompt_carries_context(capability, fake_backend):
    fake_backend.responses = ['{"action":"show_progress","message":"here"}']
    resolver, _ = make_resolver(capability, dialect=PromptDialect.CHATML)
    provider = StaticContextProvider(
        goals=[GoalContext("Learn Guitar", 20, "2025-06-01")],
        tasks=[TaskContext("Scales", False, 15)],
    )

    assert resolver.resolve_context("how am I doing", provider) == ShowProgress("here")
    prompt = fake_backend.prompts[0]
    assert prompt.startswith("<|im_start|>system")
    assert "Learn Guitar|20min|ends:2025-06-01" in prompt
    assert "○Scales|15min" in prompt
    assert "how am I doing" in prompt


def test_concurrent_resolves_never_overlap_in_backend(capability, fake_backend):
    fake_backend.run_delay = 0.02
    fake_backend.respond = lambda prompt: '{"action":"reply","message":"ok"}'
    resolver, _ = make_resolver(capability)
    results = []

    def worker():
        results.append(resolver.resolve("hello"))

    threads = [threading.Thread(target=worker) for _ in range(8)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert results == [Reply("ok")] * 8
    assert fake_backend.max_active_runs == 1
    assert fake_backend.load_calls == ["/models/a.gguf"]
