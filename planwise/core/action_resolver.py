"""
Action resolver.

Turns one user utterance into exactly one Action, preferring the model and
degrading step by step:

    model JSON -> command regexes -> model text as a reply -> NoResolution

NoResolution is the only error a caller ever sees.
"""
import time
from typing import Callable, Optional, Sequence

from planwise.brain import response_parser
from planwise.brain.actions import Action, Reply
from planwise.brain.inference import CancelToken
from planwise.brain.model_manager import ModelLifecycleManager
from planwise.brain.prompt_builder import PromptDialect, build_prompt
from planwise.context.snapshots import ContextProvider, GoalContext, TaskContext
from planwise.core import command_parser
from planwise.core.config import Config
from planwise.core.errors import ModelNotSelected, NoResolution, PlanwiseError
from planwise.core.logger import get_logger

ModelPathProvider = Callable[[], Optional[str]]


class ActionResolver:
    """Single entry point of the resolution pipeline."""

    def __init__(
        self,
        manager: ModelLifecycleManager,
        model_path_provider: ModelPathProvider,
        dialect: Optional[PromptDialect] = None,
        compact: Optional[bool] = None,
    ):
        self.logger = get_logger()
        self.manager = manager
        self.model_path_provider = model_path_provider
        self.dialect = dialect or PromptDialect.from_name(Config.PROMPT_DIALECT)
        self.compact = Config.COMPACT_PROMPT if compact is None else compact

    def _ensure_loaded(self) -> None:
        if self.manager.is_loaded:
            return
        path = self.model_path_provider()
        if not path:
            raise ModelNotSelected("No model selected; install a model or set PLANWISE_MODEL_PATH")
        self.manager.load(path)

    def _generate(
        self,
        user_message: str,
        goals: Sequence[GoalContext],
        tasks: Sequence[TaskContext],
        max_tokens: Optional[int],
        cancel_token: Optional[CancelToken],
    ) -> str:
        self._ensure_loaded()
        prompt = build_prompt(user_message, goals, tasks, dialect=self.dialect, compact=self.compact)
        self.logger.debug(f"[PROMPT] {len(prompt)} chars, dialect={self.dialect.value}")
        raw = self.manager.run(prompt, max_tokens=max_tokens, cancel_token=cancel_token)
        self.logger.debug(f"[RESOLVER] Raw response: {raw[:200]!r}")
        return raw

    def resolve(
        self,
        user_message: str,
        goals: Sequence[GoalContext] = (),
        tasks: Sequence[TaskContext] = (),
        max_tokens: Optional[int] = None,
        cancel_token: Optional[CancelToken] = None,
    ) -> Action:
        """
        Resolve a user message to an Action.

        Args:
            user_message: Free-form user text
            goals: Goal snapshots for the prompt context
            tasks: Today's task snapshots for the prompt context
            max_tokens: Generation limit (default: Config.MAX_TOKENS)
            cancel_token: Optional token to stop generation early

        Returns:
            Resolved Action

        Raises:
            NoResolution: no model text and no command pattern matched
        """
        if not user_message or not user_message.strip():
            return Reply(response_parser.REPHRASE_MESSAGE)

        start = time.time()
        raw: Optional[str] = None
        model_error: Optional[BaseException] = None

        try:
            raw = self._generate(user_message, goals, tasks, max_tokens, cancel_token)
        except PlanwiseError as e:
            model_error = e
            self.logger.warning(f"[RESOLVER] Model stage failed: {e}")

        if raw is not None:
            action = response_parser.parse(raw)
            if action is not None:
                self.logger.info(
                    f"[RESOLVER] Model action {action.kind.value} in {time.time() - start:.2f}s"
                )
                return action

        action = command_parser.parse(user_message)
        if action is not None:
            self.logger.info(f"[RESOLVER] Command parser action {action.kind.value}")
            return action

        if raw is not None:
            self.logger.info("[RESOLVER] Returning model text as reply")
            return response_parser.parse_with_fallback(raw)

        raise NoResolution(user_message, cause=model_error)

    def resolve_context(
        self,
        user_message: str,
        provider: ContextProvider,
        max_tokens: Optional[int] = None,
        cancel_token: Optional[CancelToken] = None,
    ) -> Action:
        """resolve() with snapshots pulled from a ContextProvider"""
        return self.resolve(
            user_message,
            goals=provider.goal_snapshots(),
            tasks=provider.task_snapshots(),
            max_tokens=max_tokens,
            cancel_token=cancel_token,
        )
