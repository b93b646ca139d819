#!/usr/bin/env python3
"""
Planwise - on-device assistant action resolver.
Entry point for resolving user messages from the command line.

Usage:
    python run.py "add task Read tomorrow for 20 minutes"
    python run.py                          # Interactive mode
    python run.py --backend off "show progress"
    python run.py --list-models            # List known / installed models
"""
import sys
import json
import argparse
from planwise.core.logger import init_logger, get_logger
from planwise.core.config import Config


def parse_args(argv=None):
    """Parse command line arguments"""
    parser = argparse.ArgumentParser(
        description="Planwise - resolve free-form requests into goal/task actions",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python run.py "create goal Learn Guitar in 2 months 20 minutes per day"
  python run.py --model ./models/phi-2.Q4_K_M.gguf "what should I do today?"
  python run.py --backend llama_server --dialect zephyr
  python run.py --goals-json goals.json --tasks-json tasks.json
        """
    )

    parser.add_argument(
        "message",
        nargs="?",
        default=None,
        help="Message to resolve (omit for interactive mode)"
    )

    parser.add_argument(
        "--model",
        type=str,
        default=None,
        help="Path to a GGUF model (overrides the catalog selection)"
    )

    parser.add_argument(
        "--models-dir",
        type=str,
        default=Config.MODELS_DIR,
        help=f"Directory scanned for installed models (default: {Config.MODELS_DIR})"
    )

    parser.add_argument(
        "--backend",
        type=str,
        default=Config.BACKEND,
        choices=["llama_cpp", "llama_server", "off"],
        help=f"Inference backend (default: {Config.BACKEND})"
    )

    parser.add_argument(
        "--dialect",
        type=str,
        default=None,
        choices=["plain", "chatml", "llama", "zephyr"],
        help="Prompt dialect (default: the selected model's, else PLANWISE_PROMPT_DIALECT)"
    )

    parser.add_argument(
        "--compact",
        action="store_true",
        default=Config.COMPACT_PROMPT,
        help="Use the short system instruction"
    )

    parser.add_argument(
        "--max-tokens",
        type=int,
        default=Config.MAX_TOKENS,
        help=f"Generation limit (default: {Config.MAX_TOKENS})"
    )

    parser.add_argument(
        "--timeout",
        type=float,
        default=Config.GENERATION_TIMEOUT_SEC,
        help=f"Generation timeout in seconds, 0 disables (default: {Config.GENERATION_TIMEOUT_SEC})"
    )

    parser.add_argument(
        "--goals-json",
        type=str,
        default=None,
        help="JSON file with a list of goals ({title, dailyMinutes, endDate})"
    )

    parser.add_argument(
        "--tasks-json",
        type=str,
        default=None,
        help="JSON file with a list of today's tasks ({title, isCompleted, minutes})"
    )

    parser.add_argument(
        "--log-level",
        type=str,
        default=Config.LOG_LEVEL,
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help=f"Logging level (default: {Config.LOG_LEVEL})"
    )

    parser.add_argument(
        "--quiet",
        action="store_true",
        default=Config.QUIET_MODE,
        help="Hide pipeline internals in the log"
    )

    parser.add_argument(
        "--list-models",
        action="store_true",
        help="List known models and exit"
    )

    return parser.parse_args(argv)


def _load_json_list(path):
    with open(path, "r", encoding="utf-8") as f:
        data = json.load(f)
    if not isinstance(data, list):
        raise ValueError(f"{path} must contain a JSON list")
    return data


def _print_models(catalog):
    from planwise.brain.model_catalog import format_size

    print("\n" + "=" * 60)
    print(f"  Models in {catalog.models_dir}")
    print("=" * 60)
    for model in catalog.models:
        installed = any(m.info.id == model.id for m in catalog.installed_models())
        selected = catalog.selected_model()
        marker = "*" if selected is not None and selected.info.id == model.id else " "
        status = "installed" if installed else "missing"
        print(f" {marker} {model.id:<18} {model.parameters:>5}  {format_size(model.size_bytes):>9}  {status}")
    print("=" * 60 + "\n")


def main(argv=None):
    """Main entry point"""
    args = parse_args(argv)

    init_logger(args.log_level, quiet_mode=args.quiet)
    logger = get_logger()

    from planwise.brain.actions import to_json
    from planwise.brain.inference import detect_capability
    from planwise.brain.model_catalog import LocalModelCatalog
    from planwise.brain.model_manager import ModelLifecycleManager
    from planwise.brain.prompt_builder import PromptDialect
    from planwise.context.snapshots import StaticContextProvider, goals_from_dicts, tasks_from_dicts
    from planwise.core.action_resolver import ActionResolver
    from planwise.core.errors import NoResolution

    catalog = LocalModelCatalog(args.models_dir)
    if args.list_models:
        _print_models(catalog)
        return 0

    try:
        goals = goals_from_dicts(_load_json_list(args.goals_json)) if args.goals_json else []
        tasks = tasks_from_dicts(_load_json_list(args.tasks_json)) if args.tasks_json else []
    except (OSError, ValueError) as e:
        logger.error(f"Invalid context file: {e}")
        return 1
    provider = StaticContextProvider(goals, tasks)

    if args.model:
        model_path_provider = lambda: args.model  # noqa: E731
        dialect = None
    else:
        model_path_provider = catalog.selected_model_path
        dialect = catalog.selected_dialect()
    if args.dialect:
        dialect = PromptDialect.from_name(args.dialect)

    capability = detect_capability(args.backend)
    logger.info(f"[MODEL] Backend: {capability!r}")

    manager = ModelLifecycleManager(capability, generation_timeout_sec=args.timeout)
    resolver = ActionResolver(manager, model_path_provider, dialect=dialect, compact=args.compact)

    def resolve_and_print(message):
        try:
            action = resolver.resolve_context(message, provider, max_tokens=args.max_tokens)
        except NoResolution as e:
            logger.error(str(e))
            return False
        print(to_json(action), flush=True)
        return True

    with manager:
        if args.message is not None:
            return 0 if resolve_and_print(args.message) else 2

        logger.info("Interactive mode. Type a request, or 'exit' to quit.")
        try:
            while True:
                try:
                    line = input("> ")
                except EOFError:
                    break
                if line.strip().lower() in ("exit", "quit"):
                    break
                resolve_and_print(line)
        except KeyboardInterrupt:
            logger.info("\nShutdown requested by user")

    return 0


if __name__ == "__main__":
    sys.exit(main())
