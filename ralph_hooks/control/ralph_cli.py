#!/usr/bin/env python3
"""
Ralph loop lifecycle commands.

USAGE:
    ralph start "Fix all failing tests" --max-iterations 20
    ralph status
    ralph cancel
    ralph install --project

``start`` writes the loop-state record that the ralph-loop Stop hook reads;
the hook takes it from there until the agent emits its completion promise.
"""

import argparse
import json
import logging
import sys
from datetime import datetime, timezone

from ralph_hooks.control.completion import promise_tag
from ralph_hooks.control.loop_state import LoopState
from ralph_hooks.control.ralph_loop import open_store
from ralph_hooks.core.config import load_ssot_config
from ralph_hooks.core.hook_logging import setup_logging
from ralph_hooks.install import GLOBAL_CLAUDE_DIR, install_settings, project_claude_dir

logger = logging.getLogger(__name__)


def cmd_start(args, config: dict) -> int:
    store = open_store(config)
    existing = store.load()
    if existing and existing.active and not args.force:
        print(
            f"A Ralph loop is already active (iteration {existing.current_iteration}/"
            f"{existing.max_iterations}). Use --force to replace it or 'ralph cancel'.",
            file=sys.stderr,
        )
        return 1

    state = LoopState(
        active=True,
        completion_promise=args.completion_promise or config["completion_promise"],
        max_iterations=args.max_iterations or config["max_iterations"],
        current_iteration=1,
        prompt=" ".join(args.prompt),
        history=[],
        started_at=datetime.now(timezone.utc).isoformat(),
    )
    with store.lock():
        store.save(state)

    logger.info(f"Ralph loop started: max_iterations={state.max_iterations}")
    print(f"Ralph loop started (max {state.max_iterations} iterations).")
    print(f"To finish, the agent must output: {promise_tag(state.completion_promise)}")
    return 0


def cmd_status(args, config: dict) -> int:
    state = open_store(config).load()
    if not state or not state.active:
        print("No active Ralph loop")
        return 0
    print(json.dumps(state.to_dict(), indent=2))
    return 0


def cmd_cancel(args, config: dict) -> int:
    store = open_store(config)
    with store.lock():
        state = store.load()
        store.clear()

    if state:
        logger.info(f"Ralph loop cancelled at iteration {state.current_iteration}")
        print(f"Ralph loop cancelled at iteration {state.current_iteration}")
    else:
        print("No active Ralph loop to cancel")
    return 0


def cmd_install(args, config: dict) -> int:
    claude_dir = GLOBAL_CLAUDE_DIR if args.global_ else project_claude_dir()
    settings_path = install_settings(claude_dir, command=args.command)
    print(f"Merged settings: {settings_path}")
    return 0


def positive_int(value: str) -> int:
    number = int(value)
    if number < 1:
        raise argparse.ArgumentTypeError(f"must be >= 1, got {number}")
    return number


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="ralph", description="Ralph loop manager")
    subparsers = parser.add_subparsers(dest="command_name", required=True)

    start = subparsers.add_parser("start", help="Start a Ralph loop in this project")
    start.add_argument("prompt", nargs="+", help="Task re-injected on every iteration")
    start.add_argument("--max-iterations", type=positive_int, help="Iteration budget")
    start.add_argument("--completion-promise", help="Marker the agent outputs when done")
    start.add_argument("--force", action="store_true", help="Replace an active loop")
    start.set_defaults(handler=cmd_start)

    status = subparsers.add_parser("status", help="Show the active loop")
    status.set_defaults(handler=cmd_status)

    cancel = subparsers.add_parser("cancel", help="Stop the active loop")
    cancel.set_defaults(handler=cmd_cancel)

    install = subparsers.add_parser("install", help="Register the Stop hook in settings.json")
    scope = install.add_mutually_exclusive_group()
    scope.add_argument("--global", dest="global_", action="store_true", help="Install into ~/.claude")
    scope.add_argument("--project", dest="global_", action="store_false", help="Install into ./.claude (default)")
    install.set_defaults(global_=False)
    install.add_argument("--command", default="ralph-loop", help="Hook command to register")
    install.set_defaults(handler=cmd_install)

    return parser


def main(argv: list[str] | None = None) -> int:
    setup_logging("ralph-cli")
    args = build_parser().parse_args(argv)
    if getattr(args, "completion_promise", None) == "":
        print("--completion-promise must not be empty", file=sys.stderr)
        return 2
    return args.handler(args, load_ssot_config())


if __name__ == "__main__":
    sys.exit(main())
