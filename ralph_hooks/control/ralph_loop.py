#!/usr/bin/env python3
"""
Stop Hook: Ralph Loop Controller

Implements the Ralph Wiggum pattern for continuous autonomous development.
When Claude attempts to stop and a Ralph loop is active, this hook:
1. Allows the stop if the transcript contains <promise>MARKER</promise>
2. Allows the stop if the iteration budget is exhausted
3. Otherwise blocks the stop and re-injects the original prompt

Based on: https://ghuntley.com/ralph/

Input (stdin JSON):
    {"transcript": "...agent output..."}

Output (stdout JSON):
    {"decision": "allow" | "block", "reason": "..."}

The hook fails open: any error becomes an "allow" decision carrying the
error as its reason, and the process always exits 0.
"""

import json
import logging
import re
import sys
from dataclasses import dataclass, replace
from datetime import datetime, timezone
from typing import Callable, Generic, TypeVar

from ralph_hooks.control.completion import is_complete, promise_tag
from ralph_hooks.control.loop_state import (
    DEFAULT_COMPLETION_PROMISE,
    DEFAULT_MAX_ITERATIONS,
    FileStateStore,
    HistoryEntry,
    LoopState,
    StateStore,
)
from ralph_hooks.core.config import load_ssot_config, state_path
from ralph_hooks.core.hook_logging import setup_logging
from ralph_hooks.core.metrics import log_iteration
from ralph_hooks.core.safe_hook_wrapper import wrap_hook

logger = logging.getLogger(__name__)

HOOK_NAME = "ralph-loop"

ALLOW = "allow"
BLOCK = "block"

# What run_cycle does with the store after deciding
NO_CHANGE = "none"
SAVE = "save"
CLEAR = "clear"

T = TypeVar("T")


# =============================================================================
# Decisions & step results
# =============================================================================


@dataclass(frozen=True)
class Decision:
    decision: str
    reason: str | None = None

    def to_output(self) -> dict:
        output = {"decision": self.decision}
        if self.reason is not None:
            output["reason"] = self.reason
        return output


@dataclass(frozen=True)
class Outcome:
    """A decision plus the state change it requires."""

    decision: Decision
    action: str = NO_CHANGE
    state: LoopState | None = None
    kind: str = "pass"


@dataclass(frozen=True)
class StepResult(Generic[T]):
    value: T | None = None
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


def attempt(step: str, func: Callable[..., T], *args, errors=(Exception,)) -> StepResult[T]:
    """Run one cycle step, capturing the listed exceptions as a failed result."""
    try:
        return StepResult(value=func(*args))
    except errors as e:
        logger.error(f"Step '{step}' failed: {e}")
        return StepResult(error=f"{step} failed: {e}")


def fail_open(error: str) -> Decision:
    """Failed steps never trap the agent: allow the stop and say why."""
    return Decision(ALLOW, f"Ralph loop error, allowing stop ({error})")


# =============================================================================
# Cycle steps
# =============================================================================


def parse_envelope(raw: str) -> str:
    """Extract the transcript from the Stop hook's stdin payload."""
    if not raw.strip():
        return ""

    data = json.loads(raw)
    if not isinstance(data, dict):
        raise ValueError(f"hook input must be a JSON object, got {type(data).__name__}")

    transcript = data.get("transcript")
    if transcript is None:
        return ""
    if not isinstance(transcript, str):
        raise ValueError("transcript must be a string")
    return transcript


def continuation_prompt(prompt: str, iteration: int, max_iterations: int, marker: str) -> str:
    """Message that sends the agent into its next iteration."""
    return f"""## Ralph Loop [{iteration}/{max_iterations}] - continuing with iteration {iteration + 1}

**Task:** {prompt}

Keep working on the task. When it is fully complete, output exactly:
{promise_tag(marker)}
Only output the promise when it is true.
"""


def decide(
    state: LoopState | None,
    transcript: str,
    now: datetime,
    default_promise: str = DEFAULT_COMPLETION_PROMISE,
    default_max_iterations: int = DEFAULT_MAX_ITERATIONS,
) -> Outcome:
    """Pure decision for one stop attempt.

    Checks run in order: no active loop, completion promise, iteration
    budget. Anything else blocks and advances the iteration.
    """
    if state is None or not state.active:
        return Outcome(Decision(ALLOW))

    marker = state.completion_promise or default_promise
    max_iterations = state.max_iterations or default_max_iterations
    iteration = state.current_iteration or 1

    if is_complete(transcript, marker):
        reason = f"Ralph loop complete: detected {promise_tag(marker)} at iteration {iteration}"
        return Outcome(Decision(ALLOW, reason), CLEAR, kind="complete")

    if iteration >= max_iterations:
        reason = f"Ralph loop stopped: max iterations reached ({iteration}/{max_iterations})"
        return Outcome(Decision(ALLOW, reason), CLEAR, kind="exhausted")

    next_state = replace(
        state,
        current_iteration=iteration + 1,
        history=[*state.history, HistoryEntry(iteration=iteration, timestamp=now.isoformat())],
    )
    reason = continuation_prompt(state.prompt, iteration, max_iterations, marker)
    return Outcome(Decision(BLOCK, reason), SAVE, next_state, kind="iteration")


def apply_outcome(store: StateStore, outcome: Outcome) -> StepResult[None]:
    if outcome.action == SAVE:
        return attempt("save state", store.save, outcome.state, errors=(OSError, TypeError, ValueError))
    if outcome.action == CLEAR:
        return attempt("clear state", store.clear, errors=(OSError,))
    return StepResult()


def run_cycle(
    raw_input: str,
    store: StateStore,
    now: datetime | None = None,
    default_promise: str = DEFAULT_COMPLETION_PROMISE,
    default_max_iterations: int = DEFAULT_MAX_ITERATIONS,
) -> Decision:
    """One full stop-hook cycle: parse, load, decide, persist.

    Every step reports failure through a StepResult; the first failure
    short-circuits into an "allow" decision.
    """
    parsed = attempt("parse input", parse_envelope, raw_input, errors=(ValueError,))
    if not parsed.ok:
        return fail_open(parsed.error)

    try:
        with store.lock():
            loaded = attempt("load state", store.load, errors=(OSError, ValueError))
            if not loaded.ok:
                return fail_open(loaded.error)

            decided = attempt(
                "detect completion",
                decide,
                loaded.value,
                parsed.value,
                now or datetime.now(timezone.utc),
                default_promise,
                default_max_iterations,
                errors=(re.error, TypeError, ValueError),
            )
            if not decided.ok:
                return fail_open(decided.error)

            outcome = decided.value
            applied = apply_outcome(store, outcome)
            if not applied.ok:
                return fail_open(applied.error)
    except (OSError, TimeoutError) as e:
        logger.error(f"State lock failed: {e}")
        return fail_open(f"lock state failed: {e}")

    if outcome.kind != "pass":
        record_outcome(outcome, loaded.value)
    return outcome.decision


def record_outcome(outcome: Outcome, previous: LoopState):
    iteration = previous.current_iteration
    logger.info(f"Ralph {outcome.kind}: iteration={iteration} decision={outcome.decision.decision}")
    log_iteration(
        {
            "type": outcome.kind,
            "iteration": iteration,
            "max_iterations": previous.max_iterations,
            "decision": outcome.decision.decision,
        }
    )


# =============================================================================
# Main Hook
# =============================================================================


def open_store(config: dict) -> FileStateStore:
    """FileStateStore for the current project, per config."""
    return FileStateStore(
        state_path(config),
        lock_timeout_secs=float(config["lock_timeout_secs"]),
        default_promise=config["completion_promise"],
        default_max_iterations=config["max_iterations"],
    )


@wrap_hook(HOOK_NAME)
def main():
    setup_logging(HOOK_NAME)
    config = load_ssot_config()

    store = open_store(config)
    decision = run_cycle(
        sys.stdin.read(),
        store,
        default_promise=config["completion_promise"],
        default_max_iterations=config["max_iterations"],
    )

    print(json.dumps(decision.to_output()))
    sys.exit(0)


if __name__ == "__main__":
    main()
