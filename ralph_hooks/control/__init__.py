"""Loop control hooks.

Hooks:
- ralph_loop.py: Stop hook - blocks the stop until the completion promise or budget

Utilities:
- ralph_cli.py: start/status/cancel/install commands for a project's loop
- loop_state.py: loop-state record and its stores
- completion.py: completion promise detection
"""

__all__ = [
    "ralph_loop",
    "ralph_cli",
    "loop_state",
    "completion",
]
