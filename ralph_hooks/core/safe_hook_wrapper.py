"""
Safe Hook Wrapper - Ensures hooks never crash with unhandled exceptions.

Usage in hook:
    from ralph_hooks.core.safe_hook_wrapper import safe_main

    def main():
        # your hook logic
        pass

    if __name__ == "__main__":
        safe_main(main, "my-hook")

A hook that crashes would leave the agent stuck behind a failing Stop hook,
so any escaping exception is reported as an ``allow`` decision instead.
"""

import json
import logging
import sys
import traceback

logger = logging.getLogger(__name__)


def fail_open_output(reason: str) -> dict:
    """Decision emitted when a hook fails: let the agent stop."""
    return {"decision": "allow", "reason": reason}


def safe_main(hook_func, hook_name: str = "unknown"):
    """
    Wrap a hook's main function with comprehensive error handling.

    Ensures the hook NEVER raises an exception - always exits 0.
    """
    try:
        hook_func()
    except SystemExit:
        raise
    except Exception as e:
        logger.error(f"{hook_name} crashed: {e}\n{traceback.format_exc()}")
        print(json.dumps(fail_open_output(f"{hook_name} error: {e}")))
        sys.exit(0)


def wrap_hook(hook_name: str):
    """
    Decorator to wrap hook main functions.

    Usage:
        @wrap_hook("my-hook")
        def main():
            # hook logic
            pass
    """

    def decorator(func):
        def wrapper(*args, **kwargs):
            safe_main(lambda: func(*args, **kwargs), hook_name)

        return wrapper

    return decorator
