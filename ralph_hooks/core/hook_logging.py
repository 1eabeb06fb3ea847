"""
Structured logging for hook processes.

Hooks talk to the host runtime over stdout, so log records go to a per-hook
file under ~/.claude/logs instead of the console.
"""

import logging
import os
from pathlib import Path

LOG_DIR = Path(os.environ.get("CLAUDE_HOOKS_LOG_DIR", Path.home() / ".claude" / "logs"))

LOG_FORMAT = (
    '{"timestamp": "%(asctime)s", "level": "%(levelname)s", '
    '"module": "%(hook)s", "message": "%(message)s"}'
)


def setup_logging(hook_name: str, level: int = logging.INFO) -> Path:
    """Route root logging to LOG_DIR/<hook_name>.log.

    Returns the log file path.
    """
    LOG_DIR.mkdir(parents=True, exist_ok=True)
    log_file = LOG_DIR / f"{hook_name}.log"

    logging.basicConfig(
        level=level,
        format=LOG_FORMAT.replace("%(hook)s", hook_name),
        handlers=[logging.FileHandler(log_file)],
        force=True,
    )
    return log_file
