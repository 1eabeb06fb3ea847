"""
Ralph iteration metrics.

Every loop decision is appended to a JSONL log and mirrored as a Sentry
breadcrumb. Metrics are best effort: failures are logged, never raised.
"""

import fcntl
import json
import logging
import os
from datetime import datetime, timezone
from pathlib import Path

import sentry_sdk

logger = logging.getLogger(__name__)

METRICS_DIR = Path(os.environ.get("METRICS_DIR", Path.home() / ".claude" / "metrics"))
RALPH_LOG = METRICS_DIR / "ralph_iterations.jsonl"


def emit_sentry_breadcrumb(data: dict):
    """Add Sentry breadcrumb for debugging context."""
    try:
        sentry_sdk.add_breadcrumb(
            category="ralph",
            message=f"Ralph {data.get('type', 'event')}: iteration={data.get('iteration', 0)}",
            level="info",
            data=data,
        )
    except Exception as e:
        logger.warning(f"Sentry breadcrumb failed: {e}")


def log_iteration(data: dict):
    """Log a Ralph decision to the JSONL metrics file and Sentry."""
    entry = {
        "timestamp": datetime.now(timezone.utc).isoformat(),
        **data,
    }

    try:
        RALPH_LOG.parent.mkdir(parents=True, exist_ok=True)
        with open(RALPH_LOG, "a", encoding="utf-8") as f:
            fcntl.flock(f.fileno(), fcntl.LOCK_EX)
            try:
                f.write(json.dumps(entry) + "\n")
            finally:
                fcntl.flock(f.fileno(), fcntl.LOCK_UN)
    except OSError as e:
        logger.error(f"Failed to write iteration log: {e}")

    emit_sentry_breadcrumb(data)


def read_iterations(log_path: Path | None = None) -> list[dict]:
    """Read back logged entries, skipping lines that do not parse."""
    path = log_path or RALPH_LOG
    if not path.exists():
        return []

    entries = []
    with open(path, encoding="utf-8") as f:
        fcntl.flock(f.fileno(), fcntl.LOCK_SH)
        try:
            for line in f:
                try:
                    entries.append(json.loads(line))
                except json.JSONDecodeError:
                    continue
        finally:
            fcntl.flock(f.fileno(), fcntl.LOCK_UN)
    return entries
