"""
Ralph configuration (SSOT).

Values come from the ``ralph:`` section of ``config/canonical.yaml`` when one
exists in the project, merged over DEFAULT_CONFIG.
"""

import logging
import os
from pathlib import Path

import yaml

logger = logging.getLogger(__name__)

DEFAULT_CONFIG = {
    "max_iterations": 30,
    "completion_promise": "TASK_COMPLETE",
    "state_dir": ".claude/ralph",
    "state_file": "loop-state.json",
    "lock_timeout_secs": 5.0,
}


def config_candidates() -> list[Path]:
    """Locations checked for canonical.yaml, in priority order."""
    candidates = []
    if project_dir := os.environ.get("CLAUDE_PROJECT_DIR"):
        candidates.append(Path(project_dir) / "config" / "canonical.yaml")
    candidates.append(Path.cwd() / "config" / "canonical.yaml")
    return candidates


def load_ssot_config(paths: list[Path] | None = None) -> dict:
    """Load Ralph config from canonical.yaml (SSOT)."""
    for config_path in paths if paths is not None else config_candidates():
        if not config_path.exists():
            continue
        try:
            with open(config_path, encoding="utf-8") as f:
                data = yaml.safe_load(f) or {}
        except (OSError, yaml.YAMLError) as e:
            logger.warning(f"Failed to load SSOT config {config_path}: {e}")
            continue

        ralph_config = data.get("ralph") if isinstance(data, dict) else None
        if isinstance(ralph_config, dict) and ralph_config:
            logger.info(f"Loaded config from SSOT: {config_path}")
            known = {k: v for k, v in ralph_config.items() if k in DEFAULT_CONFIG}
            return {**DEFAULT_CONFIG, **known}

    logger.info("Using default config (canonical.yaml not found)")
    return dict(DEFAULT_CONFIG)


def state_path(config: dict, cwd: Path | None = None) -> Path:
    """Project-local path of the loop-state record."""
    base = cwd if cwd is not None else Path.cwd()
    return base / config["state_dir"] / config["state_file"]
