"""
Register the Ralph Stop hook in Claude settings.

Merges a Stop hook entry into ``settings.json`` under ``~/.claude`` (global)
or ``<cwd>/.claude`` (project) without clobbering what is already there.
"""

import json
import logging
from pathlib import Path

logger = logging.getLogger(__name__)

HOOK_COMMAND = "ralph-loop"
GLOBAL_CLAUDE_DIR = Path.home() / ".claude"


def project_claude_dir() -> Path:
    return Path.cwd() / ".claude"


def ralph_settings(command: str = HOOK_COMMAND) -> dict:
    """Settings fragment that wires the loop controller to the Stop event."""
    return {
        "hooks": {
            "Stop": [
                {"hooks": [{"type": "command", "command": command}]},
            ]
        }
    }


def _union(existing: list, new: list) -> list:
    merged = list(existing)
    for item in new:
        if item not in merged:
            merged.append(item)
    return merged


def _clean_settings(settings: dict) -> dict:
    """Reset permissions/hooks parts with the wrong shape to empty, with a warning."""
    if "permissions" in settings:
        permissions = settings["permissions"]
        if not isinstance(permissions, dict):
            logger.warning(f"Ignoring non-object 'permissions' in settings: {permissions!r}")
            settings["permissions"] = {}
        else:
            for key in ("allow", "deny"):
                if key in permissions and not isinstance(permissions[key], list):
                    logger.warning(f"Ignoring non-list 'permissions.{key}' in settings")
                    permissions[key] = []

    if "hooks" in settings:
        hooks = settings["hooks"]
        if not isinstance(hooks, dict):
            logger.warning(f"Ignoring non-object 'hooks' in settings: {hooks!r}")
            settings["hooks"] = {}
        else:
            for hook_type, hook_configs in hooks.items():
                if not isinstance(hook_configs, list):
                    logger.warning(f"Ignoring non-list 'hooks.{hook_type}' in settings")
                    hooks[hook_type] = []

    return settings


def merge_settings(existing: dict, new_settings: dict) -> dict:
    """Merge new_settings into a copy of existing.

    permissions.allow/deny become order-preserving unions; each hook type keeps
    its existing entries and gains the new ones it does not already have.
    Existing parts with the wrong shape are treated as empty.
    """
    merged = _clean_settings(json.loads(json.dumps(existing)))

    if new_settings.get("permissions"):
        permissions = merged.setdefault("permissions", {})
        for key in ("allow", "deny"):
            permissions[key] = _union(
                permissions.get(key, []), new_settings["permissions"].get(key, [])
            )

    if new_settings.get("hooks"):
        hooks = merged.setdefault("hooks", {})
        for hook_type, hook_configs in new_settings["hooks"].items():
            hooks[hook_type] = _union(hooks.get(hook_type, []), hook_configs)

    return merged


def load_settings(path: Path) -> dict:
    """Existing settings, or {} when missing or unparseable."""
    if not path.exists():
        return {}
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except (json.JSONDecodeError, OSError) as e:
        logger.warning(f"Could not parse existing settings at {path}: {e}")
        return {}
    if not isinstance(data, dict):
        logger.warning(f"Ignoring non-object settings at {path}")
        return {}
    return data


def install_settings(claude_dir: Path, command: str = HOOK_COMMAND) -> Path:
    """Merge the Ralph Stop hook into claude_dir/settings.json."""
    claude_dir.mkdir(parents=True, exist_ok=True)
    settings_path = claude_dir / "settings.json"

    merged = merge_settings(load_settings(settings_path), ralph_settings(command))
    settings_path.write_text(json.dumps(merged, indent=2) + "\n", encoding="utf-8")
    logger.info(f"Merged settings: {settings_path}")
    return settings_path
