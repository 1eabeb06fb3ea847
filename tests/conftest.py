"""Shared fixtures: keep logs, metrics and loop state inside tmp_path."""

import json
from pathlib import Path
from unittest.mock import patch

import pytest

from ralph_hooks.core import hook_logging, metrics


@pytest.fixture(autouse=True)
def isolated_hook_env(tmp_path, monkeypatch):
    """Run every test from an empty project dir with private log/metrics files."""
    project = tmp_path / "project"
    project.mkdir()
    monkeypatch.chdir(project)
    monkeypatch.delenv("CLAUDE_PROJECT_DIR", raising=False)

    with (
        patch.object(hook_logging, "LOG_DIR", tmp_path / "logs"),
        patch.object(metrics, "RALPH_LOG", tmp_path / "metrics" / "ralph_iterations.jsonl"),
    ):
        yield project


@pytest.fixture
def state_file(isolated_hook_env) -> Path:
    return isolated_hook_env / ".claude" / "ralph" / "loop-state.json"


@pytest.fixture
def write_state(state_file):
    """Write a raw loop-state record (camelCase JSON) for the current project."""

    def _write(record: dict) -> Path:
        state_file.parent.mkdir(parents=True, exist_ok=True)
        state_file.write_text(json.dumps(record))
        return state_file

    return _write
