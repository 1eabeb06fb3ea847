"""Tests for merging the Ralph Stop hook into Claude settings."""

import json
import logging

import pytest

from ralph_hooks import install


class TestMergeSettings:
    """Test settings merge rules."""

    def test_merges_into_empty(self):
        """Test that merging into {} yields exactly the Ralph fragment."""
        merged = install.merge_settings({}, install.ralph_settings())
        assert merged == install.ralph_settings()

    def test_preserves_existing_hooks(self):
        """Test that existing hooks and unrelated keys survive the merge."""
        existing = {
            "hooks": {
                "Stop": [{"hooks": [{"type": "command", "command": "notify-done"}]}],
                "PreToolUse": [{"matcher": "Bash", "hooks": [{"type": "command", "command": "guard"}]}],
            },
            "model": "opus",
        }
        merged = install.merge_settings(existing, install.ralph_settings())

        stop_commands = [h["command"] for entry in merged["hooks"]["Stop"] for h in entry["hooks"]]
        assert stop_commands == ["notify-done", "ralph-loop"]
        assert merged["hooks"]["PreToolUse"] == existing["hooks"]["PreToolUse"]
        assert merged["model"] == "opus"

    def test_does_not_mutate_input(self):
        """Test that the caller's settings dict is left untouched."""
        existing = {"hooks": {"Stop": []}}
        install.merge_settings(existing, install.ralph_settings())
        assert existing == {"hooks": {"Stop": []}}

    def test_second_merge_is_idempotent(self):
        """Test that merging twice does not duplicate the hook."""
        once = install.merge_settings({}, install.ralph_settings())
        twice = install.merge_settings(once, install.ralph_settings())
        assert twice == once

    def test_permissions_union(self):
        """Test that allow/deny lists become order-preserving unions."""
        existing = {"permissions": {"allow": ["Bash(git:*)", "Read"], "deny": ["Bash(rm:*)"]}}
        new = {"permissions": {"allow": ["Read", "Edit"], "deny": ["WebFetch"]}}
        merged = install.merge_settings(existing, new)
        assert merged["permissions"]["allow"] == ["Bash(git:*)", "Read", "Edit"]
        assert merged["permissions"]["deny"] == ["Bash(rm:*)", "WebFetch"]


class TestMisshapenSettings:
    """Test that well-formed JSON with the wrong shape is treated as empty."""

    @pytest.mark.parametrize("hooks", [[], "Stop", None, 3])
    def test_non_object_hooks(self, hooks, caplog):
        """Test that a non-object 'hooks' is replaced, with a warning."""
        with caplog.at_level(logging.WARNING, logger="ralph_hooks.install"):
            merged = install.merge_settings({"hooks": hooks, "model": "opus"}, install.ralph_settings())

        assert merged["hooks"] == install.ralph_settings()["hooks"]
        assert merged["model"] == "opus"
        assert "hooks" in caplog.text

    def test_non_list_hook_type(self):
        """Test that a non-list entry for a hook type is replaced."""
        existing = {"hooks": {"Stop": {"command": "x"}, "PreToolUse": [{"matcher": "Bash"}]}}
        merged = install.merge_settings(existing, install.ralph_settings())
        assert merged["hooks"]["Stop"] == install.ralph_settings()["hooks"]["Stop"]
        assert merged["hooks"]["PreToolUse"] == [{"matcher": "Bash"}]

    def test_non_list_permission_values(self):
        """Test that string allow/deny values are treated as empty lists."""
        existing = {"permissions": {"allow": "x", "deny": ["Bash(rm:*)"]}}
        merged = install.merge_settings(existing, {"permissions": {"allow": ["Read"], "deny": []}})
        assert merged["permissions"]["allow"] == ["Read"]
        assert merged["permissions"]["deny"] == ["Bash(rm:*)"]

    def test_non_object_permissions(self):
        """Test that a non-object 'permissions' is replaced."""
        merged = install.merge_settings({"permissions": ["Read"]}, {"permissions": {"allow": ["Edit"]}})
        assert merged["permissions"] == {"allow": ["Edit"], "deny": []}

    def test_install_over_misshapen_file(self, tmp_path):
        """Test that install_settings succeeds on {"hooks": []}."""
        claude_dir = tmp_path / ".claude"
        claude_dir.mkdir()
        (claude_dir / "settings.json").write_text('{"hooks": []}')

        path = install.install_settings(claude_dir)
        assert json.loads(path.read_text()) == install.ralph_settings()


class TestInstallSettings:
    """Test writing settings.json on disk."""

    def test_creates_settings_file(self, tmp_path):
        """Test that a missing settings.json is created with 2-space indent."""
        path = install.install_settings(tmp_path / ".claude")
        assert path == tmp_path / ".claude" / "settings.json"
        assert json.loads(path.read_text()) == install.ralph_settings()
        assert path.read_text().startswith('{\n  "hooks"')

    def test_unparseable_existing_settings_replaced(self, tmp_path):
        """Test that invalid JSON is treated as empty settings."""
        claude_dir = tmp_path / ".claude"
        claude_dir.mkdir()
        (claude_dir / "settings.json").write_text("{oops")

        path = install.install_settings(claude_dir)
        assert json.loads(path.read_text()) == install.ralph_settings()

    def test_rerun_does_not_duplicate(self, tmp_path):
        """Test that installing twice leaves one Stop entry."""
        claude_dir = tmp_path / ".claude"
        install.install_settings(claude_dir)
        path = install.install_settings(claude_dir)
        assert len(json.loads(path.read_text())["hooks"]["Stop"]) == 1
