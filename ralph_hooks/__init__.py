"""Ralph loop hooks for Claude Code: keep the agent iterating until it promises it is done."""

__version__ = "1.0.0"
