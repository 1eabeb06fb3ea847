"""Completion promise detection for Ralph loops."""

import re


def promise_tag(marker: str) -> str:
    """The exact text the agent must output to end the loop."""
    return f"<promise>{marker}</promise>"


def is_complete(transcript: str | None, marker: str) -> bool:
    """True if ``<promise>marker</promise>`` appears anywhere in transcript.

    Case-insensitive. The marker is matched literally, so regex
    metacharacters in it have no special meaning.
    """
    if not transcript:
        return False
    return re.search(re.escape(promise_tag(marker)), transcript, re.IGNORECASE) is not None
