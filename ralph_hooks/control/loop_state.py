"""
Loop state persistence for the Ralph Stop hook.

One LoopState record per project, stored as camelCase JSON at
``<cwd>/.claude/ralph/loop-state.json``. The record exists only while a loop
is running; ``load()`` treats anything unreadable as "no loop".
"""

import fcntl
import json
import logging
import os
import stat
import tempfile
import time
from contextlib import contextmanager, nullcontext
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterator, Protocol

logger = logging.getLogger(__name__)

DEFAULT_COMPLETION_PROMISE = "TASK_COMPLETE"
DEFAULT_MAX_ITERATIONS = 30
LOCK_POLL_SECS = 0.05


class StateFormatError(ValueError):
    """Raised when a persisted record does not have the LoopState shape."""


@dataclass
class HistoryEntry:
    iteration: int
    timestamp: str

    def to_dict(self) -> dict:
        return {"iteration": self.iteration, "timestamp": self.timestamp}


@dataclass
class LoopState:
    active: bool = False
    completion_promise: str = DEFAULT_COMPLETION_PROMISE
    max_iterations: int = DEFAULT_MAX_ITERATIONS
    current_iteration: int = 1
    prompt: str = ""
    history: list[HistoryEntry] = field(default_factory=list)
    started_at: str | None = None

    def to_dict(self) -> dict:
        data = {
            "active": self.active,
            "completionPromise": self.completion_promise,
            "maxIterations": self.max_iterations,
            "currentIteration": self.current_iteration,
            "prompt": self.prompt,
            "history": [entry.to_dict() for entry in self.history],
        }
        if self.started_at is not None:
            data["startedAt"] = self.started_at
        return data

    @classmethod
    def from_dict(
        cls,
        data: dict,
        default_promise: str = DEFAULT_COMPLETION_PROMISE,
        default_max_iterations: int = DEFAULT_MAX_ITERATIONS,
    ) -> "LoopState":
        """Build a LoopState from a decoded record.

        Absent or null fields take their defaults; stored values are kept as
        written, so save() then load() returns an equal state.

        Raises StateFormatError when a field is present but has the wrong type.
        """
        if not isinstance(data, dict):
            raise StateFormatError(f"record must be a JSON object, got {type(data).__name__}")

        history_raw = data.get("history") or []
        if not isinstance(history_raw, list):
            raise StateFormatError("history must be a list")

        try:
            history = [
                HistoryEntry(iteration=_as_int(item["iteration"]), timestamp=str(item["timestamp"]))
                for item in history_raw
            ]
            return cls(
                active=bool(data.get("active", False)),
                completion_promise=_as_str(_field(data, "completionPromise", default_promise)),
                max_iterations=_as_int(_field(data, "maxIterations", default_max_iterations)),
                current_iteration=_as_int(_field(data, "currentIteration", 1)),
                prompt=_as_str(_field(data, "prompt", "")),
                history=history,
                started_at=data.get("startedAt"),
            )
        except (KeyError, TypeError) as e:
            raise StateFormatError(f"malformed record: {e}") from e


def _field(data: dict, key: str, default):
    # absent and null both mean "not set"; any other stored value is kept as written
    value = data.get(key)
    return default if value is None else value


def _as_int(value) -> int:
    # bool is an int subclass; true/false is never a valid count
    if isinstance(value, bool) or not isinstance(value, int):
        raise StateFormatError(f"expected integer, got {value!r}")
    return value


def _as_str(value) -> str:
    if not isinstance(value, str):
        raise StateFormatError(f"expected string, got {value!r}")
    return value


class StateStore(Protocol):
    """Load/save/clear access to the single loop-state record."""

    def load(self) -> LoopState | None: ...

    def save(self, state: LoopState) -> None: ...

    def clear(self) -> None: ...

    def lock(self): ...


class FileStateStore:
    """LoopState record backed by a JSON file."""

    def __init__(
        self,
        path: Path,
        lock_timeout_secs: float = 5.0,
        default_promise: str = DEFAULT_COMPLETION_PROMISE,
        default_max_iterations: int = DEFAULT_MAX_ITERATIONS,
    ):
        self.path = Path(path)
        self.lock_path = self.path.with_suffix(".lock")
        self.lock_timeout_secs = lock_timeout_secs
        self.default_promise = default_promise
        self.default_max_iterations = default_max_iterations

    def load(self) -> LoopState | None:
        if not self.path.exists():
            return None

        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
            return LoopState.from_dict(data, self.default_promise, self.default_max_iterations)
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            logger.error(f"State JSON parse error: {e}")
        except StateFormatError as e:
            logger.error(f"State format error: {e}")
        except OSError as e:
            logger.error(f"State file read error: {e}")

        return None

    def save(self, state: LoopState) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        payload = json.dumps(state.to_dict(), indent=2)
        mode = self._record_mode()

        fd, tmp_name = tempfile.mkstemp(prefix=f".{self.path.name}.", dir=self.path.parent)
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(payload)
            os.chmod(tmp_name, mode)
            os.replace(tmp_name, self.path)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise

        logger.info(f"State saved: iteration={state.current_iteration}")

    def _record_mode(self) -> int:
        """Permissions for the next write: the record's own, else 0666 minus umask."""
        try:
            return stat.S_IMODE(self.path.stat().st_mode)
        except FileNotFoundError:
            umask = os.umask(0)
            os.umask(umask)
            return 0o666 & ~umask

    def clear(self) -> None:
        try:
            self.path.unlink()
            logger.info(f"State cleared: {self.path}")
        except FileNotFoundError:
            pass

    @contextmanager
    def lock(self) -> Iterator[None]:
        """Hold an exclusive advisory lock for one load-decide-save cycle.

        Without a state directory there is no record to protect, and nothing
        is created on disk.
        """
        if not self.path.parent.is_dir():
            yield
            return

        with open(self.lock_path, "a") as lock_file:
            deadline = time.monotonic() + self.lock_timeout_secs
            while True:
                try:
                    fcntl.flock(lock_file.fileno(), fcntl.LOCK_EX | fcntl.LOCK_NB)
                    break
                except BlockingIOError:
                    if time.monotonic() >= deadline:
                        raise TimeoutError(
                            f"Could not lock {self.lock_path} within {self.lock_timeout_secs}s"
                        )
                    time.sleep(LOCK_POLL_SECS)
            try:
                yield
            finally:
                fcntl.flock(lock_file.fileno(), fcntl.LOCK_UN)


class MemoryStateStore:
    """In-memory StateStore, for tests and embedding."""

    def __init__(self, state: LoopState | None = None):
        self.state = state
        self.saves = 0

    def load(self) -> LoopState | None:
        return LoopState.from_dict(self.state.to_dict()) if self.state else None

    def save(self, state: LoopState) -> None:
        self.state = LoopState.from_dict(state.to_dict())
        self.saves += 1

    def clear(self) -> None:
        self.state = None

    def lock(self):
        return nullcontext()
