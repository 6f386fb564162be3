"""Destinations for rendered profile text.

Delivery is at-most-once and best effort: a sink that is not ready drops the
write instead of buffering it.
"""

import enum
import threading
from collections.abc import Callable
from pathlib import Path
from typing import TextIO

from beartype import beartype
from loguru import logger

PROFILE_LOG_NAME = "profile.log"

Spawner = Callable[[Callable[[], None]], None]


class Sink:
    """Append-only destination for rendered profile blocks."""

    def write(self, text: str) -> None:
        raise NotImplementedError


class MemorySink(Sink):
    """Keeps every written block in memory.

    Useful for tests and for in-process consumers that post-process output.
    """

    def __init__(self) -> None:
        self.blocks: list[str] = []

    def write(self, text: str) -> None:
        self.blocks.append(text)

    @property
    def text(self) -> str:
        return "".join(self.blocks)

    def clear(self) -> None:
        self.blocks.clear()


class SinkState(enum.Enum):
    ABSENT = "absent"
    INITIALIZING = "initializing"
    LIVE = "live"


def spawn_daemon_thread(task: Callable[[], None]) -> None:
    threading.Thread(target=task, name="nested-profile-sink-init", daemon=True).start()


class FileSink(Sink):
    """Append-only text log, created on first use.

    The file is opened by a fire-and-forget task handed to ``spawner``
    (a daemon thread by default). Writes that arrive while the file is
    absent or still initializing are dropped, as is the write that finds the
    handle closed; that write triggers a fresh initialization.

    Args:
        directory: Directory holding the log file
        name: File name within ``directory`` (default: "profile.log")
        spawner: Runs the initialization task; pass ``lambda task: task()``
            to open synchronously
    """

    @beartype
    def __init__(
        self,
        directory: Path,
        name: str = PROFILE_LOG_NAME,
        spawner: Spawner = spawn_daemon_thread,
    ) -> None:
        assert name, "Profile log name must be non-empty"
        self.path = directory / name
        self._spawner = spawner
        self._state = SinkState.ABSENT
        self._handle: TextIO | None = None

    @property
    def state(self) -> SinkState:
        return self._state

    def _open(self) -> None:
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            handle = self.path.open("a", encoding="utf-8")
        except OSError as exc:
            logger.warning(f"unable to open profile log {self.path}: {exc}")
            self._state = SinkState.ABSENT
            return
        self._handle = handle
        self._state = SinkState.LIVE

    def _initialize(self) -> None:
        self._state = SinkState.INITIALIZING
        self._handle = None
        self._spawner(self._open)

    def destination(self) -> TextIO | None:
        """Return the live handle, or None while it is being (re)created."""
        if self._state is SinkState.INITIALIZING:
            return None
        if self._state is SinkState.ABSENT:
            self._initialize()
            return None
        if self._handle is None or self._handle.closed:
            self._initialize()
            return None
        return self._handle

    def write(self, text: str) -> None:
        handle = self.destination()
        if handle is None:
            return
        handle.write(text)
        handle.flush()

    def close(self) -> None:
        if self._handle is not None and not self._handle.closed:
            self._handle.close()


class LoguruSink(Sink):
    """Forwards each rendered block to the loguru logger."""

    @beartype
    def __init__(self, level: str = "INFO") -> None:
        self.level = level

    def write(self, text: str) -> None:
        logger.log(self.level, text.rstrip("\n"))
