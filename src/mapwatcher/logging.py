"""Sample log — what the watcher did, keyed by sample number.

A watcher runs unattended, so it records its own activity: the initial
snapshot, each sample that found changes, and the failure that ended
the run.  Every entry carries the number of the sample it belongs to
(0 is the initial snapshot), which is what ties a log line to a report
on the console or the web status page.

The log is an in-memory ring: once ``capacity`` entries are held the
oldest are dropped, so a watcher left running for days does not grow
without bound.
"""

from collections import deque
from dataclasses import dataclass
from enum import IntEnum
from typing import Any

DEFAULT_CAPACITY = 1000


class LogLevel(IntEnum):
    """Severity of a log entry, ordered for ``at_least`` queries."""

    DEBUG = 0
    INFO = 1
    ERROR = 2


@dataclass(frozen=True)
class LogEntry:
    """One thing the watcher did.

    Attributes:
        level: The severity of this event.
        sample: Number of the sample it belongs to (0 = initial snapshot).
        message: A human-readable description of what happened.
        source: The component that logged it ("watcher" or "web").

    """

    level: LogLevel
    sample: int
    message: str
    source: str

    def __str__(self) -> str:
        """Format as ``[LEVEL] source #sample: message``."""
        return f"[{self.level.name}] {self.source} #{self.sample}: {self.message}"

    def to_dict(self) -> dict[str, Any]:
        """Return a JSON-ready view of the entry."""
        return {
            "level": self.level.name,
            "sample": self.sample,
            "source": self.source,
            "message": self.message,
        }


class Logger:
    """Bounded, append-only log of watcher activity."""

    def __init__(self, capacity: int = DEFAULT_CAPACITY) -> None:
        """Create an empty log holding at most *capacity* entries."""
        if capacity <= 0:
            msg = f"capacity must be positive, got {capacity}"
            raise ValueError(msg)
        self._entries: deque[LogEntry] = deque(maxlen=capacity)

    @property
    def entries(self) -> list[LogEntry]:
        """Return the retained entries, oldest first."""
        return list(self._entries)

    def log(self, level: LogLevel, message: str, *, source: str, sample: int) -> None:
        """Append an entry, dropping the oldest if the log is full."""
        self._entries.append(LogEntry(level=level, sample=sample, message=message, source=source))

    def at_least(self, level: LogLevel) -> list[LogEntry]:
        """Return the entries at *level* or more severe."""
        return [e for e in self._entries if e.level >= level]

    def tail(self, count: int) -> list[LogEntry]:
        """Return the last *count* entries."""
        if count <= 0:
            return []
        return list(self._entries)[-count:]
