"""Sampling driver — capture, diff, rotate, repeat.

The watcher holds at most two snapshots: the one it is about to compare
against (``previous``) and the one it just took (``current``).  Each
sample pushes the new snapshot into a two-slot ``SnapshotWindow``, which
drops the oldest.  There is no further history.

Failure policy: the initial snapshot must succeed, or ``start()``
raises.  After that, the first capture or parse failure ends the run.
The failure is logged at ERROR level, not swallowed; ``run()`` simply
returns and the caller decides what to tell the user.
"""

from __future__ import annotations

import time
from functools import partial
from typing import TYPE_CHECKING

from mapwatcher.diff import ChangeReport, diff_snapshots, named_only
from mapwatcher.logging import Logger, LogLevel
from mapwatcher.smaps.parser import SmapsParseError
from mapwatcher.source import SourceError
from mapwatcher.source import capture as capture_snapshot

if TYPE_CHECKING:
    from collections.abc import Callable

    from mapwatcher.config import WatchConfig
    from mapwatcher.smaps.record import Snapshot

_SOURCE = "watcher"


class SnapshotWindow:
    """Two-slot buffer holding the two most recent snapshots."""

    def __init__(self) -> None:
        """Create an empty window."""
        self._previous: Snapshot | None = None
        self._current: Snapshot | None = None

    @property
    def previous(self) -> Snapshot | None:
        """Return the older of the two snapshots."""
        return self._previous

    @property
    def current(self) -> Snapshot | None:
        """Return the newest snapshot."""
        return self._current

    @property
    def full(self) -> bool:
        """Return True once two snapshots are held."""
        return self._previous is not None

    def push(self, snapshot: Snapshot) -> Snapshot | None:
        """Make *snapshot* current and return the snapshot evicted, if any."""
        evicted = self._previous
        self._previous, self._current = self._current, snapshot
        return evicted


class MapWatcher:
    """Periodically sample one process and report mapping changes.

    Usage::

        watcher = MapWatcher(WatchConfig(pid=1234, interval=0.5))
        watcher.start()
        watcher.run(lambda report: print(format_report(report)))

    """

    def __init__(
        self,
        config: WatchConfig,
        *,
        capture: Callable[[int], Snapshot] | None = None,
        sleep: Callable[[float], None] | None = None,
        logger: Logger | None = None,
    ) -> None:
        """Create a watcher.

        Args:
            config: What to watch and how.
            capture: Returns a fresh snapshot for a pid.  Defaults to
                reading ``smaps`` under ``config.proc_root``.
            sleep: Called with ``config.interval`` between samples.
                Defaults to ``time.sleep``.
            logger: Receives capture, report, and failure events.

        """
        self._config = config
        self._capture = capture or partial(capture_snapshot, proc_root=config.proc_root)
        self._sleep = sleep or time.sleep
        self._logger = logger if logger is not None else Logger()
        self._window = SnapshotWindow()
        self._samples = 0
        self._last_report: ChangeReport | None = None

    @property
    def config(self) -> WatchConfig:
        """Return the watcher configuration."""
        return self._config

    @property
    def logger(self) -> Logger:
        """Return the watcher log."""
        return self._logger

    @property
    def window(self) -> SnapshotWindow:
        """Return the two-slot snapshot buffer."""
        return self._window

    @property
    def samples(self) -> int:
        """Return how many reports have been produced."""
        return self._samples

    @property
    def last_report(self) -> ChangeReport | None:
        """Return the most recent report, or None before the first sample."""
        return self._last_report

    def start(self) -> Snapshot:
        """Take the initial snapshot.

        Raises:
            SourceError: If smaps cannot be read.
            SmapsParseError: If smaps cannot be parsed.

        """
        snapshot = self._take(0)
        self._window.push(snapshot)
        self._log(LogLevel.INFO, 0, f"Initial snapshot with {len(snapshot)} mappings")
        return snapshot

    def sample(self) -> ChangeReport:
        """Take a new snapshot and diff it against the previous one.

        Raises:
            RuntimeError: If ``start()`` has not been called.
            SourceError: If smaps cannot be read.
            SmapsParseError: If smaps cannot be parsed.

        """
        previous = self._window.current
        if previous is None:
            msg = "start() must be called before sample()"
            raise RuntimeError(msg)
        number = self._samples + 1
        current = self._take(number)
        keep = None if self._config.show_anonymous else named_only
        report = diff_snapshots(current, previous, attributes=self._config.attributes, keep=keep)
        self._window.push(current)
        self._samples = number
        self._last_report = report
        if not report.is_empty:
            self._log(LogLevel.INFO, number, f"{len(report)} mapping changes")
        return report

    def run(self, emit: Callable[[ChangeReport], None]) -> int:
        """Sample until ``max_samples`` is reached or a capture fails.

        Args:
            emit: Called with every report, empty ones included.

        Returns:
            The number of reports produced during this run.

        """
        if self._window.current is None:
            self.start()
        produced = 0
        limit = self._config.max_samples
        while limit is None or produced < limit:
            self._sleep(self._config.interval)
            try:
                report = self.sample()
            except (SourceError, SmapsParseError) as e:
                self._log(LogLevel.ERROR, self._samples + 1, f"Could not get maps: {e}")
                break
            emit(report)
            produced += 1
        return produced

    # -- Helpers ---------------------------------------------------------------

    def _take(self, number: int) -> Snapshot:
        """Capture the snapshot for sample *number* and log it."""
        snapshot = self._capture(self._config.pid)
        self._log(LogLevel.DEBUG, number, f"Captured {len(snapshot)} mappings")
        return snapshot

    def _log(self, level: LogLevel, number: int, message: str) -> None:
        self._logger.log(level, message, source=_SOURCE, sample=number)
