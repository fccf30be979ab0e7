"""Snapshot acquisition — read smaps from ``/proc`` and parse it.

``/proc/<pid>/smaps`` is generated by the kernel on every read, so each
read is a fresh, consistent listing of the process's mappings in address
order.  ``proc_root`` is configurable so tests (and containers with a
relocated procfs) can point somewhere else.
"""

from __future__ import annotations

from datetime import UTC, datetime
from typing import TYPE_CHECKING

from mapwatcher.smaps.parser import parse_snapshot

if TYPE_CHECKING:
    from collections.abc import Callable
    from pathlib import Path

    from mapwatcher.smaps.record import Snapshot


class SourceError(Exception):
    """Raise when smaps text cannot be read for a process."""


def utc_now() -> datetime:
    """Return the current time as a timezone-aware UTC datetime."""
    return datetime.now(UTC)


def smaps_path(pid: int, proc_root: Path) -> Path:
    """Return the smaps file of *pid* under *proc_root*."""
    return proc_root / str(pid) / "smaps"


def read_smaps(pid: int, *, proc_root: Path) -> str:
    """Read the raw smaps text of *pid*.

    Bytes that are not UTF-8 (file names are arbitrary bytes) decode to
    U+FFFD.  Line endings are left untouched.

    Raises:
        SourceError: If the file cannot be read (process gone, no
            permission, no procfs).

    """
    path = smaps_path(pid, proc_root)
    try:
        data = path.read_bytes()
    except OSError as e:
        msg = f"Cannot read file {path}: {e}"
        raise SourceError(msg) from e
    return data.decode("utf-8", errors="replace")


def capture(
    pid: int,
    *,
    proc_root: Path,
    clock: Callable[[], datetime] = utc_now,
) -> Snapshot:
    """Read and parse one snapshot of *pid*.

    The timestamp is taken just before the read.

    Raises:
        SourceError: If the smaps file cannot be read.
        SmapsParseError: If its content cannot be parsed.

    """
    captured_at = clock()
    text = read_smaps(pid, proc_root=proc_root)
    return parse_snapshot(text, pid, captured_at)
