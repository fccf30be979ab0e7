"""Snapshot differ — classify what happened between two samples.

Given the previous and the current snapshot of one process, every start
address present in either snapshot falls into exactly one bucket:

- **Appeared** — only in the current snapshot (a new ``mmap``).
- **Disappeared** — only in the previous snapshot (a ``munmap``).
- **Changed** — in both, but some compared attribute differs.
- *unchanged* — in both and identical; produces no entry.

Both snapshots are sorted by start address (the kernel lists mappings in
address order), so one linear merge with two cursors is enough, the same
way ``merge`` in merge-sort walks two sorted runs.  Nothing is re-sorted
here; unsorted input gives meaningless results.

Which verdicts get reported is a separate question from how they are
computed.  Anonymous mappings come and go constantly as the allocator
works, so the usual presentation drops their appear/disappear verdicts.
That policy is the ``named_only`` filter, passed in by the caller rather
than built into the merge.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, fields
from enum import StrEnum
from typing import TYPE_CHECKING, Any

from mapwatcher.smaps.record import MappingRecord

if TYPE_CHECKING:
    from collections.abc import Iterator
    from datetime import datetime

    from mapwatcher.smaps.record import Snapshot

DEFAULT_ATTRIBUTES: tuple[str, ...] = ("end", "size", "rss")

RECORD_FIELDS: frozenset[str] = frozenset(f.name for f in fields(MappingRecord))


class ChangeKind(StrEnum):
    """Verdict for one start address."""

    APPEARED = "appeared"
    DISAPPEARED = "disappeared"
    CHANGED = "changed"


@dataclass(frozen=True)
class AttributeChange:
    """One attribute that differs between the two samples."""

    name: str
    old: Any
    new: Any


@dataclass(frozen=True)
class Change:
    """One entry of a change report.

    ``record`` is the current record for appeared and changed mappings,
    and the previous record for disappeared ones.  ``attributes`` is
    empty unless the kind is CHANGED.
    """

    kind: ChangeKind
    record: MappingRecord
    attributes: tuple[AttributeChange, ...] = ()

    @property
    def start(self) -> int:
        """Return the start address this verdict is keyed by."""
        return self.record.start

    def old_value(self, name: str) -> Any:
        """Return the previous value of a changed attribute, or None."""
        for attr in self.attributes:
            if attr.name == name:
                return attr.old
        return None

    def to_dict(self) -> dict[str, Any]:
        """Return a JSON-serialisable view of this change."""
        return {
            "kind": str(self.kind),
            "start": self.record.start,
            "end": self.record.end,
            "size": self.record.size,
            "rss": self.record.rss,
            "name": self.record.name,
            "changed": {a.name: {"old": a.old, "new": a.new} for a in self.attributes},
        }


ChangeFilter = Callable[[Change], bool]


@dataclass(frozen=True)
class ChangeReport:
    """All verdicts between two snapshots, ascending by start address."""

    pid: int
    previous_at: datetime
    current_at: datetime
    changes: tuple[Change, ...] = ()

    def __len__(self) -> int:
        """Return the number of reported changes."""
        return len(self.changes)

    def __iter__(self) -> Iterator[Change]:
        """Iterate over changes in address order."""
        return iter(self.changes)

    @property
    def is_empty(self) -> bool:
        """Return True if nothing was reported."""
        return not self.changes

    def by_kind(self, kind: ChangeKind) -> list[Change]:
        """Return only the changes of the given kind."""
        return [c for c in self.changes if c.kind is kind]

    def to_dict(self) -> dict[str, Any]:
        """Return a JSON-serialisable view of this report."""
        return {
            "pid": self.pid,
            "previous_at": self.previous_at.isoformat(),
            "current_at": self.current_at.isoformat(),
            "changes": [c.to_dict() for c in self.changes],
        }


def named_only(change: Change) -> bool:
    """Drop appear/disappear verdicts for anonymous mappings.

    Changed verdicts are always kept, anonymous or not.
    """
    return change.kind is ChangeKind.CHANGED or not change.record.is_anonymous


def compare_records(
    current: MappingRecord,
    previous: MappingRecord,
    attributes: tuple[str, ...] = DEFAULT_ATTRIBUTES,
) -> tuple[AttributeChange, ...]:
    """Return an AttributeChange for every listed attribute that differs."""
    result: list[AttributeChange] = []
    for name in attributes:
        old = getattr(previous, name)
        new = getattr(current, name)
        if old != new:
            result.append(AttributeChange(name=name, old=old, new=new))
    return tuple(result)


def diff_snapshots(
    current: Snapshot,
    previous: Snapshot,
    *,
    attributes: tuple[str, ...] = DEFAULT_ATTRIBUTES,
    keep: ChangeFilter | None = None,
) -> ChangeReport:
    """Merge two sorted snapshots into a change report.

    Args:
        current: The newer snapshot.
        previous: The older snapshot.
        attributes: Record attributes compared for mappings present in
            both snapshots.
        keep: Optional predicate; verdicts for which it returns False
            are left out of the report.

    Returns:
        A report covering every start address at most once.

    Raises:
        ValueError: If the snapshots belong to different processes, or
            *attributes* names something that is not a record field.

    """
    if current.pid != previous.pid:
        msg = f"Cannot diff maps of different processes: {current.pid} vs {previous.pid}"
        raise ValueError(msg)
    unknown = [name for name in attributes if name not in RECORD_FIELDS]
    if unknown:
        msg = f"Unknown mapping attributes: {', '.join(unknown)}"
        raise ValueError(msg)

    cur = current.records
    prev = previous.records
    changes: list[Change] = []

    def emit(change: Change) -> None:
        if keep is None or keep(change):
            changes.append(change)

    i = 0  # position in current
    j = 0  # position in previous
    while i < len(cur) and j < len(prev):
        m = cur[i]
        p = prev[j]
        if m.start < p.start:
            emit(Change(kind=ChangeKind.APPEARED, record=m))
            i += 1
        elif m.start > p.start:
            emit(Change(kind=ChangeKind.DISAPPEARED, record=p))
            j += 1
        else:
            diffs = compare_records(m, p, attributes)
            if diffs:
                emit(Change(kind=ChangeKind.CHANGED, record=m, attributes=diffs))
            i += 1
            j += 1

    for m in cur[i:]:
        emit(Change(kind=ChangeKind.APPEARED, record=m))
    for p in prev[j:]:
        emit(Change(kind=ChangeKind.DISAPPEARED, record=p))

    return ChangeReport(
        pid=current.pid,
        previous_at=previous.captured_at,
        current_at=current.captured_at,
        changes=tuple(changes),
    )
