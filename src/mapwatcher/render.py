"""Text rendering of mappings and change reports.

All functions here are pure: they return strings and never print, so the
CLI and the web API can share them and tests can check them directly.

Report lines look like::

    MMAP: 7f3a10000000-7f3a10021000 size=132 rss=4 /usr/lib/libfoo.so
    DROP: 7f3a20000000-7f3a20001000 size=4 rss=4 /tmp/scratch
    CHANGED: 55d0c0a00000-55d0c0a42000 (was 55d0c0a21000) size=264 (was 132) rss=200 (was 96) [heap]
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from mapwatcher.diff import DEFAULT_ATTRIBUTES, ChangeKind

if TYPE_CHECKING:
    from datetime import datetime

    from mapwatcher.diff import Change, ChangeReport
    from mapwatcher.smaps.record import MappingRecord

_PREFIXES: dict[ChangeKind, str] = {
    ChangeKind.APPEARED: "MMAP",
    ChangeKind.DISAPPEARED: "DROP",
    ChangeKind.CHANGED: "CHANGED",
}


def format_record(record: MappingRecord) -> str:
    """Return a multi-line dump of every field of *record*."""
    r = record
    return (
        f"Range: {r.address_range}\n"
        f"Flags: {r.flags}, offset: {r.offset}, device: {r.device}, "
        f"inode: {r.inode}\n"
        f"Name: {r.name}\n"
        f"Kernel page size: {r.kernel_page_size}, mmu page size: {r.mmu_page_size}\n"
        f"Size: {r.size}, Rss: {r.rss}, Pss: {r.pss}\n"
        f"Shared clean: {r.shared_clean}, shared dirty: {r.shared_dirty}, "
        f"private clean: {r.private_clean}, private dirty: {r.private_dirty}\n"
        f"Referenced: {r.referenced}, anonymous: {r.anonymous}, lazy free: {r.lazy_free}\n"
        f"Anon huge pages: {r.anon_huge_pages}, shmem pmd mapped: {r.shmem_pmd_mapped}, "
        f"file pmd mapped: {r.file_pmd_mapped}\n"
        f"Shared huge tlb: {r.shared_hugetlb}, private huge tlb: {r.private_hugetlb}, "
        f"swap: {r.swap}, swap_pss: {r.swap_pss}, locked: {r.locked}\n"
        f"Thp eligible: {r.thp_eligible}, protection key: {r.protection_key}, "
        f"vmflags: {r.vmflags}"
    )


def _was(change: Change, name: str) -> str:
    """Return `` (was X)`` if *name* changed, else an empty string."""
    old = change.old_value(name)
    if old is None:
        return ""
    return f" (was {old:x})" if name == "end" else f" (was {old})"


def format_change(change: Change) -> str:
    """Return the one-line rendering of a change."""
    r = change.record
    prefix = _PREFIXES[change.kind]
    line = (
        f"{prefix}: {r.address_range}{_was(change, 'end')} "
        f"size={r.size}{_was(change, 'size')} rss={r.rss}{_was(change, 'rss')}"
    )
    # Attributes beyond the default three are appended as name=new (was old).
    for attr in change.attributes:
        if attr.name not in DEFAULT_ATTRIBUTES:
            line += f" {attr.name}={attr.new} (was {attr.old})"
    return f"{line} {r.name}".rstrip()


def format_timestamp(moment: datetime) -> str:
    """Return *moment* in RFC 3339 form."""
    return moment.isoformat(timespec="seconds")


def format_report(report: ChangeReport) -> str:
    """Return the header line followed by one line per change."""
    lines = [
        f"Differences in maps of pid {report.pid} between "
        f"{format_timestamp(report.previous_at)} and {format_timestamp(report.current_at)}:"
    ]
    lines.extend(format_change(change) for change in report)
    return "\n".join(lines)
