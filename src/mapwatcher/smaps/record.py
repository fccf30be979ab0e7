"""Mapping records and snapshots — one process's address space at one instant.

Every line group in ``/proc/<pid>/smaps`` describes one **mapping**: a
contiguous range of virtual addresses backed by a file, by anonymous
memory, or by a device.  The header line says *where* the mapping is and
*what* backs it; the attribute lines that follow say *how much* of it is
actually resident, shared, dirty, swapped, and so on.

Two types live here:

- **MappingRecord** — one mapping, fully decoded.  Frozen, because a
  record describes a moment in time and never changes afterwards.
- **Snapshot** — every record for one process at one instant, ordered
  by start address exactly as the kernel lists them.

A few notes on the measured fields (all in kB):

- ``size`` is how much address space the mapping covers.
- ``rss`` counts every page currently backed by physical memory.
- ``pss`` divides shared pages by the number of processes sharing them.
- ``locked`` equals ``pss`` for ``mlock()``-ed mappings and is 0 otherwise.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Iterator
    from datetime import datetime

# Measured attributes in the order the kernel prints them.
MEASURED_FIELDS: tuple[str, ...] = (
    "size",
    "kernel_page_size",
    "mmu_page_size",
    "rss",
    "pss",
    "shared_clean",
    "shared_dirty",
    "private_clean",
    "private_dirty",
    "referenced",
    "anonymous",
    "lazy_free",
    "anon_huge_pages",
    "shmem_pmd_mapped",
    "file_pmd_mapped",
    "shared_hugetlb",
    "private_hugetlb",
    "swap",
    "swap_pss",
    "locked",
)


@dataclass(frozen=True)
class MappingRecord:
    """Describe one virtual memory mapping as reported by smaps."""

    start: int
    """First address of the mapping."""

    end: int
    """One past the last address of the mapping."""

    flags: str
    """Permission string such as ``r-xp``."""

    offset: str
    """Offset into the backing file, kept as the kernel's hex text."""

    device_major: int
    device_minor: int

    inode: str
    """Inode of the backing file (``0`` for anonymous memory)."""

    name: str
    """Backing path or pseudo-name; empty for anonymous mappings."""

    size: int = 0
    kernel_page_size: int = 0
    mmu_page_size: int = 0
    rss: int = 0
    pss: int = 0
    shared_clean: int = 0
    shared_dirty: int = 0
    private_clean: int = 0
    private_dirty: int = 0
    referenced: int = 0
    anonymous: int = 0
    lazy_free: int = 0
    anon_huge_pages: int = 0
    shmem_pmd_mapped: int = 0
    file_pmd_mapped: int = 0
    shared_hugetlb: int = 0
    private_hugetlb: int = 0
    swap: int = 0
    swap_pss: int = 0
    locked: int = 0
    thp_eligible: bool = False
    protection_key: int = 0
    vmflags: str = ""

    @property
    def is_anonymous(self) -> bool:
        """Return True if the mapping has no backing name."""
        return not self.name

    @property
    def address_range(self) -> str:
        """Return the range in the kernel's ``start-end`` hex notation."""
        return f"{self.start:x}-{self.end:x}"

    @property
    def device(self) -> str:
        """Return the device as ``major:minor`` in hex."""
        return f"{self.device_major:02x}:{self.device_minor:02x}"

    def contains(self, address: int) -> bool:
        """Return True if *address* falls inside this mapping."""
        return self.start <= address < self.end


@dataclass(frozen=True)
class Snapshot:
    """All mappings of one process, captured at one instant.

    Records are ordered ascending by ``start``.  The kernel enumerates
    mappings in address order, so the parser preserves encounter order
    and nothing here ever re-sorts.
    """

    pid: int
    captured_at: datetime
    records: tuple[MappingRecord, ...] = ()

    def __len__(self) -> int:
        """Return the number of mappings."""
        return len(self.records)

    def __iter__(self) -> Iterator[MappingRecord]:
        """Iterate over mappings in address order."""
        return iter(self.records)

    def total(self, attribute: str) -> int:
        """Sum a measured attribute (e.g. ``"rss"``) across all mappings.

        Raises:
            ValueError: If *attribute* is not a measured field.

        """
        if attribute not in MEASURED_FIELDS:
            msg = f"Not a measured attribute: {attribute}"
            raise ValueError(msg)
        return sum(getattr(record, attribute) for record in self.records)

    def find(self, address: int) -> MappingRecord | None:
        """Return the mapping containing *address*, or None."""
        for record in self.records:
            if record.contains(address):
                return record
        return None
