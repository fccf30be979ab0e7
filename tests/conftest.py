"""Shared helpers for building smaps text in tests."""

from __future__ import annotations

from collections.abc import Callable

import pytest

# Labels in the order the kernel prints them, before THPeligible.
MEASURED_LABELS = [
    "Size",
    "KernelPageSize",
    "MMUPageSize",
    "Rss",
    "Pss",
    "Shared_Clean",
    "Shared_Dirty",
    "Private_Clean",
    "Private_Dirty",
    "Referenced",
    "Anonymous",
    "LazyFree",
    "AnonHugePages",
    "ShmemPmdMapped",
    "FilePmdMapped",
    "Shared_Hugetlb",
    "Private_Hugetlb",
    "Swap",
    "SwapPss",
    "Locked",
]

SmapsBlock = Callable[..., str]


def build_block(
    start: int,
    end: int,
    name: str = "",
    *,
    values: dict[str, int] | None = None,
    thp: int = 0,
    pkey: int | None = None,
    flags: str = "rw-p",
    device: str = "00:00",
    vmflags: str = "VmFlags: rd wr mr mw me ac sd",
) -> str:
    """Return one smaps block; values default to 0 except Size."""
    values = values or {}
    size = values.get("Size", (end - start) // 1024)
    header = f"{start:x}-{end:x} {flags} 00000000 {device} 0"
    if name:
        header = f"{header}                          {name}"
    lines = [header]
    for label in MEASURED_LABELS:
        value = size if label == "Size" else values.get(label, 0)
        lines.append(f"{label + ':':<16}{value:>8} kB")
    lines.append(f"{'THPeligible:':<16}{thp:>8}")
    if pkey is not None:
        lines.append(f"{'ProtectionKey:':<16}{pkey:>8}")
    lines.append(vmflags)
    return "\n".join(lines) + "\n"


@pytest.fixture
def smaps_block() -> SmapsBlock:
    """Return the smaps block builder."""
    return build_block


@pytest.fixture
def measured_labels() -> list[str]:
    """Return the measured attribute labels in kernel order."""
    return list(MEASURED_LABELS)
