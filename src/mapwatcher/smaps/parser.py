"""Strict parser for ``/proc/<pid>/smaps`` text.

Each mapping in smaps is a block of lines::

    55d0c0a00000-55d0c0a21000 rw-p 00000000 00:00 0          [heap]
    Size:                132 kB
    KernelPageSize:        4 kB
    ...
    THPeligible:           0
    ProtectionKey:         0          <- only on kernels with pkeys
    VmFlags: rd wr mr mw me ac sd

The header says where the mapping is; the attribute lines carry the
measurements; the ``VmFlags`` line always closes the block.  Blocks
follow one another with no separator.

The parser is strict.  Field counts, separators, and the
minimum number of attribute lines are all checked, and any violation
aborts the whole snapshot with a ``SmapsParseError``.  Attribute lines
are decoded by **position**, in the order the kernel prints them, not by
label.
"""

from __future__ import annotations

import re
from typing import TYPE_CHECKING

from mapwatcher.smaps.record import MEASURED_FIELDS, MappingRecord, Snapshot

if TYPE_CHECKING:
    from collections.abc import Iterable
    from datetime import datetime

TERMINAL_MARKER = "VmFlags"

# Header tokens: range, flags, offset, device, inode (+ optional name).
MIN_HEADER_TOKENS = 5

# Attribute lines including the VmFlags line: 20 measured + THPeligible + VmFlags.
MIN_ATTRIBUTE_LINES = 22

# With a ProtectionKey line the block has exactly one more.
PKEY_ATTRIBUTE_LINES = MIN_ATTRIBUTE_LINES + 1

_THP_INDEX = len(MEASURED_FIELDS)
_PKEY_INDEX = _THP_INDEX + 1

# Fields are separated by spaces and tabs only.
_FIELD_SEPARATOR = re.compile(r"[ \t]+")
_HEX_DIGITS = re.compile(r"[0-9a-fA-F]+")
_DECIMAL_DIGITS = re.compile(r"[0-9]+")


class SmapsParseError(Exception):
    """Raise when smaps text violates the expected block structure."""


class LineCursor:
    """Forward-only cursor over lines of text.

    The cursor never rewinds: once a line is handed out it is consumed.
    ``line_number`` is the 1-based number of the last line returned,
    which lets error messages point at the offending line.
    """

    def __init__(self, lines: Iterable[str]) -> None:
        """Create a cursor over an iterable of lines (without newlines)."""
        self._lines = iter(lines)
        self._line_number = 0

    @classmethod
    def from_text(cls, text: str) -> LineCursor:
        """Create a cursor over the lines of *text*.

        Only a newline ends a line; a trailing carriage return is
        dropped.  Other characters ``str.splitlines`` treats as breaks
        can appear in mapped file names and stay part of the line.
        """
        lines = text.split("\n")
        if lines[-1] == "":
            lines.pop()
        return cls(line.removesuffix("\r") for line in lines)

    @property
    def line_number(self) -> int:
        """Return the number of the last line handed out (0 before any)."""
        return self._line_number

    def next_line(self) -> str | None:
        """Return the next line, or None when the input is exhausted."""
        line = next(self._lines, None)
        if line is not None:
            self._line_number += 1
        return line


def parse_next(cursor: LineCursor) -> MappingRecord | None:
    """Parse one mapping block from *cursor*.

    Args:
        cursor: Positioned at the start of a block or at end of input.

    Returns:
        The decoded record, or None if the cursor was already exhausted
        or holds only blank lines.

    Raises:
        SmapsParseError: If the block is malformed or truncated.

    """
    header = cursor.next_line()
    if header is None:
        return None
    header_number = cursor.line_number
    items = _fields(header)
    if not items:
        _expect_blank_tail(cursor)
        return None
    if len(items) < MIN_HEADER_TOKENS:
        msg = f"line {header_number}: Found strange first line: {header}"
        raise SmapsParseError(msg)

    bounds = items[0].split("-")
    if len(bounds) != 2:  # noqa: PLR2004
        msg = f"line {header_number}: Found bad bounds: {items[0]}"
        raise SmapsParseError(msg)

    devices = items[3].split(":")
    if len(devices) != 2:  # noqa: PLR2004
        msg = f"line {header_number}: Found bad devices: {items[3]}"
        raise SmapsParseError(msg)

    attribute_lines = _read_attribute_lines(cursor)
    if len(attribute_lines) < MIN_ATTRIBUTE_LINES:
        msg = (
            f"line {header_number}: Expected at least {MIN_ATTRIBUTE_LINES} "
            f"attribute lines, found {len(attribute_lines)}"
        )
        raise SmapsParseError(msg)

    first_attribute = header_number + 1
    values = [
        _attribute_value(line, first_attribute + index)
        for index, line in enumerate(attribute_lines[:-1])
    ]
    measured = dict(zip(MEASURED_FIELDS, values, strict=False))
    protection_key = values[_PKEY_INDEX] if len(attribute_lines) == PKEY_ATTRIBUTE_LINES else 0

    return MappingRecord(
        start=_hex(bounds[0], header_number, "start address"),
        end=_hex(bounds[1], header_number, "end address"),
        flags=items[1],
        offset=items[2],
        device_major=_hex(devices[0], header_number, "device major"),
        device_minor=_hex(devices[1], header_number, "device minor"),
        inode=items[4],
        name=" ".join(items[MIN_HEADER_TOKENS:]),
        thp_eligible=values[_THP_INDEX] != 0,
        protection_key=protection_key,
        vmflags=attribute_lines[-1],
        **measured,
    )


def parse_snapshot(text: str, pid: int, captured_at: datetime) -> Snapshot:
    """Parse a complete smaps dump into a Snapshot.

    Records are kept in encounter order, which the kernel guarantees is
    ascending by start address.

    Args:
        text: The full smaps text.
        pid: The process the text belongs to.
        captured_at: When the text was read.

    Returns:
        A snapshot holding every record, or no records for empty input.

    Raises:
        SmapsParseError: If any block fails to parse.  No partial
            snapshot is ever returned.

    """
    cursor = LineCursor.from_text(text)
    records: list[MappingRecord] = []
    try:
        while (record := parse_next(cursor)) is not None:
            records.append(record)
    except SmapsParseError as e:
        msg = f"Could not parse map of pid {pid}: {e}"
        raise SmapsParseError(msg) from e
    return Snapshot(pid=pid, captured_at=captured_at, records=tuple(records))


# -- Helpers -------------------------------------------------------------------


def _fields(line: str) -> list[str]:
    """Split a line into its space- or tab-separated fields."""
    return [field for field in _FIELD_SEPARATOR.split(line) if field]


def _expect_blank_tail(cursor: LineCursor) -> None:
    """Consume the blank lines that end a snapshot.

    Raises:
        SmapsParseError: If a non-blank line follows a blank one.

    """
    blank_number = cursor.line_number
    while (line := cursor.next_line()) is not None:
        if _fields(line):
            msg = f"line {blank_number}: Found blank line between mappings"
            raise SmapsParseError(msg)


def _read_attribute_lines(cursor: LineCursor) -> list[str]:
    """Collect lines up to and including the VmFlags terminator.

    Raises:
        SmapsParseError: If input ends before the terminator.

    """
    lines: list[str] = []
    while True:
        line = cursor.next_line()
        if line is None:
            msg = f"line {cursor.line_number}: Expecting more lines, no {TERMINAL_MARKER} found"
            raise SmapsParseError(msg)
        lines.append(line)
        if line.startswith(TERMINAL_MARKER):
            return lines


def _attribute_value(line: str, line_number: int) -> int:
    """Decode the numeric value of an attribute line.

    A line with fewer than two tokens counts as 0.

    Raises:
        SmapsParseError: If the second token is not a non-negative integer.

    """
    parts = _fields(line)
    if len(parts) < 2:  # noqa: PLR2004
        return 0
    token = parts[1]
    if not _DECIMAL_DIGITS.fullmatch(token):
        msg = f"line {line_number}: Expecting a number in second place: {line}"
        raise SmapsParseError(msg)
    return int(token)


def _hex(token: str, line_number: int, what: str) -> int:
    """Decode a hexadecimal header component.

    Raises:
        SmapsParseError: If *token* is not hexadecimal.

    """
    if not _HEX_DIGITS.fullmatch(token):
        msg = f"line {line_number}: Bad hex {what}: {token!r}"
        raise SmapsParseError(msg)
    return int(token, 16)
