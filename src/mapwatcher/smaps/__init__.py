"""smaps subsystem — mapping records and the parser that produces them.

Re-exports public symbols so callers can write::

    from mapwatcher.smaps import Snapshot, parse_snapshot
"""

from mapwatcher.smaps.parser import LineCursor, SmapsParseError, parse_next, parse_snapshot
from mapwatcher.smaps.record import MEASURED_FIELDS, MappingRecord, Snapshot

__all__ = [
    "MEASURED_FIELDS",
    "LineCursor",
    "MappingRecord",
    "SmapsParseError",
    "Snapshot",
    "parse_next",
    "parse_snapshot",
]
