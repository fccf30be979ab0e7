"""Tests for the snapshot differ.

The differ walks two start-sorted snapshots with two cursors and gives
every start address one verdict: appeared, disappeared, changed, or
nothing at all when the mapping is unchanged.
"""

import dataclasses
import random
from datetime import UTC, datetime, timedelta

import pytest

from mapwatcher.diff import (
    DEFAULT_ATTRIBUTES,
    AttributeChange,
    Change,
    ChangeKind,
    compare_records,
    diff_snapshots,
    named_only,
)
from mapwatcher.smaps.record import MappingRecord, Snapshot

PID = 42
T0 = datetime(2024, 5, 1, 12, 0, tzinfo=UTC)
T1 = T0 + timedelta(seconds=1)
OLD_RSS = 100
NEW_RSS = 150
PROPERTY_ROUNDS = 50


def _record(
    start: int,
    end: int,
    name: str = "",
    *,
    size: int = 4,
    rss: int = 4,
    pss: int = 0,
) -> MappingRecord:
    return MappingRecord(
        start=start,
        end=end,
        flags="rw-p",
        offset="00000000",
        device_major=0,
        device_minor=0,
        inode="0",
        name=name,
        size=size,
        rss=rss,
        pss=pss,
    )


def _snap(*records: MappingRecord, pid: int = PID, at: datetime = T0) -> Snapshot:
    return Snapshot(pid=pid, captured_at=at, records=tuple(records))


# ---------------------------------------------------------------------------
# Preconditions
# ---------------------------------------------------------------------------


class TestPreconditions:
    """Verify caller contract checks."""

    def test_pid_mismatch_raises(self) -> None:
        """Diffing two different processes is a contract violation."""
        with pytest.raises(ValueError, match="different processes"):
            diff_snapshots(_snap(pid=1), _snap(pid=2))

    def test_unknown_attribute_raises(self) -> None:
        """Only real record fields can be compared."""
        with pytest.raises(ValueError, match="Unknown mapping attributes: colour"):
            diff_snapshots(_snap(), _snap(), attributes=("rss", "colour"))


# ---------------------------------------------------------------------------
# Classification
# ---------------------------------------------------------------------------


class TestClassification:
    """Verify appeared / disappeared / changed verdicts."""

    def test_identical_snapshots_give_empty_report(self) -> None:
        """A snapshot diffed against a copy of itself reports nothing."""
        records = (_record(0x1000, 0x2000, "a"), _record(0x3000, 0x4000))
        report = diff_snapshots(_snap(*records, at=T1), _snap(*records))
        assert report.is_empty
        assert len(report) == 0

    def test_both_empty(self) -> None:
        """Two empty snapshots report nothing."""
        assert diff_snapshots(_snap(), _snap()).is_empty

    def test_new_mapping_appears(self) -> None:
        """A start only in the current snapshot is APPEARED."""
        report = diff_snapshots(_snap(_record(0x1000, 0x2000, "a")), _snap())
        assert [c.kind for c in report] == [ChangeKind.APPEARED]

    def test_dropped_mapping_disappears(self) -> None:
        """A start only in the previous snapshot is DISAPPEARED."""
        report = diff_snapshots(_snap(), _snap(_record(0x1000, 0x2000, "a")))
        assert [c.kind for c in report] == [ChangeKind.DISAPPEARED]
        assert report.changes[0].record.name == "a"

    def test_single_attribute_change(self) -> None:
        """rss 100 -> 150 yields exactly one annotation."""
        prev = _snap(_record(0x1000, 0x2000, "a", rss=OLD_RSS))
        cur = _snap(_record(0x1000, 0x2000, "a", rss=NEW_RSS), at=T1)
        report = diff_snapshots(cur, prev)
        assert len(report) == 1
        change = report.changes[0]
        assert change.kind is ChangeKind.CHANGED
        assert change.attributes == (AttributeChange(name="rss", old=OLD_RSS, new=NEW_RSS),)

    def test_end_and_size_changes(self) -> None:
        """A grown mapping reports end and size, not rss."""
        prev = _snap(_record(0x1000, 0x2000, "[heap]", size=4))
        cur = _snap(_record(0x1000, 0x3000, "[heap]", size=8))
        change = diff_snapshots(cur, prev).changes[0]
        assert [a.name for a in change.attributes] == ["end", "size"]
        assert change.old_value("end") == 0x2000
        assert change.old_value("rss") is None

    def test_uncompared_attribute_ignored(self) -> None:
        """Differences outside the compared attributes are not reported."""
        prev = _snap(_record(0x1000, 0x2000, "a", pss=1))
        cur = _snap(_record(0x1000, 0x2000, "a", pss=2))
        assert diff_snapshots(cur, prev).is_empty

    def test_extended_attributes(self) -> None:
        """Callers may compare any record attribute."""
        prev = _snap(_record(0x1000, 0x2000, "a", pss=1))
        cur = _snap(_record(0x1000, 0x2000, "a", pss=2))
        report = diff_snapshots(cur, prev, attributes=(*DEFAULT_ATTRIBUTES, "pss"))
        assert report.changes[0].attributes == (AttributeChange("pss", 1, 2),)

    def test_end_to_end_example(self) -> None:
        """Changed at 0x1000 (rss 4 -> 8) and appeared at 0x5000."""
        prev = _snap(_record(0x1000, 0x2000, "a", size=4, rss=4))
        cur = _snap(
            _record(0x1000, 0x2000, "a", size=4, rss=8),
            _record(0x5000, 0x6000, "b", size=4, rss=4),
            at=T1,
        )
        report = diff_snapshots(cur, prev)
        assert report.pid == PID
        assert report.previous_at == T0
        assert report.current_at == T1
        assert [(c.kind, c.start) for c in report] == [
            (ChangeKind.CHANGED, 0x1000),
            (ChangeKind.APPEARED, 0x5000),
        ]
        assert report.changes[0].attributes == (AttributeChange("rss", 4, 8),)

    def test_interleaved_merge_and_tails(self) -> None:
        """Verdicts come out in address order, tails included."""
        prev = _snap(
            _record(0x1000, 0x2000, "a"),
            _record(0x3000, 0x4000, "c"),
            _record(0x9000, 0xA000, "x"),
            _record(0xB000, 0xC000, "y"),
        )
        cur = _snap(
            _record(0x2000, 0x3000, "b"),
            _record(0x3000, 0x4000, "c"),
        )
        report = diff_snapshots(cur, prev)
        assert [(c.kind, c.start) for c in report] == [
            (ChangeKind.DISAPPEARED, 0x1000),
            (ChangeKind.APPEARED, 0x2000),
            (ChangeKind.DISAPPEARED, 0x9000),
            (ChangeKind.DISAPPEARED, 0xB000),
        ]

    def test_current_tail_appears(self) -> None:
        """Records past the end of the previous snapshot all appear."""
        prev = _snap(_record(0x1000, 0x2000, "a"))
        cur = _snap(
            _record(0x1000, 0x2000, "a"),
            _record(0x4000, 0x5000, "b"),
            _record(0x6000, 0x7000, "c"),
        )
        report = diff_snapshots(cur, prev)
        assert report.by_kind(ChangeKind.APPEARED) == list(report.changes)
        assert [c.start for c in report] == [0x4000, 0x6000]


class TestSortedMergeProperty:
    """Randomised check of sorted-merge completeness."""

    def test_every_address_classified_once(self) -> None:
        """Starts in one snapshot only are reported; shared unchanged ones are not."""
        rng = random.Random(1234)
        for _ in range(PROPERTY_ROUNDS):
            universe = sorted(rng.sample(range(1, 200), 40))
            prev_starts = sorted(s for s in universe if rng.random() < 0.6)  # noqa: PLR2004
            cur_starts = sorted(s for s in universe if rng.random() < 0.6)  # noqa: PLR2004
            prev = _snap(*(_record(s * 0x1000, s * 0x1000 + 0x800, "m") for s in prev_starts))
            cur = _snap(*(_record(s * 0x1000, s * 0x1000 + 0x800, "m") for s in cur_starts))

            report = diff_snapshots(cur, prev)
            appeared = {c.start for c in report.by_kind(ChangeKind.APPEARED)}
            disappeared = {c.start for c in report.by_kind(ChangeKind.DISAPPEARED)}

            assert appeared == {s * 0x1000 for s in set(cur_starts) - set(prev_starts)}
            assert disappeared == {s * 0x1000 for s in set(prev_starts) - set(cur_starts)}
            assert not report.by_kind(ChangeKind.CHANGED)
            starts = [c.start for c in report]
            assert starts == sorted(starts)


# ---------------------------------------------------------------------------
# Filtering
# ---------------------------------------------------------------------------


class TestNamedOnlyFilter:
    """Verify the anonymous-mapping presentation filter."""

    def test_core_reports_anonymous_by_default(self) -> None:
        """Without a filter, anonymous churn is reported."""
        report = diff_snapshots(_snap(_record(0x1000, 0x2000)), _snap())
        assert len(report) == 1

    def test_anonymous_appear_and_drop_suppressed(self) -> None:
        """named_only drops anonymous appeared/disappeared verdicts."""
        prev = _snap(_record(0x1000, 0x2000), _record(0x3000, 0x4000, "lib"))
        cur = _snap(_record(0x5000, 0x6000))
        report = diff_snapshots(cur, prev, keep=named_only)
        assert [(c.kind, c.record.name) for c in report] == [
            (ChangeKind.DISAPPEARED, "lib"),
        ]

    def test_anonymous_changes_still_reported(self) -> None:
        """An anonymous mapping that changes in place is kept."""
        prev = _snap(_record(0x1000, 0x2000, rss=1))
        cur = _snap(_record(0x1000, 0x2000, rss=2))
        report = diff_snapshots(cur, prev, keep=named_only)
        assert [c.kind for c in report] == [ChangeKind.CHANGED]

    def test_named_only_predicate(self) -> None:
        """The predicate itself keys on kind and name."""
        anon = _record(0x1000, 0x2000)
        assert not named_only(Change(kind=ChangeKind.APPEARED, record=anon))
        assert named_only(Change(kind=ChangeKind.CHANGED, record=anon))
        assert named_only(Change(kind=ChangeKind.APPEARED, record=_record(0, 1, "x")))


# ---------------------------------------------------------------------------
# Helpers and serialisation
# ---------------------------------------------------------------------------


class TestCompareRecords:
    """Verify the per-record attribute comparison."""

    def test_only_differing_attributes(self) -> None:
        """Unchanged attributes carry no annotation."""
        old = _record(0x1000, 0x2000, "a", rss=1)
        new = dataclasses.replace(old, rss=3, size=9)
        diffs = compare_records(new, old)
        assert diffs == (AttributeChange("size", 4, 9), AttributeChange("rss", 1, 3))

    def test_identical_records(self) -> None:
        """Identical records give no annotations."""
        record = _record(0x1000, 0x2000, "a")
        assert compare_records(record, record) == ()


class TestReportSerialisation:
    """Verify JSON views of reports."""

    def test_to_dict(self) -> None:
        """A report serialises to plain dicts and lists."""
        prev = _snap(_record(0x1000, 0x2000, "a", rss=4))
        cur = _snap(_record(0x1000, 0x2000, "a", rss=8), at=T1)
        data = diff_snapshots(cur, prev).to_dict()
        assert data["pid"] == PID
        assert data["current_at"] == T1.isoformat()
        assert data["changes"] == [
            {
                "kind": "changed",
                "start": 0x1000,
                "end": 0x2000,
                "size": 4,
                "rss": 8,
                "name": "a",
                "changed": {"rss": {"old": 4, "new": 8}},
            }
        ]

    def test_change_kind_values(self) -> None:
        """ChangeKind values are plain lowercase strings."""
        assert ChangeKind.APPEARED == "appeared"
        assert ChangeKind.DISAPPEARED == "disappeared"
        assert ChangeKind.CHANGED == "changed"
