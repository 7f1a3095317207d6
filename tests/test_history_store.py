"""
Tests for the append-only operation log.

Tests cover:
- Appending records and id assignment
- Newest-first queries with filters and limits
- Tolerance of corrupt and torn lines
- Id resolution by prefix/suffix
- Status changes that preserve every other line
"""

import json
import logging
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

from sagegit.core.errors import OperationNotFoundError, PersistenceError
from sagegit.core.history import (
    CommitForward,
    CommitReverse,
    HistoryFilter,
    OperationCategory,
    OperationLog,
    OperationRecord,
    OperationStatus,
    StashForward,
    StashReverse,
    UndoForward,
    UndoReverse,
)


def make_commit(group: str = "g1", branch: str = "main", n: int = 1) -> OperationRecord:
    return OperationRecord.build(
        group=group,
        description=f"Commit {n}",
        forward=CommitForward(branch=branch, message=f"change {n}", commit_sha=f"{n:040x}"),
        reverse=CommitReverse(parent_sha=f"{n - 1:040x}", auto_staged=False),
    )


def make_stash(group: str = "g1") -> OperationRecord:
    return OperationRecord.build(
        group=group,
        description="Stash",
        forward=StashForward(branch="main", message="wip", stash_sha="c" * 40),
        reverse=StashReverse(head_sha="d" * 40, paths=["a.txt"]),
    )


def make_undo(target: str) -> OperationRecord:
    return OperationRecord.build(
        group="undo-group",
        description=f"Undo {target}",
        forward=UndoForward(target_ids=[target]),
        reverse=UndoReverse(),
    )


class TestRecordModel:
    """Tests for OperationRecord validation."""

    def test_build_takes_category_from_forward_data(self) -> None:
        """The category is derived from the forward variant."""
        record = make_commit()
        assert record.category == OperationCategory.COMMIT
        assert record.status == OperationStatus.ACTIVE
        assert record.branch == "main"

    def test_mismatched_variants_rejected(self) -> None:
        """Forward data and reverse plan must belong to the record's category."""
        with pytest.raises(ValueError):
            OperationRecord(
                category=OperationCategory.COMMIT,
                group="g",
                description="bad",
                forward_data=CommitForward(branch="main", message="m", commit_sha="a" * 40),
                reverse_plan=StashReverse(head_sha=None),
            )

    def test_round_trips_through_json(self) -> None:
        """A stored line parses back into the same tagged variants."""
        record = make_stash().model_copy(update={"id": "0000000000000001"})
        parsed = OperationRecord.model_validate_json(record.model_dump_json())
        assert parsed == record
        assert isinstance(parsed.forward_data, StashForward)


class TestAppend:
    """Tests for OperationLog.append."""

    def test_append_assigns_increasing_ids(self, op_log: OperationLog) -> None:
        """Ids are 16 hex digits and strictly increasing."""
        ids = [op_log.append(make_commit(n=i)) for i in range(1, 6)]

        assert all(len(i) == 16 for i in ids)
        assert ids == sorted(ids)
        assert len(set(ids)) == 5

    def test_append_creates_control_dir(self, tmp_path: Path) -> None:
        """The log file and its directory are created on first append."""
        log = OperationLog.for_control_dir(tmp_path / "nested" / "sage")
        log.append(make_commit())
        assert (tmp_path / "nested" / "sage" / "history.jsonl").exists()

    def test_append_forces_active_status(self, op_log: OperationLog) -> None:
        """Whatever status the record carried, it is stored Active."""
        record = make_commit().model_copy(update={"status": OperationStatus.UNDONE})
        op_log.append(record)
        assert next(op_log.query()).status == OperationStatus.ACTIVE

    def test_ids_stay_monotonic_when_clock_goes_back(
        self, op_log: OperationLog, monkeypatch
    ) -> None:
        """A clock step backwards never produces a smaller id."""
        import sagegit.core.history.store as store

        monkeypatch.setattr(store.time, "time", lambda: 2_000_000_000.0)
        first = op_log.append(make_commit(n=1))
        monkeypatch.setattr(store.time, "time", lambda: 1_000_000_000.0)
        second = op_log.append(make_commit(n=2))

        assert int(second, 16) == int(first, 16) + 1

    def test_append_terminates_torn_line(self, op_log: OperationLog) -> None:
        """A partial trailing line from a crash does not swallow the next record."""
        op_log.append(make_commit(n=1))
        with op_log.path.open("a") as f:
            f.write('{"id": "ffff", "categ')

        op_log.append(make_commit(n=2))

        records = list(op_log.query())
        assert [r.description for r in records] == ["Commit 2", "Commit 1"]

    def test_append_failure_raises_persistence_error(self, tmp_path: Path) -> None:
        """An unwritable log surfaces as PersistenceError."""
        blocker = tmp_path / "not-a-dir"
        blocker.write_text("")
        log = OperationLog(blocker / "history.jsonl")

        with pytest.raises(PersistenceError):
            log.append(make_commit())


class TestQuery:
    """Tests for OperationLog.query."""

    def test_empty_log(self, op_log: OperationLog) -> None:
        assert list(op_log.query()) == []

    def test_newest_first(self, op_log: OperationLog) -> None:
        for i in range(1, 4):
            op_log.append(make_commit(n=i))

        assert [r.description for r in op_log.query()] == ["Commit 3", "Commit 2", "Commit 1"]

    def test_limit(self, op_log: OperationLog) -> None:
        for i in range(1, 6):
            op_log.append(make_commit(n=i))

        assert len(list(op_log.query(limit=2))) == 2
        assert list(op_log.query(limit=0)) == []

    def test_filter_by_category_and_group(self, op_log: OperationLog) -> None:
        op_log.append(make_commit(group="a"))
        op_log.append(make_stash(group="a"))
        op_log.append(make_commit(group="b", n=2))

        stashes = list(op_log.query(HistoryFilter(category=OperationCategory.STASH)))
        group_b = list(op_log.query(HistoryFilter(group="b")))

        assert [r.category for r in stashes] == [OperationCategory.STASH]
        assert [r.description for r in group_b] == ["Commit 2"]

    def test_filter_by_since(self, op_log: OperationLog) -> None:
        """Records older than `since` are excluded; naive times are UTC."""
        op_log.append(make_commit())
        future = datetime.now(timezone.utc) + timedelta(hours=1)

        assert list(op_log.query(HistoryFilter(since=future))) == []
        past = (datetime.now(timezone.utc) - timedelta(hours=1)).replace(tzinfo=None)
        assert len(list(op_log.query(HistoryFilter(since=past)))) == 1

    def test_corrupt_lines_are_skipped(self, op_log: OperationLog, caplog) -> None:
        """One unreadable line is logged and the rest of history still loads."""
        op_log.append(make_commit(n=1))
        with op_log.path.open("a") as f:
            f.write("this is not json\n")
            f.write(json.dumps({"id": "1", "category": "commit"}) + "\n")
        op_log.append(make_commit(n=2))

        with caplog.at_level(logging.WARNING):
            records = list(op_log.query())

        assert [r.description for r in records] == ["Commit 2", "Commit 1"]
        assert "Skipping unreadable history line" in caplog.text

    def test_reads_large_logs_across_blocks(self, op_log: OperationLog) -> None:
        """Reverse reading handles records spanning read-block boundaries."""
        long_message = "x" * 5000
        for i in range(1, 40):
            op_log.append(
                OperationRecord.build(
                    group="g",
                    description=f"Commit {i}",
                    forward=CommitForward(branch="main", message=long_message, commit_sha="a" * 40),
                    reverse=CommitReverse(parent_sha="b" * 40),
                )
            )

        records = list(op_log.query())
        assert len(records) == 39
        assert records[0].description == "Commit 39"
        assert records[-1].description == "Commit 1"


class TestResolve:
    """Tests for id lookup."""

    def test_get_exact(self, op_log: OperationLog) -> None:
        operation_id = op_log.append(make_commit())
        assert op_log.get(operation_id).id == operation_id

    def test_get_missing(self, op_log: OperationLog) -> None:
        with pytest.raises(OperationNotFoundError):
            op_log.get("0000000000000000")

    def test_resolve_by_suffix(self, op_log: OperationLog) -> None:
        """The 8-character display id resolves to the full record."""
        operation_id = op_log.append(make_commit())
        op_log.append(make_commit(n=2))

        record = op_log.resolve(operation_id[-8:])
        assert record.id == operation_id

    def test_resolve_ambiguous_prefix(self, op_log: OperationLog) -> None:
        """A fragment shared by several records is refused, not guessed."""
        first = op_log.append(make_commit(n=1))
        op_log.append(make_commit(n=2))

        with pytest.raises(OperationNotFoundError) as exc_info:
            op_log.resolve(first[:4])

        assert "ambiguous" in str(exc_info.value)
        assert len(exc_info.value.context["candidates"]) == 2

    def test_resolve_unknown(self, op_log: OperationLog) -> None:
        op_log.append(make_commit())
        with pytest.raises(OperationNotFoundError):
            op_log.resolve("zzzz")


class TestMark:
    """Tests for status changes."""

    def test_mark_changes_only_target(self, op_log: OperationLog) -> None:
        first = op_log.append(make_commit(n=1))
        second = op_log.append(make_commit(n=2))

        updated = op_log.mark(first, OperationStatus.UNDONE)

        assert updated.status == OperationStatus.UNDONE
        assert op_log.get(first).status == OperationStatus.UNDONE
        assert op_log.get(second).status == OperationStatus.ACTIVE

    def test_mark_preserves_unreadable_lines(self, op_log: OperationLog) -> None:
        """Corrupt lines survive the rewrite byte for byte."""
        first = op_log.append(make_commit(n=1))
        with op_log.path.open("a") as f:
            f.write("garbage line\n")

        op_log.mark(first, OperationStatus.SUPERSEDED)

        assert "garbage line" in op_log.path.read_text().splitlines()

    @pytest.mark.parametrize("separator", ["\u2028", "\u2029", "\u0085", "\x1c"])
    def test_mark_keeps_records_with_unicode_line_separators(
        self, op_log: OperationLog, separator: str
    ) -> None:
        """Only newline ends a record, whatever a commit message contains."""
        first = op_log.append(
            OperationRecord.build(
                group="g1",
                description="Commit 1",
                forward=CommitForward(
                    branch="main", message=f"fix{separator}second line", commit_sha="1" * 40
                ),
                reverse=CommitReverse(parent_sha="0" * 40, auto_staged=False),
            )
        )
        second = op_log.append(make_commit(n=2))

        op_log.mark(second, OperationStatus.UNDONE)
        op_log.mark(first, OperationStatus.SUPERSEDED)

        records = {r.id: r for r in op_log.query()}
        assert set(records) == {first, second}
        assert records[first].forward_data.message == f"fix{separator}second line"
        assert records[first].status == OperationStatus.SUPERSEDED
        assert records[second].status == OperationStatus.UNDONE

    def test_mark_missing_id(self, op_log: OperationLog) -> None:
        op_log.append(make_commit())
        with pytest.raises(OperationNotFoundError):
            op_log.mark("0000000000000000", OperationStatus.UNDONE)

    def test_mark_leaves_no_temp_files(self, op_log: OperationLog) -> None:
        operation_id = op_log.append(make_commit())
        op_log.mark(operation_id, OperationStatus.UNDONE)

        leftovers = [p.name for p in op_log.path.parent.iterdir() if p.name.endswith(".tmp")]
        assert leftovers == []


class TestLatestActive:
    """Tests for the default undo target lookup."""

    def test_returns_newest_active(self, op_log: OperationLog) -> None:
        op_log.append(make_commit(n=1))
        second = op_log.append(make_commit(n=2))

        assert op_log.latest_active().id == second

    def test_skips_undone_and_undo_records(self, op_log: OperationLog) -> None:
        """Undo records are never default targets and undone records are skipped."""
        first = op_log.append(make_commit(n=1))
        second = op_log.append(make_commit(n=2))
        op_log.mark(second, OperationStatus.UNDONE)
        op_log.append(make_undo(second))

        assert op_log.latest_active().id == first

    def test_respects_criteria(self, op_log: OperationLog) -> None:
        stash_id = op_log.append(make_stash())
        op_log.append(make_commit())

        criteria = HistoryFilter(category=OperationCategory.STASH)
        assert op_log.latest_active(criteria).id == stash_id

    def test_none_when_nothing_active(self, op_log: OperationLog) -> None:
        assert op_log.latest_active() is None
