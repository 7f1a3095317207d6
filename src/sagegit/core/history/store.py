"""
Append-only operation log persisted as JSON Lines.

Each line of <git-dir>/sage/history.jsonl holds one OperationRecord, newest
appended last, so the history stays human-inspectable. Appends are flushed
and fsync'd before returning. Status changes rewrite the file through a
temporary file and os.replace, so a crash leaves either the old or the new
log, never a torn one.

Reads walk the file backwards in fixed-size blocks, which gives newest-first
iteration without loading large histories into memory.
"""

from __future__ import annotations

import json
import logging
import os
import tempfile
import time
from collections.abc import Iterator
from pathlib import Path

from pydantic import ValidationError

from sagegit.core.errors import OperationNotFoundError, PersistenceError
from sagegit.core.history.models import (
    HistoryFilter,
    OperationCategory,
    OperationRecord,
    OperationStatus,
)

logger = logging.getLogger(__name__)

HISTORY_FILENAME = "history.jsonl"
READ_BLOCK_SIZE = 64 * 1024
# Low bits of an id hold a per-millisecond sequence number
SEQUENCE_BITS = 12


class OperationLog:
    """
    Persisted ledger of executed operations.

    Example:
        >>> log = OperationLog(Path(".git/sage/history.jsonl"))
        >>> op_id = log.append(record)
        >>> log.get(op_id).status
        <OperationStatus.ACTIVE: 'active'>
        >>> [r.id for r in log.query(HistoryFilter(category=OperationCategory.COMMIT))]
        ['018f3c2a9d4e1001', '018f3c2a9d4e1000']
    """

    def __init__(self, path: Path) -> None:
        self.path = path

    @classmethod
    def for_control_dir(cls, control_dir: Path) -> OperationLog:
        return cls(control_dir / HISTORY_FILENAME)

    # ------------------------------------------------------------------
    # Reading
    # ------------------------------------------------------------------

    def _read_lines_reversed(self) -> Iterator[str]:
        """Yield non-blank lines from the end of the file to the start."""
        try:
            f = self.path.open("rb")
        except FileNotFoundError:
            return
        except OSError as e:
            raise PersistenceError(
                f"Cannot read operation log {self.path}: {e}", path=str(self.path)
            ) from e

        with f:
            f.seek(0, os.SEEK_END)
            position = f.tell()
            remainder = b""
            while position > 0:
                size = min(READ_BLOCK_SIZE, position)
                position -= size
                f.seek(position)
                chunk = f.read(size) + remainder
                lines = chunk.split(b"\n")
                # First piece may be the tail of a line that starts in an earlier block
                remainder = lines[0]
                for line in reversed(lines[1:]):
                    if line.strip():
                        yield line.decode("utf-8", errors="replace")
            if remainder.strip():
                yield remainder.decode("utf-8", errors="replace")

    def _parse(self, line: str) -> OperationRecord | None:
        try:
            return OperationRecord.model_validate_json(line)
        except (ValidationError, ValueError) as e:
            logger.warning("Skipping unreadable history line in %s: %s", self.path, e)
            return None

    def _iter_records(self) -> Iterator[OperationRecord]:
        for line in self._read_lines_reversed():
            record = self._parse(line)
            if record is not None:
                yield record

    def query(
        self,
        criteria: HistoryFilter | None = None,
        *,
        limit: int | None = None,
    ) -> Iterator[OperationRecord]:
        """
        Stream records matching the criteria, newest first.

        Unreadable lines are logged and skipped so one corrupt entry does not
        hide the rest of the history.

        Args:
            criteria: Category/group/since/status filter (None matches all)
            limit: Stop after this many matches

        Raises:
            PersistenceError: If the log exists but cannot be opened
        """
        criteria = criteria or HistoryFilter()
        if limit is not None and limit <= 0:
            return
        count = 0
        for record in self._iter_records():
            if not criteria.matches(record):
                continue
            yield record
            count += 1
            if limit is not None and count >= limit:
                return

    def get(self, operation_id: str) -> OperationRecord:
        for record in self._iter_records():
            if record.id == operation_id:
                return record
        raise OperationNotFoundError(operation_id)

    def resolve(self, token: str) -> OperationRecord:
        """
        Look up a record by full id or by a unique leading/trailing fragment.

        Raises:
            OperationNotFoundError: If nothing matches or the fragment is ambiguous
        """
        token = token.strip().lower()
        if not token:
            raise OperationNotFoundError(token, reason="empty id")

        matches: list[OperationRecord] = []
        for record in self._iter_records():
            if record.id == token:
                return record
            if record.id.startswith(token) or record.id.endswith(token):
                matches.append(record)

        if not matches:
            raise OperationNotFoundError(token)
        if len(matches) > 1:
            raise OperationNotFoundError(
                token,
                reason=f"ambiguous, matches {len(matches)} operations",
                candidates=[r.id for r in matches],
            )
        return matches[0]

    def latest_active(self, criteria: HistoryFilter | None = None) -> OperationRecord | None:
        """
        Highest-id Active record that can be undone.

        Undo records document reversals and are never default targets.
        """
        base = criteria or HistoryFilter()
        active = base.model_copy(update={"status": OperationStatus.ACTIVE})
        for record in self.query(active):
            if record.category != OperationCategory.UNDO:
                return record
        return None

    def _last_id_value(self) -> int | None:
        for line in self._read_lines_reversed():
            try:
                value = json.loads(line).get("id")
                return int(value, 16)
            except (ValueError, TypeError, AttributeError):
                continue
        return None

    def _next_id(self) -> str:
        """
        Next record id: (unix millis << 12) plus a sequence.

        Always greater than the last persisted id, even if the clock stepped
        backwards since it was written.
        """
        candidate = int(time.time() * 1000) << SEQUENCE_BITS
        last = self._last_id_value()
        if last is not None and candidate <= last:
            candidate = last + 1
        return f"{candidate:016x}"

    # ------------------------------------------------------------------
    # Writing
    # ------------------------------------------------------------------

    def append(self, record: OperationRecord) -> str:
        """
        Persist a new Active record and return its id.

        Raises:
            PersistenceError: If the log cannot be written. The repository
                mutation the record describes has already happened and stands.
        """
        operation_id = self._next_id()
        stored = record.model_copy(
            update={"id": operation_id, "status": OperationStatus.ACTIVE}
        )
        line = stored.model_dump_json() + "\n"

        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with self.path.open("a+b") as f:
                # Terminate a line torn by an earlier crash before appending
                f.seek(0, os.SEEK_END)
                if f.tell() > 0:
                    f.seek(-1, os.SEEK_END)
                    if f.read(1) != b"\n":
                        f.write(b"\n")
                f.write(line.encode("utf-8"))
                f.flush()
                os.fsync(f.fileno())
        except OSError as e:
            raise PersistenceError(
                f"Failed to record operation in {self.path}: {e}",
                path=str(self.path),
                operation_id=operation_id,
            ) from e

        logger.info("Recorded %s operation %s: %s", stored.category.value, operation_id,
                    stored.description)
        return operation_id

    def mark(self, operation_id: str, status: OperationStatus) -> OperationRecord:
        """
        Change the status of one record.

        Every other line, including unreadable ones, is written back unchanged.

        Raises:
            OperationNotFoundError: If no record has that id
            PersistenceError: If the log cannot be rewritten
        """
        try:
            raw = self.path.read_text(encoding="utf-8")
        except FileNotFoundError:
            raise OperationNotFoundError(operation_id)
        except OSError as e:
            raise PersistenceError(
                f"Cannot read operation log {self.path}: {e}", path=str(self.path)
            ) from e

        updated: OperationRecord | None = None
        out_lines: list[str] = []
        # Records may hold U+2028 and friends unescaped; only "\n" ends a line
        for line in raw.split("\n"):
            if not line:
                continue
            if updated is None and line.strip():
                try:
                    line_id = json.loads(line).get("id")
                except (ValueError, AttributeError):
                    line_id = None
                if line_id == operation_id:
                    try:
                        record = OperationRecord.model_validate_json(line)
                    except ValidationError as e:
                        raise PersistenceError(
                            f"Operation {operation_id} is unreadable in {self.path}: {e}",
                            path=str(self.path),
                            operation_id=operation_id,
                        ) from e
                    updated = record.model_copy(update={"status": status})
                    line = updated.model_dump_json()
            out_lines.append(line)

        if updated is None:
            raise OperationNotFoundError(operation_id)

        self._replace("\n".join(out_lines) + "\n")
        logger.info("Marked operation %s as %s", operation_id, status.value)
        return updated

    def _replace(self, content: str) -> None:
        """Atomically replace the log with new content."""
        fd, temp_path = tempfile.mkstemp(
            dir=self.path.parent,
            prefix=".history_",
            suffix=".jsonl.tmp",
        )
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(content)
                f.flush()
                os.fsync(f.fileno())
            os.replace(temp_path, self.path)
        except OSError as e:
            try:
                os.unlink(temp_path)
            except OSError:
                pass
            raise PersistenceError(
                f"Failed to rewrite operation log {self.path}: {e}", path=str(self.path)
            ) from e
