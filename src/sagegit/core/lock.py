"""
Repository-scoped command lock.

Only one sage command may mutate a repository at a time. The lock is an
exclusive, non-blocking flock on <git-dir>/sage/lock held for the whole
command; a second command fails fast with RepositoryBusyError instead of
waiting or interleaving mutations. The kernel drops the lock if the process
dies, so a crashed command never leaves the repository locked.

Example:
    >>> with RepositoryLock(control_dir):
    ...     SyncEngine(repo, log, config).sync()
"""

from __future__ import annotations

import fcntl
import logging
import os
from pathlib import Path
from types import TracebackType
from typing import IO

from sagegit.core.errors import RepositoryBusyError

logger = logging.getLogger(__name__)

LOCK_FILENAME = "lock"


class RepositoryLock:
    """Exclusive advisory lock on a repository's sage control directory."""

    def __init__(self, control_dir: Path) -> None:
        self.lock_path = control_dir / LOCK_FILENAME
        self._handle: IO[str] | None = None

    @property
    def held(self) -> bool:
        return self._handle is not None

    def _read_holder(self) -> int | None:
        try:
            return int(self.lock_path.read_text().strip() or 0) or None
        except (OSError, ValueError):
            return None

    def acquire(self) -> None:
        """
        Take the lock or fail immediately.

        Raises:
            RepositoryBusyError: If another process (or handle) holds it
        """
        if self._handle is not None:
            return
        self.lock_path.parent.mkdir(parents=True, exist_ok=True)
        handle = open(self.lock_path, "a+")
        try:
            fcntl.flock(handle.fileno(), fcntl.LOCK_EX | fcntl.LOCK_NB)
        except BlockingIOError:
            handle.close()
            raise RepositoryBusyError(str(self.lock_path), self._read_holder())

        handle.seek(0)
        handle.truncate()
        handle.write(f"{os.getpid()}\n")
        handle.flush()
        self._handle = handle
        logger.debug("Acquired repository lock %s", self.lock_path)

    def release(self) -> None:
        if self._handle is None:
            return
        try:
            self._handle.seek(0)
            self._handle.truncate()
            fcntl.flock(self._handle.fileno(), fcntl.LOCK_UN)
        finally:
            self._handle.close()
            self._handle = None
        logger.debug("Released repository lock %s", self.lock_path)

    def __enter__(self) -> RepositoryLock:
        self.acquire()
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        self.release()
