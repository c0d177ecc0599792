"""Run-level lock serialising pipeline runs against one resource store.

Two interleaved runs could each stage the other's intermediate state, so only
one run may hold the lock at a time. The lock is an exclusive ``flock`` on a
lock file holding the owner's PID. The kernel drops the lock when the owning
process dies, so a file left behind by a killed run is reclaimed by the next
one.
"""

from __future__ import annotations

import fcntl
import os
from pathlib import Path
from types import TracebackType

import structlog

from contract_build.errors import PipelineLockedError

logger = structlog.get_logger(__name__)

LOCK_FILE_NAME = ".contract-build.lock"


class RunLock:
    """Exclusive lock file held for the duration of a pipeline run.

    Example:
        >>> with RunLock(Path("res") / LOCK_FILE_NAME):
        ...     trigger.run()
    """

    def __init__(self, path: Path | str) -> None:
        self.path = Path(path)
        self._fd: int | None = None

    @property
    def held(self) -> bool:
        return self._fd is not None

    def acquire(self) -> None:
        """Take the lock.

        Raises:
            PipelineLockedError: If another open lock file holds the lock.
        """
        self.path.parent.mkdir(parents=True, exist_ok=True)
        while True:
            fd = os.open(self.path, os.O_CREAT | os.O_RDWR, 0o644)
            try:
                fcntl.flock(fd, fcntl.LOCK_EX | fcntl.LOCK_NB)
            except BlockingIOError:
                os.close(fd)
                raise PipelineLockedError(str(self.path), self._read_owner()) from None

            # the previous holder may have unlinked the file between open and flock
            if self._same_file(fd):
                break
            os.close(fd)

        reclaimed = os.fstat(fd).st_size > 0
        os.ftruncate(fd, 0)
        os.write(fd, str(os.getpid()).encode())
        self._fd = fd
        logger.debug("run_lock_acquired", path=str(self.path), reclaimed=reclaimed)

    def release(self) -> None:
        if self._fd is None:
            return
        self.path.unlink(missing_ok=True)
        fcntl.flock(self._fd, fcntl.LOCK_UN)
        os.close(self._fd)
        self._fd = None
        logger.debug("run_lock_released", path=str(self.path))

    def _same_file(self, fd: int) -> bool:
        try:
            on_disk = os.stat(self.path)
        except FileNotFoundError:
            return False
        opened = os.fstat(fd)
        return (on_disk.st_dev, on_disk.st_ino) == (opened.st_dev, opened.st_ino)

    def _read_owner(self) -> int | None:
        try:
            return int(self.path.read_text().strip())
        except (OSError, ValueError):
            return None

    def __enter__(self) -> RunLock:
        self.acquire()
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.release()
