"""
File Storage Module
Atomic document writes and the locks that serialize them.

Every JSON document the service owns (queue state, recipients) is
committed with write-to-temp + fsync + os.replace, and mutated only
while holding a StoreLock: a thread lock for this process plus a
FileLock for the other workers sharing the data directory.
"""

import os
import logging
import tempfile
import threading
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator

from filelock import FileLock, Timeout

from ticket_queue.core.exceptions import QueuePersistenceError

logger = logging.getLogger(__name__)


def atomic_write_text(path: Path, data: str) -> None:
    """
    Replace `path` with `data` in a single rename.

    Raises:
        OSError: If the temporary file cannot be written or renamed
    """
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(
        dir=str(path.parent),
        prefix=f".{path.name}.",
        suffix=".tmp",
    )
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as tmp:
            tmp.write(data)
            tmp.flush()
            os.fsync(tmp.fileno())
        os.replace(tmp_name, path)
    except BaseException:
        try:
            os.unlink(tmp_name)
        except FileNotFoundError:
            pass
        raise


class StoreLock:
    """Thread lock plus inter-process file lock guarding one document."""

    def __init__(self, lock_path: Path, timeout: float):
        self.lock_path = lock_path
        self.timeout = timeout
        self._thread_lock = threading.RLock()
        self._file_lock = FileLock(str(lock_path), timeout=timeout)

    @contextmanager
    def hold(self) -> Iterator[None]:
        self.lock_path.parent.mkdir(parents=True, exist_ok=True)
        with self._thread_lock:
            try:
                self._file_lock.acquire()
            except Timeout as e:
                logger.error(f"Lock timeout ({self.timeout}s) on {self.lock_path}")
                raise QueuePersistenceError(
                    f"Timed out after {self.timeout}s waiting for {self.lock_path.name}"
                ) from e
            try:
                yield
            finally:
                self._file_lock.release()
