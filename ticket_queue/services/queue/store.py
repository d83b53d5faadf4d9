"""
Queue Store with Concurrency Control

Durable home of the QueueState document.

- save() never touches the live file in place: the document is written
  to a temporary file in the same directory, fsynced, then os.replace()d
  over the original. Readers see the old or the new document, never a
  torn one, so load() needs no lock.
- load() self-heals: a missing or unreadable document yields a fresh
  queue instead of an error.
- lock() serializes read-modify-write cycles across threads and across
  processes, so API workers and the Celery reset task cannot interleave.

Author: Khalil Bannouri
Version: 3.0.0
"""

import logging
from datetime import date
from pathlib import Path
from typing import Callable

from ticket_queue.core.exceptions import QueuePersistenceError
from ticket_queue.models import QueueState
from ticket_queue.storage import StoreLock, atomic_write_text

logger = logging.getLogger(__name__)


class QueueStore:
    """
    File-backed store for the single QueueState document.

    Example:
        >>> store = QueueStore(Path("data/queue.json"), state_factory=...)
        >>> with store.lock():
        ...     state = store.load()
        ...     state.current_number += 1
        ...     store.save(state)
    """

    def __init__(
        self,
        path: Path,
        state_factory: Callable[[], QueueState],
        lock_timeout: float = 10.0,
    ):
        self.path = Path(path)
        self._state_factory = state_factory
        self._lock = StoreLock(self.path.with_name(self.path.name + ".lock"), lock_timeout)

    def lock(self):
        """Context manager serializing one read-modify-write cycle."""
        return self._lock.hold()

    def load(self) -> QueueState:
        """Read the committed document, or a fresh queue if there is none."""
        if not self.path.exists():
            logger.info(f"No queue document at {self.path}, starting a fresh queue")
            return self._state_factory()

        try:
            return QueueState.model_validate_json(self.path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as e:
            logger.warning(f"Unreadable queue document {self.path}: {e}. Starting a fresh queue")
            return self._state_factory()

    def save(self, state: QueueState) -> None:
        """
        Commit the whole document atomically.

        Raises:
            QueuePersistenceError: If the document could not be written
        """
        try:
            atomic_write_text(self.path, state.model_dump_json(by_alias=True, indent=2))
        except OSError as e:
            logger.exception(f"Failed to commit queue document {self.path}")
            raise QueuePersistenceError(f"Could not write queue document: {e}") from e

        logger.debug(
            f"Queue committed: {len(state.orders)} orders, "
            f"next ticket {state.current_prefix}{state.current_number}"
        )

    def is_readable(self) -> bool:
        """True when there is no document yet or the document parses."""
        if not self.path.exists():
            return True
        try:
            QueueState.model_validate_json(self.path.read_text(encoding="utf-8"))
        except (OSError, ValueError):
            return False
        return True


def fresh_state_factory(prefix: str, today: Callable[[], date]) -> Callable[[], QueueState]:
    """Factory producing an empty queue dated today."""
    def factory() -> QueueState:
        return QueueState.fresh(prefix, today())
    return factory
