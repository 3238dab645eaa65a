import threading
from contextlib import contextmanager
from datetime import datetime
from typing import Optional

from fieldsync.logging_config import get_logger
from fieldsync.offline.errors import ReplayInProgressError

logger = get_logger(__name__)


class ReplayLock:
    """
    Keeps two replay passes from running at once.

    Not reentrant: a second acquire while held fails immediately, even from
    the same thread, since a nested pass would replay the same records twice.
    """

    def __init__(self):
        self._lock = threading.Lock()  # guards the fields below
        self._is_held = False
        self._current_operation = None
        self._holder_thread_id = None
        self._acquired_at: Optional[datetime] = None

    def is_locked(self) -> bool:
        with self._lock:
            return self._is_held

    def get_current_operation(self) -> Optional[str]:
        with self._lock:
            return self._current_operation if self._is_held else None

    @contextmanager
    def acquire(self, operation_name: str):
        """
        Context manager that holds the replay lock for the duration of a pass.

        Raises:
            ReplayInProgressError: If another pass holds the lock
        """
        with self._lock:
            if self._is_held:
                current_op = self._current_operation
                logger.warning(
                    "Replay lock already held",
                    held_by=current_op,
                    requested_by=operation_name,
                )
                raise ReplayInProgressError(f"Replay already in progress: {current_op}")

            self._is_held = True
            self._current_operation = operation_name
            self._holder_thread_id = threading.get_ident()
            self._acquired_at = datetime.now()
            logger.debug("Replay lock acquired", operation=operation_name)

        try:
            yield
        finally:
            with self._lock:
                self._is_held = False
                self._current_operation = None
                self._holder_thread_id = None
                self._acquired_at = None
            logger.debug("Replay lock released", operation=operation_name)

    def get_status(self) -> dict:
        with self._lock:
            acquired_at = self._acquired_at
            return {
                "is_locked": self._is_held,
                "current_operation": self._current_operation,
                "timestamp": datetime.now().isoformat(),
                "held_by_thread": self._holder_thread_id,
                "held_for_seconds": (datetime.now() - acquired_at).total_seconds() if acquired_at else 0,
            }
