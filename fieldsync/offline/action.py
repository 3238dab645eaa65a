"""
Execute a write now, or queue it for replay when the server can't be reached.

Usage from a route or command:

    result = offline_action(
        "toggle_checklist_item",
        lambda: client.send(action, payload),
        {"item_id": item_id},
        online=connectivity.is_online(),
    )
    if result.queued:
        ...  # tell the user it will sync later
"""
from typing import Any, Callable, Dict

from fieldsync.logging_config import get_logger
from fieldsync.offline.errors import is_transient
from fieldsync.offline.queue import MutationQueue
from fieldsync.offline.records import OfflineActionResult

logger = get_logger(__name__)


def offline_action(
    action_name: str,
    execute: Callable[[], Any],
    payload: Dict[str, Any],
    online: bool = True,
    is_retryable: Callable[[BaseException], bool] = is_transient,
) -> OfflineActionResult:
    """
    Run execute() with an offline fallback.

    Args:
        action_name: Name of the replay handler that can redo this write later
        execute: Zero-argument callable performing the write against the server
        payload: Serializable arguments stored for replay if the write is queued
        online: Current connectivity signal
        is_retryable: Predicate deciding whether a failure is a connectivity
                      problem (queue it) or a real rejection (re-raise it)

    Returns:
        OfflineActionResult: queued=False with data, or queued=True with mutation_id

    Raises:
        Whatever execute() raised, when is_retryable() says it is not retryable
    """
    if online:
        try:
            data = execute()
            return OfflineActionResult(queued=False, data=data)
        except Exception as exc:
            if not is_retryable(exc):
                raise
            logger.warning(
                "Write failed with a connectivity error, queueing for replay",
                action=action_name,
                error=str(exc),
            )
    else:
        logger.info("Offline, queueing write", action=action_name)

    mutation_id = MutationQueue.enqueue(action_name, payload)
    return OfflineActionResult(queued=True, mutation_id=mutation_id)
