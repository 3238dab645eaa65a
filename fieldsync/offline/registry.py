from typing import Any, Callable, Dict, List

from fieldsync.logging_config import get_logger
from fieldsync.offline.errors import UnknownActionError

logger = get_logger(__name__)

ReplayHandler = Callable[[Dict[str, Any]], Any]


class ReplayRegistry:
    """
    Maps queued action names to the callables that perform the real write.

    Built once at app startup and handed to the replay driver and the HTTP
    layer, so the queue itself knows nothing about the central server.
    Handlers are plain pass-throughs; retry and ordering belong to the driver.
    """

    def __init__(self):
        self._handlers: Dict[str, ReplayHandler] = {}

    def register(self, action: str, handler: ReplayHandler) -> None:
        if not callable(handler):
            raise TypeError(f"Handler for '{action}' must be callable")
        if action in self._handlers:
            logger.warning("Replacing replay handler", action=action)
        self._handlers[action] = handler

    def handler(self, action: str):
        """Decorator form of register()."""
        def decorator(func):
            self.register(action, func)
            return func
        return decorator

    def has(self, action: str) -> bool:
        return action in self._handlers

    def actions(self) -> List[str]:
        return sorted(self._handlers)

    def __len__(self):
        return len(self._handlers)

    def __contains__(self, action):
        return self.has(action)

    def dispatch_action(self, action: str, payload: Dict[str, Any]) -> Any:
        """
        Invoke the handler registered for action with payload.

        Raises:
            UnknownActionError: If no handler is registered for action
        """
        handler = self._handlers.get(action)
        if handler is None:
            raise UnknownActionError(action)
        return handler(payload)

    def dispatch(self, record) -> Any:
        """Invoke the handler for a queued mutation record."""
        return self.dispatch_action(record.action, record.payload)
