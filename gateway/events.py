"""Per-instance event dispatch capability.

Components that surface events (plugin discovery, the pipeline
orchestrator) embed an ``EventEmitter`` instead of inheriting one, so
listener tables are never shared between instances.
"""

import inspect
import logging
from typing import Any, Callable, Dict, List

logger = logging.getLogger(__name__)


class EventEmitter:
    """Minimal subscribe/publish table."""

    def __init__(self):
        self._listeners: Dict[str, List[Callable]] = {}

    def subscribe(self, event: str, handler: Callable) -> None:
        """Register a handler for an event name."""
        self._listeners.setdefault(event, []).append(handler)

    def unsubscribe(self, event: str, handler: Callable) -> None:
        """Remove a previously registered handler."""
        handlers = self._listeners.get(event, [])
        if handler in handlers:
            handlers.remove(handler)

    def listeners(self, event: str) -> List[Callable]:
        return list(self._listeners.get(event, []))

    def publish(self, event: str, *args: Any, **kwargs: Any) -> int:
        """Call every handler registered for ``event`` synchronously.

        Coroutine handlers are not supported here; use ``publish_async``.

        Returns:
            Number of handlers invoked
        """
        handlers = self.listeners(event)
        for handler in handlers:
            handler(*args, **kwargs)
        return len(handlers)

    async def publish_async(self, event: str, *args: Any, **kwargs: Any) -> int:
        """Call every handler, awaiting the ones that return awaitables."""
        handlers = self.listeners(event)
        for handler in handlers:
            result = handler(*args, **kwargs)
            if inspect.isawaitable(result):
                await result
        return len(handlers)
