"""In-process event channel."""

import asyncio
from collections import defaultdict
from collections.abc import Callable
from typing import Any

from clip_studio.adapters.events.base import EVENT_MODELS, EventChannel, EventHandler, EventName
from clip_studio.errors import AuthError
from clip_studio.logging import get_logger

logger = get_logger(__name__)


class InMemoryEventChannel(EventChannel):
    """Delivers published payloads to registered handlers within the process.

    Used by the stub backend, the demo and tests. Payloads are raw dicts in
    the wire shape and are parsed into event models before delivery.
    """

    def __init__(self) -> None:
        self._lock = asyncio.Lock()
        self._handlers: dict[EventName, list[EventHandler]] = defaultdict(list)
        self._connected = False
        self.connect_count = 0

    async def connect(self) -> None:
        if self._connected:
            return
        self._connected = True
        self.connect_count += 1
        logger.debug("event_channel_connected")

    async def close(self) -> None:
        self._connected = False
        self._handlers.clear()
        logger.debug("event_channel_closed")

    @property
    def connected(self) -> bool:
        return self._connected

    def on(self, event: EventName, handler: EventHandler) -> Callable[[], None]:
        self._handlers[event].append(handler)

        def unsubscribe() -> None:
            handlers = self._handlers.get(event)
            if handlers and handler in handlers:
                handlers.remove(handler)

        return unsubscribe

    async def publish(self, event: EventName, payload: dict[str, Any]) -> int:
        """Deliver one event to every handler. Returns the number of handlers run."""
        if not self._connected:
            logger.debug("event_dropped_disconnected", event_name=str(event))
            return 0

        message = EVENT_MODELS[event].model_validate(payload)
        # Serialize deliveries so each event is fully handled before the next
        async with self._lock:
            handlers = list(self._handlers.get(event, []))
            for handler in handlers:
                try:
                    await handler(message)
                except AuthError:
                    raise
                except Exception as e:
                    logger.error("event_handler_error", event_name=str(event), error=str(e))
        return len(handlers)
