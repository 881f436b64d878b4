"""In-process event bus for cross-flow signals."""
from __future__ import annotations

from collections import defaultdict
from typing import Any, Awaitable, Callable, DefaultDict, List

from core.logging import get_logger

log = get_logger("events")

Handler = Callable[[str, Any], Awaitable[None]]

FLOW_SUCCEEDED = "flow.succeeded"
FLOW_FAILED = "flow.failed"
MEMORY_SAVED = "memory.saved"
MEMORY_DELETED = "memory.deleted"
REMINDER_SAVED = "reminder.saved"
CALENDAR_DRAFT_READY = "calendar.draft_ready"


class EventBus:
    def __init__(self) -> None:
        self._handlers: DefaultDict[str, List[Handler]] = defaultdict(list)

    def subscribe(self, topic: str, handler: Handler) -> Callable[[], None]:
        """Register ``handler``; ``"*"`` receives every topic. Returns an unsubscribe callable."""
        self._handlers[topic].append(handler)

        def unsubscribe() -> None:
            if handler in self._handlers.get(topic, []):
                self._handlers[topic].remove(handler)

        return unsubscribe

    async def publish(self, topic: str, payload: Any = None) -> None:
        for handler in list(self._handlers.get(topic, [])) + list(self._handlers.get("*", [])):
            try:
                await handler(topic, payload)
            except Exception:
                # a broken listener must not fail the flow that emitted the event
                log.exception("events.handler_failed", topic=topic)
