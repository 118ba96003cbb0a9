"""Event bus implementation."""

import asyncio
import uuid
from collections import defaultdict
from collections.abc import Awaitable, Callable
from datetime import UTC, datetime
from typing import Any

from app.utils.logging_config import get_logger

logger = get_logger(__name__)

EventHandler = Callable[[Any], Awaitable[None]]

# How long processed event ids are remembered for redelivery detection
PROCESSED_EVENT_TTL = 3600


def _handler_name(handler: EventHandler) -> str:
    return getattr(handler, "__qualname__", None) or getattr(handler, "__name__", str(handler))


class EventBus:
    """Dispatches named events to subscribed async handlers.

    Handlers for an event run one after another and are awaited by
    ``publish``. A failing handler is logged and does not prevent the
    remaining handlers from running; nothing is raised to the publisher.
    Events carrying an id are delivered at most once per
    ``PROCESSED_EVENT_TTL`` seconds.
    """

    def __init__(self) -> None:
        self._subscribers: defaultdict[str, list[EventHandler]] = defaultdict(list)
        self._lock = asyncio.Lock()
        self._processed_events: dict[str, datetime] = {}  # event_id -> first seen
        self._cleanup_events_task: asyncio.Task | None = None
        self._log_context = {"req_id": str(uuid.uuid4()), "component": "event_bus"}
        logger.info("Event bus initialized", extra=self._log_context)

    def _extra(self, **fields: Any) -> dict[str, Any]:
        return {**self._log_context, **fields}

    async def start(self) -> None:
        """Start forgetting old event ids in the background."""
        if self._cleanup_events_task is None:
            self._cleanup_events_task = asyncio.create_task(self._cleanup_old_events())
            logger.debug("Started event cleanup task", extra=self._log_context)

    async def stop(self) -> None:
        task, self._cleanup_events_task = self._cleanup_events_task, None
        if task is None:
            return
        task.cancel()
        await asyncio.gather(task, return_exceptions=True)
        logger.debug("Stopped event cleanup task", extra=self._log_context)

    async def _forget_expired(self) -> int:
        now = datetime.now(UTC)
        async with self._lock:
            expired = [
                event_id
                for event_id, seen_at in self._processed_events.items()
                if (now - seen_at).total_seconds() > PROCESSED_EVENT_TTL
            ]
            for event_id in expired:
                del self._processed_events[event_id]
        return len(expired)

    async def _cleanup_old_events(self, run_once: bool = False) -> None:
        """Periodically forget old processed event ids.

        Args:
            run_once: If True, run cleanup once and return (for testing)
        """
        while True:
            if not run_once:
                await asyncio.sleep(PROCESSED_EVENT_TTL)
            try:
                removed = await self._forget_expired()
            except Exception as e:
                logger.error("Error cleaning up old events", extra=self._extra(error=str(e)))
            else:
                if removed:
                    logger.debug(
                        "Cleaned up old events",
                        extra=self._extra(
                            removed_count=removed,
                            remaining_count=len(self._processed_events),
                        ),
                    )
            if run_once:
                return

    async def _claim_event(self, event_id: str | None) -> bool:
        """Mark an event as processed, False if it already was."""
        if not event_id:
            return True
        async with self._lock:
            if event_id in self._processed_events:
                return False
            self._processed_events[event_id] = datetime.now(UTC)
            return True

    @staticmethod
    def _event_field(event: Any, *names: str) -> Any:
        for name in names:
            value = event.get(name) if isinstance(event, dict) else getattr(event, name, None)
            if value:
                return value
        return None

    async def subscribe(self, event_name: str, handler: EventHandler) -> None:
        """Subscribe ``handler`` to events named ``event_name``.

        Raises:
            ValueError: If the name is empty or the handler is missing
        """
        if not event_name:
            raise ValueError("Event name cannot be empty")
        if handler is None:
            raise ValueError("Handler cannot be None")

        async with self._lock:
            handlers = self._subscribers[event_name]
            if handler in handlers:
                logger.warning(
                    "Handler already subscribed to event",
                    extra=self._extra(event_name=event_name, handler=_handler_name(handler)),
                )
                return
            handlers.append(handler)

        logger.debug(
            "Added event subscription",
            extra=self._extra(
                event_name=event_name,
                handler=_handler_name(handler),
                subscriber_count=len(handlers),
            ),
        )

    async def unsubscribe(self, event_name: str, handler: EventHandler) -> None:
        async with self._lock:
            if handler in self._subscribers[event_name]:
                self._subscribers[event_name].remove(handler)

    async def publish(self, event: Any) -> bool:
        """Deliver an event to its subscribers.

        Args:
            event: A model or dict exposing ``event`` (or ``name``) and
                optionally ``event_id`` (or ``id``)

        Returns:
            bool: True if the handlers ran, False if the event was dropped
        """
        event_name = self._event_field(event, "event", "name")
        if not event_name:
            logger.error("No event name found in event data", extra=self._log_context)
            return False

        handlers = list(self._subscribers.get(event_name, []))
        if not handlers:
            logger.info(
                "No subscribers found for event", extra=self._extra(event_name=event_name)
            )
            return False

        event_id = self._event_field(event, "event_id", "id")
        if not await self._claim_event(event_id):
            logger.info(
                "Skipping duplicate event",
                extra=self._extra(event_name=event_name, event_id=event_id),
            )
            return False

        for handler in handlers:
            try:
                await handler(event)
            except Exception as e:
                logger.error(
                    f"Error in event handler {_handler_name(handler)}",
                    extra=self._extra(
                        event_name=event_name,
                        event_id=event_id,
                        error=str(e),
                        error_type=type(e).__name__,
                    ),
                    exc_info=True,
                )
        return True

    async def shutdown(self) -> None:
        """Stop background work and drop all subscriptions."""
        await self.stop()
        async with self._lock:
            self._subscribers.clear()
            self._processed_events.clear()
        logger.info("Event bus shutdown complete", extra=self._log_context)
