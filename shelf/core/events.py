"""
Event Bus for Shelf.

This module provides a simple pub/sub event system for decoupled communication
between the synchronizer and whatever presents its results (CLI output, desktop
notifications, a UI refreshing its album list).

Event types:
- library.sync.advisory: a reconciliation pass could not write some rows
- library.sync.completed: a reconciliation pass finished

Usage:
    from shelf.core.events import EventBus

    bus = EventBus()

    async def on_advisory(event: Event) -> None:
        print(event.to_dict()["message"])

    await bus.subscribe("library.sync.advisory", on_advisory)
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Coroutine

logger = logging.getLogger(__name__)

# Type alias for event handlers
EventHandler = Callable[["Event"], Coroutine[Any, Any, None]]


@dataclass
class Event:
    """Base class for all events."""

    event_type: str = ""

    def to_dict(self) -> dict[str, Any]:
        """Convert event to dictionary for JSON serialization."""
        return {"type": self.event_type}


@dataclass
class SyncAdvisoryEvent(Event):
    """
    Fired when audio files of an album could not be added to the catalog.

    Advisory only: the pass continued, but deletions were skipped for that album.
    """

    event_type: str = field(default="library.sync.advisory", init=False)
    album_path: str = ""
    failed_paths: tuple[str, ...] = ()
    message: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": self.event_type,
            "album_path": self.album_path,
            "failed_paths": list(self.failed_paths),
            "message": self.message,
        }


@dataclass
class SyncCompletedEvent(Event):
    """Fired once after the last directory of a pass has been reconciled."""

    event_type: str = field(default="library.sync.completed", init=False)
    directories: int = 0
    albums_created: int = 0
    albums_deleted: int = 0
    files_created: int = 0
    files_deleted: int = 0
    advisories: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": self.event_type,
            "directories": self.directories,
            "albums_created": self.albums_created,
            "albums_deleted": self.albums_deleted,
            "files_created": self.files_created,
            "files_deleted": self.files_deleted,
            "advisories": self.advisories,
        }


class EventBus:
    """
    Simple async pub/sub event bus.

    Supports:
    - Multiple handlers per event type
    - Wildcard subscriptions (e.g., "library.sync.*")
    - Error isolation (one handler failing doesn't affect others)
    """

    def __init__(self) -> None:
        self._handlers: dict[str, list[EventHandler]] = {}
        self._lock = asyncio.Lock()

    async def subscribe(self, event_type: str, handler: EventHandler) -> None:
        """
        Subscribe to events of a specific type.

        Args:
            event_type: Event type to subscribe to. Use "*" suffix for wildcards.
            handler: Async function to call when event is published.
        """
        async with self._lock:
            self._handlers.setdefault(event_type, []).append(handler)
            logger.debug("Subscribed to %s: %s", event_type, handler)

    async def unsubscribe(self, event_type: str, handler: EventHandler) -> bool:
        """
        Unsubscribe a handler from an event type.

        Returns True if handler was found and removed.
        """
        async with self._lock:
            if event_type in self._handlers:
                try:
                    self._handlers[event_type].remove(handler)
                    logger.debug("Unsubscribed from %s: %s", event_type, handler)
                    return True
                except ValueError:
                    pass
            return False

    async def publish(self, event: Event) -> int:
        """
        Publish an event to all subscribed handlers.

        Returns:
            Number of handlers that received the event.
        """
        event_type = event.event_type
        handlers_called = 0

        async with self._lock:
            matching_handlers: list[EventHandler] = []

            if event_type in self._handlers:
                matching_handlers.extend(self._handlers[event_type])

            # Wildcard matches (e.g., "library.*" matches "library.sync.completed")
            for pattern, handlers in self._handlers.items():
                if pattern.endswith(".*"):
                    prefix = pattern[:-2]
                    if event_type.startswith(prefix + "."):
                        matching_handlers.extend(handlers)
                elif pattern == "*":
                    matching_handlers.extend(handlers)

        # Call handlers outside of lock
        for handler in matching_handlers:
            try:
                await handler(event)
                handlers_called += 1
            except Exception as e:
                logger.exception("Error in event handler for %s: %s", event_type, e)

        if handlers_called > 0:
            logger.debug("Published %s to %d handlers", event_type, handlers_called)

        return handlers_called

    async def clear(self) -> None:
        """Remove all subscriptions."""
        async with self._lock:
            self._handlers.clear()
            logger.debug("Cleared all event subscriptions")

