"""
Core event types for the Guildhall EventBus.

Priority Levels
---------------
- CRITICAL (0): Sequential, awaited, timeout-protected.
- HIGH (10): Sequential, awaited, timeout-protected.
- NORMAL (50): Concurrent, awaited. Use for projections and read models.
- LOW (100): Fire-and-forget. Use for logging and analytics.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Awaitable, Callable, Optional, Union

# Should be JSON-serializable for best observability
EventPayload = dict[str, Any]


class ListenerPriority(Enum):
    """Priority levels for event listeners (lower value runs earlier)."""

    CRITICAL = 0
    HIGH = 10
    NORMAL = 50
    LOW = 100


CallbackType = Union[
    Callable[[EventPayload], Any],
    Callable[[EventPayload], Awaitable[Any]],
]


@dataclass(slots=True, frozen=True)
class EventListener:
    """
    Represents a registered event listener.

    Attributes
    ----------
    callback:
        Async or sync callable invoked with the event payload.
    priority:
        ListenerPriority determining execution order and concurrency.
    identifier:
        Unique string identifier for deduplication and unsubscription.
    once:
        If True, the listener is removed before its first execution.
    """

    callback: CallbackType
    priority: ListenerPriority
    identifier: str
    once: bool = False

    @classmethod
    def from_callback(
        cls,
        event_name: str,
        callback: CallbackType,
        priority: ListenerPriority,
        identifier: Optional[str],
        once: bool,
    ) -> EventListener:
        """Create a listener, deriving the identifier from the callback when omitted."""
        if identifier is None:
            module = getattr(callback, "__module__", "unknown")
            qualname = getattr(callback, "__qualname__", getattr(callback, "__name__", "callback"))
            identifier = f"{module}.{qualname}@{event_name}"

        return cls(callback=callback, priority=priority, identifier=identifier, once=once)
