"""
Guildhall EventBus: async pub/sub with tiered concurrency.

Responsibilities
----------------
- Register/unregister event listeners with priorities
- Publish events to all matching listeners (exact + wildcard)
- Execute listeners according to tiered concurrency model:
  * CRITICAL: sequential, ordered, awaited with timeout
  * HIGH: sequential, ordered, awaited with timeout
  * NORMAL: concurrent (gather), awaited
  * LOW: fire-and-forget background tasks
- Error isolation (one failing listener never blocks others or the publisher)

Design Decisions
----------------
- **Instance-based**: each service container owns its bus; tests build their own
- **Wildcard support**: ``fnmatch`` patterns such as ``"guild.*"``
- **Config-driven timeouts**: listener timeouts loaded from ConfigManager
"""

from __future__ import annotations

import asyncio
import inspect
from fnmatch import fnmatchcase
from typing import Any, Dict, List, Optional, Set

from src.core.event.types import (
    CallbackType,
    EventListener,
    EventPayload,
    ListenerPriority,
)
from src.core.logging.logger import get_logger

logger = get_logger(__name__)

_WILDCARD_CHARS = ("*", "?", "[")


class EventBus:
    """
    EventBus with tiered listener execution.

    Designed for single-threaded asyncio usage. Dictionary mutations are
    atomic between awaits.

    Examples
    --------
    >>> bus = EventBus()
    >>> bus.subscribe("guild.invitation_accepted", on_accept, priority=ListenerPriority.HIGH)
    >>> await bus.publish("guild.invitation_accepted", {"guild_id": 1, "user_id": 42})
    """

    def __init__(
        self,
        config_manager: Any = None,
        *,
        critical_timeout_seconds: Optional[float] = None,
        high_timeout_seconds: Optional[float] = None,
    ) -> None:
        self._config_manager = config_manager
        self._listeners: Dict[str, List[EventListener]] = {}
        self._background_tasks: Set[asyncio.Task[Any]] = set()
        self._publish_counts: Dict[str, int] = {}

        self._critical_timeout = self._load_timeout(
            "core.event.listener_timeout.critical_seconds", critical_timeout_seconds, 5.0
        )
        self._high_timeout = self._load_timeout(
            "core.event.listener_timeout.high_seconds", high_timeout_seconds, 5.0
        )

        logger.debug(
            "EventBus initialized",
            extra={
                "critical_timeout_seconds": self._critical_timeout,
                "high_timeout_seconds": self._high_timeout,
            },
        )

    def _load_timeout(self, key: str, override: Optional[float], default: float) -> float:
        """Resolve a timeout: override, then config, then default."""
        if override is not None:
            return float(override)
        if self._config_manager is None:
            return float(default)
        return float(self._config_manager.get(key, default))

    @staticmethod
    def _validate_callback_signature(callback: CallbackType) -> None:
        try:
            sig = inspect.signature(callback)
        except (TypeError, ValueError):
            # Built-ins may not expose a signature; trust the caller
            return

        params = list(sig.parameters.values())
        if len(params) != 1:
            callback_name = getattr(callback, "__qualname__", None) or repr(callback)
            raise ValueError(
                f"Event listener must accept exactly 1 parameter (EventPayload), "
                f"got {len(params)} parameters for '{callback_name}'"
            )

    # ------------------------------------------------------------------ #
    # Subscription API
    # ------------------------------------------------------------------ #

    def subscribe(
        self,
        event_name: str,
        callback: CallbackType,
        *,
        priority: ListenerPriority = ListenerPriority.NORMAL,
        identifier: Optional[str] = None,
        once: bool = False,
        allow_duplicates: bool = False,
    ) -> str:
        """
        Subscribe a callback to an event name or wildcard pattern.

        Returns:
            The listener identifier, for unsubscribing later.

        Raises:
            ValueError: If the callback does not take exactly one parameter.
        """
        self._validate_callback_signature(callback)

        listener = EventListener.from_callback(
            event_name=event_name,
            callback=callback,
            priority=priority,
            identifier=identifier,
            once=once,
        )

        bucket = self._listeners.setdefault(event_name, [])
        if not allow_duplicates and any(existing.identifier == listener.identifier for existing in bucket):
            logger.warning(
                "EventBus: duplicate listener prevented",
                extra={"event_name": event_name, "listener_id": listener.identifier},
            )
            return listener.identifier

        bucket.append(listener)
        logger.debug(
            "EventBus: subscribed listener",
            extra={
                "event_name": event_name,
                "listener_id": listener.identifier,
                "priority": listener.priority.name,
                "once": listener.once,
            },
        )
        return listener.identifier

    def unsubscribe(self, event_name: str, identifier: str) -> bool:
        bucket = self._listeners.get(event_name, [])
        remaining = [listener for listener in bucket if listener.identifier != identifier]
        removed = len(remaining) != len(bucket)

        if remaining:
            self._listeners[event_name] = remaining
        else:
            self._listeners.pop(event_name, None)

        if removed:
            logger.debug(
                "EventBus: unsubscribed listener",
                extra={"event_name": event_name, "listener_id": identifier},
            )
        return removed

    def clear(self) -> None:
        total = self.get_listener_count()
        self._listeners.clear()
        logger.info("EventBus: cleared all listeners", extra={"previous_listener_count": total})

    def get_listener_count(self, event_name: Optional[str] = None) -> int:
        if event_name is None:
            return sum(len(bucket) for bucket in self._listeners.values())
        return len(self._listeners.get(event_name, []))

    def get_publish_count(self, event_name: str) -> int:
        return self._publish_counts.get(event_name, 0)

    # ------------------------------------------------------------------ #
    # Routing
    # ------------------------------------------------------------------ #

    def _extract_listeners(self, event_name: str) -> List[EventListener]:
        """Collect exact and wildcard matches, pruning ``once`` listeners before they run."""
        matched: List[EventListener] = []

        for pattern in list(self._listeners.keys()):
            is_wildcard = any(char in pattern for char in _WILDCARD_CHARS)
            if pattern != event_name and not (is_wildcard and fnmatchcase(event_name, pattern)):
                continue

            bucket = self._listeners[pattern]
            matched.extend(bucket)

            keep = [listener for listener in bucket if not listener.once]
            if keep:
                self._listeners[pattern] = keep
            else:
                del self._listeners[pattern]

        # Stable sort keeps registration order inside a tier
        matched.sort(key=lambda listener: listener.priority.value)
        return matched

    # ------------------------------------------------------------------ #
    # Publish API
    # ------------------------------------------------------------------ #

    async def publish(self, event_name: str, data: EventPayload) -> list[Any]:
        """
        Publish an event to all subscribed listeners.

        Returns:
            Results from CRITICAL/HIGH/NORMAL listeners. Failed listeners
            contribute ``None``. LOW-tier listeners are fire-and-forget and
            not included.
        """
        self._publish_counts[event_name] = self._publish_counts.get(event_name, 0) + 1

        listeners = self._extract_listeners(event_name)
        if not listeners:
            logger.debug("EventBus: no listeners for event", extra={"event_name": event_name})
            return []

        logger.debug(
            "EventBus: executing listeners",
            extra={"event_name": event_name, "listener_count": len(listeners)},
        )

        results: list[Any] = []

        for listener in listeners:
            if listener.priority is ListenerPriority.CRITICAL:
                results.append(await self._run_with_timeout(event_name, data, listener, self._critical_timeout))
            elif listener.priority is ListenerPriority.HIGH:
                results.append(await self._run_with_timeout(event_name, data, listener, self._high_timeout))

        normal = [listener for listener in listeners if listener.priority is ListenerPriority.NORMAL]
        if normal:
            results.extend(
                await asyncio.gather(*(self._run_listener(event_name, data, listener) for listener in normal))
            )

        for listener in listeners:
            if listener.priority is ListenerPriority.LOW:
                task = asyncio.get_running_loop().create_task(self._run_listener(event_name, data, listener))
                self._background_tasks.add(task)
                task.add_done_callback(self._background_tasks.discard)

        return results

    async def drain(self) -> None:
        """Wait for outstanding LOW-priority listeners. Used at shutdown and in tests."""
        if self._background_tasks:
            await asyncio.gather(*list(self._background_tasks))

    async def _run_with_timeout(
        self,
        event_name: str,
        data: EventPayload,
        listener: EventListener,
        timeout: float,
    ) -> Any:
        try:
            return await asyncio.wait_for(self._run_listener(event_name, data, listener), timeout=timeout)
        except asyncio.TimeoutError:
            logger.error(
                "EventBus: listener timed out",
                extra={
                    "event_name": event_name,
                    "listener_id": listener.identifier,
                    "timeout_seconds": timeout,
                },
            )
            return None

    async def _run_listener(self, event_name: str, data: EventPayload, listener: EventListener) -> Any:
        try:
            result = listener.callback(data)
            if inspect.isawaitable(result):
                result = await result
            return result
        except Exception as exc:
            logger.error(
                "EventBus: listener failed",
                extra={
                    "event_name": event_name,
                    "listener_id": listener.identifier,
                    "error": str(exc),
                    "error_type": type(exc).__name__,
                },
                exc_info=True,
            )
            return None
