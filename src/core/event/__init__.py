"""
Event system for Guildhall.

Services publish domain events (``guild.invitation_accepted``,
``party.member_left``, ``notification.created`` ...) after their transaction
commits. Listeners subscribe by exact name or ``fnmatch`` wildcard.
"""

from .bus import EventBus
from .types import (
    CallbackType,
    EventListener,
    EventPayload,
    ListenerPriority,
)

__all__ = [
    "EventBus",
    "EventPayload",
    "ListenerPriority",
    "EventListener",
    "CallbackType",
]
