"""Notification ledger and identity lookup."""

from .identity import IdentityLookup, StaticIdentityLookup
from .service import DEFAULT_PAGE_SIZE, MAX_PAGE_SIZE, NotificationService, clamp_page_size

__all__ = [
    "NotificationService",
    "IdentityLookup",
    "StaticIdentityLookup",
    "DEFAULT_PAGE_SIZE",
    "MAX_PAGE_SIZE",
    "clamp_page_size",
]
