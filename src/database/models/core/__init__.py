"""
Core database models.

- CommunityConfig: database-backed configuration overrides
- Notification: per-user notification ledger
"""

from .community_config import CommunityConfig
from .notification import Notification

__all__ = [
    "CommunityConfig",
    "Notification",
]
