"""
Database Models Package
=======================

SQLAlchemy ORM models for Guildhall, organized by domain.

All models:
- Are schema-only, no business logic
- Use Mapped[] syntax with mapped_column()
- Inherit from the shared Base plus IdMixin / TimestampMixin
- Store timestamps as timezone-aware UTC (UtcDateTime)
- Use JsonType (JSONB on PostgreSQL) for structured fields

Domain Organization
-------------------
- core: CommunityConfig, Notification
- social: guilds, parties, memberships, invitations, join requests, posts, stash
- enums: shared type-safe enumerations
"""

from src.core.database.base import Base

from .core import CommunityConfig, Notification
from .social import (
    Guild,
    GuildInvitation,
    GuildJoinRequest,
    GuildMember,
    GuildPost,
    GuildPostComment,
    GuildPostLike,
    Party,
    PartyInvitation,
    PartyMember,
    PartyStashItem,
)

__all__ = [
    "Base",
    "CommunityConfig",
    "Notification",
    "Guild",
    "GuildMember",
    "GuildInvitation",
    "GuildJoinRequest",
    "GuildPost",
    "GuildPostComment",
    "GuildPostLike",
    "Party",
    "PartyMember",
    "PartyInvitation",
    "PartyStashItem",
]
