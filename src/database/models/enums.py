"""
Database Model Enums
====================

Lightweight enumerations for database models.

These enums provide type-safe constants for categorical fields across the
community schema. They are stored as their string values and referenced by
the service layer for business logic.
"""

from __future__ import annotations

import enum


class GuildRole(str, enum.Enum):
    """
    Roles within a guild.

    Exactly one active OWNER exists while the guild has members.
    """

    OWNER = "owner"
    ADMIN = "admin"
    MEMBER = "member"


class PartyRole(str, enum.Enum):
    LEADER = "leader"
    MEMBER = "member"


class MemberStatus(str, enum.Enum):
    """Membership rows are reactivated on rejoin, never duplicated."""

    ACTIVE = "active"
    LEFT = "left"
    REMOVED = "removed"


class InvitationStatus(str, enum.Enum):
    """
    Invitation lifecycle.

    PENDING is the only non-terminal state; every transition out of it is
    one-way.
    """

    PENDING = "pending"
    ACCEPTED = "accepted"
    DECLINED = "declined"
    EXPIRED = "expired"
    REVOKED = "revoked"


class JoinRequestStatus(str, enum.Enum):
    PENDING = "pending"
    ACCEPTED = "accepted"
    REJECTED = "rejected"
    CANCELLED = "cancelled"
    EXPIRED = "expired"


class PostStatus(str, enum.Enum):
    """
    Guild post visibility.

    PENDING posts await moderator approval in guilds that require it.
    REMOVED is a soft delete.
    """

    PENDING = "pending"
    PUBLISHED = "published"
    REJECTED = "rejected"
    REMOVED = "removed"


class CommentStatus(str, enum.Enum):
    VISIBLE = "visible"
    REMOVED = "removed"


class NotificationType(str, enum.Enum):
    GUILD = "guild"
    PARTY = "party"
    SYSTEM = "system"
