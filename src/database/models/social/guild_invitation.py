"""
GuildInvitation: invitation of a user (or e-mail address) into a guild.
Pure schema.
"""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from sqlalchemy import BigInteger, ForeignKey, Index, String, Text, text
from sqlalchemy.orm import Mapped, mapped_column, synonym

from src.core.database.base import Base, IdMixin, TimestampMixin, UtcDateTime, enum_column
from src.database.models.enums import InvitationStatus

_PENDING = text("status = 'pending'")


class GuildInvitation(Base, IdMixin, TimestampMixin):
    """
    Guild invitation.

    Schema-only:
    - guild_id, inviter_id
    - invitee_id, or invitee_email for users who have not registered yet
    - message, status, expires_at, responded_at
    - at most one pending row per (guild, invitee), enforced by partial
      unique indexes
    """

    __tablename__ = "guild_invitations"
    __table_args__ = (
        Index(
            "uq_guild_invitations_pending_invitee",
            "guild_id",
            "invitee_id",
            unique=True,
            postgresql_where=_PENDING,
            sqlite_where=_PENDING,
        ),
        Index(
            "uq_guild_invitations_pending_email",
            "guild_id",
            "invitee_email",
            unique=True,
            postgresql_where=_PENDING,
            sqlite_where=_PENDING,
        ),
        Index("ix_guild_invitations_invitee_status", "invitee_id", "status"),
        Index("ix_guild_invitations_status_expires", "status", "expires_at"),
    )

    guild_id: Mapped[int] = mapped_column(
        ForeignKey("guilds.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    group_id = synonym("guild_id")

    inviter_id: Mapped[int] = mapped_column(BigInteger, nullable=False)
    invitee_id: Mapped[Optional[int]] = mapped_column(BigInteger, nullable=True)
    invitee_email: Mapped[Optional[str]] = mapped_column(String(320), nullable=True)

    message: Mapped[Optional[str]] = mapped_column(Text, nullable=True, default=None)

    status: Mapped[InvitationStatus] = mapped_column(
        enum_column(InvitationStatus), nullable=False, default=InvitationStatus.PENDING
    )

    expires_at: Mapped[datetime] = mapped_column(UtcDateTime(), nullable=False)
    responded_at: Mapped[Optional[datetime]] = mapped_column(UtcDateTime(), nullable=True, default=None)
