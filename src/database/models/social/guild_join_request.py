"""
GuildJoinRequest: a user asking to join a guild.
Pure schema.
"""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from sqlalchemy import BigInteger, ForeignKey, Index, Text, text
from sqlalchemy.orm import Mapped, mapped_column, synonym

from src.core.database.base import Base, IdMixin, TimestampMixin, UtcDateTime, enum_column
from src.database.models.enums import JoinRequestStatus

_PENDING = text("status = 'pending'")


class GuildJoinRequest(Base, IdMixin, TimestampMixin):
    """
    Join request.

    Schema-only:
    - guild_id, requester_id, optional message
    - status, expires_at, responded_at, reviewed_by
    - one pending row per (guild, requester)
    """

    __tablename__ = "guild_join_requests"
    __table_args__ = (
        Index(
            "uq_guild_join_requests_pending",
            "guild_id",
            "requester_id",
            unique=True,
            postgresql_where=_PENDING,
            sqlite_where=_PENDING,
        ),
        Index("ix_guild_join_requests_requester_status", "requester_id", "status"),
    )

    guild_id: Mapped[int] = mapped_column(
        ForeignKey("guilds.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    group_id = synonym("guild_id")

    requester_id: Mapped[int] = mapped_column(BigInteger, nullable=False)
    message: Mapped[Optional[str]] = mapped_column(Text, nullable=True, default=None)

    status: Mapped[JoinRequestStatus] = mapped_column(
        enum_column(JoinRequestStatus), nullable=False, default=JoinRequestStatus.PENDING
    )

    expires_at: Mapped[datetime] = mapped_column(UtcDateTime(), nullable=False)
    responded_at: Mapped[Optional[datetime]] = mapped_column(UtcDateTime(), nullable=True, default=None)
    reviewed_by: Mapped[Optional[int]] = mapped_column(BigInteger, nullable=True, default=None)
