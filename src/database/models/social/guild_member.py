"""
GuildMember: association of users to guilds.
Pure schema only.
"""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from sqlalchemy import BigInteger, ForeignKey, Index, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, synonym

from src.core.database.base import Base, IdMixin, TimestampMixin, UtcDateTime, enum_column, utc_now
from src.database.models.enums import GuildRole, MemberStatus


class GuildMember(Base, IdMixin, TimestampMixin):
    """
    Guild membership row.

    Schema-only:
    - guild_id (FK to guilds)
    - user_id (external user id)
    - role (owner / admin / member)
    - status (active / left); one row per (guild, user), reactivated on rejoin
    - joined_at / left_at
    """

    __tablename__ = "guild_members"
    __table_args__ = (
        UniqueConstraint("guild_id", "user_id", name="uq_guild_members_guild_user"),
        Index("ix_guild_members_user_status", "user_id", "status"),
    )

    guild_id: Mapped[int] = mapped_column(
        ForeignKey("guilds.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    group_id = synonym("guild_id")

    user_id: Mapped[int] = mapped_column(BigInteger, nullable=False)

    role: Mapped[GuildRole] = mapped_column(enum_column(GuildRole), nullable=False, default=GuildRole.MEMBER)
    status: Mapped[MemberStatus] = mapped_column(
        enum_column(MemberStatus), nullable=False, default=MemberStatus.ACTIVE
    )

    joined_at: Mapped[datetime] = mapped_column(UtcDateTime(), nullable=False, default=utc_now)
    left_at: Mapped[Optional[datetime]] = mapped_column(UtcDateTime(), nullable=True, default=None)
