"""
Guild: large, persistent community group.
Pure schema.
"""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from sqlalchemy import BigInteger, Boolean, CheckConstraint, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from src.core.database.base import Base, IdMixin, TimestampMixin, UtcDateTime


class Guild(Base, IdMixin, TimestampMixin):
    """
    Learner-created guild.

    Schema-only:
    - name (unique), description, visibility
    - creator_id (external user id)
    - member_count / max_members (count of active memberships, capped)
    - merit_points (atomically incremented)
    - requires_approval (join requests and posts go through moderators)
    - dissolved_at, set when the last member (the owner) leaves
    """

    __tablename__ = "guilds"
    __table_args__ = (
        CheckConstraint("member_count >= 0", name="member_count_non_negative"),
        CheckConstraint("member_count <= max_members", name="member_count_within_cap"),
    )

    name: Mapped[str] = mapped_column(String(100), nullable=False, unique=True, index=True)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True, default=None)

    is_public: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    requires_approval: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    creator_id: Mapped[int] = mapped_column(BigInteger, nullable=False, index=True)

    member_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    max_members: Mapped[int] = mapped_column(Integer, nullable=False, default=50)

    merit_points: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    dissolved_at: Mapped[Optional[datetime]] = mapped_column(UtcDateTime(), nullable=True, default=None)
