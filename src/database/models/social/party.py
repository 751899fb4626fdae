"""
Party: small, ephemeral study group.
Pure schema.
"""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from sqlalchemy import BigInteger, Boolean, CheckConstraint, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from src.core.database.base import Base, IdMixin, TimestampMixin, UtcDateTime


class Party(Base, IdMixin, TimestampMixin):
    """
    Study party.

    Schema-only:
    - name, description, visibility
    - creator_id (external user id)
    - member_count / max_members
    - dissolved_at, set when the last member leaves
    """

    __tablename__ = "parties"
    __table_args__ = (
        CheckConstraint("member_count >= 0", name="member_count_non_negative"),
        CheckConstraint("member_count <= max_members", name="member_count_within_cap"),
    )

    name: Mapped[str] = mapped_column(String(100), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True, default=None)

    is_public: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    creator_id: Mapped[int] = mapped_column(BigInteger, nullable=False, index=True)

    member_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    max_members: Mapped[int] = mapped_column(Integer, nullable=False, default=6)

    dissolved_at: Mapped[Optional[datetime]] = mapped_column(UtcDateTime(), nullable=True, default=None)
