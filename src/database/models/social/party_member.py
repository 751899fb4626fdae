"""
PartyMember: association of users to parties.
Pure schema only.
"""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from sqlalchemy import BigInteger, ForeignKey, Index, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, synonym

from src.core.database.base import Base, IdMixin, TimestampMixin, UtcDateTime, enum_column, utc_now
from src.database.models.enums import MemberStatus, PartyRole


class PartyMember(Base, IdMixin, TimestampMixin):
    __tablename__ = "party_members"
    __table_args__ = (
        UniqueConstraint("party_id", "user_id", name="uq_party_members_party_user"),
        Index("ix_party_members_user_status", "user_id", "status"),
    )

    party_id: Mapped[int] = mapped_column(
        ForeignKey("parties.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    group_id = synonym("party_id")

    user_id: Mapped[int] = mapped_column(BigInteger, nullable=False)

    role: Mapped[PartyRole] = mapped_column(enum_column(PartyRole), nullable=False, default=PartyRole.MEMBER)
    status: Mapped[MemberStatus] = mapped_column(
        enum_column(MemberStatus), nullable=False, default=MemberStatus.ACTIVE
    )

    joined_at: Mapped[datetime] = mapped_column(UtcDateTime(), nullable=False, default=utc_now)
    left_at: Mapped[Optional[datetime]] = mapped_column(UtcDateTime(), nullable=True, default=None)
