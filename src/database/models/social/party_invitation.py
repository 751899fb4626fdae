"""
PartyInvitation: invitation of a user (or e-mail address) into a party.
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


class PartyInvitation(Base, IdMixin, TimestampMixin):
    """Same lifecycle as GuildInvitation; see that model for the field list."""

    __tablename__ = "party_invitations"
    __table_args__ = (
        Index(
            "uq_party_invitations_pending_invitee",
            "party_id",
            "invitee_id",
            unique=True,
            postgresql_where=_PENDING,
            sqlite_where=_PENDING,
        ),
        Index(
            "uq_party_invitations_pending_email",
            "party_id",
            "invitee_email",
            unique=True,
            postgresql_where=_PENDING,
            sqlite_where=_PENDING,
        ),
        Index("ix_party_invitations_invitee_status", "invitee_id", "status"),
        Index("ix_party_invitations_status_expires", "status", "expires_at"),
    )

    party_id: Mapped[int] = mapped_column(
        ForeignKey("parties.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    group_id = synonym("party_id")

    inviter_id: Mapped[int] = mapped_column(BigInteger, nullable=False)
    invitee_id: Mapped[Optional[int]] = mapped_column(BigInteger, nullable=True)
    invitee_email: Mapped[Optional[str]] = mapped_column(String(320), nullable=True)

    message: Mapped[Optional[str]] = mapped_column(Text, nullable=True, default=None)

    status: Mapped[InvitationStatus] = mapped_column(
        enum_column(InvitationStatus), nullable=False, default=InvitationStatus.PENDING
    )

    expires_at: Mapped[datetime] = mapped_column(UtcDateTime(), nullable=False)
    responded_at: Mapped[Optional[datetime]] = mapped_column(UtcDateTime(), nullable=True, default=None)
