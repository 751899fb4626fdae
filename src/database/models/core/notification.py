"""
Notification: per-user inbox entry.
Pure schema.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, Optional

from sqlalchemy import BigInteger, Boolean, CheckConstraint, Index, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from src.core.database.base import (
    Base,
    IdMixin,
    JsonType,
    TimestampMixin,
    UtcDateTime,
    enum_column,
)
from src.database.models.enums import NotificationType


class Notification(Base, IdMixin, TimestampMixin):
    """
    Append-only notification row owned by a single recipient.

    Schema-only:
    - recipient_id (external user id)
    - type (guild / party / system)
    - title, message, payload JSON
    - is_read / read_at, kept consistent by a CHECK constraint
    """

    __tablename__ = "notifications"
    __table_args__ = (
        Index("ix_notifications_recipient_unread", "recipient_id", "is_read"),
        Index("ix_notifications_recipient_created", "recipient_id", "created_at"),
        CheckConstraint(
            "(is_read AND read_at IS NOT NULL) OR (NOT is_read AND read_at IS NULL)",
            name="read_state",
        ),
    )

    recipient_id: Mapped[int] = mapped_column(BigInteger, nullable=False)

    type: Mapped[NotificationType] = mapped_column(enum_column(NotificationType), nullable=False)

    title: Mapped[str] = mapped_column(String(200), nullable=False)
    message: Mapped[str] = mapped_column(Text, nullable=False, default="")

    payload: Mapped[Dict[str, Any]] = mapped_column(JsonType, nullable=False, default=dict)

    is_read: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    read_at: Mapped[Optional[datetime]] = mapped_column(UtcDateTime(), nullable=True, default=None)
