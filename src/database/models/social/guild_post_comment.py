"""
GuildPostComment: threaded comment on a guild post.
Pure schema.
"""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from sqlalchemy import BigInteger, ForeignKey, Index, Text
from sqlalchemy.orm import Mapped, mapped_column

from src.core.database.base import Base, IdMixin, TimestampMixin, UtcDateTime, enum_column
from src.database.models.enums import CommentStatus


class GuildPostComment(Base, IdMixin, TimestampMixin):
    __tablename__ = "guild_post_comments"
    __table_args__ = (Index("ix_guild_post_comments_post_status", "post_id", "status"),)

    post_id: Mapped[int] = mapped_column(
        ForeignKey("guild_posts.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    parent_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("guild_post_comments.id", ondelete="SET NULL"),
        nullable=True,
        default=None,
    )
    author_id: Mapped[int] = mapped_column(BigInteger, nullable=False)

    content: Mapped[str] = mapped_column(Text, nullable=False)
    status: Mapped[CommentStatus] = mapped_column(
        enum_column(CommentStatus), nullable=False, default=CommentStatus.VISIBLE
    )

    edited_at: Mapped[Optional[datetime]] = mapped_column(UtcDateTime(), nullable=True, default=None)
    removed_at: Mapped[Optional[datetime]] = mapped_column(UtcDateTime(), nullable=True, default=None)
    removed_by: Mapped[Optional[int]] = mapped_column(BigInteger, nullable=True, default=None)
