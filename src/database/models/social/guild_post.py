"""
GuildPost: discussion post inside a guild.
Pure schema.
"""

from __future__ import annotations

from datetime import datetime
from typing import List, Optional

from sqlalchemy import BigInteger, Boolean, CheckConstraint, ForeignKey, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from src.core.database.base import Base, IdMixin, JsonType, TimestampMixin, UtcDateTime, enum_column
from src.database.models.enums import PostStatus


class GuildPost(Base, IdMixin, TimestampMixin):
    """
    Guild post.

    Schema-only:
    - guild_id, author_id, title, content, tags, attachments
    - moderation flags: is_pinned, is_locked, is_announcement
    - status (pending / published / rejected / removed)
    - derived counters: comment_count, like_count
    """

    __tablename__ = "guild_posts"
    __table_args__ = (
        Index("ix_guild_posts_guild_status", "guild_id", "status"),
        CheckConstraint("comment_count >= 0", name="comment_count_non_negative"),
        CheckConstraint("like_count >= 0", name="like_count_non_negative"),
    )

    guild_id: Mapped[int] = mapped_column(
        ForeignKey("guilds.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    author_id: Mapped[int] = mapped_column(BigInteger, nullable=False, index=True)

    title: Mapped[str] = mapped_column(String(200), nullable=False)
    content: Mapped[str] = mapped_column(Text, nullable=False)
    tags: Mapped[List[str]] = mapped_column(JsonType, nullable=False, default=list)
    attachments: Mapped[List[str]] = mapped_column(JsonType, nullable=False, default=list)

    is_pinned: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    is_locked: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    is_announcement: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    status: Mapped[PostStatus] = mapped_column(
        enum_column(PostStatus), nullable=False, default=PostStatus.PUBLISHED
    )

    comment_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    like_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    edited_at: Mapped[Optional[datetime]] = mapped_column(UtcDateTime(), nullable=True, default=None)
    moderated_by: Mapped[Optional[int]] = mapped_column(BigInteger, nullable=True, default=None)
    removed_at: Mapped[Optional[datetime]] = mapped_column(UtcDateTime(), nullable=True, default=None)
