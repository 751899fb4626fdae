from __future__ import annotations

from sqlalchemy import BigInteger, ForeignKey, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from src.core.database.base import Base, IdMixin, TimestampMixin


class GuildPostLike(Base, IdMixin, TimestampMixin):
    """One row per (post, user); ``GuildPost.like_count`` mirrors the row count."""

    __tablename__ = "guild_post_likes"
    __table_args__ = (UniqueConstraint("post_id", "user_id", name="uq_guild_post_likes_post_user"),)

    post_id: Mapped[int] = mapped_column(
        ForeignKey("guild_posts.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    user_id: Mapped[int] = mapped_column(BigInteger, nullable=False)
