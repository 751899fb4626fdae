from __future__ import annotations

from typing import Any, Optional

from sqlalchemy import String
from sqlalchemy.orm import Mapped, mapped_column

from src.core.database.base import Base, IdMixin, JsonType, TimestampMixin


class CommunityConfig(Base, IdMixin, TimestampMixin):
    """
    Dynamic community configuration stored in the database.

    Lets operators tune expiry windows, member caps and permission tables
    without a redeploy. Managed by ConfigManager at the infra layer.

    Schema-only model:
    - config_key: top-level configuration section (e.g. "community")
    - config_value: arbitrary JSON payload overriding that section
    - description: human-friendly description of the entry
    - modified_by: identifier of the last modifier
    """

    __tablename__ = "community_config"

    config_key: Mapped[str] = mapped_column(
        String(100),
        unique=True,
        nullable=False,
        index=True,
    )

    config_value: Mapped[Any] = mapped_column(
        JsonType,
        nullable=False,
    )

    description: Mapped[str] = mapped_column(
        String(500),
        nullable=False,
        default="",
    )

    modified_by: Mapped[Optional[str]] = mapped_column(
        String(100),
        nullable=True,
    )
