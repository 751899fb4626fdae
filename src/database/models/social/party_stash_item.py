"""
PartyStashItem: a note shared into a party's common stash.
Pure schema.
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional

from sqlalchemy import BigInteger, ForeignKey, String
from sqlalchemy.orm import Mapped, mapped_column

from src.core.database.base import Base, IdMixin, JsonType, TimestampMixin


class PartyStashItem(Base, IdMixin, TimestampMixin):
    """
    Shared stash entry.

    Schema-only:
    - party_id, shared_by (external user id)
    - original_note_id: provenance of the copied note, if any
    - title, content (key -> value mapping), tags
    """

    __tablename__ = "party_stash_items"

    party_id: Mapped[int] = mapped_column(
        ForeignKey("parties.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    original_note_id: Mapped[Optional[int]] = mapped_column(BigInteger, nullable=True, default=None)
    shared_by: Mapped[int] = mapped_column(BigInteger, nullable=False)

    title: Mapped[str] = mapped_column(String(200), nullable=False)
    content: Mapped[Dict[str, Any]] = mapped_column(JsonType, nullable=False, default=dict)
    tags: Mapped[List[str]] = mapped_column(JsonType, nullable=False, default=list)
