# src/content_guard/models/content.py
"""Model tracking the moderation status of user-generated content."""

from datetime import datetime

from sqlalchemy import DateTime, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from content_guard.db.session import Base
from content_guard.db.time import utcnow
from content_guard.schemas.moderation import ModerationStatus


class ContentItem(Base):
    """A review, post, comment or image submitted by a user."""

    __tablename__ = "content_item"

    content_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    content_type: Mapped[str] = mapped_column(String(16), nullable=False, default="post")
    author_id: Mapped[str | None] = mapped_column(String(64), nullable=True, index=True)
    status: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default=ModerationStatus.PENDING.value,
    )
    body: Mapped[str | None] = mapped_column(Text, nullable=True)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=utcnow,
        onupdate=utcnow,
    )
