# src/content_guard/models/user.py
"""SQLAlchemy models for content authors and the penalties applied to them."""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import BigInteger, DateTime, ForeignKey, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from content_guard.db.session import Base
from content_guard.db.time import utcnow


class UserAccount(Base):
    """Author identity with the reputation signals the decision policy reads."""

    __tablename__ = "user_account"

    user_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    reputation: Mapped[int] = mapped_column(Integer, nullable=False, default=50)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=utcnow,
    )
    warning_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    # None means the account is not banned; far-future values encode permanent bans.
    banned_until: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    penalties: Mapped[list[UserPenaltyRecord]] = relationship(
        "UserPenaltyRecord",
        back_populates="user",
        cascade="all, delete-orphan",
        order_by="UserPenaltyRecord.id",
    )


class UserPenaltyRecord(Base):
    """Audit record of a penalty applied by the automatic action executor."""

    __tablename__ = "user_penalty"

    id: Mapped[int] = mapped_column(BigInteger().with_variant(Integer, "sqlite"), primary_key=True)
    user_id: Mapped[str] = mapped_column(
        String(64),
        ForeignKey("user_account.user_id", ondelete="CASCADE"),
        nullable=False,
    )
    kind: Mapped[str] = mapped_column(String(20), nullable=False)  # 'warning', 'temporary_ban', ...
    days: Mapped[int | None] = mapped_column(Integer, nullable=True)
    reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=utcnow,
    )

    user: Mapped[UserAccount] = relationship("UserAccount", back_populates="penalties")
