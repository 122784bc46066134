# src/content_guard/services/stores.py
"""Content/user store and notifier boundaries used by the action executor."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Protocol

from sqlalchemy.orm import Session

from content_guard.core.settings import settings
from content_guard.db.time import ensure_aware, utcnow
from content_guard.schemas.moderation import ModerationQueueItem, ModerationStatus

logger = logging.getLogger(__name__)

PENALTY_WARNING = "warning"
PENALTY_TEMPORARY_BAN = "temporary_ban"
PENALTY_PERMANENT_BAN = "permanent_ban"

# Notification kinds sent to authors.
NOTIFY_REJECTED = "rejected"
NOTIFY_PENALTY = "penalty"

_PERMANENT_BAN_DAYS = 365 * 100


@dataclass(frozen=True)
class UserPenalty:
    """Penalty applied to a content author."""

    kind: str
    days: int | None = None

    @classmethod
    def warning(cls) -> UserPenalty:
        return cls(PENALTY_WARNING)

    @classmethod
    def temporary_ban(cls, days: int) -> UserPenalty:
        return cls(PENALTY_TEMPORARY_BAN, days=days)

    @classmethod
    def permanent_ban(cls) -> UserPenalty:
        return cls(PENALTY_PERMANENT_BAN)

    def describe(self) -> str:
        if self.kind == PENALTY_TEMPORARY_BAN:
            return f"temporary ban ({self.days} days)"
        return self.kind.replace("_", " ")


class ContentStore(Protocol):
    """Durable storage for content status and author signals."""

    async def set_content_status(self, content_id: str, status: ModerationStatus) -> None: ...

    async def get_user_reputation(self, author_id: str) -> int: ...

    async def is_new_user(self, author_id: str) -> bool: ...

    async def apply_user_penalty(
        self, author_id: str, penalty: UserPenalty, reason: str | None = None
    ) -> None: ...


class Notifier(Protocol):
    """Fire-and-forget delivery of user and moderator notifications."""

    async def notify_user(self, author_id: str, kind: str, reason: str) -> None: ...

    async def notify_moderators(self, item: ModerationQueueItem) -> None: ...


class LoggingNotifier:
    """Notifier that records notifications in the application log."""

    async def notify_user(self, author_id: str, kind: str, reason: str) -> None:
        logger.info("User notified: %s - %s: %s", author_id, kind, reason)

    async def notify_moderators(self, item: ModerationQueueItem) -> None:
        logger.warning(
            "High priority moderation item %s (%s, flags: %s)",
            item.id,
            item.content_type.value,
            ", ".join(flag.description for flag in item.moderation_result.flags) or "none",
        )


@dataclass
class InMemoryContentStore:
    """Process-local store, useful for tests and single-node deployments."""

    default_reputation: int = 50
    statuses: dict[str, ModerationStatus] = field(default_factory=dict)
    reputations: dict[str, int] = field(default_factory=dict)
    new_users: set[str] = field(default_factory=set)
    penalties: dict[str, list[UserPenalty]] = field(default_factory=dict)

    async def set_content_status(self, content_id: str, status: ModerationStatus) -> None:
        self.statuses[content_id] = status

    async def get_user_reputation(self, author_id: str) -> int:
        return self.reputations.get(author_id, self.default_reputation)

    async def is_new_user(self, author_id: str) -> bool:
        return author_id in self.new_users

    async def apply_user_penalty(
        self, author_id: str, penalty: UserPenalty, reason: str | None = None
    ) -> None:
        self.penalties.setdefault(author_id, []).append(penalty)


class SqlContentStore:
    """ContentStore backed by the SQLAlchemy models.

    Sessions are synchronous, so every call runs in a worker thread.
    """

    def __init__(
        self,
        session_factory: Callable[[], Session] | None = None,
        *,
        new_user_max_age: timedelta | None = None,
        default_reputation: int | None = None,
    ) -> None:
        if session_factory is None:
            from content_guard.db.session import SessionLocal

            session_factory = SessionLocal
        self._session_factory = session_factory
        self._new_user_max_age = new_user_max_age or timedelta(
            days=settings.new_user_max_age_days
        )
        self._default_reputation = (
            settings.default_user_reputation if default_reputation is None else default_reputation
        )

    async def set_content_status(self, content_id: str, status: ModerationStatus) -> None:
        await asyncio.to_thread(self._set_content_status, content_id, status)

    async def get_user_reputation(self, author_id: str) -> int:
        return await asyncio.to_thread(self._get_user_reputation, author_id)

    async def is_new_user(self, author_id: str) -> bool:
        return await asyncio.to_thread(self._is_new_user, author_id)

    async def apply_user_penalty(
        self, author_id: str, penalty: UserPenalty, reason: str | None = None
    ) -> None:
        await asyncio.to_thread(self._apply_user_penalty, author_id, penalty, reason)

    def _set_content_status(self, content_id: str, status: ModerationStatus) -> None:
        from content_guard.models import ContentItem

        with self._session_factory() as db:
            item = db.get(ContentItem, content_id)
            if item is None:
                item = ContentItem(content_id=content_id, status=status.value)
                db.add(item)
            else:
                item.status = status.value
            db.commit()

    def _get_user_reputation(self, author_id: str) -> int:
        from content_guard.models import UserAccount

        with self._session_factory() as db:
            account = db.get(UserAccount, author_id)
            if account is None:
                return self._default_reputation
            return account.reputation

    def _is_new_user(self, author_id: str) -> bool:
        from content_guard.models import UserAccount

        with self._session_factory() as db:
            account = db.get(UserAccount, author_id)
            if account is None:
                # Authors we have never seen are treated as brand new.
                return True
            return utcnow() - ensure_aware(account.created_at) < self._new_user_max_age

    def _apply_user_penalty(
        self, author_id: str, penalty: UserPenalty, reason: str | None
    ) -> None:
        from content_guard.models import UserAccount, UserPenaltyRecord

        with self._session_factory() as db:
            account = db.get(UserAccount, author_id)
            if account is None:
                account = UserAccount(user_id=author_id, reputation=self._default_reputation)
                db.add(account)
                db.flush()

            now = utcnow()
            if penalty.kind == PENALTY_WARNING:
                account.warning_count = (account.warning_count or 0) + 1
            else:
                days = penalty.days if penalty.kind == PENALTY_TEMPORARY_BAN else None
                until = now + timedelta(days=days or _PERMANENT_BAN_DAYS)
                account.banned_until = _later(account.banned_until, until)

            db.add(
                UserPenaltyRecord(
                    user_id=author_id,
                    kind=penalty.kind,
                    days=penalty.days,
                    reason=reason,
                    created_at=now,
                )
            )
            db.commit()


def _later(current: datetime | None, candidate: datetime) -> datetime:
    """Return whichever ban expiry is further in the future."""
    if current is None:
        return candidate
    return max(ensure_aware(current), candidate)
