# src/content_guard/services/queue.py
"""Human-review queue ordered by priority, then age."""

from __future__ import annotations

import asyncio
import logging
from collections import Counter
from collections.abc import Sequence
from dataclasses import dataclass
from datetime import datetime, timedelta

from content_guard.core.settings import settings
from content_guard.db.time import utcnow
from content_guard.schemas.moderation import (
    ContentType,
    ModerationPriority,
    ModerationQueueItem,
    ModerationResult,
    QueueStatistics,
    Severity,
)
from content_guard.services.stores import Notifier

logger = logging.getLogger(__name__)

CRITICAL_REPORT_COUNT = 5
HIGH_REPORT_COUNT = 3
MEDIUM_REPORT_COUNT = 1


def determine_priority(result: ModerationResult, report_count: int) -> ModerationPriority:
    """Compute review priority from verdict severity and community reports."""
    severity = result.severity
    if severity == Severity.CRITICAL or report_count >= CRITICAL_REPORT_COUNT:
        return ModerationPriority.CRITICAL
    if severity == Severity.HIGH or report_count >= HIGH_REPORT_COUNT:
        return ModerationPriority.HIGH
    if severity == Severity.MEDIUM or report_count >= MEDIUM_REPORT_COUNT:
        return ModerationPriority.MEDIUM
    return ModerationPriority.LOW


@dataclass(frozen=True)
class _FlaggedContent:
    """Auto-flagged content that joins the queue once reports pile up."""

    content_id: str
    content_type: ContentType
    author_id: str
    result: ModerationResult
    rules_version: int
    content: str | None
    image_urls: tuple[str, ...]
    flagged_at: datetime


class ModerationQueue:
    """In-process review queue keyed by content id.

    Iteration and dequeue order is priority ``sort_order`` ascending (critical
    first) with ties broken by ``created_at`` ascending (oldest first).

    Report counts and flagged content not yet in the queue are bounded:
    at most ``max_tracked`` entries each, least recently touched dropped first,
    and flagged content older than ``flagged_retention_seconds`` is forgotten.
    """

    def __init__(
        self,
        notifier: Notifier | None = None,
        *,
        max_tracked: int | None = None,
        flagged_retention_seconds: int | None = None,
    ) -> None:
        self._notifier = notifier
        self._max_tracked = max(
            1, settings.queue_max_tracked_content if max_tracked is None else max_tracked
        )
        self._flagged_retention = timedelta(
            seconds=settings.flagged_retention_seconds
            if flagged_retention_seconds is None
            else flagged_retention_seconds
        )
        self._lock = asyncio.Lock()
        self._items: dict[str, ModerationQueueItem] = {}
        self._flagged: dict[str, _FlaggedContent] = {}
        self._report_counts: Counter[str] = Counter()

    def __len__(self) -> int:
        return len(self._items)

    def __contains__(self, content_id: object) -> bool:
        return content_id in self._items

    def get(self, content_id: str) -> ModerationQueueItem | None:
        return self._items.get(content_id)

    def is_flagged(self, content_id: str) -> bool:
        return content_id in self._flagged

    def report_count(self, content_id: str) -> int:
        return self._report_counts[content_id]

    async def enqueue(self, item: ModerationQueueItem) -> ModerationQueueItem:
        """Insert an item, or replace the queued item for the same content.

        A replacement keeps the original item's id and ``created_at`` so the
        content does not lose its place in line.
        """
        async with self._lock:
            stored = self._store(item)
        await self._alert_if_high_priority(stored)
        return stored

    async def add(
        self,
        content_id: str,
        content_type: ContentType,
        author_id: str,
        result: ModerationResult,
        *,
        report_count: int | None = None,
        content: str | None = None,
        image_urls: Sequence[str] = (),
        rules_version: int = 1,
    ) -> ModerationQueueItem:
        """Build a queue item with a computed priority and enqueue it."""
        if report_count is None:
            report_count = self._report_counts[content_id]
        item = ModerationQueueItem(
            content_id=content_id,
            content_type=content_type,
            author_id=author_id,
            content=content,
            image_urls=tuple(image_urls),
            moderation_result=result,
            report_count=report_count,
            priority=determine_priority(result, report_count),
            rules_version=rules_version,
        )
        return await self.enqueue(item)

    async def dequeue_next_for_review(self) -> ModerationQueueItem | None:
        """Remove and return the item a moderator should look at next."""
        async with self._lock:
            if not self._items:
                return None
            item = min(self._items.values(), key=ModerationQueueItem.sort_key)
            del self._items[item.content_id]
            return item

    def peek(self) -> ModerationQueueItem | None:
        if not self._items:
            return None
        return min(self._items.values(), key=ModerationQueueItem.sort_key)

    def items(
        self,
        *,
        priority: ModerationPriority | None = None,
        content_type: ContentType | None = None,
        limit: int = 50,
    ) -> list[ModerationQueueItem]:
        """Return queued items in review order, optionally filtered."""
        ordered = sorted(self._items.values(), key=ModerationQueueItem.sort_key)
        if priority is not None:
            ordered = [item for item in ordered if item.priority == priority]
        if content_type is not None:
            ordered = [item for item in ordered if item.content_type == content_type]
        return ordered[: max(0, limit)]

    async def remove(self, content_id: str) -> bool:
        """Drop content from the queue once a moderator has acted on it."""
        async with self._lock:
            self._flagged.pop(content_id, None)
            self._report_counts.pop(content_id, None)
            return self._items.pop(content_id, None) is not None

    async def mark_flagged(
        self,
        content_id: str,
        content_type: ContentType,
        author_id: str,
        result: ModerationResult,
        *,
        reports_threshold: int,
        rules_version: int = 1,
        content: str | None = None,
        image_urls: Sequence[str] = (),
    ) -> ModerationQueueItem | None:
        """Register auto-flagged content as eligible for review.

        Returns the queue item if the content already has enough reports to
        be queued straight away.
        """
        now = utcnow()
        async with self._lock:
            self._flagged.pop(content_id, None)
            self._flagged[content_id] = _FlaggedContent(
                content_id=content_id,
                content_type=content_type,
                author_id=author_id,
                result=result,
                rules_version=rules_version,
                content=content,
                image_urls=tuple(image_urls),
                flagged_at=now,
            )
            self._trim_flagged(now)
            queued = self._promote_if_reported(content_id, reports_threshold)
        if queued is not None:
            await self._alert_if_high_priority(queued)
        return queued

    async def record_report(
        self, content_id: str, *, threshold: int
    ) -> ModerationQueueItem | None:
        """Count a community report against content.

        Queued content has its report count and priority refreshed. Flagged
        content enters the queue once its count reaches ``threshold``.
        Returns the queue item for the content, if it is queued.
        """
        async with self._lock:
            self._trim_flagged(utcnow())
            count = self._report_counts.pop(content_id, 0) + 1
            self._report_counts[content_id] = count
            self._trim_report_counts()
            existing = self._items.get(content_id)
            if existing is not None:
                queued: ModerationQueueItem | None = self._store(
                    existing.model_copy(
                        update={
                            "report_count": count,
                            "priority": determine_priority(existing.moderation_result, count),
                        }
                    )
                )
            else:
                queued = self._promote_if_reported(content_id, threshold)
        if queued is not None:
            await self._alert_if_high_priority(queued)
        return queued

    def re_evaluation_candidates(
        self, limit: int = 100, *, current_rules_version: int | None = None
    ) -> list[str]:
        """Return content ids whose automatic decision may be stale.

        Queued items come first in review order, followed by flagged content
        oldest first. When ``current_rules_version`` is given, only content
        decided under an older rules version is returned.
        """
        def stale(version: int) -> bool:
            return current_rules_version is None or version < current_rules_version

        candidates = [
            item.content_id
            for item in sorted(self._items.values(), key=ModerationQueueItem.sort_key)
            if stale(item.rules_version)
        ]
        candidates.extend(
            entry.content_id
            for entry in sorted(self._flagged.values(), key=lambda e: e.flagged_at)
            if stale(entry.rules_version) and entry.content_id not in self._items
        )
        return candidates[: max(0, limit)]

    def statistics(self) -> QueueStatistics:
        items = list(self._items.values())
        now = utcnow()
        waits = [int((now - item.created_at).total_seconds() // 60) for item in items]
        return QueueStatistics(
            total_items=len(items),
            high_priority_items=sum(1 for item in items if item.is_high_priority),
            flagged_items=sum(1 for item in items if item.flagged),
            average_wait_minutes=sum(waits) // len(waits) if waits else 0,
        )

    # -- internals ------------------------------------------------------------

    def _store(self, item: ModerationQueueItem) -> ModerationQueueItem:
        existing = self._items.get(item.content_id)
        if existing is not None:
            item = item.model_copy(
                update={
                    "id": existing.id,
                    "created_at": existing.created_at,
                    "updated_at": utcnow(),
                    "flagged": existing.flagged or item.flagged,
                }
            )
        self._items[item.content_id] = item
        return item

    def _trim_report_counts(self) -> None:
        excess = len(self._report_counts) - self._max_tracked
        if excess <= 0:
            return
        # Counts of queued content are kept.
        evictable = [cid for cid in self._report_counts if cid not in self._items]
        for content_id in evictable[:excess]:
            del self._report_counts[content_id]

    def _trim_flagged(self, now: datetime) -> None:
        cutoff = now - self._flagged_retention
        expired = [cid for cid, entry in self._flagged.items() if entry.flagged_at < cutoff]
        for content_id in expired:
            del self._flagged[content_id]
        overflow = max(0, len(self._flagged) - self._max_tracked)
        for content_id in list(self._flagged)[:overflow]:
            del self._flagged[content_id]
        if expired or overflow:
            logger.info(
                "Dropped %d flagged item(s) that never reached the report threshold",
                len(expired) + overflow,
            )

    def _promote_if_reported(
        self, content_id: str, threshold: int
    ) -> ModerationQueueItem | None:
        entry = self._flagged.get(content_id)
        count = self._report_counts[content_id]
        if entry is None or count < threshold:
            return None
        del self._flagged[content_id]
        logger.info(
            "Flagged content %s reached %d report(s); queueing for review", content_id, count
        )
        return self._store(
            ModerationQueueItem(
                content_id=entry.content_id,
                content_type=entry.content_type,
                author_id=entry.author_id,
                content=entry.content,
                image_urls=entry.image_urls,
                moderation_result=entry.result,
                report_count=count,
                priority=determine_priority(entry.result, count),
                rules_version=entry.rules_version,
                flagged=True,
            )
        )

    async def _alert_if_high_priority(self, item: ModerationQueueItem) -> None:
        if self._notifier is None or not item.is_high_priority:
            return
        try:
            await self._notifier.notify_moderators(item)
        except Exception:
            logger.exception("Failed to alert moderators about queue item %s", item.id)
