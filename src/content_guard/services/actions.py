# src/content_guard/services/actions.py
"""Executes automatic moderation decisions.

The executor applies the content status transition first. Notifications and
user penalties are follow-up effects: when they fail they are logged and
retried in the background, and never undo the status transition.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass

from content_guard.core.errors import ContentGuardError
from content_guard.schemas.moderation import (
    ContentType,
    FlaggingRulesConfiguration,
    ModerationQueueItem,
    ModerationResult,
    ModerationStatus,
    Severity,
)
from content_guard.services.decision import (
    AutoApprove,
    AutoFlag,
    AutomaticAction,
    AutoReject,
    RequireHumanReview,
)
from content_guard.services.queue import ModerationQueue
from content_guard.services.retry import RetryPolicy, SleepFn, with_retry
from content_guard.services.statistics import StatisticsAggregator
from content_guard.services.stores import (
    NOTIFY_PENALTY,
    NOTIFY_REJECTED,
    ContentStore,
    Notifier,
    UserPenalty,
)

logger = logging.getLogger(__name__)


class ActionExecutionError(ContentGuardError):
    """Raised when the content status transition itself cannot be applied."""


def penalty_for_severity(severity: Severity) -> UserPenalty | None:
    """Return the penalty an auto-rejection carries for a verdict severity."""
    if severity == Severity.CRITICAL:
        return UserPenalty.temporary_ban(days=7)
    if severity == Severity.HIGH:
        return UserPenalty.temporary_ban(days=3)
    if severity == Severity.MEDIUM:
        return UserPenalty.warning()
    return None


@dataclass(frozen=True)
class ExecutionOutcome:
    """What the executor did for one decision."""

    content_id: str
    action: AutomaticAction
    status_applied: ModerationStatus | None
    penalty: UserPenalty | None = None
    notified: bool = False
    queued: ModerationQueueItem | None = None
    # Follow-up effects that failed inline and were handed to background retry.
    deferred_errors: tuple[str, ...] = ()


class ActionExecutor:
    """Applies an AutomaticAction to content, its author and the review queue."""

    def __init__(
        self,
        *,
        store: ContentStore,
        notifier: Notifier,
        queue: ModerationQueue,
        statistics: StatisticsAggregator,
        retry_policy: RetryPolicy | None = None,
        sleep: SleepFn = asyncio.sleep,
    ) -> None:
        self.store = store
        self.notifier = notifier
        self.queue = queue
        self.statistics = statistics
        self.retry_policy = retry_policy or RetryPolicy()
        self._sleep = sleep
        self._background: set[asyncio.Task[None]] = set()

    async def execute(
        self,
        action: AutomaticAction,
        content_id: str,
        author_id: str,
        result: ModerationResult,
        *,
        content_type: ContentType | None = None,
        rules: FlaggingRulesConfiguration | None = None,
        content: str | None = None,
        image_urls: Sequence[str] = (),
    ) -> ExecutionOutcome:
        """Apply ``action`` for one content item.

        Callers guarantee this runs once per (content, verdict) pair.

        Raises:
            ActionExecutionError: The content status could not be changed.
        """
        rules = rules or FlaggingRulesConfiguration()
        content_type = content_type or result.content_type
        deferred: list[str] = []
        penalty: UserPenalty | None = None
        notified = False
        queued: ModerationQueueItem | None = None
        status: ModerationStatus | None = None

        if isinstance(action, AutoApprove):
            status = ModerationStatus.APPROVED
            await self._set_status(content_id, status)
            logger.info("Content auto-approved: %s", content_id)

        elif isinstance(action, AutoReject):
            status = ModerationStatus.REJECTED
            await self._set_status(content_id, status)
            logger.info("Content auto-rejected: %s - %s", content_id, action.reason)

            notified = await self._follow_up(
                f"notify {author_id} of rejection",
                lambda: self.notifier.notify_user(author_id, NOTIFY_REJECTED, action.reason),
                deferred,
            )

            penalty = penalty_for_severity(result.severity)
            if penalty is not None:
                await self._follow_up(
                    f"apply {penalty.describe()} to {author_id}",
                    lambda: self.store.apply_user_penalty(author_id, penalty, action.reason),
                    deferred,
                )
                await self._follow_up(
                    f"notify {author_id} of penalty",
                    lambda: self.notifier.notify_user(
                        author_id,
                        NOTIFY_PENALTY,
                        f"{penalty.describe().capitalize()}: {action.reason}",
                    ),
                    deferred,
                )
                logger.info("User penalty applied: %s - %s", author_id, penalty.describe())

        elif isinstance(action, AutoFlag):
            status = ModerationStatus.FLAGGED
            await self._set_status(content_id, status)
            logger.info("Content auto-flagged: %s - %s", content_id, action.reason)
            queued = await self.queue.mark_flagged(
                content_id,
                content_type,
                author_id,
                result,
                reports_threshold=rules.multiple_reports_threshold,
                rules_version=rules.version,
                content=content,
                image_urls=image_urls,
            )

        elif isinstance(action, RequireHumanReview):
            # Content is already pending; it only needs a place in the queue.
            queued = await self.queue.add(
                content_id,
                content_type,
                author_id,
                result,
                content=content,
                image_urls=image_urls,
                rules_version=rules.version,
            )
            logger.info("Content sent to human review: %s (%s)", content_id, queued.priority.value)

        else:  # pragma: no cover - exhaustive over AutomaticAction
            raise TypeError(f"Unknown automatic action: {action!r}")

        await self.statistics.record_decision(action, pii_detected=bool(result.detected_pii))

        return ExecutionOutcome(
            content_id=content_id,
            action=action,
            status_applied=status,
            penalty=penalty,
            notified=notified,
            queued=queued,
            deferred_errors=tuple(deferred),
        )

    async def drain(self) -> None:
        """Wait for background follow-up retries to finish."""
        while self._background:
            await asyncio.gather(*list(self._background), return_exceptions=True)

    @property
    def pending_follow_ups(self) -> int:
        return len(self._background)

    async def _set_status(self, content_id: str, status: ModerationStatus) -> None:
        try:
            await with_retry(
                lambda: self.store.set_content_status(content_id, status),
                policy=self.retry_policy,
                sleep=self._sleep,
                description=f"set status of {content_id}",
            )
        except Exception as exc:
            raise ActionExecutionError(
                f"Could not set status of {content_id} to {status.value}: {exc}"
            ) from exc

    async def _follow_up(
        self,
        description: str,
        operation: Callable[[], Awaitable[None]],
        deferred: list[str],
    ) -> bool:
        """Run a follow-up effect; on failure hand it to a background retry."""
        try:
            await operation()
            return True
        except Exception as exc:
            logger.warning("Failed to %s, retrying in background: %s", description, exc)
            deferred.append(description)
            task = asyncio.create_task(self._retry_follow_up(description, operation))
            self._background.add(task)
            task.add_done_callback(self._background.discard)
            return False

    async def _retry_follow_up(
        self, description: str, operation: Callable[[], Awaitable[None]]
    ) -> None:
        try:
            await with_retry(
                operation,
                policy=self.retry_policy,
                should_retry=lambda exc: True,
                sleep=self._sleep,
                description=description,
            )
        except Exception:
            logger.exception("Giving up on follow-up: %s", description)
