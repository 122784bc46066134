# src/content_guard/services/processor.py
"""Batch moderation pipeline: moderate, decide, execute.

``FlaggingEngine`` owns every collaborator the pipeline needs. Each content
item runs as its own task inside a rate-limited slot, and one item's failure
never affects its siblings.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from typing import Any, Final

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from content_guard.core.errors import ContentValidationError, ModerationModelError
from content_guard.core.settings import settings
from content_guard.schemas.moderation import (
    ContentType,
    FlaggingRulesConfiguration,
    FlaggingStatistics,
    ModerationQueueItem,
    ModerationResult,
)
from content_guard.services.actions import ActionExecutor, ExecutionOutcome
from content_guard.services.decision import (
    AuthorContext,
    AutomaticAction,
    decide,
)
from content_guard.services.idempotency import IdempotencyGuard
from content_guard.services.moderation_model import ModerationModel
from content_guard.services.queue import ModerationQueue
from content_guard.services.rate_limit import RateLimitedExecutor
from content_guard.services.retry import RetryPolicy, SleepFn, is_transient, with_retry
from content_guard.services.rules import RulesProvider
from content_guard.services.statistics import StatisticsAggregator
from content_guard.services.stores import ContentStore, LoggingNotifier, Notifier
from content_guard.utils.hash import dedup_key

logger = logging.getLogger(__name__)

OUTCOME_DECIDED: Final[str] = "decided"
OUTCOME_DUPLICATE: Final[str] = "duplicate"
OUTCOME_FAILED: Final[str] = "failed"

ERROR_TRANSIENT: Final[str] = "transient"
ERROR_VALIDATION: Final[str] = "validation"
ERROR_MODEL: Final[str] = "model"
ERROR_INTERNAL: Final[str] = "internal"


class ContentBatchItem(BaseModel):
    """One piece of content submitted for moderation."""

    model_config = ConfigDict(frozen=True, str_strip_whitespace=True)

    content_id: str = Field(..., min_length=1, max_length=64)
    content_type: ContentType
    author_id: str = Field(..., min_length=1)
    text: str | None = None
    # Opaque references (URLs or storage keys); never fetched by the engine.
    images: tuple[str, ...] = ()

    @field_validator("images")
    @classmethod
    def _drop_blank_images(cls, value: tuple[str, ...]) -> tuple[str, ...]:
        return tuple(ref for ref in (v.strip() for v in value) if ref)

    @property
    def has_content(self) -> bool:
        return bool(self.text) or bool(self.images)


@dataclass(frozen=True)
class ContentProcessingResult:
    """Per-item outcome of a batch run."""

    content_id: str
    outcome: str
    moderation_result: ModerationResult | None = None
    automatic_action: AutomaticAction | None = None
    requires_human_review: bool = False
    error: str | None = None
    error_kind: str | None = None
    execution: ExecutionOutcome | None = None

    @property
    def succeeded(self) -> bool:
        return self.outcome != OUTCOME_FAILED


def classify_error(exc: BaseException) -> str:
    """Map a pipeline error to the ``error_kind`` reported for the item."""
    if isinstance(exc, (ContentValidationError, ValidationError)):
        return ERROR_VALIDATION
    if is_transient(exc):
        return ERROR_TRANSIENT
    if isinstance(exc, ModerationModelError):
        return ERROR_MODEL
    return ERROR_INTERNAL


class FlaggingEngine:
    """Automatic content flagging for batches of user content.

    Args:
        model: Source of moderation verdicts.
        store: Content status and author signals.
        notifier: User and moderator notifications. Defaults to logging only.
        rules: Rules provider, or an initial rules snapshot.
        executor: Concurrency bound for in-flight items.
        model_timeout: Seconds allowed for a single model call.
    """

    def __init__(
        self,
        model: ModerationModel,
        store: ContentStore,
        notifier: Notifier | None = None,
        *,
        rules: RulesProvider | FlaggingRulesConfiguration | None = None,
        executor: RateLimitedExecutor | None = None,
        statistics: StatisticsAggregator | None = None,
        queue: ModerationQueue | None = None,
        idempotency: IdempotencyGuard | None = None,
        retry_policy: RetryPolicy | None = None,
        model_timeout: float | None = None,
        sleep: SleepFn = asyncio.sleep,
    ) -> None:
        self.model = model
        self.store = store
        self.notifier = notifier or LoggingNotifier()
        if isinstance(rules, FlaggingRulesConfiguration):
            rules = RulesProvider(rules)
        self.rules = rules or RulesProvider()
        self.executor = executor or RateLimitedExecutor(settings.moderation_max_concurrency)
        self.stats = statistics or StatisticsAggregator()
        self.queue = queue or ModerationQueue(self.notifier)
        self.idempotency = idempotency or IdempotencyGuard()
        self.retry_policy = retry_policy or RetryPolicy.from_settings(settings)
        self.model_timeout = (
            settings.moderation_model_timeout_seconds if model_timeout is None else model_timeout
        )
        self._sleep = sleep
        self._decisions: set[asyncio.Task[tuple[AutomaticAction, ExecutionOutcome]]] = set()
        self.actions = ActionExecutor(
            store=self.store,
            notifier=self.notifier,
            queue=self.queue,
            statistics=self.stats,
            retry_policy=self.retry_policy,
            sleep=sleep,
        )

    # -- batch processing -----------------------------------------------------

    async def process_batch(
        self, items: Iterable[ContentBatchItem | Mapping[str, Any]]
    ) -> list[ContentProcessingResult]:
        """Moderate every item concurrently; one result per item, in input order."""
        tasks = [asyncio.create_task(self.process_and_flag(item)) for item in items]
        if not tasks:
            return []
        logger.info("Processing moderation batch of %d item(s)", len(tasks))
        try:
            return list(await asyncio.gather(*tasks))
        except asyncio.CancelledError:
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
            raise

    async def process_and_flag(
        self, item: ContentBatchItem | Mapping[str, Any]
    ) -> ContentProcessingResult:
        """Run one item through moderate, decide and execute."""
        content_id = _raw_content_id(item)
        try:
            batch_item = (
                item if isinstance(item, ContentBatchItem) else ContentBatchItem.model_validate(item)
            )
        except ValidationError as exc:
            return await self._failed(content_id, exc)

        async with self.executor.slot():
            try:
                result = await self._moderate(batch_item)
                author = await self._author_context(batch_item.author_id)
            except Exception as exc:
                return await self._failed(batch_item.content_id, exc)

            key = dedup_key(batch_item.content_id, result.fingerprint())
            if not await self.idempotency.claim(key):
                logger.info("Skipping duplicate verdict for %s", batch_item.content_id)
                await self.stats.record_duplicate()
                return ContentProcessingResult(
                    content_id=batch_item.content_id,
                    outcome=OUTCOME_DUPLICATE,
                    moderation_result=result,
                    requires_human_review=result.requires_human_review,
                )

            # Once a decision exists it is carried out in full even if the
            # caller is cancelled.
            decision = asyncio.create_task(self._decide_and_execute(batch_item, result, author))
            self._decisions.add(decision)
            decision.add_done_callback(self._decisions.discard)
            try:
                action, execution = await asyncio.shield(decision)
            except Exception as exc:
                await self.idempotency.release(key)
                return await self._failed(batch_item.content_id, exc, moderation_result=result)

        return ContentProcessingResult(
            content_id=batch_item.content_id,
            outcome=OUTCOME_DECIDED,
            moderation_result=result,
            automatic_action=action,
            requires_human_review=result.requires_human_review,
            execution=execution,
        )

    # -- reports, re-evaluation and introspection -----------------------------

    async def report_content(self, content_id: str) -> ModerationQueueItem | None:
        """Record a community report; returns the queue item if the content is queued."""
        if not content_id or not content_id.strip():
            raise ContentValidationError("content_id must not be empty")
        threshold = self.rules.current().multiple_reports_threshold
        return await self.queue.record_report(content_id, threshold=threshold)

    def content_for_re_evaluation(self, limit: int = 100) -> list[str]:
        """Content decided under an older rules version, in review order."""
        return self.queue.re_evaluation_candidates(
            limit, current_rules_version=self.rules.version
        )

    def statistics(self) -> FlaggingStatistics:
        return self.stats.snapshot()

    def update_rules(self, **changes: Any) -> FlaggingRulesConfiguration:
        return self.rules.update(**changes)

    async def close(self) -> None:
        """Wait for in-flight decisions and follow-ups, then release the model and Redis clients."""
        if self._decisions:
            await asyncio.gather(*list(self._decisions), return_exceptions=True)
        await self.actions.drain()
        await self.idempotency.close()
        close = getattr(self.model, "close", None)
        if close is not None:
            await close()

    # -- internals ------------------------------------------------------------

    async def _moderate(self, item: ContentBatchItem) -> ModerationResult:
        if not item.has_content:
            return ModerationResult.approved(item.content_id, item.content_type)

        async def attempt() -> ModerationResult:
            return await asyncio.wait_for(
                self.model.moderate(
                    item.content_id,
                    item.content_type,
                    item.author_id,
                    text=item.text,
                    images=item.images,
                ),
                timeout=self.model_timeout,
            )

        return await with_retry(
            attempt,
            policy=self.retry_policy,
            sleep=self._sleep,
            description=f"moderate {item.content_id}",
        )

    async def _author_context(self, author_id: str) -> AuthorContext:
        reputation = await with_retry(
            lambda: self.store.get_user_reputation(author_id),
            policy=self.retry_policy,
            sleep=self._sleep,
            description=f"reputation of {author_id}",
        )
        is_new = await with_retry(
            lambda: self.store.is_new_user(author_id),
            policy=self.retry_policy,
            sleep=self._sleep,
            description=f"account age of {author_id}",
        )
        return AuthorContext(author_id=author_id, reputation=reputation, is_new_user=is_new)

    async def _decide_and_execute(
        self, item: ContentBatchItem, result: ModerationResult, author: AuthorContext
    ) -> tuple[AutomaticAction, ExecutionOutcome]:
        rules = self.rules.current()
        action = decide(result, author, rules)
        execution = await self.actions.execute(
            action,
            item.content_id,
            item.author_id,
            result,
            content_type=item.content_type,
            rules=rules,
            content=item.text,
            image_urls=item.images,
        )
        return action, execution

    async def _failed(
        self,
        content_id: str,
        exc: Exception,
        *,
        moderation_result: ModerationResult | None = None,
    ) -> ContentProcessingResult:
        kind = classify_error(exc)
        if kind == ERROR_INTERNAL:
            logger.exception("Unexpected error processing %s", content_id)
        else:
            logger.warning("Processing %s failed (%s): %s", content_id, kind, exc)
        await self.stats.record_failure(kind)
        return ContentProcessingResult(
            content_id=content_id,
            outcome=OUTCOME_FAILED,
            moderation_result=moderation_result,
            requires_human_review=(
                moderation_result is not None and moderation_result.requires_human_review
            ),
            error=str(exc),
            error_kind=kind,
        )


def _raw_content_id(item: ContentBatchItem | Mapping[str, Any]) -> str:
    if isinstance(item, ContentBatchItem):
        return item.content_id
    value = item.get("content_id") if isinstance(item, Mapping) else None
    return str(value) if value is not None else ""
