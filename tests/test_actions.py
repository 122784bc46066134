# tests/test_actions.py
from __future__ import annotations

import pytest

from content_guard.schemas.moderation import (
    ContentType,
    FlaggingRulesConfiguration,
    ModerationFlag,
    ModerationStatus,
    Severity,
)
from content_guard.services.actions import (
    ActionExecutionError,
    ActionExecutor,
    penalty_for_severity,
)
from content_guard.services.decision import AutoApprove, AutoFlag, AutoReject, RequireHumanReview
from content_guard.services.queue import ModerationQueue
from content_guard.services.retry import RetryPolicy
from content_guard.services.statistics import StatisticsAggregator
from content_guard.services.stores import InMemoryContentStore, UserPenalty


async def _no_sleep(delay: float) -> None:
    return None


def build_executor(store, notifier) -> ActionExecutor:
    return ActionExecutor(
        store=store,
        notifier=notifier,
        queue=ModerationQueue(notifier),
        statistics=StatisticsAggregator(),
        retry_policy=RetryPolicy(max_attempts=3, initial_delay=0.0),
        sleep=_no_sleep,
    )


@pytest.mark.parametrize(
    ("severity", "expected"),
    [
        (Severity.CRITICAL, UserPenalty.temporary_ban(7)),
        (Severity.HIGH, UserPenalty.temporary_ban(3)),
        (Severity.MEDIUM, UserPenalty.warning()),
        (Severity.LOW, None),
    ],
)
def test_penalty_for_severity(severity, expected) -> None:
    assert penalty_for_severity(severity) == expected


@pytest.mark.asyncio
async def test_approve_sets_status_without_notifying(make_result, store, notifier) -> None:
    executor = build_executor(store, notifier)

    outcome = await executor.execute(AutoApprove(), "c1", "author", make_result("c1"))

    assert outcome.status_applied == ModerationStatus.APPROVED
    assert store.statuses["c1"] == ModerationStatus.APPROVED
    assert notifier.user_notifications == []
    assert executor.statistics.snapshot().auto_approved == 1


@pytest.mark.asyncio
async def test_reject_notifies_and_penalizes_author(make_result, store, notifier) -> None:
    executor = build_executor(store, notifier)
    result = make_result("c1", flags=[ModerationFlag.HARASSMENT])

    outcome = await executor.execute(AutoReject("Harassment detected"), "c1", "author", result)

    assert store.statuses["c1"] == ModerationStatus.REJECTED
    assert outcome.penalty == UserPenalty.temporary_ban(3)
    assert store.penalties["author"] == [UserPenalty.temporary_ban(3)]
    assert outcome.notified
    assert notifier.user_notifications == [
        ("author", "rejected", "Harassment detected"),
        ("author", "penalty", "Temporary ban (3 days): Harassment detected"),
    ]
    assert executor.statistics.snapshot().auto_rejected == 1


@pytest.mark.asyncio
async def test_low_severity_rejection_has_no_penalty(make_result, store, notifier) -> None:
    executor = build_executor(store, notifier)

    outcome = await executor.execute(
        AutoReject("Personal information detected"), "c1", "author", make_result("c1", pii=True)
    )

    assert outcome.penalty is None
    assert store.penalties == {}
    assert notifier.user_notifications == [("author", "rejected", "Personal information detected")]
    snapshot = executor.statistics.snapshot()
    assert snapshot.pii_detected == 1


@pytest.mark.asyncio
async def test_notification_failure_is_retried_in_background(make_result, store, notifier) -> None:
    notifier.fail_times = 2
    executor = build_executor(store, notifier)
    result = make_result("c1", flags=[ModerationFlag.MISINFORMATION])

    outcome = await executor.execute(AutoReject("Misleading"), "c1", "author", result)

    # Status and statistics are not rolled back by the failed notification.
    assert store.statuses["c1"] == ModerationStatus.REJECTED
    assert not outcome.notified
    assert outcome.deferred_errors
    assert executor.statistics.snapshot().auto_rejected == 1

    await executor.drain()

    assert ("author", "rejected", "Misleading") in notifier.user_notifications
    assert ("author", "penalty", "Warning: Misleading") in notifier.user_notifications
    assert executor.pending_follow_ups == 0


@pytest.mark.asyncio
async def test_status_failure_propagates_without_recording_decision(
    make_result, notifier, mocker
) -> None:
    store = InMemoryContentStore()
    mocker.patch.object(
        store, "set_content_status", mocker.AsyncMock(side_effect=ConnectionError("db down"))
    )
    executor = build_executor(store, notifier)

    with pytest.raises(ActionExecutionError):
        await executor.execute(AutoApprove(), "c1", "author", make_result("c1"))

    assert store.set_content_status.await_count == 3
    assert executor.statistics.snapshot().total_processed == 0


@pytest.mark.asyncio
async def test_flag_registers_content_for_reports(make_result, store, notifier) -> None:
    executor = build_executor(store, notifier)
    rules = FlaggingRulesConfiguration(multiple_reports_threshold=2)
    result = make_result("c1", flags=[ModerationFlag.SPAM])

    outcome = await executor.execute(
        AutoFlag("Potential spam detected"), "c1", "author", result, rules=rules
    )

    assert store.statuses["c1"] == ModerationStatus.FLAGGED
    assert outcome.queued is None
    assert executor.queue.is_flagged("c1")
    assert "c1" not in executor.queue

    await executor.queue.record_report("c1", threshold=rules.multiple_reports_threshold)
    item = await executor.queue.record_report("c1", threshold=rules.multiple_reports_threshold)
    assert item is not None and item.flagged


@pytest.mark.asyncio
async def test_human_review_queues_without_status_change(make_result, store, notifier) -> None:
    executor = build_executor(store, notifier)
    result = make_result("c1", flags=[ModerationFlag.OTHER], content_type=ContentType.REVIEW)

    outcome = await executor.execute(
        RequireHumanReview(),
        "c1",
        "author",
        result,
        content="Five stars, call me",
        image_urls=["s3://bucket/img.png"],
    )

    assert outcome.status_applied is None
    assert "c1" not in store.statuses
    assert outcome.queued is not None
    assert outcome.queued.content_type == ContentType.REVIEW
    assert outcome.queued.image_urls == ("s3://bucket/img.png",)
    assert executor.statistics.snapshot().sent_to_human_review == 1
