"""Moderation endpoints: batch flagging, reports, review queue and rules."""

from __future__ import annotations

from fastapi import APIRouter, HTTPException, Query, Response, status

from content_guard.api.v1.dependencies import EngineDep
from content_guard.core.errors import ContentValidationError
from content_guard.schemas.api import (
    BatchModerationRequest,
    BatchModerationResponse,
    FlaggingRulesUpdate,
    ProcessingResultResponse,
    ReEvaluationResponse,
)
from content_guard.schemas.moderation import (
    ContentType,
    FlaggingRulesConfiguration,
    FlaggingStatistics,
    ModerationPriority,
    ModerationQueueItem,
    QueueStatistics,
)
from content_guard.services.decision import action_reason
from content_guard.services.processor import (
    OUTCOME_DECIDED,
    OUTCOME_DUPLICATE,
    OUTCOME_FAILED,
    ContentProcessingResult,
)

router = APIRouter(prefix="/moderation", tags=["moderation"])


def _to_response(result: ContentProcessingResult) -> ProcessingResultResponse:
    verdict = result.moderation_result
    action = result.automatic_action
    return ProcessingResultResponse(
        content_id=result.content_id,
        outcome=result.outcome,
        action=action.kind if action is not None else None,
        reason=action_reason(action) if action is not None else None,
        requires_human_review=result.requires_human_review,
        severity=verdict.severity if verdict is not None else None,
        flags=list(verdict.flags) if verdict is not None else [],
        confidence=verdict.confidence if verdict is not None else None,
        pii_detected=bool(verdict.detected_pii) if verdict is not None else False,
        error=result.error,
        error_kind=result.error_kind,
    )


@router.post("/batch", response_model=BatchModerationResponse)
async def moderate_batch(
    payload: BatchModerationRequest,
    engine: EngineDep,
) -> BatchModerationResponse:
    """Moderate a batch of content and apply the automatic decisions."""
    results = await engine.process_batch(payload.items)
    return BatchModerationResponse(
        results=[_to_response(result) for result in results],
        decided=sum(1 for result in results if result.outcome == OUTCOME_DECIDED),
        duplicates=sum(1 for result in results if result.outcome == OUTCOME_DUPLICATE),
        failed=sum(1 for result in results if result.outcome == OUTCOME_FAILED),
    )


@router.post(
    "/content/{content_id}/reports",
    response_model=ModerationQueueItem | None,
)
async def report_content(
    content_id: str,
    engine: EngineDep,
    response: Response,
) -> ModerationQueueItem | None:
    """Record a community report against content.

    Returns the review-queue item when the content is queued, otherwise an
    empty 202 response.
    """
    try:
        item = await engine.report_content(content_id)
    except ContentValidationError as err:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail=str(err),
        ) from err
    if item is None:
        response.status_code = status.HTTP_202_ACCEPTED
    return item


@router.get("/queue", response_model=list[ModerationQueueItem])
async def get_review_queue(
    engine: EngineDep,
    priority: ModerationPriority | None = Query(None),
    content_type: ContentType | None = Query(None),
    limit: int = Query(50, ge=1, le=100),
) -> list[ModerationQueueItem]:
    """List items awaiting human review, most urgent first."""
    return engine.queue.items(priority=priority, content_type=content_type, limit=limit)


@router.post("/queue/next", response_model=ModerationQueueItem)
async def next_for_review(engine: EngineDep) -> ModerationQueueItem:
    """Take the next item off the review queue."""
    item = await engine.queue.dequeue_next_for_review()
    if item is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Review queue is empty",
        )
    return item


@router.get("/queue/stats", response_model=QueueStatistics)
async def get_queue_statistics(engine: EngineDep) -> QueueStatistics:
    return engine.queue.statistics()


@router.get("/statistics", response_model=FlaggingStatistics)
async def get_flagging_statistics(engine: EngineDep) -> FlaggingStatistics:
    return engine.statistics()


@router.get("/rules", response_model=FlaggingRulesConfiguration)
async def get_rules(engine: EngineDep) -> FlaggingRulesConfiguration:
    return engine.rules.current()


@router.patch("/rules", response_model=FlaggingRulesConfiguration)
async def update_rules(
    payload: FlaggingRulesUpdate,
    engine: EngineDep,
) -> FlaggingRulesConfiguration:
    """Publish a new rules snapshot with the given fields changed."""
    changes = payload.model_dump(exclude_unset=True, exclude_none=True)
    try:
        return engine.update_rules(**changes)
    except ContentValidationError as err:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail=str(err),
        ) from err


@router.get("/re-evaluation", response_model=ReEvaluationResponse)
async def get_re_evaluation_candidates(
    engine: EngineDep,
    limit: int = Query(100, ge=1, le=1000),
) -> ReEvaluationResponse:
    """Content whose automatic decision predates the current rules."""
    return ReEvaluationResponse(
        rules_version=engine.rules.version,
        content_ids=engine.content_for_re_evaluation(limit),
    )
