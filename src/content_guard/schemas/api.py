# src/content_guard/schemas/api.py
"""Request and response bodies for the moderation HTTP API."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field

from content_guard.schemas.moderation import ModerationFlag, Severity

MAX_BATCH_SIZE = 500


class BatchModerationRequest(BaseModel):
    """Content to moderate. Items are validated one by one by the engine."""

    items: list[dict[str, Any]] = Field(..., max_length=MAX_BATCH_SIZE)


class ProcessingResultResponse(BaseModel):
    """Outcome for one submitted item."""

    content_id: str
    outcome: str
    action: str | None = None
    reason: str | None = None
    requires_human_review: bool = False
    severity: Severity | None = None
    flags: list[ModerationFlag] = Field(default_factory=list)
    confidence: float | None = None
    pii_detected: bool = False
    error: str | None = None
    error_kind: str | None = None


class BatchModerationResponse(BaseModel):
    results: list[ProcessingResultResponse]
    decided: int
    duplicates: int
    failed: int


class FlaggingRulesUpdate(BaseModel):
    """Partial update of the flagging rules; omitted fields keep their value."""

    auto_reject_threshold: float | None = Field(default=None, ge=0.0, le=1.0)
    auto_flag_threshold: float | None = Field(default=None, ge=0.0, le=1.0)
    pii_auto_reject: bool | None = None
    harassment_auto_reject: bool | None = None
    hate_speech_auto_reject: bool | None = None
    spam_auto_flag: bool | None = None
    multiple_reports_threshold: int | None = Field(default=None, ge=1)
    new_user_stricter_rules: bool | None = None


class ReEvaluationResponse(BaseModel):
    rules_version: int
    content_ids: list[str]
