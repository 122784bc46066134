# src/content_guard/schemas/moderation.py
"""Moderation verdicts, flagging rules and review-queue schemas."""

from __future__ import annotations

import uuid
from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, computed_field, field_validator

from content_guard.db.time import utcnow
from content_guard.utils.hash import blake3_hexdigest


class ContentType(str, Enum):
    """Kinds of user-generated content the engine moderates."""

    REVIEW = "review"
    POST = "post"
    COMMENT = "comment"
    IMAGE = "image"


class ModerationStatus(str, Enum):
    """Lifecycle status of a content item."""

    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    FLAGGED = "flagged"
    APPEALED = "appealed"
    UNDER_REVIEW = "under_review"


class Severity(str, Enum):
    """Ordinal violation seriousness."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"

    @property
    def rank(self) -> int:
        return _SEVERITY_RANK[self]

    @property
    def auto_action_threshold(self) -> float:
        """Confidence below which a verdict of this severity needs a human."""
        return _AUTO_ACTION_THRESHOLDS[self]


_SEVERITY_RANK = {
    Severity.LOW: 0,
    Severity.MEDIUM: 1,
    Severity.HIGH: 2,
    Severity.CRITICAL: 3,
}

_AUTO_ACTION_THRESHOLDS = {
    Severity.LOW: 0.9,
    Severity.MEDIUM: 0.8,
    Severity.HIGH: 0.7,
    Severity.CRITICAL: 0.6,
}


class ModerationFlag(str, Enum):
    """Violation categories reported by the moderation model."""

    PERSONAL_INFORMATION = "personal_information"
    INAPPROPRIATE_CONTENT = "inappropriate_content"
    SPAM = "spam"
    HARASSMENT = "harassment"
    VIOLENT_CONTENT = "violent_content"
    HATE_SPEECH = "hate_speech"
    SEXUAL_CONTENT = "sexual_content"
    MISINFORMATION = "misinformation"
    COPYRIGHT_VIOLATION = "copyright_violation"
    OTHER = "other"

    @property
    def severity(self) -> Severity:
        return _FLAG_SEVERITY[self]

    @property
    def description(self) -> str:
        return _FLAG_DESCRIPTIONS[self]


_FLAG_SEVERITY = {
    ModerationFlag.PERSONAL_INFORMATION: Severity.HIGH,
    ModerationFlag.HARASSMENT: Severity.HIGH,
    ModerationFlag.HATE_SPEECH: Severity.HIGH,
    ModerationFlag.VIOLENT_CONTENT: Severity.HIGH,
    ModerationFlag.INAPPROPRIATE_CONTENT: Severity.MEDIUM,
    ModerationFlag.SEXUAL_CONTENT: Severity.MEDIUM,
    ModerationFlag.MISINFORMATION: Severity.MEDIUM,
    ModerationFlag.SPAM: Severity.LOW,
    ModerationFlag.COPYRIGHT_VIOLATION: Severity.LOW,
    ModerationFlag.OTHER: Severity.LOW,
}

_FLAG_DESCRIPTIONS = {
    ModerationFlag.PERSONAL_INFORMATION: "Personal Information Detected",
    ModerationFlag.INAPPROPRIATE_CONTENT: "Inappropriate Content",
    ModerationFlag.SPAM: "Spam",
    ModerationFlag.HARASSMENT: "Harassment",
    ModerationFlag.VIOLENT_CONTENT: "Violent Content",
    ModerationFlag.HATE_SPEECH: "Hate Speech",
    ModerationFlag.SEXUAL_CONTENT: "Sexual Content",
    ModerationFlag.MISINFORMATION: "Misinformation",
    ModerationFlag.COPYRIGHT_VIOLATION: "Copyright Violation",
    ModerationFlag.OTHER: "Other Violation",
}


class PIIType(str, Enum):
    """Categories of personally identifiable information."""

    NAME = "name"
    PHONE_NUMBER = "phone_number"
    EMAIL = "email"
    SOCIAL_MEDIA = "social_media"
    ADDRESS = "address"
    CREDIT_CARD = "credit_card"
    SSN = "ssn"
    OTHER = "other"


class PIIDetection(BaseModel):
    """A single piece of personal information found in the content."""

    model_config = ConfigDict(frozen=True)

    type: PIIType
    location_hint: str | None = Field(
        default=None,
        description="Where the PII was found, e.g. a text span or image region",
    )
    confidence: float = Field(..., ge=0.0, le=1.0)
    extracted_text: str | None = None


class ModerationResult(BaseModel):
    """One immutable verdict for one content item."""

    model_config = ConfigDict(frozen=True)

    content_id: str = Field(..., min_length=1)
    content_type: ContentType
    flags: tuple[ModerationFlag, ...] = ()
    confidence: float = Field(..., ge=0.0, le=1.0)
    detected_pii: tuple[PIIDetection, ...] = ()
    reason: str | None = None
    created_at: datetime = Field(default_factory=utcnow)

    @field_validator("flags")
    @classmethod
    def _dedupe_flags(cls, value: tuple[ModerationFlag, ...]) -> tuple[ModerationFlag, ...]:
        return tuple(dict.fromkeys(value))

    @computed_field  # type: ignore[prop-decorator]
    @property
    def severity(self) -> Severity:
        """Maximum severity across flags, ``low`` when there are none."""
        if not self.flags:
            return Severity.LOW
        return max((flag.severity for flag in self.flags), key=lambda s: s.rank)

    @computed_field  # type: ignore[prop-decorator]
    @property
    def requires_human_review(self) -> bool:
        return self.confidence < self.severity.auto_action_threshold or any(
            flag.severity in (Severity.HIGH, Severity.CRITICAL) for flag in self.flags
        )

    def has_flag(self, flag: ModerationFlag) -> bool:
        return flag in self.flags

    def fingerprint(self) -> str:
        """Return a stable digest of the verdict, ignoring when it was produced."""
        payload = self.model_dump_json(exclude={"created_at"})
        return blake3_hexdigest(payload.encode("utf-8"))

    @classmethod
    def approved(cls, content_id: str, content_type: ContentType) -> ModerationResult:
        """Verdict used when there is nothing to send to the moderation model."""
        return cls(
            content_id=content_id,
            content_type=content_type,
            flags=(),
            confidence=1.0,
            reason="Auto-approved - no content to moderate",
        )


class FlaggingRulesConfiguration(BaseModel):
    """Immutable snapshot of the automatic flagging rules."""

    model_config = ConfigDict(frozen=True)

    version: int = Field(default=1, ge=1)
    auto_reject_threshold: float = Field(default=0.9, ge=0.0, le=1.0)
    auto_flag_threshold: float = Field(default=0.7, ge=0.0, le=1.0)
    pii_auto_reject: bool = True
    harassment_auto_reject: bool = True
    hate_speech_auto_reject: bool = True
    spam_auto_flag: bool = True
    multiple_reports_threshold: int = Field(default=3, ge=1)
    new_user_stricter_rules: bool = True

    @classmethod
    def from_settings(cls, config: Any) -> FlaggingRulesConfiguration:
        """Build the initial snapshot from application settings."""
        return cls(
            auto_reject_threshold=config.rules_auto_reject_threshold,
            auto_flag_threshold=config.rules_auto_flag_threshold,
            pii_auto_reject=config.rules_pii_auto_reject,
            harassment_auto_reject=config.rules_harassment_auto_reject,
            hate_speech_auto_reject=config.rules_hate_speech_auto_reject,
            spam_auto_flag=config.rules_spam_auto_flag,
            multiple_reports_threshold=config.rules_multiple_reports_threshold,
            new_user_stricter_rules=config.rules_new_user_stricter_rules,
        )


class ModerationPriority(str, Enum):
    """Review-queue priority; lower ``sort_order`` is reviewed first."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"

    @property
    def sort_order(self) -> int:
        return _PRIORITY_SORT_ORDER[self]


_PRIORITY_SORT_ORDER = {
    ModerationPriority.CRITICAL: 0,
    ModerationPriority.HIGH: 1,
    ModerationPriority.MEDIUM: 2,
    ModerationPriority.LOW: 3,
}


class ModerationQueueItem(BaseModel):
    """A content item awaiting human review."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=lambda: uuid.uuid4().hex)
    content_id: str
    content_type: ContentType
    author_id: str
    content: str | None = None
    image_urls: tuple[str, ...] = ()
    moderation_result: ModerationResult
    report_count: int = Field(default=0, ge=0)
    priority: ModerationPriority = ModerationPriority.LOW
    # Version of the flagging rules in force when the item was queued.
    rules_version: int = 1
    # Set on items that were auto-flagged and reached the review queue via reports.
    flagged: bool = False
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    @computed_field  # type: ignore[prop-decorator]
    @property
    def is_high_priority(self) -> bool:
        return self.priority in (
            ModerationPriority.HIGH,
            ModerationPriority.CRITICAL,
        ) or self.moderation_result.severity in (Severity.HIGH, Severity.CRITICAL)

    def sort_key(self) -> tuple[int, datetime]:
        return (self.priority.sort_order, self.created_at)


class FlaggingStatistics(BaseModel):
    """Read-only snapshot of the engine's running counters."""

    model_config = ConfigDict(frozen=True)

    total_processed: int = 0
    auto_approved: int = 0
    auto_rejected: int = 0
    auto_flagged: int = 0
    sent_to_human_review: int = 0
    pii_detected: int = 0
    pre_decision_failures: int = 0
    duplicates: int = 0

    @computed_field  # type: ignore[prop-decorator]
    @property
    def auto_approval_rate(self) -> float:
        if self.total_processed <= 0:
            return 0.0
        return self.auto_approved / self.total_processed

    @computed_field  # type: ignore[prop-decorator]
    @property
    def human_review_rate(self) -> float:
        if self.total_processed <= 0:
            return 0.0
        return self.sent_to_human_review / self.total_processed


class QueueStatistics(BaseModel):
    """Dashboard numbers for the human-review queue."""

    total_items: int
    high_priority_items: int
    flagged_items: int
    average_wait_minutes: int
