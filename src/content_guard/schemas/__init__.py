"""Pydantic schemas for the moderation engine."""

from .moderation import (
    ContentType,
    FlaggingRulesConfiguration,
    FlaggingStatistics,
    ModerationFlag,
    ModerationPriority,
    ModerationQueueItem,
    ModerationResult,
    ModerationStatus,
    PIIDetection,
    PIIType,
    QueueStatistics,
    Severity,
)

__all__ = [
    "ContentType",
    "FlaggingRulesConfiguration",
    "FlaggingStatistics",
    "ModerationFlag",
    "ModerationPriority",
    "ModerationQueueItem",
    "ModerationResult",
    "ModerationStatus",
    "PIIDetection",
    "PIIType",
    "QueueStatistics",
    "Severity",
]
