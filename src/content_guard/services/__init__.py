# src/content_guard/services/__init__.py
"""Moderation services: decision policy, execution and batch processing."""

from .actions import ActionExecutor, ExecutionOutcome
from .decision import AuthorContext, decide
from .idempotency import IdempotencyGuard
from .moderation_model import HttpModerationModel, ModerationModel
from .processor import ContentBatchItem, ContentProcessingResult, FlaggingEngine
from .queue import ModerationQueue
from .rate_limit import RateLimitedExecutor
from .retry import RetryPolicy, with_retry
from .rules import RulesProvider
from .statistics import StatisticsAggregator
from .stores import InMemoryContentStore, LoggingNotifier, SqlContentStore

__all__ = [
    "ActionExecutor",
    "AuthorContext",
    "ContentBatchItem",
    "ContentProcessingResult",
    "ExecutionOutcome",
    "FlaggingEngine",
    "HttpModerationModel",
    "IdempotencyGuard",
    "InMemoryContentStore",
    "LoggingNotifier",
    "ModerationModel",
    "ModerationQueue",
    "RateLimitedExecutor",
    "RetryPolicy",
    "RulesProvider",
    "SqlContentStore",
    "StatisticsAggregator",
    "decide",
    "with_retry",
]
