# src/content_guard/services/statistics.py
"""Running counters used to tune the flagging rules."""

from __future__ import annotations

import asyncio
from collections import Counter

from content_guard.schemas.moderation import FlaggingStatistics
from content_guard.services.decision import (
    AutoApprove,
    AutoFlag,
    AutomaticAction,
    AutoReject,
    RequireHumanReview,
)


class StatisticsAggregator:
    """Single-writer owner of the flagging counters.

    All mutation goes through an asyncio lock; readers get immutable snapshots
    whose rates are derived on read.
    """

    def __init__(self) -> None:
        self._lock = asyncio.Lock()
        self._counts: Counter[str] = Counter()
        self._failures_by_kind: Counter[str] = Counter()

    async def record_decision(self, action: AutomaticAction, *, pii_detected: bool) -> None:
        """Count one decided item."""
        async with self._lock:
            self._counts["total_processed"] += 1
            if isinstance(action, AutoApprove):
                self._counts["auto_approved"] += 1
            elif isinstance(action, AutoReject):
                self._counts["auto_rejected"] += 1
            elif isinstance(action, AutoFlag):
                self._counts["auto_flagged"] += 1
            elif isinstance(action, RequireHumanReview):
                self._counts["sent_to_human_review"] += 1
            else:  # pragma: no cover - exhaustive over AutomaticAction
                raise TypeError(f"Unknown automatic action: {action!r}")
            if pii_detected:
                self._counts["pii_detected"] += 1

    async def record_failure(self, kind: str) -> None:
        """Count an item that failed before its decision was recorded."""
        async with self._lock:
            self._counts["pre_decision_failures"] += 1
            self._failures_by_kind[kind] += 1

    async def record_duplicate(self) -> None:
        """Count an item whose verdict was already acted on."""
        async with self._lock:
            self._counts["duplicates"] += 1

    def snapshot(self) -> FlaggingStatistics:
        return FlaggingStatistics(**self._counts)

    def failures_by_kind(self) -> dict[str, int]:
        return dict(self._failures_by_kind)
