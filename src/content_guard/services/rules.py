# src/content_guard/services/rules.py
"""Source of flagging-rules snapshots with atomic hot swaps."""

from __future__ import annotations

import logging
from threading import Lock
from typing import Any

from content_guard.core.errors import ContentValidationError
from content_guard.core.settings import settings
from content_guard.schemas.moderation import FlaggingRulesConfiguration

logger = logging.getLogger(__name__)


class RulesProvider:
    """Holds the active FlaggingRulesConfiguration.

    Readers take the current snapshot with ``current()``. Updates build a new
    snapshot with the next version number and publish it with a single
    reference assignment, so a concurrent decision sees either the old rules
    or the new ones, never a mix.
    """

    def __init__(self, initial: FlaggingRulesConfiguration | None = None) -> None:
        self._rules = initial or FlaggingRulesConfiguration.from_settings(settings)
        self._write_lock = Lock()

    def current(self) -> FlaggingRulesConfiguration:
        return self._rules

    @property
    def version(self) -> int:
        return self._rules.version

    def update(self, **changes: Any) -> FlaggingRulesConfiguration:
        """Publish a copy of the current rules with ``changes`` applied."""
        changes.pop("version", None)
        with self._write_lock:
            merged = self._rules.model_dump()
            merged.update(changes)
            merged["version"] = self._rules.version + 1
            try:
                updated = FlaggingRulesConfiguration.model_validate(merged)
            except ValueError as exc:
                raise ContentValidationError(f"Invalid flagging rules: {exc}") from exc
            self._rules = updated
        logger.info("Flagging rules updated to version %d: %s", updated.version, changes)
        return updated

    def replace(self, rules: FlaggingRulesConfiguration) -> FlaggingRulesConfiguration:
        """Publish an externally built snapshot, bumping its version if needed."""
        with self._write_lock:
            if rules.version <= self._rules.version:
                rules = rules.model_copy(update={"version": self._rules.version + 1})
            self._rules = rules
        logger.info("Flagging rules replaced; now at version %d", rules.version)
        return rules
