# src/content_guard/services/decision.py
"""Decision policy mapping a moderation verdict to an automatic action.

The policy is a pure function of the verdict, the author context and the
active rules snapshot. Rules are evaluated in a fixed priority order and the
first match wins; anything the rules do not resolve is escalated to a human.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import ClassVar, Union

from content_guard.schemas.moderation import (
    FlaggingRulesConfiguration,
    ModerationFlag,
    ModerationResult,
)

# Fixed cutoffs for the author-based rules. They are deliberately separate from
# the configurable thresholds in FlaggingRulesConfiguration.
NEW_USER_MIN_CONFIDENCE = 0.6
LOW_REPUTATION_CUTOFF = 50
LOW_REPUTATION_MIN_CONFIDENCE = 0.5

REASON_PII = "Personal information detected"
REASON_HARASSMENT = "Harassment detected"
REASON_HATE_SPEECH = "Hate speech detected"
REASON_SPAM = "Potential spam detected"
REASON_INAPPROPRIATE = "Inappropriate content detected"
REASON_NEW_USER = "New user content requires review"
REASON_LOW_REPUTATION = "Low reputation user content flagged"


@dataclass(frozen=True)
class AuthorContext:
    """Author signals fetched once per decision by the caller."""

    author_id: str
    reputation: int
    is_new_user: bool


@dataclass(frozen=True)
class AutoApprove:
    kind: ClassVar[str] = "auto_approve"


@dataclass(frozen=True)
class AutoReject:
    reason: str
    kind: ClassVar[str] = "auto_reject"


@dataclass(frozen=True)
class AutoFlag:
    reason: str
    kind: ClassVar[str] = "auto_flag"


@dataclass(frozen=True)
class RequireHumanReview:
    kind: ClassVar[str] = "require_human_review"


AutomaticAction = Union[AutoApprove, AutoReject, AutoFlag, RequireHumanReview]


def action_reason(action: AutomaticAction) -> str | None:
    """Return the human-readable reason carried by an action, if any."""
    return getattr(action, "reason", None)


def decide(
    result: ModerationResult,
    author: AuthorContext,
    rules: FlaggingRulesConfiguration,
) -> AutomaticAction:
    """Return the automatic action for a verdict.

    Args:
        result: Verdict produced by the moderation model.
        author: Reputation and account-age signals for the content author.
        rules: Rules snapshot in force for this decision.

    Returns:
        Exactly one AutomaticAction variant.
    """
    confidence = result.confidence

    if rules.pii_auto_reject and result.detected_pii:
        return AutoReject(REASON_PII)

    # The confidence gates below are not exclusive: a verdict that passes a gate
    # without matching one of its categories continues to the next rule.
    if confidence >= rules.auto_reject_threshold:
        if rules.harassment_auto_reject and result.has_flag(ModerationFlag.HARASSMENT):
            return AutoReject(REASON_HARASSMENT)
        if rules.hate_speech_auto_reject and result.has_flag(ModerationFlag.HATE_SPEECH):
            return AutoReject(REASON_HATE_SPEECH)

    if confidence >= rules.auto_flag_threshold:
        if rules.spam_auto_flag and result.has_flag(ModerationFlag.SPAM):
            return AutoFlag(REASON_SPAM)
        if result.has_flag(ModerationFlag.INAPPROPRIATE_CONTENT):
            return AutoFlag(REASON_INAPPROPRIATE)

    if (
        rules.new_user_stricter_rules
        and author.is_new_user
        and confidence >= NEW_USER_MIN_CONFIDENCE
        and result.flags
    ):
        return AutoFlag(REASON_NEW_USER)

    if author.reputation < LOW_REPUTATION_CUTOFF and confidence >= LOW_REPUTATION_MIN_CONFIDENCE:
        return AutoFlag(REASON_LOW_REPUTATION)

    if not result.flags:
        return AutoApprove()

    return RequireHumanReview()
