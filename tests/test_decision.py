# tests/test_decision.py
from __future__ import annotations

import pytest

from content_guard.schemas.moderation import FlaggingRulesConfiguration, ModerationFlag
from content_guard.services.decision import (
    AuthorContext,
    AutoApprove,
    AutoFlag,
    AutoReject,
    RequireHumanReview,
    action_reason,
    decide,
)

RULES = FlaggingRulesConfiguration()
ESTABLISHED = AuthorContext(author_id="author-1", reputation=80, is_new_user=False)
NEW_USER = AuthorContext(author_id="author-2", reputation=80, is_new_user=True)
LOW_REPUTATION = AuthorContext(author_id="author-3", reputation=20, is_new_user=False)


def test_spam_with_high_confidence_is_flagged(make_result) -> None:
    result = make_result(flags=[ModerationFlag.SPAM], confidence=0.95)

    assert decide(result, ESTABLISHED, RULES) == AutoFlag("Potential spam detected")


def test_clean_content_is_approved(make_result) -> None:
    assert decide(make_result(confidence=0.95), ESTABLISHED, RULES) == AutoApprove()


def test_pii_dominates_every_other_signal(make_result) -> None:
    result = make_result(
        flags=[ModerationFlag.SPAM, ModerationFlag.HARASSMENT],
        confidence=0.1,
        pii=True,
    )

    for author in (ESTABLISHED, NEW_USER, LOW_REPUTATION):
        assert decide(result, author, RULES) == AutoReject("Personal information detected")


def test_pii_rule_can_be_disabled(make_result) -> None:
    rules = RULES.model_copy(update={"pii_auto_reject": False})
    result = make_result(confidence=0.95, pii=True)

    assert decide(result, ESTABLISHED, rules) == AutoApprove()


@pytest.mark.parametrize(
    ("flag", "reason"),
    [
        (ModerationFlag.HARASSMENT, "Harassment detected"),
        (ModerationFlag.HATE_SPEECH, "Hate speech detected"),
    ],
)
def test_reject_threshold_is_inclusive(make_result, flag, reason) -> None:
    at_threshold = make_result(flags=[flag], confidence=0.9)
    below = make_result(flags=[flag], confidence=0.89)

    assert decide(at_threshold, ESTABLISHED, RULES) == AutoReject(reason)
    assert decide(below, ESTABLISHED, RULES) == RequireHumanReview()


def test_flag_threshold_is_inclusive(make_result) -> None:
    at_threshold = make_result(flags=[ModerationFlag.INAPPROPRIATE_CONTENT], confidence=0.7)
    below = make_result(flags=[ModerationFlag.INAPPROPRIATE_CONTENT], confidence=0.69)

    assert decide(at_threshold, ESTABLISHED, RULES) == AutoFlag("Inappropriate content detected")
    assert decide(below, ESTABLISHED, RULES) == RequireHumanReview()


def test_harassment_is_checked_before_hate_speech(make_result) -> None:
    result = make_result(
        flags=[ModerationFlag.HATE_SPEECH, ModerationFlag.HARASSMENT], confidence=0.99
    )

    assert decide(result, ESTABLISHED, RULES) == AutoReject("Harassment detected")


def test_disabled_harassment_rule_falls_through(make_result) -> None:
    rules = RULES.model_copy(update={"harassment_auto_reject": False})
    result = make_result(flags=[ModerationFlag.HARASSMENT], confidence=0.95)

    assert decide(result, ESTABLISHED, rules) == RequireHumanReview()


def test_spam_rule_disabled_leaves_inappropriate_rule(make_result) -> None:
    rules = RULES.model_copy(update={"spam_auto_flag": False})
    spam_only = make_result(flags=[ModerationFlag.SPAM], confidence=0.95)
    mixed = make_result(
        flags=[ModerationFlag.SPAM, ModerationFlag.INAPPROPRIATE_CONTENT], confidence=0.95
    )

    assert decide(spam_only, ESTABLISHED, rules) == RequireHumanReview()
    assert decide(mixed, ESTABLISHED, rules) == AutoFlag("Inappropriate content detected")


def test_new_user_with_flags_is_flagged(make_result) -> None:
    result = make_result(flags=[ModerationFlag.MISINFORMATION], confidence=0.6)

    assert decide(result, NEW_USER, RULES) == AutoFlag("New user content requires review")
    assert decide(result, ESTABLISHED, RULES) == RequireHumanReview()


def test_new_user_without_flags_is_approved(make_result) -> None:
    assert decide(make_result(confidence=0.6), NEW_USER, RULES) == AutoApprove()


def test_new_user_rule_respects_toggle(make_result) -> None:
    rules = RULES.model_copy(update={"new_user_stricter_rules": False})
    result = make_result(flags=[ModerationFlag.MISINFORMATION], confidence=0.65)

    assert decide(result, NEW_USER, rules) == RequireHumanReview()


def test_low_reputation_author_is_flagged(make_result) -> None:
    result = make_result(confidence=0.5)

    assert decide(result, LOW_REPUTATION, RULES) == AutoFlag(
        "Low reputation user content flagged"
    )


def test_low_reputation_with_low_confidence_is_not_flagged(make_result) -> None:
    assert decide(make_result(confidence=0.49), LOW_REPUTATION, RULES) == AutoApprove()


def test_reputation_of_fifty_is_not_low(make_result) -> None:
    author = AuthorContext(author_id="author-4", reputation=50, is_new_user=False)

    assert decide(make_result(confidence=0.8), author, RULES) == AutoApprove()


def test_unresolved_flags_require_human_review(make_result) -> None:
    result = make_result(flags=[ModerationFlag.COPYRIGHT_VIOLATION], confidence=0.95)

    assert decide(result, ESTABLISHED, RULES) == RequireHumanReview()


def test_decide_is_deterministic(make_result) -> None:
    result = make_result(flags=[ModerationFlag.SPAM], confidence=0.75)

    assert {decide(result, NEW_USER, RULES) for _ in range(10)} == {
        AutoFlag("Potential spam detected")
    }


def test_action_reason() -> None:
    assert action_reason(AutoReject("Harassment detected")) == "Harassment detected"
    assert action_reason(AutoApprove()) is None
    assert AutoFlag("x").kind == "auto_flag"
