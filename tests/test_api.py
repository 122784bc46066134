# tests/test_api.py
from __future__ import annotations

from typing import Any

from content_guard.schemas.moderation import ModerationFlag

BASE = "/api/v1/moderation"


def post_payload(content_id: str, text: str = "hello world", **extra: Any) -> dict[str, Any]:
    return {
        "content_id": content_id,
        "content_type": "post",
        "author_id": "author-1",
        "text": text,
        **extra,
    }


def test_health(client) -> None:
    response = client.get("/health")

    assert response.status_code == 200
    assert response.json() == {"status": "ok"}


def test_batch_reports_each_item(client, model, make_result) -> None:
    model.verdicts["spam"] = make_result("spam", flags=[ModerationFlag.SPAM])

    response = client.post(
        f"{BASE}/batch",
        json={
            "items": [
                post_payload("clean"),
                post_payload("spam"),
                {"content_id": "bad", "content_type": "video", "author_id": "a"},
            ]
        },
    )

    assert response.status_code == 200
    body = response.json()
    assert (body["decided"], body["duplicates"], body["failed"]) == (2, 0, 1)
    clean, spam, bad = body["results"]
    assert clean["action"] == "auto_approve"
    assert spam["action"] == "auto_flag"
    assert spam["reason"] == "Potential spam detected"
    assert spam["flags"] == ["spam"]
    assert spam["severity"] == "low"
    assert bad["outcome"] == "failed"
    assert bad["error_kind"] == "validation"


def test_batch_reports_verdict_review_flag_for_rejections(client, model, make_result) -> None:
    model.verdicts["abuse"] = make_result(
        "abuse", flags=[ModerationFlag.HARASSMENT], confidence=0.95
    )

    response = client.post(f"{BASE}/batch", json={"items": [post_payload("abuse")]})

    assert response.status_code == 200
    (abuse,) = response.json()["results"]
    assert abuse["action"] == "auto_reject"
    assert abuse["requires_human_review"] is True


def test_batch_requires_items(client) -> None:
    response = client.post(f"{BASE}/batch", json={})

    assert response.status_code == 422


def test_queue_endpoints(client, model, make_result) -> None:
    model.verdicts["hr"] = make_result("hr", flags=[ModerationFlag.HARASSMENT], confidence=0.5)
    model.verdicts["cr"] = make_result("cr", flags=[ModerationFlag.COPYRIGHT_VIOLATION])
    client.post(f"{BASE}/batch", json={"items": [post_payload("hr"), post_payload("cr")]})

    listing = client.get(f"{BASE}/queue")
    assert [entry["content_id"] for entry in listing.json()] == ["hr", "cr"]

    filtered = client.get(f"{BASE}/queue", params={"priority": "low"})
    assert [entry["content_id"] for entry in filtered.json()] == ["cr"]

    stats = client.get(f"{BASE}/queue/stats").json()
    assert stats["total_items"] == 2
    assert stats["high_priority_items"] == 1

    first = client.post(f"{BASE}/queue/next")
    assert first.status_code == 200
    assert first.json()["content_id"] == "hr"
    assert first.json()["is_high_priority"] is True
    client.post(f"{BASE}/queue/next")

    empty = client.post(f"{BASE}/queue/next")
    assert empty.status_code == 404


def test_reports_endpoint(client, model, make_result) -> None:
    model.verdicts["spam"] = make_result("spam", flags=[ModerationFlag.SPAM])
    client.post(f"{BASE}/batch", json={"items": [post_payload("spam")]})

    first = client.post(f"{BASE}/content/spam/reports")
    client.post(f"{BASE}/content/spam/reports")
    third = client.post(f"{BASE}/content/spam/reports")

    assert first.status_code == 202
    assert third.status_code == 200
    assert third.json()["report_count"] == 3
    assert third.json()["flagged"] is True


def test_statistics_endpoint(client) -> None:
    client.post(
        f"{BASE}/batch",
        json={"items": [post_payload("a"), post_payload("b"), {"content_id": "x"}]},
    )

    stats = client.get(f"{BASE}/statistics").json()

    assert stats["total_processed"] == 2
    assert stats["auto_approved"] == 2
    assert stats["pre_decision_failures"] == 1
    assert stats["auto_approval_rate"] == 1.0


def test_rules_can_be_read_and_updated(client) -> None:
    current = client.get(f"{BASE}/rules").json()
    assert current["version"] == 1
    assert current["auto_flag_threshold"] == 0.7

    updated = client.patch(
        f"{BASE}/rules",
        json={"auto_flag_threshold": 0.8, "spam_auto_flag": False},
    )

    assert updated.status_code == 200
    assert updated.json()["version"] == 2
    assert updated.json()["auto_flag_threshold"] == 0.8
    assert updated.json()["spam_auto_flag"] is False
    assert updated.json()["auto_reject_threshold"] == 0.9


def test_invalid_rules_update_is_rejected(client) -> None:
    response = client.patch(f"{BASE}/rules", json={"auto_reject_threshold": 2.0})

    assert response.status_code == 422
    assert client.get(f"{BASE}/rules").json()["version"] == 1


def test_re_evaluation_endpoint(client, model, make_result) -> None:
    model.verdicts["c1"] = make_result("c1", flags=[ModerationFlag.OTHER])
    client.post(f"{BASE}/batch", json={"items": [post_payload("c1")]})
    client.patch(f"{BASE}/rules", json={"auto_reject_threshold": 0.95})

    response = client.get(f"{BASE}/re-evaluation", params={"limit": 10})

    assert response.status_code == 200
    assert response.json() == {"rules_version": 2, "content_ids": ["c1"]}
