# tests/conftest.py
from __future__ import annotations

import asyncio
import os
from collections.abc import Callable, Generator, Iterator, Sequence
from typing import Any

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ["REDIS_URL"] = ""

from content_guard.api.v1.dependencies import get_engine
from content_guard.db.session import Base
from content_guard.main import app as fastapi_app
from content_guard.schemas.moderation import (
    ContentType,
    FlaggingRulesConfiguration,
    ModerationFlag,
    ModerationQueueItem,
    ModerationResult,
    PIIDetection,
    PIIType,
)
from content_guard.services.idempotency import IdempotencyGuard
from content_guard.services.processor import FlaggingEngine
from content_guard.services.rate_limit import RateLimitedExecutor
from content_guard.services.retry import RetryPolicy
from content_guard.services.stores import InMemoryContentStore

TEST_DB_URL = "sqlite://"


class FakeModerationModel:
    """Scriptable moderation model.

    ``verdicts`` maps content ids to a ModerationResult, an exception to raise,
    or a list of either (consumed one per call). Unknown ids are approved.
    """

    def __init__(self, delay: float = 0.0) -> None:
        self.delay = delay
        self.verdicts: dict[str, Any] = {}
        self.calls: list[str] = []
        self.in_flight = 0
        self.peak_in_flight = 0

    async def moderate(
        self,
        content_id: str,
        content_type: ContentType,
        author_id: str,
        text: str | None = None,
        images: Sequence[str] = (),
    ) -> ModerationResult:
        self.calls.append(content_id)
        self.in_flight += 1
        self.peak_in_flight = max(self.peak_in_flight, self.in_flight)
        try:
            if self.delay:
                await asyncio.sleep(self.delay)
            verdict = self.verdicts.get(content_id)
            if isinstance(verdict, list):
                verdict = verdict.pop(0) if verdict else None
            if isinstance(verdict, BaseException):
                raise verdict
            if verdict is None:
                return ModerationResult(
                    content_id=content_id,
                    content_type=content_type,
                    confidence=0.95,
                )
            return verdict
        finally:
            self.in_flight -= 1


class RecordingNotifier:
    """Notifier that records deliveries and can fail the first N user notifications."""

    def __init__(self, fail_times: int = 0) -> None:
        self.fail_times = fail_times
        self.user_notifications: list[tuple[str, str, str]] = []
        self.moderator_alerts: list[ModerationQueueItem] = []

    async def notify_user(self, author_id: str, kind: str, reason: str) -> None:
        if self.fail_times > 0:
            self.fail_times -= 1
            raise ConnectionError("notification service unavailable")
        self.user_notifications.append((author_id, kind, reason))

    async def notify_moderators(self, item: ModerationQueueItem) -> None:
        self.moderator_alerts.append(item)


@pytest.fixture()
def make_result() -> Callable[..., ModerationResult]:
    """Factory for moderation verdicts."""

    def _make(
        content_id: str = "content-1",
        *,
        flags: Sequence[ModerationFlag] = (),
        confidence: float = 0.95,
        pii: bool = False,
        content_type: ContentType = ContentType.POST,
    ) -> ModerationResult:
        detected = (
            (PIIDetection(type=PIIType.PHONE_NUMBER, confidence=0.9, extracted_text="555-0100"),)
            if pii
            else ()
        )
        return ModerationResult(
            content_id=content_id,
            content_type=content_type,
            flags=tuple(flags),
            confidence=confidence,
            detected_pii=detected,
        )

    return _make


@pytest.fixture()
def model() -> FakeModerationModel:
    return FakeModerationModel()


@pytest.fixture()
def store() -> InMemoryContentStore:
    return InMemoryContentStore()


@pytest.fixture()
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture()
def fast_retry() -> RetryPolicy:
    return RetryPolicy(max_attempts=3, initial_delay=0.0, jitter_fraction=0.0)


@pytest.fixture()
def flagging_engine(
    model: FakeModerationModel,
    store: InMemoryContentStore,
    notifier: RecordingNotifier,
    fast_retry: RetryPolicy,
) -> FlaggingEngine:
    return FlaggingEngine(
        model,
        store,
        notifier,
        rules=FlaggingRulesConfiguration(),
        executor=RateLimitedExecutor(5),
        idempotency=IdempotencyGuard(redis_url=""),
        retry_policy=fast_retry,
        model_timeout=1.0,
    )


@pytest.fixture()
def db_engine() -> Generator[Engine, None, None]:
    engine = create_engine(
        TEST_DB_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    try:
        yield engine
    finally:
        Base.metadata.drop_all(bind=engine)
        engine.dispose()


@pytest.fixture()
def session_factory(db_engine: Engine) -> Callable[[], Session]:
    return sessionmaker(
        bind=db_engine,
        autocommit=False,
        autoflush=False,
        expire_on_commit=False,
    )


@pytest.fixture(scope="session")
def app() -> FastAPI:
    return fastapi_app


@pytest.fixture()
def client(app: FastAPI, flagging_engine: FlaggingEngine) -> Iterator[TestClient]:
    app.dependency_overrides[get_engine] = lambda: flagging_engine
    try:
        with TestClient(app, base_url="http://test") as test_client:
            yield test_client
    finally:
        app.dependency_overrides.pop(get_engine, None)
