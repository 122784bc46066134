# src/content_guard/services/moderation_model.py
"""Client for the external moderation model.

This module provides the boundary the engine uses to obtain verdicts:

- ``ModerationModel``: the protocol every model adapter implements
- ``HttpModerationModel``: an httpx-based adapter for a remote model service
- ``ModelCallMetrics``: counters for monitoring model latency and failures
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections import defaultdict
from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import Any, Protocol

import httpx
from pydantic import ValidationError

from content_guard.core.errors import MalformedResultError, ModerationModelError, TransientError
from content_guard.core.settings import settings
from content_guard.schemas.moderation import ContentType, ModerationResult

# Configure logger for this module
logger = logging.getLogger(__name__)

HTTP_BAD_REQUEST = 400
MODERATE_PATH = "/v1/moderate"


class ModerationModel(Protocol):
    """Anything able to turn content into a ModerationResult."""

    async def moderate(
        self,
        content_id: str,
        content_type: ContentType,
        author_id: str,
        text: str | None = None,
        images: Sequence[str] = (),
    ) -> ModerationResult: ...


@dataclass
class ModelCallMetrics:
    """Metrics collection for moderation model calls."""

    request_count: int = 0
    success_count: int = 0
    error_count: int = 0
    total_response_time: float = 0.0
    max_response_time: float = 0.0
    error_counts_by_type: dict[str, int] = field(default_factory=lambda: defaultdict(int))

    def record_request(
        self, response_time: float, success: bool, error_type: str | None = None
    ) -> None:
        """Record a request metric."""
        self.request_count += 1
        self.total_response_time += response_time
        self.max_response_time = max(self.max_response_time, response_time)

        if success:
            self.success_count += 1
        else:
            self.error_count += 1
            if error_type:
                self.error_counts_by_type[error_type] += 1

    def get_average_response_time(self) -> float:
        """Get average response time."""
        return self.total_response_time / self.request_count if self.request_count > 0 else 0.0


@dataclass(frozen=True)
class ModerationModelConfig:
    """Immutable configuration for the HTTP moderation model."""

    base_url: str
    api_key: str | None
    timeout_seconds: float


def load_model_config() -> ModerationModelConfig:
    """Build configuration object from global settings."""

    return ModerationModelConfig(
        base_url=settings.moderation_model_url,
        api_key=settings.moderation_model_api_key,
        timeout_seconds=float(settings.moderation_model_timeout_seconds),
    )


class HttpModerationModel:
    """HTTP client wrapper for a remote moderation model service."""

    def __init__(
        self,
        config: ModerationModelConfig | None = None,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.config = config or load_model_config()
        self._transport = transport
        self._client: httpx.AsyncClient | None = None
        self._client_lock = asyncio.Lock()
        self.metrics = ModelCallMetrics()

    async def _ensure_client(self) -> httpx.AsyncClient:
        async with self._client_lock:
            if self._client is None:
                headers = {"Accept": "application/json"}
                if self.config.api_key:
                    headers["Authorization"] = f"Bearer {self.config.api_key}"
                self._client = httpx.AsyncClient(
                    base_url=self.config.base_url,
                    timeout=httpx.Timeout(self.config.timeout_seconds),
                    headers=headers,
                    transport=self._transport,
                )
        return self._client

    async def close(self) -> None:
        async with self._client_lock:
            if self._client is not None:
                await self._client.aclose()
                self._client = None

    async def moderate(
        self,
        content_id: str,
        content_type: ContentType,
        author_id: str,
        text: str | None = None,
        images: Sequence[str] = (),
    ) -> ModerationResult:
        """Ask the model for a verdict on one content item.

        Raises:
            TransientError: The request never produced a response.
            ModerationModelError: The model answered with an error status.
            MalformedResultError: The response body is not a valid verdict.
        """
        client = await self._ensure_client()
        payload = {
            "content_id": content_id,
            "content_type": content_type.value,
            "author_id": author_id,
            "text": text,
            "images": list(images),
        }

        start_time = time.monotonic()
        success = False
        error_type: str | None = None
        try:
            try:
                response = await client.post(MODERATE_PATH, json=payload)
            except httpx.TransportError as exc:
                error_type = "network_error"
                raise TransientError(f"Moderation model request failed: {exc}") from exc

            if response.status_code >= HTTP_BAD_REQUEST:
                error_type = f"http_{response.status_code}"
                raise ModerationModelError(
                    f"Moderation model responded with {response.status_code}",
                    status_code=response.status_code,
                )

            result = self._parse_result(response, content_id, content_type)
            success = True
            return result
        except MalformedResultError:
            error_type = "malformed_payload"
            raise
        finally:
            self.metrics.record_request(time.monotonic() - start_time, success, error_type)

    @staticmethod
    def _parse_result(
        response: httpx.Response, content_id: str, content_type: ContentType
    ) -> ModerationResult:
        try:
            body: Any = response.json()
        except ValueError as exc:
            raise MalformedResultError(
                "Moderation model returned a non-JSON body",
                status_code=response.status_code,
            ) from exc

        if not isinstance(body, dict):
            raise MalformedResultError(
                "Moderation model returned an unexpected payload",
                status_code=response.status_code,
            )

        body.setdefault("content_id", content_id)
        body.setdefault("content_type", content_type.value)
        try:
            result = ModerationResult.model_validate(body)
        except ValidationError as exc:
            raise MalformedResultError(
                f"Moderation model returned an invalid verdict: {exc.error_count()} error(s)",
                status_code=response.status_code,
            ) from exc

        if result.content_id != content_id:
            raise MalformedResultError(
                f"Verdict for {result.content_id!r} returned for {content_id!r}",
                status_code=response.status_code,
            )
        logger.debug(
            "Verdict for %s: flags=%s confidence=%.2f",
            content_id,
            [flag.value for flag in result.flags],
            result.confidence,
        )
        return result
