"""
Narrative-insight service clients.

The service is opaque: it receives an AnalysisRequest and answers with free
narrative text and a confidence. Every failure mode is raised as a
CollaboratorUnavailableError subclass so the focus synthesizer can fall back to
its deterministic rules.
"""

from __future__ import annotations

import asyncio
from abc import ABC, abstractmethod
from collections import OrderedDict
from datetime import datetime, timedelta
from typing import Any

import httpx
from loguru import logger

from src.core.clock import Clock, SystemClock
from src.core.errors import (
    CollaboratorUnavailableError,
    InsightTimeoutError,
    MalformedInsightResponseError,
)
from src.insights.models import AnalysisRequest, InsightResponse


class InsightClient(ABC):
    """Interface of the narrative-insight collaborator."""

    @abstractmethod
    async def analyze(self, request: AnalysisRequest, timeout: float | None = None) -> InsightResponse:
        """
        Request a narrative analysis.

        Raises:
            InsightTimeoutError: No answer within timeout
            MalformedInsightResponseError: Answer could not be interpreted
            CollaboratorUnavailableError: Any other transport or server failure
        """

    async def close(self) -> None:
        """Release network resources."""


class HttpInsightClient(InsightClient):
    """HTTP client for the narrative-insight service."""

    def __init__(self, base_url: str, api_key: str | None = None, timeout_seconds: float = 8.0):
        """
        Initialize insight client.

        Args:
            base_url: Base URL of the service (POST {base_url}/analyze)
            api_key: Sent as X-API-Key when set
            timeout_seconds: Default per-call timeout
        """
        self.base_url = base_url.rstrip("/")
        self.timeout_seconds = timeout_seconds
        headers = {"X-API-Key": api_key} if api_key else {}
        self.client = httpx.AsyncClient(
            timeout=httpx.Timeout(timeout_seconds),
            headers=headers,
            follow_redirects=True,
        )

    async def close(self) -> None:
        """Close the HTTP client."""
        await self.client.aclose()

    async def analyze(self, request: AnalysisRequest, timeout: float | None = None) -> InsightResponse:
        try:
            response = await self.client.post(
                f"{self.base_url}/analyze",
                json=request.to_dict(),
                timeout=timeout or self.timeout_seconds,
            )
            response.raise_for_status()
        except httpx.TimeoutException as e:
            logger.warning(f"Insight service timed out for {request.user_id}")
            raise InsightTimeoutError(f"Insight service timed out: {e}") from e
        except httpx.HTTPStatusError as e:
            logger.warning(f"Insight service error {e.response.status_code} for {request.user_id}")
            raise CollaboratorUnavailableError(
                f"Insight service returned {e.response.status_code}"
            ) from e
        except httpx.RequestError as e:
            logger.warning(f"Insight service unreachable: {e}")
            raise CollaboratorUnavailableError(f"Insight service unreachable: {e}") from e

        try:
            data = response.json()
        except ValueError as e:
            raise MalformedInsightResponseError("Insight service returned non-JSON body") from e
        return parse_insight_payload(data)


def parse_insight_payload(data: Any) -> InsightResponse:
    """Validate a decoded service answer."""
    if not isinstance(data, dict):
        raise MalformedInsightResponseError("Insight payload is not an object")
    text = data.get("text")
    if not isinstance(text, str) or not text.strip():
        raise MalformedInsightResponseError("Insight payload has no narrative text")
    try:
        confidence = float(data.get("confidence"))
    except (TypeError, ValueError) as e:
        raise MalformedInsightResponseError("Insight payload has no numeric confidence") from e
    if not 0.0 <= confidence <= 1.0:
        raise MalformedInsightResponseError(f"Insight confidence out of range: {confidence}")
    return InsightResponse(text=text, confidence=confidence)


class CachedInsightClient(InsightClient):
    """
    Caches successful analyses by the request's content hash.

    Failures are never cached. Entries expire after ttl_seconds and the oldest
    entries are evicted beyond max_entries.
    """

    def __init__(
        self,
        inner: InsightClient,
        ttl_seconds: int = 6 * 60 * 60,
        max_entries: int = 512,
        clock: Clock | None = None,
    ):
        self.inner = inner
        self.ttl = timedelta(seconds=ttl_seconds)
        self.max_entries = max_entries
        self.clock = clock or SystemClock()
        self._entries: OrderedDict[str, tuple[datetime, InsightResponse]] = OrderedDict()
        self._lock = asyncio.Lock()
        self.hits = 0
        self.misses = 0

    async def analyze(self, request: AnalysisRequest, timeout: float | None = None) -> InsightResponse:
        key = request.content_hash()
        now = self.clock.now()
        async with self._lock:
            cached = self._entries.get(key)
            if cached is not None and cached[0] > now:
                self._entries.move_to_end(key)
                self.hits += 1
                return cached[1]
            if cached is not None:
                del self._entries[key]

        self.misses += 1
        response = await self.inner.analyze(request, timeout)

        async with self._lock:
            self._entries[key] = (now + self.ttl, response)
            self._entries.move_to_end(key)
            while len(self._entries) > self.max_entries:
                self._entries.popitem(last=False)
        return response

    async def close(self) -> None:
        await self.inner.close()

    def __len__(self) -> int:
        return len(self._entries)
