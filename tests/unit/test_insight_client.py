"""
Unit tests for the narrative-insight clients.

HTTP calls go through httpx.MockTransport; no network is used.
"""

import httpx
import pytest

from src.core.errors import (
    CollaboratorUnavailableError,
    InsightTimeoutError,
    MalformedInsightResponseError,
)
from src.insights.client import (
    CachedInsightClient,
    HttpInsightClient,
    InsightClient,
    parse_insight_payload,
)
from src.insights.models import AnalysisRequest, InsightResponse


def make_request(user_id="learner-1"):
    return AnalysisRequest(user_id=user_id, profile_summary={"skills": {"phonics": {"mastery_pct": 35.0}}})


async def mock_http_client(handler):
    client = HttpInsightClient("http://insight.test/", timeout_seconds=1.0)
    await client.client.aclose()
    client.client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return client


class CountingClient(InsightClient):
    def __init__(self, fail=False):
        self.calls = 0
        self.fail = fail

    async def analyze(self, request, timeout=None):
        self.calls += 1
        if self.fail:
            raise CollaboratorUnavailableError("down")
        return InsightResponse(text=f"Focus on {request.user_id}", confidence=0.6)


class TestParsePayload:
    def test_valid(self):
        response = parse_insight_payload({"text": "Focus on phonics", "confidence": 0.75})
        assert response.text == "Focus on phonics"
        assert response.confidence == 0.75

    def test_numeric_string_confidence(self):
        assert parse_insight_payload({"text": "x", "confidence": "0.5"}).confidence == 0.5

    @pytest.mark.parametrize(
        "payload",
        [
            [],
            {"confidence": 0.5},
            {"text": "   ", "confidence": 0.5},
            {"text": "Focus on phonics"},
            {"text": "Focus on phonics", "confidence": "high"},
            {"text": "Focus on phonics", "confidence": 1.5},
        ],
    )
    def test_malformed(self, payload):
        with pytest.raises(MalformedInsightResponseError):
            parse_insight_payload(payload)


class TestHttpInsightClient:
    @pytest.mark.asyncio
    async def test_posts_request_payload(self):
        seen = {}

        def handler(request):
            seen["path"] = request.url.path
            seen["body"] = request.content
            return httpx.Response(200, json={"text": "Focus on blending", "confidence": 0.8})

        client = await mock_http_client(handler)
        response = await client.analyze(make_request())
        await client.close()

        assert seen["path"] == "/analyze"
        assert b'"user_id":"learner-1"' in seen["body"].replace(b" ", b"")
        assert response.confidence == 0.8

    @pytest.mark.asyncio
    async def test_server_error(self):
        client = await mock_http_client(lambda request: httpx.Response(503))
        with pytest.raises(CollaboratorUnavailableError, match="503"):
            await client.analyze(make_request())
        await client.close()

    @pytest.mark.asyncio
    async def test_timeout(self):
        def handler(request):
            raise httpx.ReadTimeout("too slow", request=request)

        client = await mock_http_client(handler)
        with pytest.raises(InsightTimeoutError):
            await client.analyze(make_request())
        await client.close()

    @pytest.mark.asyncio
    async def test_unreachable(self):
        def handler(request):
            raise httpx.ConnectError("refused", request=request)

        client = await mock_http_client(handler)
        with pytest.raises(CollaboratorUnavailableError, match="unreachable"):
            await client.analyze(make_request())
        await client.close()

    @pytest.mark.asyncio
    async def test_non_json_body(self):
        client = await mock_http_client(lambda request: httpx.Response(200, text="<html>"))
        with pytest.raises(MalformedInsightResponseError):
            await client.analyze(make_request())
        await client.close()

    @pytest.mark.asyncio
    async def test_api_key_header(self):
        client = HttpInsightClient("http://insight.test", api_key="secret")
        assert client.client.headers["X-API-Key"] == "secret"
        await client.close()


class TestCachedInsightClient:
    @pytest.mark.asyncio
    async def test_repeat_request_served_from_cache(self, clock):
        inner = CountingClient()
        cached = CachedInsightClient(inner, ttl_seconds=60, clock=clock)

        first = await cached.analyze(make_request())
        second = await cached.analyze(make_request())

        assert first == second
        assert inner.calls == 1
        assert (cached.hits, cached.misses) == (1, 1)

    @pytest.mark.asyncio
    async def test_entries_expire(self, clock):
        inner = CountingClient()
        cached = CachedInsightClient(inner, ttl_seconds=60, clock=clock)

        await cached.analyze(make_request())
        clock.advance(seconds=61)
        await cached.analyze(make_request())

        assert inner.calls == 2

    @pytest.mark.asyncio
    async def test_failures_not_cached(self, clock):
        inner = CountingClient(fail=True)
        cached = CachedInsightClient(inner, clock=clock)

        for _ in range(2):
            with pytest.raises(CollaboratorUnavailableError):
                await cached.analyze(make_request())

        assert inner.calls == 2
        assert len(cached) == 0

    @pytest.mark.asyncio
    async def test_oldest_entry_evicted(self, clock):
        inner = CountingClient()
        cached = CachedInsightClient(inner, max_entries=1, clock=clock)

        await cached.analyze(make_request("a"))
        await cached.analyze(make_request("b"))
        await cached.analyze(make_request("a"))

        assert len(cached) == 1
        assert inner.calls == 3
