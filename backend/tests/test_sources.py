"""
Tests for the SSDI, government registry and news/obituary sources.
All HTTP traffic goes through httpx.MockTransport; nothing leaves the process.
"""
from __future__ import annotations

import asyncio
import json
from datetime import date
from typing import Callable

import httpx
import pytest

from shared.models.domain import AdditionalData, VerificationQuery
from shared.models.enums import ConfidenceTier
from shared.utils.circuit_breaker import CircuitBreaker, CircuitState
from shared.utils.http_client import SourceHTTPClient

from fakes import NEWS, FakeClock, FakeSource
from verifier.config import DEFAULT_REGISTRY_ENDPOINTS
from verifier.sources import GovernmentRegistrySource, NewsObituarySource, SSDISource
from verifier.sources.news import find_obituary

Handler = Callable[[httpx.Request], httpx.Response]

OBITUARY_RSS = """<?xml version="1.0" encoding="UTF-8"?>
<rss version="2.0">
  <channel>
    <title>Daily Obituaries</title>
    <link>https://obits.example.com</link>
    <description>Recent notices</description>
    <item>
      <title>Robert Brown, 81, retired engineer</title>
      <description>Robert Brown died at home.</description>
      <pubDate>Tue, 10 Oct 2023 09:00:00 GMT</pubDate>
    </item>
    <item>
      <title>Jane Smith, 78, of London</title>
      <description>Jane Smith passed away peacefully surrounded by family.</description>
      <pubDate>Mon, 16 Oct 2023 14:20:00 GMT</pubDate>
    </item>
  </channel>
</rss>
"""


class Recorder:
    """Wraps a handler and keeps every request it saw."""

    def __init__(self, handler: Handler) -> None:
        self._handler = handler
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        return self._handler(request)


def _client(name: str, recorder: Recorder, base_url: str = "") -> SourceHTTPClient:
    return SourceHTTPClient(
        source_name=name,
        base_url=base_url,
        max_retries=1,
        retry_backoff_s=0.0,
        transport=httpx.MockTransport(recorder),
    )


def _query(full_name: str = "John Doe", country: str = "US", **additional) -> VerificationQuery:
    extra = AdditionalData(**additional) if additional else None
    return VerificationQuery.build(full_name, date(1950, 3, 15), country, extra)


# ── SSDI ────────────────────────────────────────────────────────────────

class TestSSDISource:

    @pytest.mark.asyncio
    async def test_match(self) -> None:
        recorder = Recorder(lambda req: httpx.Response(
            200, json={"isDeceased": True, "dateOfDeath": "2023-11-20", "location": "New York, NY"},
        ))
        source = SSDISource(_client("SSDI", recorder, "https://ssdi.example.com/v1"))
        await source.start()
        try:
            verdict = await source.probe(_query("John Quincy Doe", national_id="123-45-6789"))
        finally:
            await source.close()

        assert verdict.is_verified is True
        assert verdict.confidence == ConfidenceTier.HIGH
        assert verdict.error is None
        record = verdict.data
        assert record.date_of_death == date(2023, 11, 20)
        assert record.location == "New York, NY"
        assert record.country == "US"
        assert record.source == "SSDI"
        assert record.verification_id.startswith("SSDI-")

        params = recorder.requests[0].url.params
        assert recorder.requests[0].url.path == "/v1/death-records"
        assert params["first_name"] == "John"
        assert params["last_name"] == "Doe"
        assert params["date_of_birth"] == "1950-03-15"
        assert params["ssn"] == "123-45-6789"

    @pytest.mark.asyncio
    async def test_not_deceased(self) -> None:
        recorder = Recorder(lambda req: httpx.Response(200, json={"isDeceased": False}))
        source = SSDISource(_client("SSDI", recorder, "https://ssdi.example.com"))
        await source.start()
        verdict = await source.probe(_query())
        await source.close()

        assert verdict.is_verified is False
        assert verdict.error is None
        assert verdict.confidence == ConfidenceTier.LOW
        assert "ssn" not in recorder.requests[0].url.params

    @pytest.mark.asyncio
    async def test_single_token_name_is_rejected_without_request(self) -> None:
        recorder = Recorder(lambda req: httpx.Response(200, json={}))
        source = SSDISource(_client("SSDI", recorder, "https://ssdi.example.com"))
        await source.start()
        verdict = await source.probe(_query("Madonna"))
        await source.close()

        assert verdict.is_verified is False
        assert "first and last name" in verdict.error
        assert recorder.requests == []

    @pytest.mark.asyncio
    async def test_server_error_becomes_error_verdict(self) -> None:
        recorder = Recorder(lambda req: httpx.Response(503))
        source = SSDISource(_client("SSDI", recorder, "https://ssdi.example.com"))
        await source.start()
        verdict = await source.probe(_query())
        await source.close()

        assert verdict.is_verified is False
        assert verdict.confidence == ConfidenceTier.LOW
        assert "SSDI request failed" in verdict.error

    @pytest.mark.asyncio
    async def test_client_error_is_not_retried(self) -> None:
        recorder = Recorder(lambda req: httpx.Response(404))
        client = SourceHTTPClient(
            source_name="SSDI",
            base_url="https://ssdi.example.com",
            max_retries=3,
            retry_backoff_s=0.0,
            transport=httpx.MockTransport(recorder),
        )
        source = SSDISource(client)
        await source.start()
        verdict = await source.probe(_query())
        await source.close()

        assert len(recorder.requests) == 1
        assert verdict.error

    @pytest.mark.asyncio
    async def test_server_error_is_retried(self) -> None:
        responses = iter([httpx.Response(502), httpx.Response(200, json={"isDeceased": False})])
        recorder = Recorder(lambda req: next(responses))
        client = SourceHTTPClient(
            source_name="SSDI",
            base_url="https://ssdi.example.com",
            max_retries=2,
            retry_backoff_s=0.0,
            transport=httpx.MockTransport(recorder),
        )
        source = SSDISource(client)
        await source.start()
        verdict = await source.probe(_query())
        await source.close()

        assert len(recorder.requests) == 2
        assert verdict.error is None

    @pytest.mark.asyncio
    async def test_death_without_date_is_an_error(self) -> None:
        recorder = Recorder(lambda req: httpx.Response(200, json={"isDeceased": True, "dateOfDeath": "soon"}))
        source = SSDISource(_client("SSDI", recorder, "https://ssdi.example.com"))
        await source.start()
        verdict = await source.probe(_query())
        await source.close()

        assert verdict.is_verified is False
        assert "valid date of death" in verdict.error


# ── Government registry ─────────────────────────────────────────────────

class TestGovernmentRegistrySource:

    @pytest.mark.asyncio
    async def test_unsupported_country_never_touches_network(self) -> None:
        recorder = Recorder(lambda req: httpx.Response(200, json={"isDeceased": True}))
        source = GovernmentRegistrySource(_client("Government Registry", recorder), DEFAULT_REGISTRY_ENDPOINTS)
        await source.start()
        verdict = await source.probe(_query(country="ZZ"))
        await source.close()

        assert verdict.is_verified is False
        assert verdict.error == "No registry API available for ZZ"
        assert recorder.requests == []

    @pytest.mark.asyncio
    async def test_uk_match_posts_to_uk_registry(self) -> None:
        recorder = Recorder(lambda req: httpx.Response(
            200, json={"isDeceased": True, "dateOfDeath": "2023-10-15T00:00:00Z", "location": "London"},
        ))
        source = GovernmentRegistrySource(_client("Government Registry", recorder), DEFAULT_REGISTRY_ENDPOINTS)
        await source.start()
        verdict = await source.probe(_query("Jane Smith", country="uk"))
        await source.close()

        request = recorder.requests[0]
        assert request.method == "POST"
        assert str(request.url) == DEFAULT_REGISTRY_ENDPOINTS["UK"]
        assert json.loads(request.content) == {
            "fullName": "Jane Smith",
            "dateOfBirth": "1950-03-15",
            "country": "UK",
        }

        assert verdict.is_verified is True
        assert verdict.confidence == ConfidenceTier.HIGH
        assert verdict.data.date_of_death == date(2023, 10, 15)
        assert verdict.data.country == "UK"
        assert verdict.data.verification_id.startswith("UK-GOV-")

    def test_supported_countries(self) -> None:
        source = GovernmentRegistrySource(SourceHTTPClient("Government Registry"), DEFAULT_REGISTRY_ENDPOINTS)
        assert source.countries == ["AU", "CA", "UK", "US"]
        assert source.endpoint_for("ca") == DEFAULT_REGISTRY_ENDPOINTS["CA"]


# ── News / obituaries ───────────────────────────────────────────────────

NEWS_URL = "https://news.example.com/death-notices"
FEED_URL = "https://obits.example.com/rss"


def _news_source(recorder: Recorder, api_key: str = "") -> NewsObituarySource:
    return NewsObituarySource(
        _client(NEWS, recorder),
        news_endpoints={"newsapi": NEWS_URL},
        obituary_feeds={"obituaries": FEED_URL},
        news_api_key=api_key,
    )


class TestNewsObituarySource:

    @pytest.mark.asyncio
    async def test_news_endpoint_match(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            if request.url.host == "news.example.com":
                return httpx.Response(200, json={
                    "isDeceased": True, "dateOfDeath": "2023-10-14", "location": "Leeds", "country": "UK",
                })
            return httpx.Response(200, text="<rss version='2.0'><channel></channel></rss>")

        recorder = Recorder(handler)
        source = _news_source(recorder, api_key="news-key")
        await source.start()
        verdict = await source.probe(_query("Jane Smith", country="UK", date_of_death=date(2023, 10, 15)))
        await source.close()

        assert verdict.is_verified is True
        assert verdict.confidence == ConfidenceTier.MEDIUM
        assert verdict.data.source == NEWS
        assert verdict.data.date_of_birth is None
        assert verdict.data.location == "Leeds"
        assert verdict.data.verification_id.startswith("NEWS-")

        news_request = next(r for r in recorder.requests if r.url.host == "news.example.com")
        assert news_request.headers["X-Api-Key"] == "news-key"
        assert news_request.url.params["from"] == "2023-09-15"
        assert news_request.url.params["to"] == "2023-11-14"
        feed_request = next(r for r in recorder.requests if r.url.host == "obits.example.com")
        assert "X-Api-Key" not in feed_request.headers

    @pytest.mark.asyncio
    async def test_obituary_feed_match(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            if request.url.host == "news.example.com":
                return httpx.Response(200, json={"isDeceased": False})
            return httpx.Response(200, text=OBITUARY_RSS)

        source = _news_source(Recorder(handler))
        await source.start()
        verdict = await source.probe(_query("Jane Smith", country="UK", location="London, UK"))
        await source.close()

        assert verdict.is_verified is True
        assert verdict.data.date_of_death == date(2023, 10, 16)
        assert verdict.data.location == "London, UK"
        assert verdict.data.country == "Unknown"

    @pytest.mark.asyncio
    async def test_one_feed_failing_is_not_an_error(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            if request.url.host == "news.example.com":
                return httpx.Response(500)
            return httpx.Response(200, text=OBITUARY_RSS)

        source = _news_source(Recorder(handler))
        await source.start()
        verdict = await source.probe(_query("Alice Walker"))
        await source.close()

        assert verdict.is_verified is False
        assert verdict.error is None

    @pytest.mark.asyncio
    async def test_all_feeds_failing(self) -> None:
        source = _news_source(Recorder(lambda req: httpx.Response(502)))
        await source.start()
        verdict = await source.probe(_query("Jane Smith"))
        await source.close()

        assert verdict.is_verified is False
        assert verdict.error.startswith("all news feeds failed")


class TestFindObituary:

    def test_match_by_name(self) -> None:
        hit = find_obituary("obituaries", OBITUARY_RSS, "jane smith")
        assert hit is not None
        assert hit.feed == "obituaries"
        assert hit.date_of_death == date(2023, 10, 16)

    def test_no_match(self) -> None:
        assert find_obituary("obituaries", OBITUARY_RSS, "John Doe") is None

    def test_outside_window(self) -> None:
        window = (date(2023, 1, 1), date(2023, 2, 1))
        assert find_obituary("obituaries", OBITUARY_RSS, "Jane Smith", window) is None

    def test_inside_window(self) -> None:
        window = (date(2023, 10, 1), date(2023, 10, 31))
        assert find_obituary("obituaries", OBITUARY_RSS, "Jane Smith", window) is not None


# ── Timeouts and circuit breaking ───────────────────────────────────────

class TestSourceHardening:

    @pytest.mark.asyncio
    async def test_slow_source_times_out(self) -> None:
        source = FakeSource("Slow", delay_s=1.0, timeout_s=0.05)
        verdict = await source.probe(_query())
        assert verdict.is_verified is False
        assert "timed out" in verdict.error

    @pytest.mark.asyncio
    async def test_unexpected_exception_becomes_error_verdict(self) -> None:
        source = FakeSource("Broken", error=KeyError("isDeceased"))
        verdict = await source.probe(_query())
        assert verdict.is_verified is False
        assert verdict.error

    @pytest.mark.asyncio
    async def test_open_circuit_skips_the_network(self) -> None:
        recorder = Recorder(lambda req: httpx.Response(500))
        breaker = CircuitBreaker("SSDI", failure_threshold=2, recovery_timeout_s=60, clock=FakeClock())
        source = SSDISource(_client("SSDI", recorder, "https://ssdi.example.com"), breaker=breaker)
        await source.start()
        await source.probe(_query())
        await source.probe(_query())
        assert breaker.state == CircuitState.OPEN

        verdict = await source.probe(_query())
        await source.close()

        assert len(recorder.requests) == 2
        assert "temporarily disabled" in verdict.error


    @pytest.mark.asyncio
    async def test_timeouts_open_the_circuit(self) -> None:
        breaker = CircuitBreaker("SSDI", failure_threshold=2, recovery_timeout_s=60, clock=FakeClock())
        source = FakeSource("SSDI", delay_s=1.0, timeout_s=0.02, breaker=breaker)

        for _ in range(2):
            verdict = await source.probe(_query())
            assert "timed out" in verdict.error
        assert breaker.state == CircuitState.OPEN

        verdict = await source.probe(_query())
        assert "temporarily disabled" in verdict.error
        assert source.calls == 2

    @pytest.mark.asyncio
    async def test_source_recovers_after_timed_out_trial(self) -> None:
        clock = FakeClock()
        breaker = CircuitBreaker("SSDI", failure_threshold=1, recovery_timeout_s=30, clock=clock)
        source = FakeSource("SSDI", delay_s=1.0, timeout_s=0.02, breaker=breaker)

        await source.probe(_query())
        assert breaker.state == CircuitState.OPEN

        clock.advance(30)
        verdict = await source.probe(_query())
        assert "timed out" in verdict.error
        assert breaker.state == CircuitState.OPEN

        source.delay_s = 0.0
        clock.advance(30)
        verdict = await source.probe(_query())
        assert verdict.error is None
        assert breaker.state == CircuitState.CLOSED


class TestCircuitBreaker:

    @pytest.mark.asyncio
    async def test_cancelled_trial_frees_the_slot(self) -> None:
        clock = FakeClock()
        breaker = CircuitBreaker("News", failure_threshold=1, recovery_timeout_s=30, clock=clock)

        async def fail() -> None:
            raise ConnectionError("down")

        async def hang() -> None:
            await asyncio.sleep(10)

        async def ok() -> str:
            return "ok"

        with pytest.raises(ConnectionError):
            await breaker.call(fail)
        clock.advance(30)

        with pytest.raises(asyncio.TimeoutError):
            await asyncio.wait_for(breaker.call(hang), timeout=0.02)

        assert await breaker.call(ok) == "ok"
        assert breaker.state == CircuitState.CLOSED

    @pytest.mark.asyncio
    async def test_half_open_trial_closes_on_success(self) -> None:
        clock = FakeClock()
        breaker = CircuitBreaker("SSDI", failure_threshold=1, recovery_timeout_s=30, clock=clock)

        async def fail() -> None:
            raise ConnectionError("down")

        async def ok() -> str:
            return "ok"

        with pytest.raises(ConnectionError):
            await breaker.call(fail)
        assert breaker.state == CircuitState.OPEN

        clock.advance(30)
        assert breaker.state == CircuitState.HALF_OPEN
        assert await breaker.call(ok) == "ok"
        assert breaker.state == CircuitState.CLOSED
        assert breaker.stats["failure_count"] == 0

    @pytest.mark.asyncio
    async def test_half_open_trial_failure_reopens(self) -> None:
        clock = FakeClock()
        breaker = CircuitBreaker("News", failure_threshold=1, recovery_timeout_s=30, clock=clock)

        async def fail() -> None:
            raise asyncio.TimeoutError()

        with pytest.raises(asyncio.TimeoutError):
            await breaker.call(fail)
        clock.advance(30)
        with pytest.raises(asyncio.TimeoutError):
            await breaker.call(fail)
        assert breaker.state == CircuitState.OPEN
