"""
Death verification engine.
Gates mock vs real sources, consults the cache, fans out to every source
concurrently and combines whatever they report into one verdict.
"""
from __future__ import annotations

import asyncio
import hashlib
import random
import time
from datetime import date
from typing import Optional, Sequence

import httpx

from shared.config import Settings, get_settings
from shared.models.domain import (
    AdditionalData,
    AggregateVerdict,
    CacheStats,
    HealthReport,
    SourceVerdict,
    VerificationQuery,
)
from shared.models.enums import SourceName
from shared.utils.circuit_breaker import CircuitBreaker
from shared.utils.http_client import SourceHTTPClient
from shared.utils.logging import get_logger
from shared.utils.metrics import VERIFICATION_LATENCY, VERIFICATIONS

from verifier.cache import VerificationCache
from verifier.confidence import combine_verdicts
from verifier.config import VerifierSettings, get_verifier_settings
from verifier.health import HealthReporter
from verifier.policy import EnvironmentPolicy, MockVerifier
from verifier.sources import GovernmentRegistrySource, NewsObituarySource, SSDISource
from verifier.sources.base import DeathRecordSource

logger = get_logger(__name__)

DEFAULT_SOURCE_PRIORITY: tuple[str, ...] = (
    SourceName.SSDI.value,
    SourceName.GOVERNMENT_REGISTRY.value,
    SourceName.NEWS.value,
)


def _query_ref(query: VerificationQuery) -> str:
    """Short stable reference for logs; avoids writing names and birth dates to log sinks."""
    return hashlib.sha256(query.cache_key.encode("utf-8")).hexdigest()[:12]


def _outcome(verdict: AggregateVerdict) -> str:
    return "verified" if verdict.is_verified else "not_verified"


class DeathVerificationService:
    """
    Multi-source death verification.

    All collaborators are passed in: the ordered source list, the cache, the
    environment policy and the mock verifier. ``priority`` breaks ties between
    equally confident sources when choosing the primary record.
    """

    def __init__(
        self,
        sources: Sequence[DeathRecordSource],
        cache: VerificationCache,
        policy: EnvironmentPolicy,
        mock: Optional[MockVerifier] = None,
        priority: Optional[Sequence[str]] = None,
    ) -> None:
        self._sources = list(sources)
        self._cache = cache
        self._policy = policy
        self._mock = mock or MockVerifier()
        self._priority = list(priority or DEFAULT_SOURCE_PRIORITY)
        self._health = HealthReporter(self._sources, cache, policy)

    @property
    def sources(self) -> list[DeathRecordSource]:
        return list(self._sources)

    @property
    def priority(self) -> list[str]:
        return list(self._priority)

    @property
    def cache(self) -> VerificationCache:
        return self._cache

    @property
    def policy(self) -> EnvironmentPolicy:
        return self._policy

    async def start(self) -> None:
        for source in self._sources:
            await source.start()
        logger.info(
            "verification_service_started",
            sources=[s.source_name for s in self._sources],
            mock_mode=self._policy.should_use_mock(),
        )

    async def close(self) -> None:
        for source in self._sources:
            await source.close()

    async def verify_death(
        self,
        full_name: str,
        date_of_birth: date | str,
        country: str,
        additional: Optional[AdditionalData] = None,
    ) -> AggregateVerdict:
        """
        Verify a death across all sources. Never raises: unexpected failures come
        back as an unverified, low-confidence verdict carrying the error message.
        """
        try:
            query = VerificationQuery.build(full_name, date_of_birth, country, additional)

            if self._policy.should_use_mock():
                verdict = self._mock.verify(query)
                VERIFICATIONS.labels(outcome="mock").inc()
                return verdict

            cached = self._cache.get(query.cache_key)
            if cached is not None:
                logger.debug("verification_cache_hit", query_ref=_query_ref(query))
                VERIFICATIONS.labels(outcome="cached").inc()
                return cached

            return await self.aggregate(query)
        except Exception as exc:
            logger.exception("verification_failed", error=str(exc))
            VERIFICATIONS.labels(outcome="failed").inc()
            return AggregateVerdict.failed(str(exc))

    async def aggregate(self, query: VerificationQuery) -> AggregateVerdict:
        """Probe every source concurrently, wait for all to settle, combine, cache."""
        start = time.perf_counter()
        results = await asyncio.gather(
            *(source.probe(query) for source in self._sources),
            return_exceptions=True,
        )

        verdicts: list[SourceVerdict] = []
        for source, result in zip(self._sources, results):
            if isinstance(result, SourceVerdict):
                verdicts.append(result)
            elif isinstance(result, Exception):
                logger.error("source_probe_escaped", source=source.source_name, error=str(result))
                verdicts.append(SourceVerdict.unverified(source.source_name, error=str(result)))
            else:
                raise result

        verdict = combine_verdicts(verdicts, self._priority)
        self._cache.put(query.cache_key, verdict)

        elapsed = time.perf_counter() - start
        VERIFICATION_LATENCY.observe(elapsed)
        VERIFICATIONS.labels(outcome=_outcome(verdict)).inc()
        logger.info(
            "verification_completed",
            query_ref=_query_ref(query),
            verified=verdict.is_verified,
            confidence=verdict.confidence.value,
            sources=verdict.sources,
            source_errors={v.source_name: v.error for v in verdicts if v.error},
            latency_ms=round(elapsed * 1000, 2),
        )
        return verdict

    async def check_api_health(self) -> HealthReport:
        return await self._health.check_health()

    def get_cache_stats(self) -> CacheStats:
        return self._cache.stats()


def build_sources(
    verifier_settings: VerifierSettings,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> list[DeathRecordSource]:
    """Construct the production sources in priority order, each with its own client and breaker."""
    vs = verifier_settings

    def client(name: str, base_url: str = "", api_key: str = "") -> SourceHTTPClient:
        return SourceHTTPClient(
            source_name=name,
            base_url=base_url,
            api_key=api_key,
            timeout_s=vs.http_timeout_s,
            max_retries=vs.http_max_retries,
            retry_backoff_s=vs.retry_backoff_s,
            transport=transport,
        )

    def breaker(name: str) -> CircuitBreaker:
        return CircuitBreaker(
            name=name,
            failure_threshold=vs.circuit_failure_threshold,
            recovery_timeout_s=vs.circuit_recovery_s,
        )

    ssdi = SourceName.SSDI.value
    registry = SourceName.GOVERNMENT_REGISTRY.value
    news = SourceName.NEWS.value
    return [
        SSDISource(
            client(ssdi, vs.ssdi_url, vs.ssdi_api_key),
            breaker=breaker(ssdi),
            timeout_s=vs.source_timeout_s,
        ),
        GovernmentRegistrySource(
            client(registry, api_key=vs.registry_api_key),
            endpoints=vs.registry_endpoints,
            breaker=breaker(registry),
            timeout_s=vs.source_timeout_s,
        ),
        NewsObituarySource(
            client(news),
            news_endpoints=vs.news_endpoints,
            obituary_feeds=vs.obituary_feeds,
            window_days=vs.news_window_days,
            news_api_key=vs.news_api_key,
            breaker=breaker(news),
            timeout_s=vs.source_timeout_s,
        ),
    ]


def build_service(
    settings: Optional[Settings] = None,
    verifier_settings: Optional[VerifierSettings] = None,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> DeathVerificationService:
    """Wire the service from configuration."""
    settings = settings or get_settings()
    vs = verifier_settings or get_verifier_settings()
    rng = random.Random(vs.mock_seed) if vs.mock_seed is not None else random.Random()
    return DeathVerificationService(
        sources=build_sources(vs, transport=transport),
        cache=VerificationCache(ttl_s=vs.cache_ttl_s),
        policy=EnvironmentPolicy(settings.environment),
        mock=MockVerifier(rng=rng, match_probability=vs.mock_match_probability),
        priority=vs.source_priority,
    )
