"""
Health reporting for the verification sources and cache.
Feeds the dashboard's degraded-mode banner.
"""
from __future__ import annotations

import asyncio
import time
from datetime import date
from typing import Sequence

from shared.models.domain import HealthReport, SourceHealth, SourceVerdict, VerificationQuery
from shared.utils.logging import get_logger
from shared.utils.metrics import SOURCE_HEALTH

from verifier.cache import VerificationCache
from verifier.policy import EnvironmentPolicy
from verifier.sources.base import DeathRecordSource

logger = get_logger(__name__)

HEALTH_PROBE_QUERY = VerificationQuery(full_name="Test User", date_of_birth=date(1990, 1, 1), country="US")


def _elapsed_ms(start: float) -> float:
    return round((time.perf_counter() - start) * 1000, 2)


class HealthReporter:
    """Probes each source with a synthetic query; never writes to the cache."""

    def __init__(
        self,
        sources: Sequence[DeathRecordSource],
        cache: VerificationCache,
        policy: EnvironmentPolicy,
    ) -> None:
        self._sources = list(sources)
        self._cache = cache
        self._policy = policy

    async def _timed_probe(self, source: DeathRecordSource) -> tuple[SourceVerdict, float]:
        start = time.perf_counter()
        verdict = await source.probe(HEALTH_PROBE_QUERY)
        return verdict, _elapsed_ms(start)

    def _check_cache(self) -> SourceHealth:
        start = time.perf_counter()
        self._cache.stats()
        return SourceHealth(available=True, response_time_ms=_elapsed_ms(start))

    async def check_health(self) -> HealthReport:
        if self._policy.should_use_mock():
            return HealthReport(
                available=True,
                response_time_ms=0.0,
                mock_mode=True,
                sources={s.source_name: SourceHealth(available=True) for s in self._sources},
                cache=SourceHealth(available=True),
            )

        start = time.perf_counter()
        try:
            results = await asyncio.gather(*(self._timed_probe(s) for s in self._sources))
        except Exception as exc:
            logger.exception("health_check_failed", error=str(exc))
            return HealthReport(
                available=False,
                response_time_ms=_elapsed_ms(start),
                error=str(exc) or "Unknown error",
                cache=self._check_cache(),
            )
        total_ms = _elapsed_ms(start)

        sources: dict[str, SourceHealth] = {}
        for source, (verdict, ms) in zip(self._sources, results):
            healthy = verdict.error is None
            sources[source.source_name] = SourceHealth(available=healthy, response_time_ms=ms, error=verdict.error)
            SOURCE_HEALTH.labels(source=source.source_name).set(1 if healthy else 0)

        available = any(h.available for h in sources.values())
        error = None
        if not available:
            error = "; ".join(f"{name}: {h.error}" for name, h in sources.items()) or "no sources configured"
            logger.warning("health_check_degraded", error=error)

        return HealthReport(
            available=available,
            response_time_ms=total_ms,
            error=error,
            sources=sources,
            cache=self._check_cache(),
        )
