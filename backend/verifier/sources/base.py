"""
Base interface for death-record sources.
Every source normalizes its answer to a SourceVerdict; probe() never raises.
"""
from __future__ import annotations

import asyncio
import time
from abc import ABC, abstractmethod
from datetime import date, datetime, timezone
from typing import Any, Optional

import httpx

from shared.models.domain import SourceVerdict, VerificationQuery, VerificationRecord
from shared.utils.circuit_breaker import CircuitBreaker, CircuitBreakerOpen
from shared.utils.http_client import SourceHTTPClient
from shared.utils.logging import get_logger
from shared.utils.metrics import SOURCE_VERDICTS

from verifier.errors import VerificationError

logger = get_logger(__name__)


def parse_date(value: Any) -> Optional[date]:
    """Accept 'YYYY-MM-DD' or a full ISO timestamp; None if absent or malformed."""
    if not value or not isinstance(value, str):
        return None
    try:
        return date.fromisoformat(value[:10])
    except ValueError:
        return None


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def verification_id(prefix: str, at: datetime) -> str:
    return f"{prefix}-{int(at.timestamp() * 1000)}"


class DeathRecordSource(ABC):
    """Base for SSDI, government registry and news/obituary lookups."""

    def __init__(
        self,
        http: SourceHTTPClient,
        breaker: Optional[CircuitBreaker] = None,
        timeout_s: float = 30.0,
    ) -> None:
        self._http = http
        self._breaker = breaker
        self._timeout = timeout_s

    @property
    @abstractmethod
    def source_name(self) -> str:
        pass

    @property
    def base_url(self) -> str:
        return self._http.base_url

    async def start(self) -> None:
        await self._http.start()

    async def close(self) -> None:
        await self._http.close()

    def _precheck(self, query: VerificationQuery) -> None:
        """Raise ConfigurationGap / InvalidQuery before any network activity."""

    @abstractmethod
    async def _lookup(self, query: VerificationQuery) -> Optional[VerificationRecord]:
        """
        Query the source. Return the record on a match, None when the person is
        not reported deceased. May raise; probe() converts failures to verdicts.
        """
        pass

    async def _timed_lookup(self, query: VerificationQuery) -> Optional[VerificationRecord]:
        return await asyncio.wait_for(self._lookup(query), timeout=self._timeout)

    async def _guarded_lookup(self, query: VerificationQuery) -> Optional[VerificationRecord]:
        """Timeouts raise inside the breaker so they count as source failures."""
        if self._breaker is None:
            return await self._timed_lookup(query)
        return await self._breaker.call(self._timed_lookup, query)

    async def probe(self, query: VerificationQuery) -> SourceVerdict:
        """Look the person up in this source. Failures come back as unverified, low-confidence verdicts."""
        start = time.perf_counter()
        try:
            self._precheck(query)
            record = await self._guarded_lookup(query)
        except VerificationError as exc:
            verdict = self._failed(exc.message, kind=type(exc).__name__)
        except CircuitBreakerOpen as exc:
            verdict = self._failed(str(exc), kind="circuit_open")
        except asyncio.TimeoutError:
            verdict = self._failed(f"{self.source_name} timed out after {self._timeout:.0f}s", kind="timeout")
        except httpx.HTTPError as exc:
            verdict = self._failed(
                f"{self.source_name} request failed: {str(exc) or type(exc).__name__}",
                kind=type(exc).__name__,
            )
        except Exception as exc:
            logger.exception("source_probe_unexpected_error", source=self.source_name, error=str(exc))
            verdict = self._failed(str(exc) or f"{self.source_name} API error", kind="unexpected")
        else:
            if record is None:
                verdict = SourceVerdict.unverified(self.source_name)
            else:
                verdict = SourceVerdict.matched(record)

        outcome = "match" if verdict.is_verified else ("error" if verdict.error else "no_match")
        SOURCE_VERDICTS.labels(source=self.source_name, outcome=outcome).inc()
        logger.debug(
            "source_probe_completed",
            source=self.source_name,
            outcome=outcome,
            latency_ms=round((time.perf_counter() - start) * 1000, 2),
        )
        return verdict

    def _failed(self, message: str, kind: str) -> SourceVerdict:
        logger.warning("source_probe_failed", source=self.source_name, kind=kind, error=message)
        return SourceVerdict.unverified(self.source_name, error=message)
