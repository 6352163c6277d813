"""
Async HTTP client wrapper for death-record source requests.
Includes retry logic, timeout management, and metrics collection.
"""
from __future__ import annotations

import asyncio
import time
from typing import Any, Optional

import httpx

from shared.utils.logging import get_logger
from shared.utils.metrics import SOURCE_LATENCY, SOURCE_REQUESTS

logger = get_logger(__name__)


def _retry_after_s(resp: httpx.Response, default: float) -> float:
    """Retry-After in seconds; HTTP-date values fall back to the default."""
    try:
        return float(resp.headers.get("Retry-After", default))
    except ValueError:
        return default


class SourceHTTPClient:
    """
    Async HTTP client tailored for death-record source APIs.
    Handles timeouts, retries, and records metrics per request.
    """

    def __init__(
        self,
        source_name: str,
        base_url: str = "",
        api_key: str = "",
        headers: dict[str, str] | None = None,
        timeout_s: float = 10.0,
        max_retries: int = 2,
        retry_backoff_s: float = 1.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._source = source_name
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout_s
        self._max_retries = max(1, max_retries)
        self._backoff = retry_backoff_s
        self._default_headers = dict(headers or {})
        if api_key:
            self._default_headers.setdefault("Authorization", f"Bearer {api_key}")
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    @property
    def base_url(self) -> str:
        return self._base_url

    async def start(self) -> None:
        """Initialize the underlying httpx client."""
        if self._client is not None:
            return
        self._client = httpx.AsyncClient(
            base_url=self._base_url,
            headers=self._default_headers,
            timeout=httpx.Timeout(self._timeout, connect=5.0),
            follow_redirects=True,
            limits=httpx.Limits(max_connections=20, max_keepalive_connections=10),
            transport=self._transport,
        )

    async def close(self) -> None:
        """Close the underlying httpx client."""
        if self._client:
            await self._client.aclose()
            self._client = None

    async def get(
        self,
        path: str,
        params: dict[str, Any] | None = None,
        extra_headers: dict[str, str] | None = None,
    ) -> httpx.Response:
        return await self._request("GET", path, params=params, extra_headers=extra_headers)

    async def post(
        self,
        path: str,
        json: Any = None,
        extra_headers: dict[str, str] | None = None,
    ) -> httpx.Response:
        return await self._request("POST", path, json=json, extra_headers=extra_headers)

    async def _request(
        self,
        method: str,
        path: str,
        params: dict[str, Any] | None = None,
        json: Any = None,
        extra_headers: dict[str, str] | None = None,
    ) -> httpx.Response:
        """
        Perform a request with retry, metrics, and structured logging.

        ``path`` may be relative to base_url or an absolute URL.

        Raises:
            httpx.HTTPStatusError: On non-retryable HTTP errors or when retries run out.
            httpx.TimeoutException: If all retries time out.
        """
        if not self._client:
            raise RuntimeError("SourceHTTPClient not started. Call start() first.")

        last_exc: Optional[Exception] = None

        for attempt in range(1, self._max_retries + 1):
            start_time = time.perf_counter()
            status = "unknown"

            try:
                resp = await self._client.request(
                    method, path, params=params, json=json, headers=extra_headers
                )
                status = str(resp.status_code)

                if resp.status_code == 429:
                    logger.warning(
                        "source_rate_limited",
                        source=self._source,
                        path=path,
                        attempt=attempt,
                    )
                    if attempt < self._max_retries:
                        retry_after = _retry_after_s(resp, self._backoff)
                        await asyncio.sleep(min(retry_after, 10.0))
                        continue
                    resp.raise_for_status()

                if resp.status_code >= 500 and attempt < self._max_retries:
                    logger.warning(
                        "source_server_error",
                        source=self._source,
                        path=path,
                        status=resp.status_code,
                        attempt=attempt,
                    )
                    await asyncio.sleep(self._backoff * attempt)
                    continue

                resp.raise_for_status()

                logger.debug(
                    "source_request_success",
                    source=self._source,
                    path=path,
                    status=resp.status_code,
                    latency_ms=round((time.perf_counter() - start_time) * 1000, 2),
                )
                return resp

            except httpx.TimeoutException as exc:
                status = "timeout"
                last_exc = exc
                logger.warning(
                    "source_timeout",
                    source=self._source,
                    path=path,
                    attempt=attempt,
                )
                if attempt < self._max_retries:
                    await asyncio.sleep(self._backoff * attempt)
                    continue

            except httpx.HTTPStatusError as exc:
                status = str(exc.response.status_code)
                last_exc = exc
                logger.error(
                    "source_http_error",
                    source=self._source,
                    path=path,
                    status=exc.response.status_code,
                    attempt=attempt,
                )
                raise

            except httpx.HTTPError as exc:
                status = "error"
                last_exc = exc
                logger.error(
                    "source_request_error",
                    source=self._source,
                    path=path,
                    error=str(exc),
                    attempt=attempt,
                )
                if attempt < self._max_retries:
                    await asyncio.sleep(self._backoff * attempt)
                    continue

            finally:
                SOURCE_REQUESTS.labels(source=self._source, status=status).inc()
                SOURCE_LATENCY.labels(source=self._source).observe(time.perf_counter() - start_time)

        # All retries exhausted
        if last_exc:
            raise last_exc
        raise RuntimeError(f"{self._source} request failed after {self._max_retries} attempts")
