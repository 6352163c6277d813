"""
News and obituary lookup.
Fans out to JSON news endpoints and RSS obituary feeds; the first feed (in
declared order) reporting the death wins. News corroborates rather than proves,
so matches are medium confidence.
"""
from __future__ import annotations

import asyncio
from dataclasses import dataclass
from datetime import date
from typing import Any, Optional

import feedparser

from shared.models.domain import VerificationQuery, VerificationRecord
from shared.models.enums import ConfidenceTier, SourceName
from shared.utils.circuit_breaker import CircuitBreaker
from shared.utils.http_client import SourceHTTPClient
from shared.utils.logging import get_logger

from verifier.errors import SourceUnavailable
from verifier.sources.base import DeathRecordSource, parse_date, utcnow, verification_id

logger = get_logger(__name__)


@dataclass(frozen=True)
class NewsHit:
    feed: str
    date_of_death: date
    location: Optional[str] = None
    country: Optional[str] = None


def _entry_date(entry: Any) -> Optional[date]:
    parsed = entry.get("published_parsed") or entry.get("updated_parsed")
    if not parsed:
        return None
    return date(parsed.tm_year, parsed.tm_mon, parsed.tm_mday)


def _in_window(day: date, window: Optional[tuple[date, date]]) -> bool:
    if window is None:
        return True
    start, end = window
    return start <= day <= end


def find_obituary(
    feed_name: str,
    document: str,
    full_name: str,
    window: Optional[tuple[date, date]] = None,
) -> Optional[NewsHit]:
    """
    Scan an RSS/Atom document for an entry naming the person.
    The entry's publish date stands in for the date of death.
    """
    parsed = feedparser.parse(document)
    if parsed.bozo and not parsed.entries:
        raise ValueError(f"{feed_name} returned an unreadable feed: {parsed.get('bozo_exception')}")

    needle = full_name.casefold()
    for entry in parsed.entries:
        text = f"{entry.get('title', '')} {entry.get('summary', '')}".casefold()
        if needle not in text:
            continue
        published = _entry_date(entry)
        if published is None or not _in_window(published, window):
            continue
        return NewsHit(feed=feed_name, date_of_death=published)
    return None


class NewsObituarySource(DeathRecordSource):
    """Searches news death notices and obituary feeds by name within an optional date window."""

    def __init__(
        self,
        http: SourceHTTPClient,
        news_endpoints: dict[str, str],
        obituary_feeds: dict[str, str],
        window_days: int = 30,
        news_api_key: str = "",
        breaker: Optional[CircuitBreaker] = None,
        timeout_s: float = 30.0,
    ) -> None:
        super().__init__(http, breaker=breaker, timeout_s=timeout_s)
        self._news_endpoints = dict(news_endpoints)
        self._obituary_feeds = dict(obituary_feeds)
        self._window_days = window_days
        self._news_headers = {"X-Api-Key": news_api_key} if news_api_key else None

    @property
    def source_name(self) -> str:
        return SourceName.NEWS.value

    @property
    def feed_names(self) -> list[str]:
        return [*self._news_endpoints, *self._obituary_feeds]

    async def _search_news(
        self,
        name: str,
        url: str,
        query: VerificationQuery,
        window: Optional[tuple[date, date]],
    ) -> Optional[NewsHit]:
        params: dict[str, Any] = {"name": query.full_name}
        if query.last_known_location:
            params["location"] = query.last_known_location
        if window:
            params["from"] = window[0].isoformat()
            params["to"] = window[1].isoformat()
        resp = await self._http.get(url, params=params, extra_headers=self._news_headers)
        data = resp.json()
        if not data.get("isDeceased"):
            return None
        date_of_death = parse_date(data.get("dateOfDeath"))
        if date_of_death is None or not _in_window(date_of_death, window):
            return None
        return NewsHit(
            feed=name,
            date_of_death=date_of_death,
            location=data.get("location"),
            country=data.get("country"),
        )

    async def _search_feed(
        self,
        name: str,
        url: str,
        query: VerificationQuery,
        window: Optional[tuple[date, date]],
    ) -> Optional[NewsHit]:
        resp = await self._http.get(url)
        return find_obituary(name, resp.text, query.full_name, window)

    async def _lookup(self, query: VerificationQuery) -> Optional[VerificationRecord]:
        window = query.news_window(self._window_days)
        searches = [
            *(self._search_news(name, url, query, window) for name, url in self._news_endpoints.items()),
            *(self._search_feed(name, url, query, window) for name, url in self._obituary_feeds.items()),
        ]
        if not searches:
            return None

        results = await asyncio.gather(*searches, return_exceptions=True)
        failures: list[Exception] = []
        hit: Optional[NewsHit] = None
        for feed, result in zip(self.feed_names, results):
            if isinstance(result, Exception):
                logger.debug("news_feed_error", feed=feed, error=str(result))
                failures.append(result)
            elif isinstance(result, NewsHit) and hit is None:
                hit = result

        if hit is None:
            if len(failures) == len(results):
                raise SourceUnavailable(
                    self.source_name, f"all news feeds failed: {str(failures[0]) or type(failures[0]).__name__}"
                )
            return None

        now = utcnow()
        logger.debug("news_feed_match", feed=hit.feed)
        return VerificationRecord(
            full_name=query.full_name,
            date_of_birth=None,
            date_of_death=hit.date_of_death,
            location=hit.location or query.last_known_location or "Unknown",
            country=hit.country or "Unknown",
            source=self.source_name,
            confidence=ConfidenceTier.MEDIUM,
            verification_id=verification_id("NEWS", now),
            timestamp=now,
        )
