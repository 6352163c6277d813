"""
Government death registry lookup, routed per country.
Countries without a configured registry are rejected before any request is made.
"""
from __future__ import annotations

from typing import Optional

from shared.models.domain import VerificationQuery, VerificationRecord
from shared.models.enums import ConfidenceTier, SourceName
from shared.utils.circuit_breaker import CircuitBreaker
from shared.utils.http_client import SourceHTTPClient

from verifier.errors import ConfigurationGap, SourceUnavailable
from verifier.sources.base import DeathRecordSource, parse_date, utcnow, verification_id


class GovernmentRegistrySource(DeathRecordSource):
    """Posts the person's identity to the registry for their country."""

    def __init__(
        self,
        http: SourceHTTPClient,
        endpoints: dict[str, str],
        breaker: Optional[CircuitBreaker] = None,
        timeout_s: float = 30.0,
    ) -> None:
        super().__init__(http, breaker=breaker, timeout_s=timeout_s)
        self._endpoints = {country.upper(): url for country, url in endpoints.items()}

    @property
    def source_name(self) -> str:
        return SourceName.GOVERNMENT_REGISTRY.value

    @property
    def countries(self) -> list[str]:
        return sorted(self._endpoints)

    def endpoint_for(self, country: str) -> Optional[str]:
        return self._endpoints.get(country.upper())

    def _precheck(self, query: VerificationQuery) -> None:
        if self.endpoint_for(query.country) is None:
            raise ConfigurationGap(self.source_name, f"No registry API available for {query.country}")

    async def _lookup(self, query: VerificationQuery) -> Optional[VerificationRecord]:
        url = self.endpoint_for(query.country)
        resp = await self._http.post(
            url,
            json={
                "fullName": query.full_name,
                "dateOfBirth": query.date_of_birth.isoformat(),
                "country": query.country,
            },
        )
        data = resp.json()
        if not data.get("isDeceased"):
            return None

        date_of_death = parse_date(data.get("dateOfDeath"))
        if date_of_death is None:
            raise SourceUnavailable(
                self.source_name, f"{query.country} registry reported a death without a valid date of death"
            )

        country = (data.get("country") or query.country).upper()
        now = utcnow()
        return VerificationRecord(
            full_name=query.full_name,
            date_of_birth=query.date_of_birth,
            date_of_death=date_of_death,
            location=data.get("location") or "Unknown",
            country=country,
            source=self.source_name,
            confidence=ConfidenceTier.HIGH,
            verification_id=verification_id(f"{country}-GOV", now),
            timestamp=now,
        )
