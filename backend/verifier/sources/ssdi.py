"""
Social Security Death Index lookup (US only).
Authoritative source: a match is reported at high confidence.
"""
from __future__ import annotations

from typing import Any, Optional

from shared.models.domain import VerificationQuery, VerificationRecord
from shared.models.enums import ConfidenceTier, SourceName
from shared.utils.logging import get_logger

from verifier.errors import InvalidQuery, SourceUnavailable
from verifier.sources.base import DeathRecordSource, parse_date, utcnow, verification_id

logger = get_logger(__name__)

SSDI_RECORDS_PATH = "/death-records"


class SSDISource(DeathRecordSource):
    """Queries an SSDI lookup service by first/last name, birth date and optional SSN."""

    @property
    def source_name(self) -> str:
        return SourceName.SSDI.value

    def _precheck(self, query: VerificationQuery) -> None:
        if len(query.name_tokens) < 2:
            raise InvalidQuery(self.source_name, "SSDI lookup needs at least a first and last name")

    def _params(self, query: VerificationQuery) -> dict[str, Any]:
        tokens = query.name_tokens
        params: dict[str, Any] = {
            "first_name": tokens[0],
            "last_name": tokens[-1],
            "date_of_birth": query.date_of_birth.isoformat(),
        }
        if query.national_id:
            params["ssn"] = query.national_id
        return params

    async def _lookup(self, query: VerificationQuery) -> Optional[VerificationRecord]:
        resp = await self._http.get(SSDI_RECORDS_PATH, params=self._params(query))
        data = resp.json()
        if not data.get("isDeceased"):
            return None

        date_of_death = parse_date(data.get("dateOfDeath"))
        if date_of_death is None:
            raise SourceUnavailable(self.source_name, "SSDI reported a death without a valid date of death")

        now = utcnow()
        return VerificationRecord(
            full_name=query.full_name,
            date_of_birth=query.date_of_birth,
            date_of_death=date_of_death,
            location=data.get("location") or "Unknown",
            country="US",
            source=self.source_name,
            confidence=ConfidenceTier.HIGH,
            verification_id=verification_id("SSDI", now),
            timestamp=now,
        )
