"""
Pydantic v2 domain models for death verification.
These are the canonical wire/internal representations; all are immutable and
serialize to camelCase for the dashboard.
"""
from __future__ import annotations

from datetime import date, datetime, timedelta
from typing import Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel

from shared.models.enums import ConfidenceTier, SourceName

NO_MATCH_MESSAGE = "no verification found in any source"


# ── Base ────────────────────────────────────────────────────────────────
class DomainModel(BaseModel):
    model_config = ConfigDict(
        frozen=True,
        populate_by_name=True,
        alias_generator=to_camel,
        from_attributes=True,
    )


# ── Query ───────────────────────────────────────────────────────────────
class AdditionalData(DomainModel):
    """Optional facts that narrow individual source lookups."""
    national_id: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("nationalId", "national_id", "ssn"),
    )
    location: Optional[str] = None
    date_of_death: Optional[date] = None


class VerificationQuery(DomainModel):
    full_name: str
    date_of_birth: date
    country: str
    national_id: Optional[str] = None
    last_known_location: Optional[str] = None
    claimed_date_of_death: Optional[date] = None

    @field_validator("full_name")
    @classmethod
    def _clean_name(cls, v: str) -> str:
        v = " ".join(v.split())
        if not v:
            raise ValueError("full name must not be empty")
        return v

    @field_validator("country")
    @classmethod
    def _clean_country(cls, v: str) -> str:
        v = v.strip().upper()
        if not v:
            raise ValueError("country must not be empty")
        return v

    @classmethod
    def build(
        cls,
        full_name: str,
        date_of_birth: date | str,
        country: str,
        additional: Optional[AdditionalData] = None,
    ) -> "VerificationQuery":
        extra = additional or AdditionalData()
        return cls(
            full_name=full_name,
            date_of_birth=date_of_birth,
            country=country,
            national_id=extra.national_id,
            last_known_location=extra.location,
            claimed_date_of_death=extra.date_of_death,
        )

    @property
    def cache_key(self) -> str:
        """Same (name, birth date, country) always yields the same key."""
        return f"death:{self.full_name.casefold()}:{self.date_of_birth.isoformat()}:{self.country}"

    @property
    def name_tokens(self) -> list[str]:
        return self.full_name.split()

    def news_window(self, days: int = 30) -> Optional[tuple[date, date]]:
        """Search window around the claimed date of death, if one was given."""
        if self.claimed_date_of_death is None:
            return None
        span = timedelta(days=days)
        return self.claimed_date_of_death - span, self.claimed_date_of_death + span


# ── Verdicts ────────────────────────────────────────────────────────────
class VerificationRecord(DomainModel):
    """A normalized death fact reported by one source."""
    full_name: str
    date_of_birth: Optional[date] = None
    date_of_death: date
    location: str = "Unknown"
    country: str = "Unknown"
    source: str
    confidence: ConfidenceTier
    verification_id: str
    timestamp: datetime


class SourceVerdict(DomainModel):
    is_verified: bool
    data: Optional[VerificationRecord] = None
    source_name: str
    confidence: ConfidenceTier = ConfidenceTier.LOW
    error: Optional[str] = None

    @classmethod
    def matched(cls, record: VerificationRecord) -> "SourceVerdict":
        return cls(
            is_verified=True,
            data=record,
            source_name=record.source,
            confidence=record.confidence,
        )

    @classmethod
    def unverified(cls, source_name: str, error: Optional[str] = None) -> "SourceVerdict":
        return cls(
            is_verified=False,
            data=None,
            source_name=source_name,
            confidence=ConfidenceTier.LOW,
            error=error,
        )


class AggregateVerdict(DomainModel):
    is_verified: bool
    record: Optional[VerificationRecord] = None
    sources: list[str] = Field(default_factory=list)
    confidence: ConfidenceTier = ConfidenceTier.LOW
    error: Optional[str] = None

    @model_validator(mode="after")
    def _check_invariants(self) -> "AggregateVerdict":
        if self.is_verified and self.record is None:
            raise ValueError("a verified aggregate must carry a record")
        if len(set(self.sources)) != len(self.sources):
            raise ValueError(f"duplicate source names: {self.sources}")
        return self

    @classmethod
    def no_match(cls) -> "AggregateVerdict":
        return cls(is_verified=False, sources=[], confidence=ConfidenceTier.LOW, error=NO_MATCH_MESSAGE)

    @classmethod
    def failed(cls, message: str) -> "AggregateVerdict":
        return cls(is_verified=False, sources=[], confidence=ConfidenceTier.LOW, error=message or "Unknown error")

    @classmethod
    def from_source(cls, verdict: SourceVerdict) -> "AggregateVerdict":
        return cls(
            is_verified=verdict.is_verified,
            record=verdict.data,
            sources=[verdict.source_name],
            confidence=verdict.confidence,
            error=verdict.error,
        )


# ── Health / stats ──────────────────────────────────────────────────────
class SourceHealth(DomainModel):
    available: bool
    response_time_ms: float = 0.0
    error: Optional[str] = None


class HealthReport(DomainModel):
    available: bool
    response_time_ms: float = 0.0
    error: Optional[str] = None
    mock_mode: bool = False
    sources: dict[str, SourceHealth] = Field(default_factory=dict)
    cache: SourceHealth = Field(default_factory=lambda: SourceHealth(available=True))


class CacheStats(DomainModel):
    size: int
    hits: int
    misses: int
    hit_rate: float


__all__ = [
    "AdditionalData",
    "AggregateVerdict",
    "CacheStats",
    "ConfidenceTier",
    "HealthReport",
    "NO_MATCH_MESSAGE",
    "SourceHealth",
    "SourceName",
    "SourceVerdict",
    "VerificationQuery",
    "VerificationRecord",
]
