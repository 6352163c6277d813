"""
Environment policy: dev/test/staging never reach real death-record sources.
The mock path answers from a small fixed table behind a seedable random gate,
so demos see occasional matches while tests stay reproducible.
"""
from __future__ import annotations

import random
from datetime import date, datetime, timezone
from typing import Mapping, Optional

from shared.config import Environment
from shared.models.domain import AggregateVerdict, SourceVerdict, VerificationQuery, VerificationRecord
from shared.models.enums import ConfidenceTier, SourceName
from shared.utils.logging import get_logger

logger = get_logger(__name__)

MOCK_STAGES = frozenset({Environment.DEV, Environment.TEST, Environment.STAGING})

MOCK_DEATH_RECORDS: dict[str, VerificationRecord] = {
    "john-doe": VerificationRecord(
        full_name="John Doe",
        date_of_birth=date(1950, 3, 15),
        date_of_death=date(2023, 11, 20),
        location="New York, NY",
        country="US",
        source=SourceName.SSDI.value,
        confidence=ConfidenceTier.HIGH,
        verification_id="SSDI-2023-12345",
        timestamp=datetime(2023, 11, 21, 10, 30, tzinfo=timezone.utc),
    ),
    "jane-smith": VerificationRecord(
        full_name="Jane Smith",
        date_of_birth=date(1945, 7, 22),
        date_of_death=date(2023, 10, 15),
        location="London, UK",
        country="UK",
        source=SourceName.GOVERNMENT_REGISTRY.value,
        confidence=ConfidenceTier.HIGH,
        verification_id="UK-GOV-2023-789",
        timestamp=datetime(2023, 10, 16, 14, 20, tzinfo=timezone.utc),
    ),
}


def mock_key(full_name: str) -> str:
    """'John  Doe' -> 'john-doe'."""
    return "-".join(full_name.casefold().split())


class EnvironmentPolicy:
    """Decides once, at construction, whether this process uses the mock path."""

    def __init__(self, environment: Environment) -> None:
        self._environment = environment
        self._use_mock = environment in MOCK_STAGES

    @property
    def environment(self) -> Environment:
        return self._environment

    def should_use_mock(self) -> bool:
        return self._use_mock


class MockVerifier:
    """Deterministic-given-seed stand-in for the real aggregation."""

    def __init__(
        self,
        records: Optional[Mapping[str, VerificationRecord]] = None,
        rng: Optional[random.Random] = None,
        match_probability: float = 0.3,
    ) -> None:
        self._records = dict(MOCK_DEATH_RECORDS if records is None else records)
        self._rng = rng or random.Random()
        self._match_probability = match_probability

    def verify(self, query: VerificationQuery) -> AggregateVerdict:
        record = self._records.get(mock_key(query.full_name))
        # Draw only for known names so unknown lookups don't shift the sequence.
        if record is not None and self._rng.random() < self._match_probability:
            logger.debug("mock_verification_match", key=mock_key(query.full_name))
            return AggregateVerdict.from_source(SourceVerdict.matched(record))
        return AggregateVerdict(
            is_verified=False,
            record=None,
            sources=[SourceName.MOCK.value],
            confidence=ConfidenceTier.LOW,
        )
