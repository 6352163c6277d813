"""Domain enumerations for death verification."""
from __future__ import annotations

from enum import Enum


class ConfidenceTier(str, Enum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"

    @property
    def rank(self) -> int:
        return _TIER_RANK[self]


_TIER_RANK: dict[ConfidenceTier, int] = {
    ConfidenceTier.HIGH: 3,
    ConfidenceTier.MEDIUM: 2,
    ConfidenceTier.LOW: 1,
}


class SourceName(str, Enum):
    SSDI = "SSDI"
    GOVERNMENT_REGISTRY = "Government Registry"
    NEWS = "News"
    MOCK = "Mock Data"
