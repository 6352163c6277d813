"""
Confidence scoring for combined source verdicts.
Two authoritative (high) sources agree -> HIGH; one authoritative or any two
sources -> MEDIUM; otherwise LOW.
"""
from __future__ import annotations

from typing import Sequence

from shared.models.domain import AggregateVerdict, SourceVerdict
from shared.models.enums import ConfidenceTier


def _priority_index(priority: Sequence[str]) -> dict[str, int]:
    return {name: i for i, name in enumerate(priority)}


def order_by_priority(verdicts: Sequence[SourceVerdict], priority: Sequence[str]) -> list[SourceVerdict]:
    """Stable sort by the explicit priority list; unknown sources keep their order after known ones."""
    index = _priority_index(priority)
    return sorted(verdicts, key=lambda v: index.get(v.source_name, len(index)))


def compute_confidence(verdicts: Sequence[SourceVerdict]) -> ConfidenceTier:
    """Confidence for a set of verified verdicts; depends only on their count and tiers."""
    high = sum(1 for v in verdicts if v.confidence == ConfidenceTier.HIGH)
    if high >= 2:
        return ConfidenceTier.HIGH
    if high == 1 or len(verdicts) >= 2:
        return ConfidenceTier.MEDIUM
    return ConfidenceTier.LOW


def select_primary(verdicts: Sequence[SourceVerdict], priority: Sequence[str]) -> SourceVerdict:
    """Highest tier wins; ties go to the earlier source in the priority list."""
    ordered = order_by_priority(verdicts, priority)
    return max(ordered, key=lambda v: v.confidence.rank)


def unique_sources(verdicts: Sequence[SourceVerdict]) -> list[str]:
    seen: dict[str, None] = {}
    for v in verdicts:
        seen.setdefault(v.source_name, None)
    return list(seen)


def combine_verdicts(verdicts: Sequence[SourceVerdict], priority: Sequence[str]) -> AggregateVerdict:
    """
    Combine per-source verdicts into one answer.

    Unverified verdicts are ignored. A single verified verdict is returned as-is;
    several are merged with deduplicated sources, a derived confidence and the
    primary record taken from the strongest source.
    """
    verified = order_by_priority([v for v in verdicts if v.is_verified], priority)
    if not verified:
        return AggregateVerdict.no_match()
    if len(verified) == 1:
        return AggregateVerdict.from_source(verified[0])

    primary = select_primary(verified, priority)
    return AggregateVerdict(
        is_verified=True,
        record=primary.data,
        sources=unique_sources(verified),
        confidence=compute_confidence(verified),
    )
