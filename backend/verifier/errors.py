"""
Source-level failures. All of them are recovered inside a source's probe and
reported as an unverified verdict carrying the message.
"""
from __future__ import annotations


class VerificationError(Exception):
    """Base for failures attributable to a single source."""

    def __init__(self, source: str, message: str) -> None:
        self.source = source
        self.message = message
        super().__init__(message)


class SourceUnavailable(VerificationError):
    """Transport or lookup failure talking to a source."""


class ConfigurationGap(VerificationError):
    """The source has no endpoint configured for this query (e.g. unmapped country)."""


class InvalidQuery(VerificationError):
    """The query does not satisfy the source's input constraints."""
