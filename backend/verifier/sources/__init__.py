from verifier.sources.base import DeathRecordSource
from verifier.sources.news import NewsObituarySource
from verifier.sources.registry import GovernmentRegistrySource
from verifier.sources.ssdi import SSDISource

__all__ = [
    "DeathRecordSource",
    "GovernmentRegistrySource",
    "NewsObituarySource",
    "SSDISource",
]
