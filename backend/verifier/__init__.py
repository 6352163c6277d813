"""
Death Verification Engine.
Checks SSDI, per-country government registries and news/obituary feeds
concurrently, combines their answers with confidence scoring and caches the
result; non-production environments answer from a mock table instead.
"""
