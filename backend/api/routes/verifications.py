"""
Death verification REST endpoints.

POST /v1/verifications        : Verify a death across SSDI, government registries and news.
GET  /v1/verifications/health : Source and cache availability for the degraded-mode banner.
GET  /v1/verifications/cache  : Cache size and hit rate.
"""
from __future__ import annotations

from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends

from shared.models.domain import AdditionalData, AggregateVerdict, CacheStats, DomainModel, HealthReport
from shared.utils.logging import get_logger

from api.dependencies import get_verification_service
from verifier.engine import DeathVerificationService

logger = get_logger(__name__)
router = APIRouter(prefix="/v1/verifications", tags=["verifications"])


class VerifyDeathRequest(DomainModel):
    full_name: str
    date_of_birth: date
    country: str
    additional_data: Optional[AdditionalData] = None


@router.post("", response_model=AggregateVerdict)
async def verify_death(
    body: VerifyDeathRequest,
    service: DeathVerificationService = Depends(get_verification_service),
) -> AggregateVerdict:
    """Returns the combined verdict; source failures are reported in the body, never as HTTP errors."""
    return await service.verify_death(
        body.full_name,
        body.date_of_birth,
        body.country,
        body.additional_data,
    )


@router.get("/health", response_model=HealthReport)
async def verification_health(
    service: DeathVerificationService = Depends(get_verification_service),
) -> HealthReport:
    return await service.check_api_health()


@router.get("/cache", response_model=CacheStats)
async def cache_stats(
    service: DeathVerificationService = Depends(get_verification_service),
) -> CacheStats:
    return service.get_cache_stats()
