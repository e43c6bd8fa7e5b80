"""
Prize Router

상금 풀 설정 / 순위 구간 / 분배표 API
- 조회: operator 이상
- 변경: admin 이상
- 분배표는 Redis에 짧게 캐시하고 변경 시 무효화
"""

from decimal import Decimal
from typing import List, Optional

from fastapi import APIRouter, Depends, Path, Query, status
from dependency_injector.wiring import inject

from backoffice.config import settings
from backoffice.core.auth_middleware import require_admin, require_operator
from backoffice.deps import get_prize_service, get_redis_service
from backoffice.schemas.auth import AdminContext
from backoffice.schemas.common import BaseResponse, ok
from backoffice.schemas.pagination import PaginationLimits
from backoffice.schemas.prize import (
    BandOverlap,
    BandStatistics,
    BulkBandRequest,
    BulkBandResult,
    ContributionRequest,
    PrizeBandCreate,
    PrizeBandResponse,
    PrizeBandUpdate,
    PrizePoolSummary,
    PrizeSettingCreate,
    PrizeSettingResponse,
    PrizeSettingUpdate,
)
from backoffice.services.prize_service import PrizeService, summary_cache_key
from backoffice.services.redis_service import RedisService
import logging

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/prizes", tags=["prizes"])


async def _invalidate_summary(redis_service: RedisService, server_id: int) -> None:
    await redis_service.delete(summary_cache_key(server_id))


# ============================================================================
# Prize settings
# ============================================================================


@router.get("/settings", response_model=BaseResponse[List[PrizeSettingResponse]])
@inject
async def list_settings(
    current_admin: AdminContext = Depends(require_operator),
    prize_service: PrizeService = Depends(get_prize_service),
):
    return ok(prize_service.list_settings())


@router.get("/settings/{server_id}", response_model=BaseResponse[PrizeSettingResponse])
@inject
async def get_setting(
    server_id: int = Path(..., ge=0, description="게임 서버 ID"),
    current_admin: AdminContext = Depends(require_operator),
    prize_service: PrizeService = Depends(get_prize_service),
):
    return ok(prize_service.get_setting(server_id))


@router.post(
    "/settings",
    response_model=BaseResponse[PrizeSettingResponse],
    status_code=status.HTTP_201_CREATED,
)
@inject
async def create_setting(
    body: PrizeSettingCreate,
    current_admin: AdminContext = Depends(require_admin),
    prize_service: PrizeService = Depends(get_prize_service),
    redis_service: RedisService = Depends(get_redis_service),
):
    setting = prize_service.create_setting(
        server_id=body.server_id,
        initial_prize=body.initial_prize,
        contribution_rate_percent=body.contribution_rate_percent,
        total_contributions=body.total_contributions,
        addon_prize=body.addon_prize,
    )
    await _invalidate_summary(redis_service, body.server_id)
    return ok(setting, message="Prize setting created")


@router.put("/settings/{server_id}", response_model=BaseResponse[PrizeSettingResponse])
@inject
async def update_setting(
    body: PrizeSettingUpdate,
    server_id: int = Path(..., ge=0),
    current_admin: AdminContext = Depends(require_admin),
    prize_service: PrizeService = Depends(get_prize_service),
    redis_service: RedisService = Depends(get_redis_service),
):
    """상금 풀 설정 전체 덮어쓰기"""
    setting = prize_service.update_all(
        server_id,
        initial_prize=body.initial_prize,
        total_contributions=body.total_contributions,
        contribution_rate_percent=body.contribution_rate_percent,
        addon_prize=body.addon_prize,
    )
    await _invalidate_summary(redis_service, server_id)
    logger.info(f"Prize setting of server {server_id} overwritten by {current_admin.username}")
    return ok(setting, message="Prize setting updated")


@router.post(
    "/settings/{server_id}/contributions",
    response_model=BaseResponse[PrizeSettingResponse],
)
@inject
async def add_contribution(
    body: ContributionRequest,
    server_id: int = Path(..., ge=0),
    current_admin: AdminContext = Depends(require_admin),
    prize_service: PrizeService = Depends(get_prize_service),
    redis_service: RedisService = Depends(get_redis_service),
):
    setting = prize_service.increase_contribution(server_id, body.amount)
    await _invalidate_summary(redis_service, server_id)
    return ok(setting)


# ============================================================================
# Rank bands
# ============================================================================


@router.get("/bands", response_model=BaseResponse[List[PrizeBandResponse]])
@inject
async def list_bands(
    server_id: Optional[int] = Query(None, ge=0),
    from_rank: Optional[int] = Query(None, ge=1, description="이 순위 이상에서 시작하는 구간"),
    to_rank: Optional[int] = Query(None, ge=1, description="이 순위 이하에서 끝나는 구간"),
    min_percent: Optional[Decimal] = Query(None, ge=0, le=100),
    max_percent: Optional[Decimal] = Query(None, ge=0, le=100),
    limit: int = Query(
        PaginationLimits.PRIZE_BANDS["default"],
        ge=PaginationLimits.PRIZE_BANDS["min"],
        le=PaginationLimits.PRIZE_BANDS["max"],
    ),
    offset: int = Query(0, ge=0),
    current_admin: AdminContext = Depends(require_operator),
    prize_service: PrizeService = Depends(get_prize_service),
):
    bands = prize_service.list_bands(
        server_id=server_id,
        from_rank=from_rank,
        to_rank=to_rank,
        min_percent=min_percent,
        max_percent=max_percent,
        limit=limit,
        offset=offset,
    )
    return ok(bands)


@router.get("/bands/rank/{rank}", response_model=BaseResponse[Optional[PrizeBandResponse]])
@inject
async def get_band_for_rank(
    rank: int = Path(..., description="순위 (1부터)"),
    server_id: int = Query(..., ge=0),
    current_admin: AdminContext = Depends(require_operator),
    prize_service: PrizeService = Depends(get_prize_service),
):
    """해당 순위가 속한 구간 조회 (없으면 data = null)"""
    return ok(prize_service.get_band_for_rank(server_id, rank))


@router.get("/bands/{band_id}", response_model=BaseResponse[PrizeBandResponse])
@inject
async def get_band(
    band_id: int = Path(..., ge=1),
    current_admin: AdminContext = Depends(require_operator),
    prize_service: PrizeService = Depends(get_prize_service),
):
    return ok(prize_service.get_band(band_id))


@router.post(
    "/bands",
    response_model=BaseResponse[PrizeBandResponse],
    status_code=status.HTTP_201_CREATED,
)
@inject
async def create_band(
    body: PrizeBandCreate,
    current_admin: AdminContext = Depends(require_admin),
    prize_service: PrizeService = Depends(get_prize_service),
    redis_service: RedisService = Depends(get_redis_service),
):
    band = prize_service.create_band(
        body.server_id, body.from_rank, body.to_rank, body.percent_of_pool
    )
    await _invalidate_summary(redis_service, body.server_id)
    return ok(band, message="Prize band created")


@router.post("/bands/bulk", response_model=BaseResponse[BulkBandResult])
@inject
async def bulk_create_bands(
    body: BulkBandRequest,
    current_admin: AdminContext = Depends(require_admin),
    prize_service: PrizeService = Depends(get_prize_service),
    redis_service: RedisService = Depends(get_redis_service),
):
    """구간 일괄 생성 - 레코드별 성공/실패를 함께 반환"""
    result = prize_service.bulk_create_bands(body.server_id, body.bands)
    if result.created_count:
        await _invalidate_summary(redis_service, body.server_id)
    return ok(result)


@router.put("/bands/{band_id}", response_model=BaseResponse[PrizeBandResponse])
@inject
async def update_band(
    body: PrizeBandUpdate,
    band_id: int = Path(..., ge=1),
    current_admin: AdminContext = Depends(require_admin),
    prize_service: PrizeService = Depends(get_prize_service),
    redis_service: RedisService = Depends(get_redis_service),
):
    band = prize_service.update_band(
        band_id,
        from_rank=body.from_rank,
        to_rank=body.to_rank,
        percent_of_pool=body.percent_of_pool,
    )
    await _invalidate_summary(redis_service, band.server_id)
    return ok(band, message="Prize band updated")


@router.delete("/bands/{band_id}", response_model=BaseResponse[None])
@inject
async def delete_band(
    band_id: int = Path(..., ge=1),
    current_admin: AdminContext = Depends(require_admin),
    prize_service: PrizeService = Depends(get_prize_service),
    redis_service: RedisService = Depends(get_redis_service),
):
    band = prize_service.get_band(band_id)
    prize_service.delete_band(band_id)
    await _invalidate_summary(redis_service, band.server_id)
    return ok(message="Prize band deleted")


# ============================================================================
# Diagnostics / summary
# ============================================================================


@router.get("/stats", response_model=BaseResponse[BandStatistics])
@inject
async def get_band_statistics(
    server_id: Optional[int] = Query(None, ge=0),
    current_admin: AdminContext = Depends(require_operator),
    prize_service: PrizeService = Depends(get_prize_service),
):
    return ok(prize_service.get_statistics(server_id))


@router.get("/overlaps", response_model=BaseResponse[List[BandOverlap]])
@inject
async def check_overlaps(
    server_id: Optional[int] = Query(None, ge=0),
    current_admin: AdminContext = Depends(require_operator),
    prize_service: PrizeService = Depends(get_prize_service),
):
    """같은 서버 안에서 순위 범위가 겹치는 구간 쌍 조회"""
    return ok(prize_service.check_overlaps(server_id))


@router.get("/summary/{server_id}", response_model=BaseResponse[PrizePoolSummary])
@inject
async def get_summary(
    server_id: int = Path(..., ge=0),
    current_admin: AdminContext = Depends(require_operator),
    prize_service: PrizeService = Depends(get_prize_service),
    redis_service: RedisService = Depends(get_redis_service),
):
    """순위별 상금 분배표"""
    cache_key = summary_cache_key(server_id)
    cached = await redis_service.get(cache_key)
    if cached is not None:
        return ok(cached)

    summary = prize_service.compute_summary(server_id)
    await redis_service.set(
        cache_key, summary.model_dump(mode="json"), settings.PRIZE_SUMMARY_CACHE_TTL
    )
    return ok(summary)
