from typing import Optional

from fastapi import APIRouter, Depends, Path, Query, Request, status
from dependency_injector.wiring import inject

from backoffice.core.auth_middleware import get_current_player, require_admin, require_operator
from backoffice.deps import get_gift_code_service
from backoffice.schemas.auth import AdminContext, PlayerContext
from backoffice.schemas.common import BaseResponse, ok
from backoffice.schemas.gift_code import (
    GiftCodeCreate,
    GiftCodeRedemptionResponse,
    GiftCodeResponse,
    GiftCodeStatistics,
    GiftCodeUpdate,
    RedeemRequest,
    RedeemResponse,
    ValidateCodeResponse,
)
from backoffice.schemas.pagination import PaginatedResponse, PaginationLimits, paginate
from backoffice.services.gift_code_service import GiftCodeService
import logging

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/gift-codes", tags=["gift-codes"])


# ============================================================================
# Player endpoints
# ============================================================================


@router.post("/redeem", response_model=BaseResponse[RedeemResponse])
@inject
async def redeem_code(
    body: RedeemRequest,
    request: Request,
    player: PlayerContext = Depends(get_current_player),
    gift_code_service: GiftCodeService = Depends(get_gift_code_service),
):
    """기프트 코드 사용

    보상은 플레이어 지갑/인벤토리에 즉시 지급됩니다.
    """
    result = gift_code_service.redeem(
        code=body.code.strip(),
        user_id=player.user_id,
        ip_address=request.client.host if request.client else None,
        user_agent=request.headers.get("user-agent"),
    )
    return ok(result, message="Gift code redeemed")


@router.post("/validate", response_model=BaseResponse[ValidateCodeResponse])
@inject
async def validate_code(
    body: RedeemRequest,
    player: PlayerContext = Depends(get_current_player),
    gift_code_service: GiftCodeService = Depends(get_gift_code_service),
):
    """사용 가능 여부 확인 (사용 처리 없음)"""
    return ok(gift_code_service.validate_code(body.code.strip(), player.user_id))


@router.get("/my-redemptions", response_model=PaginatedResponse[GiftCodeRedemptionResponse])
@inject
async def get_my_redemptions(
    limit: int = Query(
        PaginationLimits.REDEMPTIONS["default"],
        ge=PaginationLimits.REDEMPTIONS["min"],
        le=PaginationLimits.REDEMPTIONS["max"],
    ),
    offset: int = Query(0, ge=0),
    player: PlayerContext = Depends(get_current_player),
    gift_code_service: GiftCodeService = Depends(get_gift_code_service),
):
    items, total = gift_code_service.get_user_redemptions(
        player.user_id, limit=limit, offset=offset
    )
    return paginate(items, total, limit, offset)


# ============================================================================
# Admin endpoints
# ============================================================================


@router.get("/stats", response_model=BaseResponse[GiftCodeStatistics])
@inject
async def get_statistics(
    current_admin: AdminContext = Depends(require_operator),
    gift_code_service: GiftCodeService = Depends(get_gift_code_service),
):
    return ok(gift_code_service.get_statistics())


@router.get("", response_model=PaginatedResponse[GiftCodeResponse])
@inject
async def list_codes(
    limit: int = Query(
        PaginationLimits.GIFT_CODES["default"],
        ge=PaginationLimits.GIFT_CODES["min"],
        le=PaginationLimits.GIFT_CODES["max"],
    ),
    offset: int = Query(0, ge=0),
    is_active: Optional[bool] = Query(None),
    search: Optional[str] = Query(None, max_length=64, description="코드/제목 검색"),
    current_admin: AdminContext = Depends(require_operator),
    gift_code_service: GiftCodeService = Depends(get_gift_code_service),
):
    items, total = gift_code_service.list_codes(
        limit=limit, offset=offset, is_active=is_active, search=search
    )
    return paginate(items, total, limit, offset)


@router.post(
    "",
    response_model=BaseResponse[GiftCodeResponse],
    status_code=status.HTTP_201_CREATED,
)
@inject
async def create_code(
    body: GiftCodeCreate,
    current_admin: AdminContext = Depends(require_admin),
    gift_code_service: GiftCodeService = Depends(get_gift_code_service),
):
    """기프트 코드 생성 (code 생략 시 자동 생성)"""
    gift = gift_code_service.create_code(current_admin.admin_id, body)
    return ok(gift, message="Gift code created")


@router.get("/{code_id}", response_model=BaseResponse[GiftCodeResponse])
@inject
async def get_code(
    code_id: int = Path(..., ge=1),
    current_admin: AdminContext = Depends(require_operator),
    gift_code_service: GiftCodeService = Depends(get_gift_code_service),
):
    return ok(gift_code_service.get_code(code_id))


@router.put("/{code_id}", response_model=BaseResponse[GiftCodeResponse])
@inject
async def update_code(
    body: GiftCodeUpdate,
    code_id: int = Path(..., ge=1),
    current_admin: AdminContext = Depends(require_admin),
    gift_code_service: GiftCodeService = Depends(get_gift_code_service),
):
    return ok(gift_code_service.update_code(code_id, body), message="Gift code updated")


@router.post("/{code_id}/activate", response_model=BaseResponse[GiftCodeResponse])
@inject
async def activate_code(
    code_id: int = Path(..., ge=1),
    current_admin: AdminContext = Depends(require_admin),
    gift_code_service: GiftCodeService = Depends(get_gift_code_service),
):
    return ok(gift_code_service.set_active(code_id, True))


@router.post("/{code_id}/deactivate", response_model=BaseResponse[GiftCodeResponse])
@inject
async def deactivate_code(
    code_id: int = Path(..., ge=1),
    current_admin: AdminContext = Depends(require_admin),
    gift_code_service: GiftCodeService = Depends(get_gift_code_service),
):
    return ok(gift_code_service.set_active(code_id, False))


@router.get(
    "/{code_id}/redemptions",
    response_model=PaginatedResponse[GiftCodeRedemptionResponse],
)
@inject
async def list_redemptions(
    code_id: int = Path(..., ge=1),
    limit: int = Query(
        PaginationLimits.REDEMPTIONS["default"],
        ge=PaginationLimits.REDEMPTIONS["min"],
        le=PaginationLimits.REDEMPTIONS["max"],
    ),
    offset: int = Query(0, ge=0),
    current_admin: AdminContext = Depends(require_operator),
    gift_code_service: GiftCodeService = Depends(get_gift_code_service),
):
    items, total = gift_code_service.list_redemptions(code_id, limit=limit, offset=offset)
    return paginate(items, total, limit, offset)
