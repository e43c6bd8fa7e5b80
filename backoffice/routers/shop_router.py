"""
Shop Router

토큰 상점 API
- 플레이어: 상품 조회, 구매 가능 여부, 구매, 내 구매 내역
- 관리자: 상품 관리, 구매 조회/환불/재정산, 통계

구매 엔드포인트는 외부 지급 API를 동기 호출하므로 스레드풀에서 실행한다.
"""

from typing import List, Optional

from fastapi import APIRouter, Depends, Path, Query, status
from fastapi.concurrency import run_in_threadpool
from dependency_injector.wiring import inject

from backoffice.core.auth_middleware import get_current_player, require_admin, require_operator
from backoffice.deps import get_purchase_service, get_redis_service, get_shop_service
from backoffice.schemas.auth import AdminContext, PlayerContext
from backoffice.schemas.common import BaseResponse, ok
from backoffice.schemas.pagination import PaginatedResponse, PaginationLimits, paginate
from backoffice.schemas.shop import (
    PurchaseEligibility,
    PurchaseRequest,
    ShopItemCreate,
    ShopItemResponse,
    ShopItemUpdate,
    ShopStatistics,
    TokenPurchaseResponse,
)
from backoffice.services.prize_service import summary_cache_key
from backoffice.services.purchase_service import PurchaseService
from backoffice.services.redis_service import RedisService
from backoffice.services.shop_service import ShopService
import logging

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/shop", tags=["shop"])


# ============================================================================
# Player endpoints
# ============================================================================


@router.get("/items", response_model=BaseResponse[List[ShopItemResponse]])
@inject
async def list_items(
    featured: Optional[bool] = Query(None, description="추천 상품만"),
    kind: Optional[str] = Query(None, description="reward / packet"),
    player: PlayerContext = Depends(get_current_player),
    shop_service: ShopService = Depends(get_shop_service),
):
    return ok(shop_service.list_items(active_only=True, featured=featured, kind=kind))


@router.get("/items/{item_ref}", response_model=BaseResponse[ShopItemResponse])
@inject
async def get_item(
    item_ref: str = Path(..., max_length=64),
    player: PlayerContext = Depends(get_current_player),
    shop_service: ShopService = Depends(get_shop_service),
):
    return ok(shop_service.get_item(item_ref, active_only=True))


@router.get(
    "/items/{item_ref}/can-purchase",
    response_model=BaseResponse[PurchaseEligibility],
)
@inject
async def check_can_purchase(
    item_ref: str = Path(..., max_length=64),
    player: PlayerContext = Depends(get_current_player),
    purchase_service: PurchaseService = Depends(get_purchase_service),
):
    """구매 가능 여부 (잔액/한도/재고)"""
    return ok(purchase_service.check_can_purchase(player.user_id, item_ref))


@router.post("/purchase", response_model=BaseResponse[TokenPurchaseResponse])
@inject
async def purchase_item(
    body: PurchaseRequest,
    player: PlayerContext = Depends(get_current_player),
    purchase_service: PurchaseService = Depends(get_purchase_service),
    redis_service: RedisService = Depends(get_redis_service),
):
    """토큰으로 상품 구매

    같은 idempotency_key로 다시 요청하면 완료된 구매 결과를 그대로 돌려줍니다.
    지급 실패 시 차감된 토큰은 환불되고 502 UPSTREAM_FAILURE를 반환합니다.
    """
    purchase = await run_in_threadpool(
        purchase_service.purchase,
        user_id=player.user_id,
        server_id=player.server_id,
        item_ref=body.item_ref,
        idempotency_key=body.idempotency_key,
        role_id=player.role_id,
    )
    # 기여금이 반영된 상금 풀의 분배표 캐시 무효화
    await redis_service.delete(summary_cache_key(player.server_id))
    return ok(purchase, message="Purchase delivered")


@router.get("/my-purchases", response_model=PaginatedResponse[TokenPurchaseResponse])
@inject
async def get_my_purchases(
    status_filter: Optional[str] = Query(None, alias="status"),
    limit: int = Query(
        PaginationLimits.PURCHASES["default"],
        ge=PaginationLimits.PURCHASES["min"],
        le=PaginationLimits.PURCHASES["max"],
    ),
    offset: int = Query(0, ge=0),
    player: PlayerContext = Depends(get_current_player),
    purchase_service: PurchaseService = Depends(get_purchase_service),
):
    items, total = purchase_service.list_purchases(
        user_id=player.user_id, status=status_filter, limit=limit, offset=offset
    )
    return paginate(items, total, limit, offset)


# ============================================================================
# Admin endpoints
# ============================================================================


@router.get("/admin/items", response_model=BaseResponse[List[ShopItemResponse]])
@inject
async def admin_list_items(
    active_only: bool = Query(False),
    featured: Optional[bool] = Query(None),
    kind: Optional[str] = Query(None),
    current_admin: AdminContext = Depends(require_operator),
    shop_service: ShopService = Depends(get_shop_service),
):
    return ok(shop_service.list_items(active_only=active_only, featured=featured, kind=kind))


@router.post(
    "/admin/items",
    response_model=BaseResponse[ShopItemResponse],
    status_code=status.HTTP_201_CREATED,
)
@inject
async def create_item(
    body: ShopItemCreate,
    current_admin: AdminContext = Depends(require_admin),
    shop_service: ShopService = Depends(get_shop_service),
):
    return ok(shop_service.create_item(body), message="Shop item created")


@router.put("/admin/items/{item_ref}", response_model=BaseResponse[ShopItemResponse])
@inject
async def update_item(
    body: ShopItemUpdate,
    item_ref: str = Path(..., max_length=64),
    current_admin: AdminContext = Depends(require_admin),
    shop_service: ShopService = Depends(get_shop_service),
):
    return ok(shop_service.update_item(item_ref, body), message="Shop item updated")


@router.delete("/admin/items/{item_ref}", response_model=BaseResponse[ShopItemResponse])
@inject
async def deactivate_item(
    item_ref: str = Path(..., max_length=64),
    current_admin: AdminContext = Depends(require_admin),
    shop_service: ShopService = Depends(get_shop_service),
):
    """상품 판매 중지 (구매 이력 보존을 위해 삭제하지 않음)"""
    return ok(shop_service.deactivate_item(item_ref), message="Shop item deactivated")


@router.get("/admin/purchases", response_model=PaginatedResponse[TokenPurchaseResponse])
@inject
async def admin_list_purchases(
    user_id: Optional[str] = Query(None, max_length=100),
    status_filter: Optional[str] = Query(None, alias="status"),
    needs_reconciliation: Optional[bool] = Query(None),
    limit: int = Query(
        PaginationLimits.PURCHASES["default"],
        ge=PaginationLimits.PURCHASES["min"],
        le=PaginationLimits.PURCHASES["max"],
    ),
    offset: int = Query(0, ge=0),
    current_admin: AdminContext = Depends(require_operator),
    purchase_service: PurchaseService = Depends(get_purchase_service),
):
    items, total = purchase_service.list_purchases(
        user_id=user_id,
        status=status_filter,
        needs_reconciliation=needs_reconciliation,
        limit=limit,
        offset=offset,
    )
    return paginate(items, total, limit, offset)


@router.get("/admin/purchases/{transaction_ref}", response_model=BaseResponse[TokenPurchaseResponse])
@inject
async def admin_get_purchase(
    transaction_ref: str = Path(..., max_length=128),
    current_admin: AdminContext = Depends(require_operator),
    purchase_service: PurchaseService = Depends(get_purchase_service),
):
    return ok(purchase_service.get_purchase(transaction_ref))


@router.post(
    "/admin/purchases/{transaction_ref}/refund",
    response_model=BaseResponse[TokenPurchaseResponse],
)
@inject
async def refund_purchase(
    transaction_ref: str = Path(..., max_length=128),
    current_admin: AdminContext = Depends(require_admin),
    purchase_service: PurchaseService = Depends(get_purchase_service),
):
    purchase = purchase_service.refund(transaction_ref, current_admin.admin_id)
    return ok(purchase, message="Purchase refunded")


@router.post(
    "/admin/purchases/{transaction_ref}/reconcile",
    response_model=BaseResponse[TokenPurchaseResponse],
)
@inject
async def reconcile_purchase(
    transaction_ref: str = Path(..., max_length=128),
    current_admin: AdminContext = Depends(require_admin),
    purchase_service: PurchaseService = Depends(get_purchase_service),
):
    """환불되지 않은 차감 건 재정산"""
    purchase = purchase_service.retry_compensation(transaction_ref)
    logger.info(f"Purchase {transaction_ref} reconciled by {current_admin.username}")
    return ok(purchase, message="Purchase compensated")


@router.get("/admin/stats", response_model=BaseResponse[ShopStatistics])
@inject
async def get_statistics(
    current_admin: AdminContext = Depends(require_operator),
    purchase_service: PurchaseService = Depends(get_purchase_service),
):
    return ok(purchase_service.get_statistics())
