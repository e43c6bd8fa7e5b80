from typing import List, Optional

from fastapi import APIRouter, Depends, Header, Path, Query, Request, status
from dependency_injector.wiring import inject

from backoffice.core.auth_middleware import get_current_player, require_admin, require_operator
from backoffice.core.exceptions import NotFoundError
from backoffice.deps import get_payment_service
from backoffice.schemas.auth import AdminContext, PlayerContext
from backoffice.schemas.common import BaseResponse, ok
from backoffice.schemas.pagination import PaginatedResponse, PaginationLimits, paginate
from backoffice.schemas.payment import (
    CreateOrderRequest,
    PaymentPackageCreate,
    PaymentPackageResponse,
    PaymentPackageUpdate,
    PaymentTransactionResponse,
    WebhookResult,
)
from backoffice.services.payment_service import PaymentService
import logging

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/payments", tags=["payments"])

SIGNATURE_HEADER = "X-Signature"


@router.get("/packages", response_model=BaseResponse[List[PaymentPackageResponse]])
@inject
async def list_packages(
    player: PlayerContext = Depends(get_current_player),
    payment_service: PaymentService = Depends(get_payment_service),
):
    return ok(payment_service.list_packages(active_only=True))


@router.post(
    "/orders",
    response_model=BaseResponse[PaymentTransactionResponse],
    status_code=status.HTTP_201_CREATED,
)
@inject
async def create_order(
    body: CreateOrderRequest,
    player: PlayerContext = Depends(get_current_player),
    payment_service: PaymentService = Depends(get_payment_service),
):
    """결제 주문 생성 - 결제 완료는 웹훅으로 확정됨"""
    order = payment_service.create_order(player, body.package_id)
    return ok(order, message="Order created")


@router.get("/orders/{transaction_ref}", response_model=BaseResponse[PaymentTransactionResponse])
@inject
async def get_order(
    transaction_ref: str = Path(..., max_length=128),
    player: PlayerContext = Depends(get_current_player),
    payment_service: PaymentService = Depends(get_payment_service),
):
    order = payment_service.get_transaction(transaction_ref)
    if order.user_id != player.user_id:
        raise NotFoundError(f"Payment transaction not found: {transaction_ref}")
    return ok(order)


@router.post("/webhook", response_model=BaseResponse[WebhookResult])
@inject
async def payment_webhook(
    request: Request,
    signature: Optional[str] = Header(None, alias=SIGNATURE_HEADER),
    payment_service: PaymentService = Depends(get_payment_service),
):
    """결제 대행사 웹훅

    X-Signature 헤더 = hex(HMAC-SHA256(PAYMENT_WEBHOOK_SECRET, raw body))
    """
    raw_body = await request.body()
    result = payment_service.handle_webhook(raw_body, signature)
    return ok(result)


# ============================================================================
# Admin endpoints
# ============================================================================


@router.get("/admin/packages", response_model=BaseResponse[List[PaymentPackageResponse]])
@inject
async def admin_list_packages(
    active_only: bool = Query(False),
    current_admin: AdminContext = Depends(require_operator),
    payment_service: PaymentService = Depends(get_payment_service),
):
    return ok(payment_service.list_packages(active_only=active_only))


@router.post(
    "/admin/packages",
    response_model=BaseResponse[PaymentPackageResponse],
    status_code=status.HTTP_201_CREATED,
)
@inject
async def create_package(
    body: PaymentPackageCreate,
    current_admin: AdminContext = Depends(require_admin),
    payment_service: PaymentService = Depends(get_payment_service),
):
    return ok(payment_service.create_package(body), message="Payment package created")


@router.put("/admin/packages/{package_id}", response_model=BaseResponse[PaymentPackageResponse])
@inject
async def update_package(
    body: PaymentPackageUpdate,
    package_id: int = Path(..., ge=1),
    current_admin: AdminContext = Depends(require_admin),
    payment_service: PaymentService = Depends(get_payment_service),
):
    return ok(payment_service.update_package(package_id, body), message="Payment package updated")


@router.delete("/admin/packages/{package_id}", response_model=BaseResponse[PaymentPackageResponse])
@inject
async def deactivate_package(
    package_id: int = Path(..., ge=1),
    current_admin: AdminContext = Depends(require_admin),
    payment_service: PaymentService = Depends(get_payment_service),
):
    return ok(payment_service.deactivate_package(package_id), message="Payment package deactivated")


@router.get("/admin/transactions", response_model=PaginatedResponse[PaymentTransactionResponse])
@inject
async def admin_list_transactions(
    user_id: Optional[str] = Query(None, max_length=100),
    status_filter: Optional[str] = Query(None, alias="status"),
    limit: int = Query(
        PaginationLimits.PAYMENTS["default"],
        ge=PaginationLimits.PAYMENTS["min"],
        le=PaginationLimits.PAYMENTS["max"],
    ),
    offset: int = Query(0, ge=0),
    current_admin: AdminContext = Depends(require_operator),
    payment_service: PaymentService = Depends(get_payment_service),
):
    items, total = payment_service.list_transactions(
        user_id=user_id, status=status_filter, limit=limit, offset=offset
    )
    return paginate(items, total, limit, offset)
