from typing import List, Optional

from fastapi import APIRouter, Depends, Path, Query
from dependency_injector.wiring import inject

from backoffice.core.auth_middleware import get_current_player, require_admin, require_operator
from backoffice.deps import get_wallet_service
from backoffice.schemas.auth import AdminContext, PlayerContext
from backoffice.schemas.common import BaseResponse, ok
from backoffice.schemas.pagination import PaginationLimits
from backoffice.schemas.wallet import (
    InventoryEntry,
    WalletAdjustRequest,
    WalletAdjustResponse,
    WalletBalanceResponse,
    WalletIntegrityResponse,
    WalletLedgerResponse,
)
from backoffice.services.wallet_service import WalletService
import logging

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/wallet", tags=["wallet"])


@router.get("/balance", response_model=BaseResponse[WalletBalanceResponse])
@inject
async def get_my_balance(
    currency: Optional[str] = Query(None, max_length=32),
    player: PlayerContext = Depends(get_current_player),
    wallet_service: WalletService = Depends(get_wallet_service),
):
    return ok(wallet_service.get_balance_response(player.user_id, currency))


@router.get("/ledger", response_model=BaseResponse[WalletLedgerResponse])
@inject
async def get_my_ledger(
    currency: Optional[str] = Query(None, max_length=32),
    limit: int = Query(
        PaginationLimits.WALLET_LEDGER["default"],
        ge=PaginationLimits.WALLET_LEDGER["min"],
        le=PaginationLimits.WALLET_LEDGER["max"],
    ),
    offset: int = Query(0, ge=0),
    player: PlayerContext = Depends(get_current_player),
    wallet_service: WalletService = Depends(get_wallet_service),
):
    """내 잔액 변동 내역"""
    return ok(wallet_service.get_ledger(player.user_id, currency, limit=limit, offset=offset))


@router.get("/inventory", response_model=BaseResponse[List[InventoryEntry]])
@inject
async def get_my_inventory(
    player: PlayerContext = Depends(get_current_player),
    wallet_service: WalletService = Depends(get_wallet_service),
):
    return ok(wallet_service.get_inventory(player.user_id))


# ============================================================================
# Admin endpoints
# ============================================================================


@router.post("/admin/adjust", response_model=BaseResponse[WalletAdjustResponse])
@inject
async def adjust_balance(
    body: WalletAdjustRequest,
    current_admin: AdminContext = Depends(require_admin),
    wallet_service: WalletService = Depends(get_wallet_service),
):
    """관리자 수동 잔액 조정 (양수: 지급, 음수: 차감)"""
    result = wallet_service.admin_adjust(
        admin_id=current_admin.admin_id,
        user_id=body.user_id,
        amount=body.amount,
        reason=body.reason,
        currency=body.currency,
    )
    return ok(result, message="Balance adjusted")


@router.get("/admin/{user_id}", response_model=BaseResponse[WalletLedgerResponse])
@inject
async def get_user_wallet(
    user_id: str = Path(..., max_length=100),
    currency: Optional[str] = Query(None, max_length=32),
    limit: int = Query(
        PaginationLimits.WALLET_LEDGER["default"],
        ge=PaginationLimits.WALLET_LEDGER["min"],
        le=PaginationLimits.WALLET_LEDGER["max"],
    ),
    offset: int = Query(0, ge=0),
    current_admin: AdminContext = Depends(require_operator),
    wallet_service: WalletService = Depends(get_wallet_service),
):
    return ok(wallet_service.get_ledger(user_id, currency, limit=limit, offset=offset))


@router.get("/admin/{user_id}/integrity", response_model=BaseResponse[WalletIntegrityResponse])
@inject
async def verify_integrity(
    user_id: str = Path(..., max_length=100),
    currency: Optional[str] = Query(None, max_length=32),
    current_admin: AdminContext = Depends(require_operator),
    wallet_service: WalletService = Depends(get_wallet_service),
):
    """원장 합계와 잔액 일치 여부 확인"""
    return ok(wallet_service.verify_integrity(user_id, currency))
