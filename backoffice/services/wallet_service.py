"""
지갑 서비스 - 사용자 잔액 저장소

adjust_balance()가 잔액을 바꾸는 유일한 경로다.
- 원자적 증감 (차감은 balance >= amount 조건부)
- ref_id 단위 멱등성: 같은 ref_id로 다시 호출하면 기록된 결과를 그대로 반환
- commit하지 않는다. 호출한 서비스가 트랜잭션 경계를 결정한다
"""

import time
from typing import List, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from backoffice.config import Settings
from backoffice.core.exceptions import ConflictError, InsufficientBalanceError, ValidationError
from backoffice.repositories.wallet_repository import WalletRepository
from backoffice.schemas.reward_payload import CurrencyGrant, Grant, ItemGrant
from backoffice.schemas.wallet import (
    InventoryEntry,
    WalletAdjustResponse,
    WalletBalanceResponse,
    WalletIntegrityResponse,
    WalletLedgerResponse,
)
import logging

logger = logging.getLogger(__name__)


class WalletService:
    def __init__(self, db: Session, settings: Settings):
        self.db = db
        self.settings = settings
        self.wallet_repo = WalletRepository(db)

    def _currency(self, currency: Optional[str]) -> str:
        return currency or self.settings.TOKEN_CURRENCY

    def get_balance(self, user_id: str, currency: Optional[str] = None) -> int:
        return self.wallet_repo.get_balance(user_id, self._currency(currency))

    def lock_balance(self, user_id: str, currency: Optional[str] = None) -> int:
        """현재 트랜잭션이 끝날 때까지 지갑 행을 잠그고 잔액 반환"""
        return self.wallet_repo.lock_wallet(user_id, self._currency(currency))

    def get_balance_response(
        self, user_id: str, currency: Optional[str] = None
    ) -> WalletBalanceResponse:
        currency = self._currency(currency)
        return WalletBalanceResponse(
            user_id=user_id,
            currency=currency,
            balance=self.wallet_repo.get_balance(user_id, currency),
        )

    def adjust_balance(
        self,
        user_id: str,
        delta: int,
        reason: str,
        ref_id: str,
        currency: Optional[str] = None,
    ) -> int:
        """
        잔액 증감 후 새 잔액 반환

        Raises:
            InsufficientBalanceError: 차감 시 잔액 부족
            ValidationError: delta == 0 또는 ref_id 누락
        """
        currency = self._currency(currency)
        if delta == 0:
            raise ValidationError("delta must not be 0")
        if not ref_id:
            raise ValidationError("ref_id is required")

        existing = self.wallet_repo.get_entry_by_ref(ref_id)
        if existing:
            logger.info(f"Wallet adjustment already applied (idempotent): ref_id={ref_id}")
            return existing.balance_after

        new_balance = self.wallet_repo.apply_delta(user_id, currency, delta)
        if new_balance is None:
            raise InsufficientBalanceError(
                f"Insufficient {currency} balance",
                details={
                    "required": -delta,
                    "balance": self.wallet_repo.get_balance(user_id, currency),
                },
            )

        self.wallet_repo.add_entry(
            user_id=user_id,
            currency=currency,
            delta=delta,
            balance_after=new_balance,
            reason=reason,
            ref_id=ref_id,
        )
        logger.info(
            f"Wallet adjusted: user={user_id} currency={currency} delta={delta} "
            f"balance={new_balance} ref_id={ref_id}"
        )
        return new_balance

    def admin_adjust(
        self,
        admin_id: int,
        user_id: str,
        amount: int,
        reason: str,
        currency: Optional[str] = None,
    ) -> WalletAdjustResponse:
        """관리자 수동 조정 - ref_id는 관리자 ID + 타임스탬프로 생성"""
        currency = self._currency(currency)
        ref_id = f"admin:{admin_id}:{user_id}:{time.time_ns()}"
        try:
            balance = self.adjust_balance(
                user_id=user_id,
                delta=amount,
                reason=f"Admin adjustment: {reason}",
                ref_id=ref_id,
                currency=currency,
            )
            self.db.commit()
        except IntegrityError:
            self.db.rollback()
            raise ConflictError("Concurrent wallet adjustment, please retry")
        except Exception:
            self.db.rollback()
            raise

        logger.info(f"Admin {admin_id} adjusted wallet of {user_id} by {amount} {currency}")
        return WalletAdjustResponse(
            user_id=user_id,
            currency=currency,
            delta=amount,
            balance_after=balance,
            ref_id=ref_id,
        )

    def apply_grants(self, user_id: str, grants: List[Grant], ref_prefix: str) -> None:
        """보상 지급 - 통화는 지갑, 아이템은 인벤토리 (commit은 호출자)"""
        for index, grant in enumerate(grants):
            if isinstance(grant, CurrencyGrant):
                self.adjust_balance(
                    user_id=user_id,
                    delta=grant.amount,
                    reason=f"Reward grant ({ref_prefix})",
                    ref_id=f"{ref_prefix}:{index}",
                    currency=grant.currency,
                )
            elif isinstance(grant, ItemGrant):
                self.wallet_repo.add_inventory(user_id, grant.item_id, grant.quantity)

    def get_ledger(
        self,
        user_id: str,
        currency: Optional[str] = None,
        limit: int = 50,
        offset: int = 0,
    ) -> WalletLedgerResponse:
        currency = self._currency(currency)
        entries = self.wallet_repo.get_ledger(user_id, currency, limit=limit, offset=offset)
        total = self.wallet_repo.count_ledger(user_id, currency)
        return WalletLedgerResponse(
            balance=self.wallet_repo.get_balance(user_id, currency),
            entries=entries,
            total_count=total,
            has_next=offset + len(entries) < total,
        )

    def get_inventory(self, user_id: str) -> List[InventoryEntry]:
        return self.wallet_repo.get_inventory(user_id)

    def verify_integrity(
        self, user_id: str, currency: Optional[str] = None
    ) -> WalletIntegrityResponse:
        """원장 delta 합계와 지갑 잔액 비교"""
        currency = self._currency(currency)
        recorded = self.wallet_repo.get_balance(user_id, currency)
        calculated = self.wallet_repo.sum_deltas(user_id, currency)
        status = "OK" if recorded == calculated else "MISMATCH"
        if status != "OK":
            logger.error(
                f"Wallet integrity mismatch: user={user_id} currency={currency} "
                f"recorded={recorded} calculated={calculated}"
            )
        return WalletIntegrityResponse(
            user_id=user_id,
            currency=currency,
            status=status,
            recorded_balance=recorded,
            calculated_balance=calculated,
            entry_count=self.wallet_repo.count_ledger(user_id, currency),
        )
