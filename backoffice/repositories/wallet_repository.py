"""
지갑 리포지토리

잔액은 항상 조건부 원자 UPDATE로만 변경한다:
- 지급:  balance = balance + :delta
- 차감:  balance = balance + :delta WHERE balance + :delta >= 0
영향받은 행이 0이면 잔액 부족으로 간주한다.
"""

from typing import List, Optional

from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from backoffice.models.wallet import PlayerInventory, PlayerWallet, WalletLedger
from backoffice.repositories.base import BaseRepository
from backoffice.schemas.wallet import InventoryEntry, WalletLedgerEntry


class WalletRepository(BaseRepository[WalletLedger, WalletLedgerEntry]):
    def __init__(self, db: Session):
        super().__init__(WalletLedger, WalletLedgerEntry, db)

    def get_balance(self, user_id: str, currency: str) -> int:
        stmt = select(PlayerWallet.balance).where(
            PlayerWallet.user_id == user_id, PlayerWallet.currency == currency
        )
        balance = self.db.execute(stmt).scalar_one_or_none()
        return balance or 0

    def lock_wallet(self, user_id: str, currency: str) -> int:
        """지갑 행 잠금 (SELECT ... FOR UPDATE) - 같은 사용자의 구매를 직렬화"""
        stmt = (
            select(PlayerWallet.balance)
            .where(PlayerWallet.user_id == user_id, PlayerWallet.currency == currency)
            .with_for_update()
        )
        balance = self.db.execute(stmt).scalar_one_or_none()
        return balance or 0

    def ensure_wallet(self, user_id: str, currency: str) -> None:
        """지갑 행이 없으면 생성 (동시 생성 경합은 savepoint로 흡수)"""
        exists = self.db.execute(
            select(PlayerWallet.id).where(
                PlayerWallet.user_id == user_id, PlayerWallet.currency == currency
            )
        ).scalar_one_or_none()
        if exists is not None:
            return

        try:
            with self.db.begin_nested():
                self.db.add(PlayerWallet(user_id=user_id, currency=currency, balance=0))
        except IntegrityError:
            # 다른 요청이 먼저 생성함
            pass

    def apply_delta(self, user_id: str, currency: str, delta: int) -> Optional[int]:
        """
        잔액 원자 증감 - 성공 시 새 잔액, 잔액 부족 시 None
        """
        self.ensure_wallet(user_id, currency)

        stmt = (
            update(PlayerWallet)
            .where(PlayerWallet.user_id == user_id, PlayerWallet.currency == currency)
            .values(balance=PlayerWallet.balance + delta)
            .execution_options(synchronize_session=False)
        )
        if delta < 0:
            stmt = stmt.where(PlayerWallet.balance + delta >= 0)

        result = self.db.execute(stmt)
        if result.rowcount == 0:
            return None
        return self.get_balance(user_id, currency)

    def get_entry_by_ref(self, ref_id: str) -> Optional[WalletLedgerEntry]:
        return self.get_by_field("ref_id", ref_id)

    def add_entry(
        self,
        user_id: str,
        currency: str,
        delta: int,
        balance_after: int,
        reason: str,
        ref_id: str,
    ) -> WalletLedgerEntry:
        return self.create(
            user_id=user_id,
            currency=currency,
            delta=delta,
            balance_after=balance_after,
            reason=reason,
            ref_id=ref_id,
        )

    def get_ledger(
        self, user_id: str, currency: Optional[str] = None, limit: int = 50, offset: int = 0
    ) -> List[WalletLedgerEntry]:
        stmt = select(WalletLedger).where(WalletLedger.user_id == user_id)
        if currency:
            stmt = stmt.where(WalletLedger.currency == currency)
        stmt = stmt.order_by(WalletLedger.id.desc()).limit(limit).offset(offset)
        return self._to_schemas(list(self.db.execute(stmt).scalars().all()))

    def count_ledger(self, user_id: str, currency: Optional[str] = None) -> int:
        stmt = select(func.count(WalletLedger.id)).where(WalletLedger.user_id == user_id)
        if currency:
            stmt = stmt.where(WalletLedger.currency == currency)
        return self.db.execute(stmt).scalar_one()

    def sum_deltas(self, user_id: str, currency: str) -> int:
        stmt = select(func.coalesce(func.sum(WalletLedger.delta), 0)).where(
            WalletLedger.user_id == user_id, WalletLedger.currency == currency
        )
        return int(self.db.execute(stmt).scalar_one())

    # ---------------------------------------------------------------------
    # 인벤토리
    # ---------------------------------------------------------------------

    def add_inventory(self, user_id: str, item_id: str, quantity: int) -> None:
        stmt = (
            update(PlayerInventory)
            .where(PlayerInventory.user_id == user_id, PlayerInventory.item_id == item_id)
            .values(quantity=PlayerInventory.quantity + quantity)
            .execution_options(synchronize_session=False)
        )
        if self.db.execute(stmt).rowcount > 0:
            return

        try:
            with self.db.begin_nested():
                self.db.add(PlayerInventory(user_id=user_id, item_id=item_id, quantity=quantity))
        except IntegrityError:
            # 동시 생성 - 이미 생긴 행에 더한다
            self.db.execute(stmt)

    def get_inventory(self, user_id: str) -> List[InventoryEntry]:
        stmt = (
            select(PlayerInventory)
            .where(PlayerInventory.user_id == user_id)
            .order_by(PlayerInventory.item_id)
        )
        return [
            InventoryEntry.model_validate(row)
            for row in self.db.execute(stmt).scalars().all()
        ]
