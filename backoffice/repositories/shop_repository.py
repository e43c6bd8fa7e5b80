"""
상점 리포지토리

TokenPurchase 상태 전이는 모두 조건부 UPDATE(WHERE status = :from)로 처리한다.
영향받은 행이 0이면 다른 요청이 먼저 전이시켰거나 잘못된 전이다.
"""

from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional, Tuple

from sqlalchemy import func, select, update
from sqlalchemy.orm import Session

from backoffice.models.shop import PurchaseStatus, ShopItem, TokenPurchase
from backoffice.repositories.base import BaseRepository
from backoffice.schemas.shop import ShopItemResponse, TokenPurchaseResponse


class ShopItemRepository(BaseRepository[ShopItem, ShopItemResponse]):
    def __init__(self, db: Session):
        super().__init__(ShopItem, ShopItemResponse, db)

    def get_by_ref(self, item_ref: str) -> Optional[ShopItemResponse]:
        stmt = (
            select(ShopItem)
            .where(ShopItem.item_ref == item_ref)
            .execution_options(populate_existing=True)
        )
        return self._to_schema(self.db.execute(stmt).scalar_one_or_none())

    def list_items(
        self,
        active_only: bool = True,
        featured: Optional[bool] = None,
        kind: Optional[str] = None,
    ) -> List[ShopItemResponse]:
        stmt = select(ShopItem)
        if active_only:
            stmt = stmt.where(ShopItem.is_active.is_(True))
        if featured is not None:
            stmt = stmt.where(ShopItem.is_featured.is_(featured))
        if kind:
            stmt = stmt.where(ShopItem.kind == kind)
        stmt = stmt.order_by(ShopItem.is_featured.desc(), ShopItem.price_tokens.asc(), ShopItem.id.asc())
        return self._to_schemas(list(self.db.execute(stmt).scalars().all()))

    def update_by_ref(self, item_ref: str, **fields) -> Optional[ShopItemResponse]:
        item = self.db.execute(
            select(ShopItem).where(ShopItem.item_ref == item_ref)
        ).scalar_one_or_none()
        if item is None:
            return None
        return self.update(item.id, **fields)

    def reserve_stock(self, item_ref: str) -> bool:
        """재고 1 차감 - 무제한(-1)이면 그대로 통과"""
        stmt = (
            update(ShopItem)
            .where(ShopItem.item_ref == item_ref, ShopItem.stock_quantity > 0)
            .values(stock_quantity=ShopItem.stock_quantity - 1)
            .execution_options(synchronize_session=False)
        )
        if self.db.execute(stmt).rowcount > 0:
            return True

        unlimited = self.db.execute(
            select(ShopItem.id).where(ShopItem.item_ref == item_ref, ShopItem.stock_quantity == -1)
        ).scalar_one_or_none()
        return unlimited is not None

    def release_stock(self, item_ref: str) -> None:
        stmt = (
            update(ShopItem)
            .where(ShopItem.item_ref == item_ref, ShopItem.stock_quantity >= 0)
            .values(stock_quantity=ShopItem.stock_quantity + 1)
            .execution_options(synchronize_session=False)
        )
        self.db.execute(stmt)

    def increment_sold(self, item_ref: str) -> None:
        stmt = (
            update(ShopItem)
            .where(ShopItem.item_ref == item_ref)
            .values(total_sold=ShopItem.total_sold + 1)
            .execution_options(synchronize_session=False)
        )
        self.db.execute(stmt)


class TokenPurchaseRepository(BaseRepository[TokenPurchase, TokenPurchaseResponse]):
    def __init__(self, db: Session):
        super().__init__(TokenPurchase, TokenPurchaseResponse, db)

    def get_by_ref(self, transaction_ref: str) -> Optional[TokenPurchaseResponse]:
        stmt = (
            select(TokenPurchase)
            .where(TokenPurchase.transaction_ref == transaction_ref)
            .execution_options(populate_existing=True)
        )
        return self._to_schema(self.db.execute(stmt).scalar_one_or_none())

    def transition(
        self,
        transaction_ref: str,
        from_status: PurchaseStatus,
        to_status: PurchaseStatus,
        **fields: Any,
    ) -> bool:
        stmt = (
            update(TokenPurchase)
            .where(
                TokenPurchase.transaction_ref == transaction_ref,
                TokenPurchase.status == from_status.value,
            )
            .values(status=to_status.value, **fields)
            .execution_options(synchronize_session=False)
        )
        return self.db.execute(stmt).rowcount > 0

    def flag_reconciliation(self, transaction_ref: str, reason: str) -> bool:
        stmt = (
            update(TokenPurchase)
            .where(
                TokenPurchase.transaction_ref == transaction_ref,
                TokenPurchase.status == PurchaseStatus.DEBITED.value,
            )
            .values(needs_reconciliation=True, failure_reason=reason)
            .execution_options(synchronize_session=False)
        )
        return self.db.execute(stmt).rowcount > 0

    def count_user_purchases(
        self,
        user_id: str,
        item_ref: str,
        statuses: Iterable[PurchaseStatus],
        since: Optional[datetime] = None,
        until: Optional[datetime] = None,
    ) -> int:
        stmt = select(func.count(TokenPurchase.id)).where(
            TokenPurchase.user_id == user_id,
            TokenPurchase.item_ref == item_ref,
            TokenPurchase.status.in_([s.value for s in statuses]),
        )
        if since is not None:
            stmt = stmt.where(TokenPurchase.created_at >= since)
        if until is not None:
            stmt = stmt.where(TokenPurchase.created_at < until)
        return self.db.execute(stmt).scalar_one()

    def list_purchases(
        self,
        user_id: Optional[str] = None,
        status: Optional[str] = None,
        needs_reconciliation: Optional[bool] = None,
        limit: int = 50,
        offset: int = 0,
    ) -> Tuple[List[TokenPurchaseResponse], int]:
        stmt = select(TokenPurchase)
        if user_id:
            stmt = stmt.where(TokenPurchase.user_id == user_id)
        if status:
            stmt = stmt.where(TokenPurchase.status == status)
        if needs_reconciliation is not None:
            stmt = stmt.where(TokenPurchase.needs_reconciliation.is_(needs_reconciliation))

        total = self.db.execute(select(func.count()).select_from(stmt.subquery())).scalar_one()
        rows = self.db.execute(
            stmt.order_by(TokenPurchase.id.desc()).limit(limit).offset(offset)
        ).scalars().all()
        return self._to_schemas(list(rows)), total

    def status_counts(self) -> Dict[str, int]:
        stmt = select(TokenPurchase.status, func.count(TokenPurchase.id)).group_by(
            TokenPurchase.status
        )
        return {status: count for status, count in self.db.execute(stmt).all()}

    def count_reconciliation(self) -> int:
        stmt = select(func.count(TokenPurchase.id)).where(
            TokenPurchase.needs_reconciliation.is_(True),
            TokenPurchase.status == PurchaseStatus.DEBITED.value,
        )
        return self.db.execute(stmt).scalar_one()

    def tokens_spent(self) -> int:
        stmt = select(func.coalesce(func.sum(TokenPurchase.price_tokens), 0)).where(
            TokenPurchase.status == PurchaseStatus.DELIVERED.value
        )
        return int(self.db.execute(stmt).scalar_one())

    def top_items(self, limit: int = 5) -> List[dict]:
        stmt = (
            select(TokenPurchase.item_ref, func.count(TokenPurchase.id).label("cnt"))
            .where(TokenPurchase.status == PurchaseStatus.DELIVERED.value)
            .group_by(TokenPurchase.item_ref)
            .order_by(func.count(TokenPurchase.id).desc())
            .limit(limit)
        )
        return [{"item_ref": ref, "purchases": cnt} for ref, cnt in self.db.execute(stmt).all()]
