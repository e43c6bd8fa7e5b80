from typing import Any, List, Optional, Tuple

from sqlalchemy import func, select, update
from sqlalchemy.orm import Session

from backoffice.models.payment import PaymentPackage, PaymentStatus, PaymentTransaction
from backoffice.repositories.base import BaseRepository
from backoffice.schemas.payment import PaymentPackageResponse, PaymentTransactionResponse


class PaymentPackageRepository(BaseRepository[PaymentPackage, PaymentPackageResponse]):
    def __init__(self, db: Session):
        super().__init__(PaymentPackage, PaymentPackageResponse, db)

    def list_packages(self, active_only: bool = True) -> List[PaymentPackageResponse]:
        stmt = select(PaymentPackage)
        if active_only:
            stmt = stmt.where(PaymentPackage.is_active.is_(True))
        stmt = stmt.order_by(PaymentPackage.sort_order.asc(), PaymentPackage.id.asc())
        return self._to_schemas(list(self.db.execute(stmt).scalars().all()))


class PaymentTransactionRepository(
    BaseRepository[PaymentTransaction, PaymentTransactionResponse]
):
    def __init__(self, db: Session):
        super().__init__(PaymentTransaction, PaymentTransactionResponse, db)

    def get_by_ref(self, transaction_ref: str) -> Optional[PaymentTransactionResponse]:
        stmt = (
            select(PaymentTransaction)
            .where(PaymentTransaction.transaction_ref == transaction_ref)
            .execution_options(populate_existing=True)
        )
        return self._to_schema(self.db.execute(stmt).scalar_one_or_none())

    def mark(
        self,
        transaction_ref: str,
        to_status: PaymentStatus,
        **fields: Any,
    ) -> bool:
        """pending 상태에서만 전이"""
        stmt = (
            update(PaymentTransaction)
            .where(
                PaymentTransaction.transaction_ref == transaction_ref,
                PaymentTransaction.status == PaymentStatus.PENDING.value,
            )
            .values(status=to_status.value, **fields)
            .execution_options(synchronize_session=False)
        )
        return self.db.execute(stmt).rowcount > 0

    def list_transactions(
        self,
        user_id: Optional[str] = None,
        status: Optional[str] = None,
        limit: int = 50,
        offset: int = 0,
    ) -> Tuple[List[PaymentTransactionResponse], int]:
        stmt = select(PaymentTransaction)
        if user_id:
            stmt = stmt.where(PaymentTransaction.user_id == user_id)
        if status:
            stmt = stmt.where(PaymentTransaction.status == status)

        total = self.db.execute(select(func.count()).select_from(stmt.subquery())).scalar_one()
        rows = self.db.execute(
            stmt.order_by(PaymentTransaction.id.desc()).limit(limit).offset(offset)
        ).scalars().all()
        return self._to_schemas(list(rows)), total
