from datetime import datetime
from typing import List, Optional, Tuple

from sqlalchemy import func, or_, select, update
from sqlalchemy.orm import Session

from backoffice.models.gift_code import GiftCode, GiftCodeRedemption
from backoffice.repositories.base import BaseRepository
from backoffice.schemas.gift_code import GiftCodeRedemptionResponse, GiftCodeResponse


class GiftCodeRepository(BaseRepository[GiftCode, GiftCodeResponse]):
    def __init__(self, db: Session):
        super().__init__(GiftCode, GiftCodeResponse, db)

    def get_by_code(self, code: str) -> Optional[GiftCodeResponse]:
        stmt = (
            select(GiftCode)
            .where(GiftCode.code == code)
            .execution_options(populate_existing=True)
        )
        return self._to_schema(self.db.execute(stmt).scalar_one_or_none())

    def list_codes(
        self,
        limit: int = 20,
        offset: int = 0,
        is_active: Optional[bool] = None,
        search: Optional[str] = None,
    ) -> Tuple[List[GiftCodeResponse], int]:
        stmt = select(GiftCode)
        if is_active is not None:
            stmt = stmt.where(GiftCode.is_active == is_active)
        if search:
            pattern = f"%{search}%"
            stmt = stmt.where(or_(GiftCode.code.like(pattern), GiftCode.title.like(pattern)))

        total = self.db.execute(
            select(func.count()).select_from(stmt.subquery())
        ).scalar_one()
        rows = self.db.execute(
            stmt.order_by(GiftCode.id.desc()).limit(limit).offset(offset)
        ).scalars().all()
        return self._to_schemas(list(rows)), total

    def increment_usage(self, code_id: int) -> bool:
        """usage_count < usage_limit 일 때만 +1 (원자적)"""
        stmt = (
            update(GiftCode)
            .where(
                GiftCode.id == code_id,
                or_(GiftCode.usage_limit.is_(None), GiftCode.usage_count < GiftCode.usage_limit),
            )
            .values(usage_count=GiftCode.usage_count + 1)
            .execution_options(synchronize_session=False)
        )
        return self.db.execute(stmt).rowcount > 0

    def set_active(self, code_id: int, is_active: bool) -> Optional[GiftCodeResponse]:
        return self.update(code_id, is_active=is_active)

    def count_expired(self, now: datetime) -> int:
        stmt = select(func.count(GiftCode.id)).where(
            GiftCode.valid_until.is_not(None), GiftCode.valid_until < now
        )
        return self.db.execute(stmt).scalar_one()


class GiftCodeRedemptionRepository(
    BaseRepository[GiftCodeRedemption, GiftCodeRedemptionResponse]
):
    def __init__(self, db: Session):
        super().__init__(GiftCodeRedemption, GiftCodeRedemptionResponse, db)

    def count_for_user(self, gift_code_id: int, user_id: str) -> int:
        stmt = select(func.count(GiftCodeRedemption.id)).where(
            GiftCodeRedemption.gift_code_id == gift_code_id,
            GiftCodeRedemption.user_id == user_id,
        )
        return self.db.execute(stmt).scalar_one()

    def list_for_code(
        self, gift_code_id: int, limit: int = 50, offset: int = 0
    ) -> Tuple[List[GiftCodeRedemptionResponse], int]:
        base = select(GiftCodeRedemption).where(GiftCodeRedemption.gift_code_id == gift_code_id)
        total = self.db.execute(select(func.count()).select_from(base.subquery())).scalar_one()
        rows = self.db.execute(
            base.order_by(GiftCodeRedemption.id.desc()).limit(limit).offset(offset)
        ).scalars().all()
        return self._to_schemas(list(rows)), total

    def list_for_user(
        self, user_id: str, limit: int = 50, offset: int = 0
    ) -> Tuple[List[GiftCodeRedemptionResponse], int]:
        base = select(GiftCodeRedemption).where(GiftCodeRedemption.user_id == user_id)
        total = self.db.execute(select(func.count()).select_from(base.subquery())).scalar_one()
        rows = self.db.execute(
            base.order_by(GiftCodeRedemption.id.desc()).limit(limit).offset(offset)
        ).scalars().all()
        return self._to_schemas(list(rows)), total
