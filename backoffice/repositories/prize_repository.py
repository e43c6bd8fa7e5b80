"""
상금 풀 리포지토리

설정 값의 증감은 모두 단일 UPDATE 문(total = total + :amount)으로 처리해
동시 기여금 적립 시 lost update가 생기지 않도록 한다.
"""

from decimal import Decimal
from typing import List, Optional

from sqlalchemy import and_, func, select, update
from sqlalchemy.orm import Session, aliased

from backoffice.models.prize import PrizeRankBand, PrizeSetting
from backoffice.repositories.base import BaseRepository
from backoffice.schemas.prize import BandStatistics, PrizeBandResponse, PrizeSettingResponse


class PrizeSettingRepository(BaseRepository[PrizeSetting, PrizeSettingResponse]):
    def __init__(self, db: Session):
        super().__init__(PrizeSetting, PrizeSettingResponse, db)

    def get_by_server_id(self, server_id: int) -> Optional[PrizeSettingResponse]:
        stmt = (
            select(PrizeSetting)
            .where(PrizeSetting.server_id == server_id)
            .execution_options(populate_existing=True)
        )
        return self._to_schema(self.db.execute(stmt).scalar_one_or_none())

    def list_all(self) -> List[PrizeSettingResponse]:
        stmt = select(PrizeSetting).order_by(PrizeSetting.server_id)
        return self._to_schemas(list(self.db.execute(stmt).scalars().all()))

    def increase_contribution(self, server_id: int, amount: Decimal) -> bool:
        """total_contributions += amount, addon_prize += rate/100 * amount (원자적)"""
        stmt = (
            update(PrizeSetting)
            .where(PrizeSetting.server_id == server_id)
            .values(
                total_contributions=PrizeSetting.total_contributions + amount,
                addon_prize=PrizeSetting.addon_prize
                + PrizeSetting.contribution_rate_percent * amount / Decimal("100"),
            )
            .execution_options(synchronize_session=False)
        )
        result = self.db.execute(stmt)
        return result.rowcount > 0

    def overwrite(
        self,
        server_id: int,
        initial_prize: Decimal,
        total_contributions: Decimal,
        contribution_rate_percent: Decimal,
        addon_prize: Decimal,
    ) -> bool:
        stmt = (
            update(PrizeSetting)
            .where(PrizeSetting.server_id == server_id)
            .values(
                initial_prize=initial_prize,
                total_contributions=total_contributions,
                contribution_rate_percent=contribution_rate_percent,
                addon_prize=addon_prize,
            )
            .execution_options(synchronize_session=False)
        )
        result = self.db.execute(stmt)
        return result.rowcount > 0


class PrizeRankBandRepository(BaseRepository[PrizeRankBand, PrizeBandResponse]):
    def __init__(self, db: Session):
        super().__init__(PrizeRankBand, PrizeBandResponse, db)

    def get_bands_for_server(self, server_id: int) -> List[PrizeBandResponse]:
        stmt = (
            select(PrizeRankBand)
            .where(PrizeRankBand.server_id == server_id)
            .order_by(PrizeRankBand.from_rank.asc(), PrizeRankBand.id.asc())
        )
        return self._to_schemas(list(self.db.execute(stmt).scalars().all()))

    def list_bands(
        self,
        server_id: Optional[int] = None,
        from_rank: Optional[int] = None,
        to_rank: Optional[int] = None,
        min_percent: Optional[Decimal] = None,
        max_percent: Optional[Decimal] = None,
        limit: int = 100,
        offset: int = 0,
    ) -> List[PrizeBandResponse]:
        stmt = select(PrizeRankBand)
        if server_id is not None:
            stmt = stmt.where(PrizeRankBand.server_id == server_id)
        if from_rank is not None:
            stmt = stmt.where(PrizeRankBand.from_rank >= from_rank)
        if to_rank is not None:
            stmt = stmt.where(PrizeRankBand.to_rank <= to_rank)
        if min_percent is not None:
            stmt = stmt.where(PrizeRankBand.percent_of_pool >= min_percent)
        if max_percent is not None:
            stmt = stmt.where(PrizeRankBand.percent_of_pool <= max_percent)

        stmt = (
            stmt.order_by(
                PrizeRankBand.server_id.asc(),
                PrizeRankBand.from_rank.asc(),
                PrizeRankBand.to_rank.asc(),
            )
            .limit(limit)
            .offset(offset)
        )
        return self._to_schemas(list(self.db.execute(stmt).scalars().all()))

    def find_exact_range(
        self, server_id: int, from_rank: int, to_rank: int, exclude_id: Optional[int] = None
    ) -> Optional[PrizeBandResponse]:
        stmt = select(PrizeRankBand).where(
            PrizeRankBand.server_id == server_id,
            PrizeRankBand.from_rank == from_rank,
            PrizeRankBand.to_rank == to_rank,
        )
        if exclude_id is not None:
            stmt = stmt.where(PrizeRankBand.id != exclude_id)
        return self._to_schema(self.db.execute(stmt.limit(1)).scalar_one_or_none())

    def find_for_rank(self, server_id: int, rank: int) -> Optional[PrizeBandResponse]:
        stmt = (
            select(PrizeRankBand)
            .where(
                PrizeRankBand.server_id == server_id,
                PrizeRankBand.from_rank <= rank,
                PrizeRankBand.to_rank >= rank,
            )
            .order_by(PrizeRankBand.from_rank.asc(), PrizeRankBand.id.asc())
            .limit(1)
        )
        return self._to_schema(self.db.execute(stmt).scalar_one_or_none())

    def find_overlapping_pairs(self, server_id: Optional[int] = None):
        """
        같은 서버 내에서 구간이 겹치는 (a, b) 쌍, a.id < b.id

        겹침 조건: NOT (a.to < b.from OR a.from > b.to)
        """
        a = aliased(PrizeRankBand)
        b = aliased(PrizeRankBand)
        stmt = select(a, b).join(
            b,
            and_(
                a.server_id == b.server_id,
                a.id < b.id,
                a.to_rank >= b.from_rank,
                a.from_rank <= b.to_rank,
            ),
        )
        if server_id is not None:
            stmt = stmt.where(a.server_id == server_id)
        stmt = stmt.order_by(a.server_id, a.from_rank, a.id, b.id)

        return [
            (self._to_schema(band_a), self._to_schema(band_b))
            for band_a, band_b in self.db.execute(stmt).all()
        ]

    def get_statistics(self, server_id: Optional[int] = None) -> BandStatistics:
        stmt = select(
            func.count(PrizeRankBand.id),
            func.min(PrizeRankBand.from_rank),
            func.max(PrizeRankBand.to_rank),
            func.avg(PrizeRankBand.percent_of_pool),
            func.min(PrizeRankBand.percent_of_pool),
            func.max(PrizeRankBand.percent_of_pool),
        )
        if server_id is not None:
            stmt = stmt.where(PrizeRankBand.server_id == server_id)

        total, min_rank, max_rank, avg_pct, min_pct, max_pct = self.db.execute(stmt).one()

        def _dec(value):
            return Decimal(str(value)) if value is not None else None

        return BandStatistics(
            total_bands=total or 0,
            min_rank=min_rank,
            max_rank=max_rank,
            avg_percent=_dec(avg_pct),
            min_percent=_dec(min_pct),
            max_percent=_dec(max_pct),
        )
