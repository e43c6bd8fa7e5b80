"""
상금 풀(Prize Pool) 데이터 모델

- PrizeSetting: 서버별 상금 풀 설정 (기본 상금 + 토큰 구매 기여금의 일정 비율)
- PrizeRankBand: 순위 구간별 상금 비율

addon_prize는 기여금이 들어올 때마다 contribution_rate_percent 만큼 누적된다.
순위 구간의 겹침은 저장 시점에 막지 않는다 (관리자 진단 쿼리로 확인).
"""

from decimal import Decimal

from sqlalchemy import Index, Integer
from sqlalchemy.orm import Mapped, mapped_column

from backoffice.models.base import BaseModel, BigIntegerPK, Money


class PrizeSetting(BaseModel):
    __tablename__ = "prize_settings"

    id: Mapped[int] = mapped_column(BigIntegerPK, primary_key=True, autoincrement=True)
    server_id: Mapped[int] = mapped_column(Integer, unique=True, nullable=False)

    # 고정 기본 상금
    initial_prize: Mapped[Decimal] = mapped_column(Money, nullable=False, default=Decimal("0"))

    # 누적 토큰 구매 기여금 (감소하지 않음)
    total_contributions: Mapped[Decimal] = mapped_column(
        Money, nullable=False, default=Decimal("0")
    )

    # 기여금 중 상금 풀로 적립되는 비율 (0-100)
    contribution_rate_percent: Mapped[Decimal] = mapped_column(
        Money, nullable=False, default=Decimal("0")
    )

    # 누적 적립 상금 = Σ(rate/100 * contribution)
    addon_prize: Mapped[Decimal] = mapped_column(Money, nullable=False, default=Decimal("0"))

    def __repr__(self):
        return f"<PrizeSetting(server_id={self.server_id}, initial={self.initial_prize}, addon={self.addon_prize})>"


class PrizeRankBand(BaseModel):
    __tablename__ = "prize_rank_bands"
    __table_args__ = (
        Index("idx_prize_rank_bands_server_rank", "server_id", "from_rank", "to_rank"),
    )

    id: Mapped[int] = mapped_column(BigIntegerPK, primary_key=True, autoincrement=True)
    server_id: Mapped[int] = mapped_column(Integer, nullable=False)
    from_rank: Mapped[int] = mapped_column(Integer, nullable=False)
    to_rank: Mapped[int] = mapped_column(Integer, nullable=False)
    percent_of_pool: Mapped[Decimal] = mapped_column(Money, nullable=False)

    def __repr__(self):
        return f"<PrizeRankBand(server_id={self.server_id}, {self.from_rank}-{self.to_rank}, {self.percent_of_pool}%)>"
