from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, model_validator

from backoffice.schemas.common import Money


class PrizeSettingResponse(BaseModel):
    """서버별 상금 풀 설정"""

    server_id: int
    initial_prize: Money
    total_contributions: Money
    contribution_rate_percent: Money
    addon_prize: Money
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class PrizeSettingCreate(BaseModel):
    server_id: int = Field(..., ge=0, description="게임 서버 ID")
    initial_prize: Decimal = Field(Decimal("0"), ge=0, description="기본 상금")
    contribution_rate_percent: Decimal = Field(
        Decimal("0"), ge=0, le=100, description="기여금 적립 비율(%)"
    )
    total_contributions: Decimal = Field(Decimal("0"), ge=0)
    addon_prize: Decimal = Field(Decimal("0"), ge=0)


class PrizeSettingUpdate(BaseModel):
    """관리자 전체 덮어쓰기 - 네 필드 모두 필수"""

    initial_prize: Decimal = Field(..., ge=0)
    total_contributions: Decimal = Field(..., ge=0)
    contribution_rate_percent: Decimal = Field(..., ge=0, le=100)
    addon_prize: Decimal = Field(..., ge=0)


class ContributionRequest(BaseModel):
    amount: Decimal = Field(..., gt=0, description="기여 금액")


class PrizeBandCreate(BaseModel):
    server_id: int = Field(..., ge=0)
    from_rank: int = Field(..., ge=1)
    to_rank: int = Field(..., ge=1)
    percent_of_pool: Decimal = Field(..., ge=0, le=100)

    @model_validator(mode="after")
    def check_rank_order(self):
        if self.from_rank > self.to_rank:
            raise ValueError("from_rank must be less than or equal to to_rank")
        return self


class PrizeBandUpdate(BaseModel):
    from_rank: Optional[int] = Field(None, ge=1)
    to_rank: Optional[int] = Field(None, ge=1)
    percent_of_pool: Optional[Decimal] = Field(None, ge=0, le=100)


class PrizeBandResponse(BaseModel):
    id: int
    server_id: int
    from_rank: int
    to_rank: int
    percent_of_pool: Money
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class BulkBandRequest(BaseModel):
    server_id: int = Field(..., ge=0)
    # 레코드 단위로 검증하므로 원본 dict를 그대로 받는다
    bands: List[Dict[str, Any]]


class BulkBandError(BaseModel):
    index: int
    data: Dict[str, Any]
    error: str


class BulkBandResult(BaseModel):
    created: List[PrizeBandResponse]
    errors: List[BulkBandError]
    created_count: int
    error_count: int


class BandOverlap(BaseModel):
    server_id: int
    band_a: PrizeBandResponse
    band_b: PrizeBandResponse


class BandStatistics(BaseModel):
    total_bands: int
    min_rank: Optional[int] = None
    max_rank: Optional[int] = None
    avg_percent: Optional[Money] = None
    min_percent: Optional[Money] = None
    max_percent: Optional[Money] = None


class PrizePool(BaseModel):
    server_id: int
    initial_prize: Money
    addon_prize: Money
    total_contributions: Money
    contribution_rate_percent: Money
    total_pool: Money


class BandPayout(BaseModel):
    id: int
    from_rank: int
    to_rank: int
    rank_label: str
    percent_of_pool: Money
    payout: Money


class PayoutTotals(BaseModel):
    total_percent: Money
    is_complete: bool
    band_count: int


class PrizePoolSummary(BaseModel):
    """순위별 상금 분배표"""

    pool: PrizePool
    bands: List[BandPayout]
    summary: PayoutTotals
