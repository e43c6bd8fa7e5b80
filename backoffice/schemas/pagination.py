from pydantic import BaseModel, Field
from typing import Generic, TypeVar, Optional, List

T = TypeVar('T')


class PaginationParams(BaseModel):
    """기본 페이지네이션 파라미터"""
    limit: Optional[int] = Field(None, ge=1, description="페이지당 항목 수")
    offset: Optional[int] = Field(0, ge=0, description="시작 오프셋")


class PaginationMeta(BaseModel):
    """페이지네이션 메타 정보"""
    limit: int
    offset: int
    total_count: Optional[int] = None
    has_next: Optional[bool] = None


class PaginatedResponse(BaseModel, Generic[T]):
    """success envelope + 페이지네이션 메타"""
    success: bool = True
    data: List[T] = Field(default_factory=list)
    meta: Optional[PaginationMeta] = None


def paginate(items: List[T], total_count: int, limit: int, offset: int) -> dict:
    return {
        "success": True,
        "data": items,
        "meta": PaginationMeta(
            limit=limit,
            offset=offset,
            total_count=total_count,
            has_next=offset + len(items) < total_count,
        ),
    }


# 엔드포인트별 페이지네이션 제한
class PaginationLimits:
    PRIZE_BANDS = {"min": 1, "max": 500, "default": 100}
    GIFT_CODES = {"min": 1, "max": 100, "default": 20}
    REDEMPTIONS = {"min": 1, "max": 100, "default": 50}
    PURCHASES = {"min": 1, "max": 100, "default": 50}
    WALLET_LEDGER = {"min": 1, "max": 100, "default": 50}
    PAYMENTS = {"min": 1, "max": 100, "default": 50}
