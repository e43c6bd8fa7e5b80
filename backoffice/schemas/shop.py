from datetime import datetime
from typing import Any, List, Literal, Optional

from pydantic import BaseModel, Field

from backoffice.schemas.reward_payload import RewardPayload


class ShopItemCreate(BaseModel):
    item_ref: str = Field(..., min_length=1, max_length=64, description="상품 식별자")
    kind: Literal["reward", "packet"] = "reward"
    name: str = Field(..., min_length=1, max_length=200)
    description: Optional[str] = None
    image_url: Optional[str] = None
    price_tokens: int = Field(..., gt=0, description="토큰 가격")
    reward_payload: RewardPayload
    stock_quantity: int = Field(-1, ge=-1, description="-1 = 무제한")
    max_purchases_per_user: Optional[int] = Field(None, ge=1)
    daily_purchase_limit: Optional[int] = Field(None, ge=1)
    is_active: bool = True
    is_featured: bool = False


class ShopItemUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=200)
    description: Optional[str] = None
    image_url: Optional[str] = None
    price_tokens: Optional[int] = Field(None, gt=0)
    reward_payload: Optional[RewardPayload] = None
    stock_quantity: Optional[int] = Field(None, ge=-1)
    max_purchases_per_user: Optional[int] = Field(None, ge=1)
    daily_purchase_limit: Optional[int] = Field(None, ge=1)
    is_active: Optional[bool] = None
    is_featured: Optional[bool] = None


class ShopItemResponse(BaseModel):
    id: int
    item_ref: str
    kind: str
    name: str
    description: Optional[str] = None
    image_url: Optional[str] = None
    price_tokens: int
    reward_payload: Any
    stock_quantity: int
    max_purchases_per_user: Optional[int] = None
    daily_purchase_limit: Optional[int] = None
    total_sold: int
    is_active: bool
    is_featured: bool
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class PurchaseRequest(BaseModel):
    item_ref: str = Field(..., min_length=1, max_length=64)
    idempotency_key: str = Field(..., min_length=8, max_length=128, description="클라이언트 생성 멱등성 키")


class TokenPurchaseResponse(BaseModel):
    transaction_ref: str
    user_id: str
    server_id: int
    role_id: Optional[str] = None
    item_ref: str
    price_tokens: int
    status: str
    granted_payload: Optional[Any] = None
    failure_reason: Optional[str] = None
    needs_reconciliation: bool = False
    delivered_at: Optional[datetime] = None
    refunded_at: Optional[datetime] = None
    refunded_by: Optional[int] = None
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class PurchaseEligibility(BaseModel):
    can_purchase: bool
    reason: Optional[str] = None
    balance: int
    price_tokens: int
    purchased_total: int
    purchased_today: int


class ShopStatistics(BaseModel):
    total_items: int
    active_items: int
    total_purchases: int
    delivered_purchases: int
    failed_purchases: int
    refunded_purchases: int
    pending_reconciliation: int
    tokens_spent: int
    top_items: List[dict] = Field(default_factory=list)
