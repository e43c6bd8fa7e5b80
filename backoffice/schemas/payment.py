from datetime import datetime
from decimal import Decimal
from typing import Literal, Optional

from pydantic import BaseModel, Field

from backoffice.schemas.common import Money


class PaymentPackageCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=200)
    description: Optional[str] = None
    price: Decimal = Field(..., gt=0)
    currency: str = Field("USD", min_length=3, max_length=8)
    token_amount: int = Field(..., gt=0)
    bonus_tokens: int = Field(0, ge=0)
    is_active: bool = True
    sort_order: int = 0


class PaymentPackageUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=200)
    description: Optional[str] = None
    price: Optional[Decimal] = Field(None, gt=0)
    currency: Optional[str] = Field(None, min_length=3, max_length=8)
    token_amount: Optional[int] = Field(None, gt=0)
    bonus_tokens: Optional[int] = Field(None, ge=0)
    is_active: Optional[bool] = None
    sort_order: Optional[int] = None


class PaymentPackageResponse(BaseModel):
    id: int
    name: str
    description: Optional[str] = None
    price: Money
    currency: str
    token_amount: int
    bonus_tokens: int
    is_active: bool
    sort_order: int

    class Config:
        from_attributes = True


class CreateOrderRequest(BaseModel):
    package_id: int = Field(..., ge=1)


class PaymentTransactionResponse(BaseModel):
    transaction_ref: str
    user_id: str
    server_id: int
    package_id: int
    amount: Money
    currency: str
    tokens: int
    status: str
    provider_event_id: Optional[str] = None
    completed_at: Optional[datetime] = None
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class PaymentWebhookEvent(BaseModel):
    """결제 대행사 웹훅 페이로드 (서명 검증 후 파싱)"""

    transaction_ref: str = Field(..., min_length=1)
    status: Literal["paid", "failed"]
    event_id: Optional[str] = None


class WebhookResult(BaseModel):
    transaction_ref: str
    status: str
    processed: bool
