from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field


class WalletBalanceResponse(BaseModel):
    """지갑 잔액"""

    user_id: str
    currency: str
    balance: int = Field(..., description="현재 잔액")


class WalletLedgerEntry(BaseModel):
    id: int
    user_id: str
    currency: str
    delta: int = Field(..., description="잔액 변화량")
    balance_after: int = Field(..., description="거래 후 잔액")
    reason: str
    ref_id: str
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class WalletLedgerResponse(BaseModel):
    balance: int
    entries: List[WalletLedgerEntry]
    total_count: int
    has_next: bool


class WalletAdjustRequest(BaseModel):
    """관리자 잔액 조정 요청"""

    user_id: str = Field(..., min_length=1, max_length=100)
    amount: int = Field(..., description="조정할 금액 (양수: 지급, 음수: 차감)")
    reason: str = Field(..., min_length=1, max_length=255)
    currency: Optional[str] = Field(None, max_length=32)


class WalletAdjustResponse(BaseModel):
    user_id: str
    currency: str
    delta: int
    balance_after: int
    ref_id: str


class WalletIntegrityResponse(BaseModel):
    user_id: str
    currency: str
    status: str = Field(..., description="OK / MISMATCH")
    recorded_balance: int
    calculated_balance: int
    entry_count: int


class InventoryEntry(BaseModel):
    item_id: str
    quantity: int

    class Config:
        from_attributes = True
