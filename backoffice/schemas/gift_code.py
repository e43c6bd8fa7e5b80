from datetime import datetime
from typing import Any, List, Optional

from pydantic import BaseModel, Field, field_validator, model_validator

from backoffice.schemas.reward_payload import RewardPayload
from backoffice.utils.date_utils import ensure_aware


class GiftCodeCreate(BaseModel):
    """기프트 코드 생성 요청 - code 생략 시 자동 생성"""

    code: Optional[str] = Field(None, min_length=4, max_length=64)
    title: str = Field("Gift Code", min_length=1, max_length=200)
    description: Optional[str] = None
    reward_payload: RewardPayload
    usage_limit: Optional[int] = Field(None, ge=1, description="NULL이면 무제한")
    per_user_limit: int = Field(1, ge=1)
    valid_from: Optional[datetime] = None
    valid_until: Optional[datetime] = None
    is_active: bool = True

    @field_validator("valid_from", "valid_until")
    @classmethod
    def normalize_to_utc(cls, value: Optional[datetime]) -> Optional[datetime]:
        # timezone 없는 값은 UTC로 간주
        return ensure_aware(value)

    @model_validator(mode="after")
    def check_window(self):
        if self.valid_from and self.valid_until and self.valid_from >= self.valid_until:
            raise ValueError("valid_from must be earlier than valid_until")
        return self


class GiftCodeUpdate(BaseModel):
    title: Optional[str] = Field(None, min_length=1, max_length=200)
    description: Optional[str] = None
    reward_payload: Optional[RewardPayload] = None
    usage_limit: Optional[int] = Field(None, ge=1)
    per_user_limit: Optional[int] = Field(None, ge=1)
    valid_from: Optional[datetime] = None
    valid_until: Optional[datetime] = None


class GiftCodeResponse(BaseModel):
    id: int
    code: str
    title: str
    description: Optional[str] = None
    reward_payload: Any
    usage_limit: Optional[int] = None
    usage_count: int
    per_user_limit: int
    is_active: bool
    valid_from: Optional[datetime] = None
    valid_until: Optional[datetime] = None
    created_by: Optional[int] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class GiftCodeRedemptionResponse(BaseModel):
    id: int
    gift_code_id: int
    code: str
    user_id: str
    redemption_seq: int
    granted_payload: Any
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None
    redeemed_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class RedeemRequest(BaseModel):
    code: str = Field(..., min_length=1, max_length=64)


class RedeemResponse(BaseModel):
    code: str
    redemption_seq: int
    granted_payload: Any
    grants: List[Any]


class ValidateCodeResponse(BaseModel):
    valid: bool
    reason: Optional[str] = None


class GiftCodeStatistics(BaseModel):
    total_codes: int
    active_codes: int
    expired_codes: int
    total_redemptions: int
    average_redemptions_per_code: float
