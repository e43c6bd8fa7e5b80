from datetime import datetime
from typing import Any, Optional

from sqlalchemy import JSON, BigInteger, Boolean, DateTime, ForeignKey, Index, Integer, String, Text, func
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.schema import UniqueConstraint

from backoffice.models.base import BaseModel, BigIntegerPK


class GiftCode(BaseModel):
    """기프트 코드 - 하드 삭제 없이 비활성화만 지원 (감사 추적 유지)"""

    __tablename__ = "gift_codes"

    id: Mapped[int] = mapped_column(BigIntegerPK, primary_key=True, autoincrement=True)
    code: Mapped[str] = mapped_column(String(64), unique=True, nullable=False)
    title: Mapped[str] = mapped_column(String(200), nullable=False, default="Gift Code")
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    # RewardPayload (tagged variant) JSON
    reward_payload: Mapped[Any] = mapped_column(JSON, nullable=False)

    # NULL이면 무제한
    usage_limit: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    usage_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    per_user_limit: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    valid_from: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    valid_until: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    created_by: Mapped[Optional[int]] = mapped_column(BigInteger, nullable=True)

    def __repr__(self):
        return f"<GiftCode(code={self.code}, used={self.usage_count}/{self.usage_limit})>"


class GiftCodeRedemption(BaseModel):
    """
    기프트 코드 사용 기록

    (gift_code_id, user_id, redemption_seq) 유니크 제약으로 동시 요청 중
    하나만 같은 슬롯을 차지한다. redemption_seq는 1..per_user_limit.
    """

    __tablename__ = "gift_code_redemptions"
    __table_args__ = (
        UniqueConstraint(
            "gift_code_id", "user_id", "redemption_seq", name="uq_gift_code_redemption_slot"
        ),
        Index("idx_gift_code_redemptions_user", "user_id"),
    )

    id: Mapped[int] = mapped_column(BigIntegerPK, primary_key=True, autoincrement=True)
    gift_code_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("gift_codes.id"), nullable=False
    )
    code: Mapped[str] = mapped_column(String(64), nullable=False)
    user_id: Mapped[str] = mapped_column(String(100), nullable=False)
    redemption_seq: Mapped[int] = mapped_column(Integer, nullable=False)

    # 실제 지급된 보상 스냅샷 (코드의 현재 보상과 분리)
    granted_payload: Mapped[Any] = mapped_column(JSON, nullable=False)

    ip_address: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    user_agent: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    redeemed_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )
