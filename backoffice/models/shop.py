"""
토큰 상점 데이터 모델

ShopItem은 토큰 가격이 붙은 상품(보상 / 게임 패킷)이고,
TokenPurchase는 멱등성 키(transaction_ref) 단위의 구매 기록이다.

구매 상태 전이:
    pending → debited → delivered | failed
    delivered → refunded
"""

import enum
from datetime import datetime
from typing import Any, Optional

from sqlalchemy import JSON, BigInteger, Boolean, DateTime, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from backoffice.models.base import BaseModel, BigIntegerPK


class ShopItemKind(str, enum.Enum):
    REWARD = "reward"
    PACKET = "packet"


class PurchaseStatus(str, enum.Enum):
    PENDING = "pending"
    DEBITED = "debited"
    DELIVERED = "delivered"
    FAILED = "failed"
    REFUNDED = "refunded"


class ShopItem(BaseModel):
    __tablename__ = "shop_items"

    id: Mapped[int] = mapped_column(BigIntegerPK, primary_key=True, autoincrement=True)
    item_ref: Mapped[str] = mapped_column(String(64), unique=True, nullable=False)
    kind: Mapped[str] = mapped_column(String(20), nullable=False, default=ShopItemKind.REWARD.value)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    image_url: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    price_tokens: Mapped[int] = mapped_column(BigInteger, nullable=False)
    reward_payload: Mapped[Any] = mapped_column(JSON, nullable=False)

    # -1 = 무제한
    stock_quantity: Mapped[int] = mapped_column(Integer, nullable=False, default=-1)
    max_purchases_per_user: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    daily_purchase_limit: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    total_sold: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    is_featured: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    def __repr__(self):
        return f"<ShopItem(item_ref={self.item_ref}, price={self.price_tokens})>"


class TokenPurchase(BaseModel):
    __tablename__ = "token_purchases"
    __table_args__ = (
        Index("idx_token_purchases_user_item", "user_id", "item_ref"),
        Index("idx_token_purchases_status", "status"),
    )

    id: Mapped[int] = mapped_column(BigIntegerPK, primary_key=True, autoincrement=True)

    # 클라이언트가 보낸 멱등성 키
    transaction_ref: Mapped[str] = mapped_column(String(128), unique=True, nullable=False)

    user_id: Mapped[str] = mapped_column(String(100), nullable=False)
    server_id: Mapped[int] = mapped_column(Integer, nullable=False)
    role_id: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    item_ref: Mapped[str] = mapped_column(String(64), nullable=False)
    price_tokens: Mapped[int] = mapped_column(BigInteger, nullable=False)

    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=PurchaseStatus.PENDING.value
    )
    granted_payload: Mapped[Optional[Any]] = mapped_column(JSON, nullable=True)
    failure_reason: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    # 환불(보상 트랜잭션) 실패로 차감 상태에 남은 구매
    needs_reconciliation: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    delivered_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    refunded_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    refunded_by: Mapped[Optional[int]] = mapped_column(BigInteger, nullable=True)

    def __repr__(self):
        return f"<TokenPurchase(ref={self.transaction_ref}, status={self.status})>"
