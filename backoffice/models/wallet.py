"""
플레이어 지갑 데이터 모델

- PlayerWallet: 사용자/통화별 현재 잔액 (원자적 증감만 허용)
- WalletLedger: 모든 잔액 변동의 원장. ref_id 유니크로 멱등성 보장
- PlayerInventory: 아이템 보상 적재
"""

from sqlalchemy import BigInteger, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.schema import UniqueConstraint

from backoffice.models.base import BaseModel, BigIntegerPK


class PlayerWallet(BaseModel):
    __tablename__ = "player_wallets"
    __table_args__ = (UniqueConstraint("user_id", "currency", name="uq_player_wallet"),)

    id: Mapped[int] = mapped_column(BigIntegerPK, primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(String(100), nullable=False)
    currency: Mapped[str] = mapped_column(String(32), nullable=False)
    balance: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)


class WalletLedger(BaseModel):
    """
    지갑 원장 - 불변 기록

    ref_id 형식 예시: "purchase:{key}", "purchase-refund:{key}",
    "gift:{code}:{user}:{seq}:0", "payment:{ref}", "admin:{admin_id}:{ts}"
    """

    __tablename__ = "wallet_ledger"
    __table_args__ = (
        UniqueConstraint("ref_id", name="uq_wallet_ledger_ref"),
        Index("idx_wallet_ledger_user", "user_id", "currency"),
    )

    id: Mapped[int] = mapped_column(BigIntegerPK, primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(String(100), nullable=False)
    currency: Mapped[str] = mapped_column(String(32), nullable=False)
    delta: Mapped[int] = mapped_column(BigInteger, nullable=False)
    balance_after: Mapped[int] = mapped_column(BigInteger, nullable=False)
    reason: Mapped[str] = mapped_column(Text, nullable=False)
    ref_id: Mapped[str] = mapped_column(String(255), nullable=False)


class PlayerInventory(BaseModel):
    __tablename__ = "player_inventory"
    __table_args__ = (UniqueConstraint("user_id", "item_id", name="uq_player_inventory"),)

    id: Mapped[int] = mapped_column(BigIntegerPK, primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(String(100), nullable=False)
    item_id: Mapped[str] = mapped_column(String(64), nullable=False)
    quantity: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
