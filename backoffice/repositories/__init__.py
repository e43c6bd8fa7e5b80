# Repository layer - Data access with Pydantic responses

from .base import BaseRepository
from .admin_repository import AdminRepository
from .prize_repository import PrizeSettingRepository, PrizeRankBandRepository
from .wallet_repository import WalletRepository
from .gift_code_repository import GiftCodeRepository, GiftCodeRedemptionRepository
from .shop_repository import ShopItemRepository, TokenPurchaseRepository
from .payment_repository import PaymentPackageRepository, PaymentTransactionRepository

__all__ = [
    "BaseRepository",
    "AdminRepository",
    "PrizeSettingRepository",
    "PrizeRankBandRepository",
    "WalletRepository",
    "GiftCodeRepository",
    "GiftCodeRedemptionRepository",
    "ShopItemRepository",
    "TokenPurchaseRepository",
    "PaymentPackageRepository",
    "PaymentTransactionRepository",
]
