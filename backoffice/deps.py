from fastapi import Depends, Request
from sqlalchemy.orm import Session

from backoffice.database.session import get_db
from backoffice.config import settings

# Shared clients (container singletons)
from backoffice.services.fulfillment import FulfillmentProvider
from backoffice.services.redis_service import RedisService

# Services
from backoffice.services.auth_service import AuthService
from backoffice.services.prize_service import PrizeService
from backoffice.services.wallet_service import WalletService
from backoffice.services.gift_code_service import GiftCodeService
from backoffice.services.shop_service import ShopService
from backoffice.services.purchase_service import PurchaseService
from backoffice.services.payment_service import PaymentService


def get_redis_service(request: Request) -> RedisService:
    return request.app.container.infrastructure.redis_service()


def get_fulfillment(request: Request) -> FulfillmentProvider:
    return request.app.container.infrastructure.fulfillment()


def get_auth_service(db: Session = Depends(get_db)) -> AuthService:
    return AuthService(db=db, settings=settings)


def get_prize_service(db: Session = Depends(get_db)) -> PrizeService:
    return PrizeService(db=db)


def get_wallet_service(db: Session = Depends(get_db)) -> WalletService:
    return WalletService(db=db, settings=settings)


def get_gift_code_service(db: Session = Depends(get_db)) -> GiftCodeService:
    return GiftCodeService(db=db, settings=settings)


def get_shop_service(db: Session = Depends(get_db)) -> ShopService:
    return ShopService(db=db)


def get_purchase_service(
    db: Session = Depends(get_db),
    fulfillment: FulfillmentProvider = Depends(get_fulfillment),
) -> PurchaseService:
    wallet_service = WalletService(db=db, settings=settings)
    return PurchaseService(
        db=db,
        settings=settings,
        fulfillment=fulfillment,
        wallet_service=wallet_service,
        prize_service=PrizeService(db=db),
    )


def get_payment_service(db: Session = Depends(get_db)) -> PaymentService:
    return PaymentService(db=db, settings=settings)
