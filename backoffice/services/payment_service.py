"""
결제 서비스 - 결제 패키지 / 주문 / 웹훅 처리

주문은 pending으로 생성되고, 결제 대행사 웹훅으로 completed 또는 failed가 확정된다.
웹훅 본문은 PAYMENT_WEBHOOK_SECRET으로 만든 HMAC-SHA256 서명으로 검증한다.
"""

import hashlib
import hmac
import json
import uuid
from typing import List, Optional, Tuple

from pydantic import ValidationError as PydanticValidationError
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from backoffice.config import Settings
from backoffice.core.exceptions import (
    AuthenticationError,
    ConflictError,
    IneligibleError,
    NotFoundError,
    ValidationError,
)
from backoffice.models.payment import PaymentStatus
from backoffice.repositories.payment_repository import (
    PaymentPackageRepository,
    PaymentTransactionRepository,
)
from backoffice.schemas.auth import PlayerContext
from backoffice.schemas.payment import (
    PaymentPackageCreate,
    PaymentPackageResponse,
    PaymentPackageUpdate,
    PaymentTransactionResponse,
    PaymentWebhookEvent,
    WebhookResult,
)
from backoffice.services.wallet_service import WalletService
from backoffice.utils.date_utils import utc_now
import logging

logger = logging.getLogger(__name__)


def sign_payload(secret: str, raw_body: bytes) -> str:
    return hmac.new(secret.encode("utf-8"), raw_body, hashlib.sha256).hexdigest()


class PaymentService:
    def __init__(self, db: Session, settings: Settings, wallet_service: Optional[WalletService] = None):
        self.db = db
        self.settings = settings
        self.package_repo = PaymentPackageRepository(db)
        self.transaction_repo = PaymentTransactionRepository(db)
        self.wallet_service = wallet_service or WalletService(db, settings)

    # ------------------------------------------------------------------
    # Packages
    # ------------------------------------------------------------------

    def list_packages(self, active_only: bool = True) -> List[PaymentPackageResponse]:
        return self.package_repo.list_packages(active_only=active_only)

    def get_package(self, package_id: int) -> PaymentPackageResponse:
        package = self.package_repo.get_by_id(package_id)
        if not package:
            raise NotFoundError(f"Payment package {package_id} not found")
        return package

    def create_package(self, data: PaymentPackageCreate) -> PaymentPackageResponse:
        package = self.package_repo.create(**data.model_dump())
        self.db.commit()
        logger.info(f"Payment package created: {package.id} {package.name}")
        return package

    def update_package(self, package_id: int, data: PaymentPackageUpdate) -> PaymentPackageResponse:
        self.get_package(package_id)
        fields = data.model_dump(exclude_unset=True)
        package = self.package_repo.update(package_id, **fields)
        self.db.commit()
        logger.info(f"Payment package {package_id} updated: {sorted(fields)}")
        return package

    def deactivate_package(self, package_id: int) -> PaymentPackageResponse:
        self.get_package(package_id)
        package = self.package_repo.update(package_id, is_active=False)
        self.db.commit()
        logger.info(f"Payment package {package_id} deactivated")
        return package

    # ------------------------------------------------------------------
    # Orders
    # ------------------------------------------------------------------

    def create_order(self, player: PlayerContext, package_id: int) -> PaymentTransactionResponse:
        package = self.get_package(package_id)
        if not package.is_active:
            raise IneligibleError("inactive", f"Payment package {package_id} is not on sale")

        transaction_ref = f"PAY-{uuid.uuid4().hex.upper()}"
        try:
            order = self.transaction_repo.create(
                transaction_ref=transaction_ref,
                user_id=player.user_id,
                server_id=player.server_id,
                package_id=package.id,
                amount=package.price,
                currency=package.currency,
                tokens=package.token_amount + package.bonus_tokens,
                status=PaymentStatus.PENDING.value,
            )
            self.db.commit()
        except IntegrityError:
            self.db.rollback()
            raise ConflictError("Duplicate order reference, please retry")

        logger.info(
            f"Payment order created: ref={transaction_ref} user={player.user_id} package={package.id}"
        )
        return order

    def get_transaction(self, transaction_ref: str) -> PaymentTransactionResponse:
        transaction = self.transaction_repo.get_by_ref(transaction_ref)
        if not transaction:
            raise NotFoundError(f"Payment transaction not found: {transaction_ref}")
        return transaction

    def list_transactions(
        self,
        user_id: Optional[str] = None,
        status: Optional[str] = None,
        limit: int = 50,
        offset: int = 0,
    ) -> Tuple[List[PaymentTransactionResponse], int]:
        return self.transaction_repo.list_transactions(
            user_id=user_id, status=status, limit=limit, offset=offset
        )

    # ------------------------------------------------------------------
    # Webhook
    # ------------------------------------------------------------------

    def verify_signature(self, raw_body: bytes, signature: Optional[str]) -> None:
        secret = self.settings.PAYMENT_WEBHOOK_SECRET
        if not secret:
            logger.error("PAYMENT_WEBHOOK_SECRET is not configured; rejecting webhook")
            raise AuthenticationError("Webhook signature cannot be verified")
        if not signature:
            raise AuthenticationError("Missing webhook signature")

        expected = sign_payload(secret, raw_body)
        if not hmac.compare_digest(expected, signature.strip().lower()):
            logger.warning("Webhook signature mismatch")
            raise AuthenticationError("Invalid webhook signature")

    def handle_webhook(self, raw_body: bytes, signature: Optional[str]) -> WebhookResult:
        self.verify_signature(raw_body, signature)

        try:
            event = PaymentWebhookEvent.model_validate(json.loads(raw_body))
        except (ValueError, PydanticValidationError) as e:
            raise ValidationError("Malformed webhook payload", details={"error": str(e)})

        transaction = self.get_transaction(event.transaction_ref)
        if transaction.status != PaymentStatus.PENDING.value:
            logger.info(
                f"Webhook for already settled transaction ignored: "
                f"ref={transaction.transaction_ref} status={transaction.status}"
            )
            return WebhookResult(
                transaction_ref=transaction.transaction_ref,
                status=transaction.status,
                processed=False,
            )

        if event.status == "paid":
            return self._complete(transaction, event)
        return self._fail(transaction, event)

    def _complete(
        self, transaction: PaymentTransactionResponse, event: PaymentWebhookEvent
    ) -> WebhookResult:
        try:
            if not self.transaction_repo.mark(
                transaction.transaction_ref,
                PaymentStatus.COMPLETED,
                provider_event_id=event.event_id,
                completed_at=utc_now(),
            ):
                self.db.rollback()
                current = self.get_transaction(transaction.transaction_ref)
                return WebhookResult(
                    transaction_ref=current.transaction_ref,
                    status=current.status,
                    processed=False,
                )
            self.wallet_service.adjust_balance(
                user_id=transaction.user_id,
                delta=transaction.tokens,
                reason=f"Payment package {transaction.package_id}",
                ref_id=f"payment:{transaction.transaction_ref}",
            )
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        logger.info(
            f"Payment completed: ref={transaction.transaction_ref} user={transaction.user_id} "
            f"tokens={transaction.tokens}"
        )
        return WebhookResult(
            transaction_ref=transaction.transaction_ref,
            status=PaymentStatus.COMPLETED.value,
            processed=True,
        )

    def _fail(
        self, transaction: PaymentTransactionResponse, event: PaymentWebhookEvent
    ) -> WebhookResult:
        processed = self.transaction_repo.mark(
            transaction.transaction_ref,
            PaymentStatus.FAILED,
            provider_event_id=event.event_id,
        )
        self.db.commit()
        logger.info(f"Payment failed: ref={transaction.transaction_ref} user={transaction.user_id}")
        return WebhookResult(
            transaction_ref=transaction.transaction_ref,
            status=PaymentStatus.FAILED.value,
            processed=processed,
        )
