"""
토큰 구매 서비스

purchase() 흐름:
1. 같은 멱등성 키의 구매가 delivered면 저장된 결과를 그대로 반환
2. 상품 상태 / 구매 한도(총, 일일) 검사
3. 잔액 확인
4. 한 트랜잭션으로 구매 기록(pending → debited) + 토큰 차감 + 재고 예약
5. 외부 지급 시도
   - 성공: delivered
   - 실패: 차감액 환불(보상 트랜잭션) 후 failed, 호출자에게 실패 전달
     환불이 재시도 후에도 실패하면 debited로 남기고 needs_reconciliation 표시
6. 성공 시 상금 풀 기여금 적립 (실패해도 구매는 유지, 로그만 남김)

상태 전이: pending → debited → delivered | failed, delivered → refunded
"""

from decimal import Decimal
from typing import List, Optional, Tuple

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from backoffice.config import Settings
from backoffice.core.exceptions import (
    ConflictError,
    IneligibleError,
    InsufficientBalanceError,
    InternalServerError,
    InvalidStateError,
    LimitExceededError,
    NotFoundError,
    UpstreamFailureError,
)
from backoffice.models.shop import PurchaseStatus
from backoffice.repositories.shop_repository import ShopItemRepository, TokenPurchaseRepository
from backoffice.schemas.reward_payload import (
    dump_reward_payload,
    flatten_grants,
    parse_reward_payload,
)
from backoffice.schemas.shop import (
    PurchaseEligibility,
    ShopItemResponse,
    ShopStatistics,
    TokenPurchaseResponse,
)
from backoffice.services.fulfillment import FulfillmentProvider
from backoffice.services.prize_service import PrizeService
from backoffice.services.wallet_service import WalletService
from backoffice.utils.date_utils import business_day_bounds, utc_now
import logging

logger = logging.getLogger(__name__)

# 한도 계산에 포함되는 상태 (진행 중인 debited 포함)
COUNTED_STATUSES = (PurchaseStatus.DEBITED, PurchaseStatus.DELIVERED)


def debit_ref(transaction_ref: str) -> str:
    return f"purchase:{transaction_ref}"


def refund_ref(transaction_ref: str) -> str:
    return f"purchase-refund:{transaction_ref}"


class PurchaseService:
    def __init__(
        self,
        db: Session,
        settings: Settings,
        fulfillment: FulfillmentProvider,
        wallet_service: Optional[WalletService] = None,
        prize_service: Optional[PrizeService] = None,
    ):
        self.db = db
        self.settings = settings
        self.fulfillment = fulfillment
        self.item_repo = ShopItemRepository(db)
        self.purchase_repo = TokenPurchaseRepository(db)
        self.wallet_service = wallet_service or WalletService(db, settings)
        self.prize_service = prize_service or PrizeService(db)

    # ------------------------------------------------------------------
    # Eligibility
    # ------------------------------------------------------------------

    def _check_limits(self, user_id: str, item: ShopItemResponse) -> Tuple[int, int]:
        """총/일일 구매 한도 검사 - (총 구매 수, 오늘 구매 수) 반환"""
        total = self.purchase_repo.count_user_purchases(user_id, item.item_ref, COUNTED_STATUSES)
        if item.max_purchases_per_user is not None and total >= item.max_purchases_per_user:
            raise LimitExceededError(
                "Maximum purchases per user reached",
                details={"limit": item.max_purchases_per_user, "purchased": total},
            )

        start, end = business_day_bounds(self.settings.TIMEZONE)
        today = self.purchase_repo.count_user_purchases(
            user_id, item.item_ref, COUNTED_STATUSES, since=start, until=end
        )
        if item.daily_purchase_limit is not None and today >= item.daily_purchase_limit:
            raise LimitExceededError(
                "Daily purchase limit reached",
                details={"limit": item.daily_purchase_limit, "purchased_today": today},
            )
        return total, today

    def _get_purchasable_item(self, item_ref: str) -> ShopItemResponse:
        item = self.item_repo.get_by_ref(item_ref)
        if not item:
            raise NotFoundError(f"Shop item not found: {item_ref}")
        if not item.is_active:
            raise IneligibleError("inactive", f"Item {item_ref} is not on sale")
        if item.stock_quantity == 0:
            raise IneligibleError("out_of_stock", f"Item {item_ref} is out of stock")
        return item

    def check_can_purchase(self, user_id: str, item_ref: str) -> PurchaseEligibility:
        item = self.item_repo.get_by_ref(item_ref)
        if not item:
            raise NotFoundError(f"Shop item not found: {item_ref}")

        balance = self.wallet_service.get_balance(user_id)
        total = self.purchase_repo.count_user_purchases(user_id, item_ref, COUNTED_STATUSES)
        start, end = business_day_bounds(self.settings.TIMEZONE)
        today = self.purchase_repo.count_user_purchases(
            user_id, item_ref, COUNTED_STATUSES, since=start, until=end
        )

        reason = None
        if not item.is_active:
            reason = "inactive"
        elif item.stock_quantity == 0:
            reason = "out_of_stock"
        elif item.max_purchases_per_user is not None and total >= item.max_purchases_per_user:
            reason = "max_purchases_reached"
        elif item.daily_purchase_limit is not None and today >= item.daily_purchase_limit:
            reason = "daily_limit_reached"
        elif balance < item.price_tokens:
            reason = "insufficient_funds"

        return PurchaseEligibility(
            can_purchase=reason is None,
            reason=reason,
            balance=balance,
            price_tokens=item.price_tokens,
            purchased_total=total,
            purchased_today=today,
        )

    # ------------------------------------------------------------------
    # Purchase
    # ------------------------------------------------------------------

    def _replay(self, existing: TokenPurchaseResponse, user_id: str) -> TokenPurchaseResponse:
        if existing.user_id != user_id:
            raise ConflictError("Idempotency key already used by another purchase")
        if existing.status == PurchaseStatus.DELIVERED.value:
            logger.info(f"Idempotent replay of delivered purchase {existing.transaction_ref}")
            return existing
        raise ConflictError(
            f"Purchase {existing.transaction_ref} is {existing.status}",
            details={"transaction_ref": existing.transaction_ref, "status": existing.status},
        )

    def purchase(
        self,
        user_id: str,
        server_id: int,
        item_ref: str,
        idempotency_key: str,
        role_id: Optional[str] = None,
    ) -> TokenPurchaseResponse:
        existing = self.purchase_repo.get_by_ref(idempotency_key)
        if existing:
            return self._replay(existing, user_id)

        item = self._get_purchasable_item(item_ref)
        self._check_limits(user_id, item)

        balance = self.wallet_service.get_balance(user_id)
        if balance < item.price_tokens:
            raise InsufficientBalanceError(
                details={"required": item.price_tokens, "balance": balance}
            )

        payload = parse_reward_payload(item.reward_payload)
        grants = flatten_grants(payload)

        replayed = self._debit(user_id, server_id, role_id, item, idempotency_key)
        if replayed is not None:
            return replayed

        delivered = False
        try:
            delivered = self.fulfillment.deliver(
                user_id=user_id,
                server_id=server_id,
                role_id=role_id,
                grants=grants,
                reference_id=idempotency_key,
            )
        except Exception as e:
            logger.error(f"Fulfillment raised for purchase {idempotency_key}: {e}")

        if not delivered:
            self._compensate(idempotency_key, "delivery_failed")
            raise UpstreamFailureError(
                "Item delivery failed, tokens were refunded",
                details={"transaction_ref": idempotency_key},
            )

        self.purchase_repo.transition(
            idempotency_key,
            PurchaseStatus.DEBITED,
            PurchaseStatus.DELIVERED,
            granted_payload=dump_reward_payload(payload),
            delivered_at=utc_now(),
        )
        self.item_repo.increment_sold(item.item_ref)
        self.db.commit()
        logger.info(f"Purchase delivered: ref={idempotency_key} user={user_id} item={item_ref}")

        self._contribute_to_prize_pool(server_id, item.price_tokens, idempotency_key)
        return self.purchase_repo.get_by_ref(idempotency_key)

    def _debit(
        self,
        user_id: str,
        server_id: int,
        role_id: Optional[str],
        item: ShopItemResponse,
        transaction_ref: str,
    ) -> Optional[TokenPurchaseResponse]:
        """
        구매 기록 + 토큰 차감 + 재고 예약을 한 번에 커밋

        같은 키의 요청이 먼저 기록했으면 그 결과를 재생해 돌려준다 (차감 없음).
        구매 한도는 지갑 행 잠금을 잡은 뒤 다시 센다.
        """
        try:
            self.wallet_service.lock_balance(user_id)
            existing = self.purchase_repo.get_by_ref(transaction_ref)
            if existing:
                self.db.rollback()
                return self._replay(existing, user_id)
            self._check_limits(user_id, item)
            self.purchase_repo.create(
                transaction_ref=transaction_ref,
                user_id=user_id,
                server_id=server_id,
                role_id=role_id,
                item_ref=item.item_ref,
                price_tokens=item.price_tokens,
                status=PurchaseStatus.PENDING.value,
            )
            self.wallet_service.adjust_balance(
                user_id=user_id,
                delta=-item.price_tokens,
                reason=f"Shop purchase: {item.item_ref}",
                ref_id=debit_ref(transaction_ref),
            )
            if not self.item_repo.reserve_stock(item.item_ref):
                raise IneligibleError("out_of_stock", f"Item {item.item_ref} is out of stock")
            self.purchase_repo.transition(
                transaction_ref, PurchaseStatus.PENDING, PurchaseStatus.DEBITED
            )
            self.db.commit()
            return None
        except IntegrityError:
            self.db.rollback()
            # 같은 키로 동시에 들어온 요청이 먼저 기록함
            existing = self.purchase_repo.get_by_ref(transaction_ref)
            if existing:
                return self._replay(existing, user_id)
            raise ConflictError(f"Purchase {transaction_ref} is already in progress")
        except Exception:
            self.db.rollback()
            raise

    def _compensate(self, transaction_ref: str, reason: str) -> bool:
        """
        차감액 환불 - COMPENSATION_MAX_ATTEMPTS 만큼 재시도

        끝내 실패하면 debited 상태로 두고 needs_reconciliation 표시 후 CRITICAL 로그
        """
        purchase = self.purchase_repo.get_by_ref(transaction_ref)
        attempts = max(1, self.settings.COMPENSATION_MAX_ATTEMPTS)

        for attempt in range(1, attempts + 1):
            try:
                self.wallet_service.adjust_balance(
                    user_id=purchase.user_id,
                    delta=purchase.price_tokens,
                    reason=f"Refund for failed delivery: {purchase.item_ref}",
                    ref_id=refund_ref(transaction_ref),
                )
                if not self.purchase_repo.transition(
                    transaction_ref,
                    PurchaseStatus.DEBITED,
                    PurchaseStatus.FAILED,
                    failure_reason=reason,
                    needs_reconciliation=False,
                ):
                    raise InvalidStateError(f"Purchase {transaction_ref} is no longer debited")
                self.item_repo.release_stock(purchase.item_ref)
                self.db.commit()
                logger.warning(
                    f"Purchase {transaction_ref} failed ({reason}); refunded {purchase.price_tokens} tokens"
                )
                return True
            except InvalidStateError:
                self.db.rollback()
                raise
            except Exception as e:
                self.db.rollback()
                logger.warning(
                    f"Compensation attempt {attempt}/{attempts} failed for {transaction_ref}: {e}"
                )

        try:
            self.purchase_repo.flag_reconciliation(transaction_ref, f"{reason}; refund_failed")
            self.db.commit()
        except Exception as e:
            self.db.rollback()
            logger.error(f"Could not flag purchase {transaction_ref} for reconciliation: {e}")

        logger.critical(
            f"UNREFUNDED DEBIT: purchase {transaction_ref} user={purchase.user_id} "
            f"amount={purchase.price_tokens} requires manual reconciliation"
        )
        return False

    def _contribute_to_prize_pool(self, server_id: int, price_tokens: int, transaction_ref: str) -> None:
        try:
            self.prize_service.increase_contribution(server_id, Decimal(price_tokens))
        except NotFoundError:
            logger.warning(
                f"No prize setting for server {server_id}; contribution of purchase {transaction_ref} skipped"
            )
        except Exception as e:
            self.db.rollback()
            logger.error(
                f"Prize contribution failed for purchase {transaction_ref} (server {server_id}): {e}"
            )

    # ------------------------------------------------------------------
    # Admin operations
    # ------------------------------------------------------------------

    def refund(self, transaction_ref: str, admin_id: int) -> TokenPurchaseResponse:
        """delivered → refunded, 차감액 그대로 환불"""
        purchase = self.get_purchase(transaction_ref)
        if purchase.status != PurchaseStatus.DELIVERED.value:
            raise InvalidStateError(
                f"Cannot refund purchase in status {purchase.status}",
                details={"transaction_ref": transaction_ref, "status": purchase.status},
            )

        try:
            if not self.purchase_repo.transition(
                transaction_ref,
                PurchaseStatus.DELIVERED,
                PurchaseStatus.REFUNDED,
                refunded_at=utc_now(),
                refunded_by=admin_id,
            ):
                raise InvalidStateError(f"Purchase {transaction_ref} was modified concurrently")
            self.wallet_service.adjust_balance(
                user_id=purchase.user_id,
                delta=purchase.price_tokens,
                reason=f"Admin refund by {admin_id}: {purchase.item_ref}",
                ref_id=refund_ref(transaction_ref),
            )
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        logger.info(f"Purchase {transaction_ref} refunded by admin {admin_id}")
        return self.get_purchase(transaction_ref)

    def retry_compensation(self, transaction_ref: str) -> TokenPurchaseResponse:
        purchase = self.get_purchase(transaction_ref)
        if purchase.status != PurchaseStatus.DEBITED.value or not purchase.needs_reconciliation:
            raise InvalidStateError(
                "Only debited purchases flagged for reconciliation can be compensated",
                details={"transaction_ref": transaction_ref, "status": purchase.status},
            )

        if not self._compensate(transaction_ref, purchase.failure_reason or "reconciled"):
            raise InternalServerError(
                "Compensation failed again; purchase remains flagged",
                details={"transaction_ref": transaction_ref},
            )
        return self.get_purchase(transaction_ref)

    def get_purchase(self, transaction_ref: str) -> TokenPurchaseResponse:
        purchase = self.purchase_repo.get_by_ref(transaction_ref)
        if not purchase:
            raise NotFoundError(f"Purchase not found: {transaction_ref}")
        return purchase

    def list_purchases(
        self,
        user_id: Optional[str] = None,
        status: Optional[str] = None,
        needs_reconciliation: Optional[bool] = None,
        limit: int = 50,
        offset: int = 0,
    ) -> Tuple[List[TokenPurchaseResponse], int]:
        return self.purchase_repo.list_purchases(
            user_id=user_id,
            status=status,
            needs_reconciliation=needs_reconciliation,
            limit=limit,
            offset=offset,
        )

    def get_statistics(self) -> ShopStatistics:
        counts = self.purchase_repo.status_counts()
        return ShopStatistics(
            total_items=self.item_repo.count(),
            active_items=self.item_repo.count({"is_active": True}),
            total_purchases=sum(counts.values()),
            delivered_purchases=counts.get(PurchaseStatus.DELIVERED.value, 0),
            failed_purchases=counts.get(PurchaseStatus.FAILED.value, 0),
            refunded_purchases=counts.get(PurchaseStatus.REFUNDED.value, 0),
            pending_reconciliation=self.purchase_repo.count_reconciliation(),
            tokens_spent=self.purchase_repo.tokens_spent(),
            top_items=self.purchase_repo.top_items(),
        )
