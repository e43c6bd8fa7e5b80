from decimal import Decimal
from unittest.mock import patch

import pytest

from backoffice.config import settings
from backoffice.core.exceptions import (
    ConflictError,
    IneligibleError,
    InsufficientBalanceError,
    InvalidStateError,
    LimitExceededError,
    UpstreamFailureError,
)
from backoffice.models.shop import PurchaseStatus
from backoffice.schemas.shop import ShopItemCreate
from backoffice.services.prize_service import PrizeService
from backoffice.services.purchase_service import PurchaseService
from backoffice.services.shop_service import ShopService
from backoffice.services.wallet_service import WalletService

GOLD_PACK = {"kind": "currency", "currency": "gold", "amount": 500}


@pytest.fixture
def wallet_service(db_session):
    return WalletService(db_session, settings)


@pytest.fixture
def fulfillment(fulfillment_factory):
    return fulfillment_factory()


@pytest.fixture
def purchase_service(db_session, fulfillment, wallet_service):
    return PurchaseService(db_session, settings, fulfillment, wallet_service=wallet_service)


@pytest.fixture
def shop_service(db_session):
    return ShopService(db_session)


def make_item(shop_service, **overrides):
    data = {
        "item_ref": "gold_pack",
        "name": "Gold Pack",
        "price_tokens": 150,
        "reward_payload": GOLD_PACK,
    }
    data.update(overrides)
    return shop_service.create_item(ShopItemCreate(**data))


def fund(wallet_service, db_session, user_id="user-1", amount=500):
    wallet_service.adjust_balance(user_id, amount, "seed", ref_id=f"seed:{user_id}:{amount}")
    db_session.commit()


class TestPurchase:
    """토큰 구매 흐름"""

    def test_successful_purchase(self, purchase_service, shop_service, wallet_service, db_session, fulfillment):
        # Arrange
        make_item(shop_service, stock_quantity=5)
        fund(wallet_service, db_session)

        # Act
        result = purchase_service.purchase("user-1", 1, "gold_pack", "key-00000001", role_id="role-1")

        # Assert
        assert result.status == PurchaseStatus.DELIVERED.value
        assert result.granted_payload == GOLD_PACK
        assert result.delivered_at is not None
        assert wallet_service.get_balance("user-1") == 350
        assert fulfillment.calls[0]["reference_id"] == "key-00000001"
        assert fulfillment.calls[0]["role_id"] == "role-1"
        item = shop_service.get_item("gold_pack")
        assert item.stock_quantity == 4
        assert item.total_sold == 1

    def test_insufficient_funds_leaves_balance(self, purchase_service, shop_service, wallet_service, db_session, fulfillment):
        make_item(shop_service)
        fund(wallet_service, db_session, amount=100)

        with pytest.raises(InsufficientBalanceError) as exc_info:
            purchase_service.purchase("user-1", 1, "gold_pack", "key-00000001")

        assert exc_info.value.details == {"required": 150, "balance": 100}
        assert wallet_service.get_balance("user-1") == 100
        assert fulfillment.calls == []
        assert purchase_service.list_purchases(user_id="user-1")[1] == 0

    @pytest.mark.parametrize(
        "fake_kwargs",
        [{"succeed": False}, {"raises": True}],
        ids=["rejected", "raised"],
    )
    def test_delivery_failure_refunds(
        self, db_session, shop_service, wallet_service, fulfillment_factory, fake_kwargs
    ):
        fake = fulfillment_factory(**fake_kwargs)
        service = PurchaseService(db_session, settings, fake, wallet_service=wallet_service)
        make_item(shop_service, stock_quantity=3)
        fund(wallet_service, db_session)

        with pytest.raises(UpstreamFailureError):
            service.purchase("user-1", 1, "gold_pack", "key-00000001")

        purchase = service.get_purchase("key-00000001")
        assert purchase.status == PurchaseStatus.FAILED.value
        assert purchase.failure_reason == "delivery_failed"
        assert purchase.needs_reconciliation is False
        assert wallet_service.get_balance("user-1") == 500
        assert shop_service.get_item("gold_pack").stock_quantity == 3
        assert wallet_service.verify_integrity("user-1").status == "OK"

    def test_idempotent_replay(self, purchase_service, shop_service, wallet_service, db_session, fulfillment):
        make_item(shop_service)
        fund(wallet_service, db_session)

        first = purchase_service.purchase("user-1", 1, "gold_pack", "key-00000001")
        second = purchase_service.purchase("user-1", 1, "gold_pack", "key-00000001")

        assert second == first
        assert len(fulfillment.calls) == 1
        assert wallet_service.get_balance("user-1") == 350

    def test_replay_by_other_user_conflicts(self, purchase_service, shop_service, wallet_service, db_session):
        make_item(shop_service)
        fund(wallet_service, db_session)
        purchase_service.purchase("user-1", 1, "gold_pack", "key-00000001")

        with pytest.raises(ConflictError):
            purchase_service.purchase("user-2", 1, "gold_pack", "key-00000001")

    def test_replay_of_failed_purchase_conflicts(self, db_session, shop_service, wallet_service, fulfillment_factory):
        service = PurchaseService(
            db_session, settings, fulfillment_factory(succeed=False), wallet_service=wallet_service
        )
        make_item(shop_service)
        fund(wallet_service, db_session)
        with pytest.raises(UpstreamFailureError):
            service.purchase("user-1", 1, "gold_pack", "key-00000001")

        with pytest.raises(ConflictError) as exc_info:
            service.purchase("user-1", 1, "gold_pack", "key-00000001")

        assert exc_info.value.details["status"] == PurchaseStatus.FAILED.value
        assert wallet_service.get_balance("user-1") == 500

    @staticmethod
    def _miss_lookups(purchase_service, misses):
        """앞선 조회 몇 번을 비어 있게 해서 같은 키 요청이 경합에서 진 상황을 만든다"""
        real_get = purchase_service.purchase_repo.get_by_ref
        calls = []

        def get_by_ref(ref):
            calls.append(ref)
            return None if len(calls) <= misses else real_get(ref)

        return patch.object(purchase_service.purchase_repo, "get_by_ref", side_effect=get_by_ref)

    # 1: 지갑 잠금 후 재조회에서 발견, 2: 유니크 제약 위반 후 발견
    @pytest.mark.parametrize("misses", [1, 2], ids=["seen_after_lock", "unique_violation"])
    def test_losing_same_key_race_returns_delivered_result(
        self, purchase_service, shop_service, wallet_service, db_session, fulfillment, misses
    ):
        make_item(shop_service)
        fund(wallet_service, db_session)
        first = purchase_service.purchase("user-1", 1, "gold_pack", "key-00000001")

        with self._miss_lookups(purchase_service, misses):
            second = purchase_service.purchase("user-1", 1, "gold_pack", "key-00000001")

        assert second == first
        assert len(fulfillment.calls) == 1
        assert wallet_service.get_balance("user-1") == 350
        assert wallet_service.verify_integrity("user-1").status == "OK"

    def test_losing_same_key_race_to_other_user_conflicts(
        self, purchase_service, shop_service, wallet_service, db_session
    ):
        make_item(shop_service)
        fund(wallet_service, db_session)
        fund(wallet_service, db_session, user_id="user-2")
        purchase_service.purchase("user-1", 1, "gold_pack", "key-00000001")

        with self._miss_lookups(purchase_service, misses=2):
            with pytest.raises(ConflictError):
                purchase_service.purchase("user-2", 1, "gold_pack", "key-00000001")

        assert wallet_service.get_balance("user-2") == 500

    def test_inactive_and_out_of_stock(self, purchase_service, shop_service, wallet_service, db_session):
        make_item(shop_service, item_ref="retired", is_active=False)
        make_item(shop_service, item_ref="sold_out", stock_quantity=0)
        fund(wallet_service, db_session)

        with pytest.raises(IneligibleError) as inactive:
            purchase_service.purchase("user-1", 1, "retired", "key-00000001")
        with pytest.raises(IneligibleError) as sold_out:
            purchase_service.purchase("user-1", 1, "sold_out", "key-00000002")

        assert inactive.value.reason == "inactive"
        assert sold_out.value.reason == "out_of_stock"
        assert wallet_service.get_balance("user-1") == 500

    def test_last_unit_sells_once(self, purchase_service, shop_service, wallet_service, db_session):
        make_item(shop_service, stock_quantity=1)
        fund(wallet_service, db_session, amount=1000)

        purchase_service.purchase("user-1", 1, "gold_pack", "key-00000001")

        with pytest.raises(IneligibleError):
            purchase_service.purchase("user-1", 1, "gold_pack", "key-00000002")
        assert wallet_service.get_balance("user-1") == 850

    def test_total_purchase_limit(self, purchase_service, shop_service, wallet_service, db_session):
        make_item(shop_service, max_purchases_per_user=2)
        fund(wallet_service, db_session, amount=1000)
        purchase_service.purchase("user-1", 1, "gold_pack", "key-00000001")
        purchase_service.purchase("user-1", 1, "gold_pack", "key-00000002")

        with pytest.raises(LimitExceededError):
            purchase_service.purchase("user-1", 1, "gold_pack", "key-00000003")

        assert wallet_service.get_balance("user-1") == 700

    def test_daily_purchase_limit(self, purchase_service, shop_service, wallet_service, db_session):
        make_item(shop_service, daily_purchase_limit=1)
        fund(wallet_service, db_session, amount=1000)
        purchase_service.purchase("user-1", 1, "gold_pack", "key-00000001")

        with pytest.raises(LimitExceededError) as exc_info:
            purchase_service.purchase("user-1", 1, "gold_pack", "key-00000002")

        assert exc_info.value.details["purchased_today"] == 1

    def test_limit_rechecked_after_wallet_lock(
        self, purchase_service, shop_service, wallet_service, db_session, fulfillment
    ):
        make_item(shop_service, max_purchases_per_user=1)
        fund(wallet_service, db_session)
        real_lock = wallet_service.lock_balance

        def concurrent_purchase_commits_first(user_id, currency=None):
            # 사전 한도 검사 이후 다른 키의 구매가 먼저 커밋됨
            purchase_service.purchase_repo.create(
                transaction_ref="key-parallel-01",
                user_id=user_id,
                server_id=1,
                item_ref="gold_pack",
                price_tokens=150,
                status=PurchaseStatus.DEBITED.value,
            )
            db_session.commit()
            return real_lock(user_id, currency)

        with patch.object(wallet_service, "lock_balance", side_effect=concurrent_purchase_commits_first):
            with pytest.raises(LimitExceededError):
                purchase_service.purchase("user-1", 1, "gold_pack", "key-00000001")

        assert wallet_service.get_balance("user-1") == 500
        assert fulfillment.calls == []
        purchases, total = purchase_service.list_purchases(user_id="user-1")
        assert total == 1
        assert purchases[0].transaction_ref == "key-parallel-01"

    def test_contributes_to_prize_pool(self, purchase_service, shop_service, wallet_service, db_session):
        prize_service = PrizeService(db_session)
        prize_service.create_setting(
            server_id=1, initial_prize=Decimal("1000"), contribution_rate_percent=Decimal("10")
        )
        make_item(shop_service)
        fund(wallet_service, db_session)

        purchase_service.purchase("user-1", 1, "gold_pack", "key-00000001")

        setting = prize_service.get_setting(1)
        assert setting.total_contributions == Decimal("150")
        assert setting.addon_prize == Decimal("15")

    def test_missing_prize_setting_does_not_fail_purchase(self, purchase_service, shop_service, wallet_service, db_session):
        make_item(shop_service)
        fund(wallet_service, db_session)

        result = purchase_service.purchase("user-1", 9, "gold_pack", "key-00000001")

        assert result.status == PurchaseStatus.DELIVERED.value


class TestEligibility:
    def test_reports_first_failing_reason(self, purchase_service, shop_service, wallet_service, db_session):
        make_item(shop_service, max_purchases_per_user=1)
        fund(wallet_service, db_session, amount=200)

        before = purchase_service.check_can_purchase("user-1", "gold_pack")
        purchase_service.purchase("user-1", 1, "gold_pack", "key-00000001")
        after = purchase_service.check_can_purchase("user-1", "gold_pack")
        poor = purchase_service.check_can_purchase("user-2", "gold_pack")

        assert before.can_purchase is True
        assert after.reason == "max_purchases_reached"
        assert after.purchased_total == 1
        assert poor.reason == "insufficient_funds"


class TestCompensation:
    def _failing_refunds(self, wallet_service):
        original = wallet_service.adjust_balance

        def adjust(user_id, delta, reason, ref_id, currency=None):
            if delta > 0:
                raise RuntimeError("ledger unavailable")
            return original(user_id, delta, reason, ref_id=ref_id, currency=currency)

        return patch.object(wallet_service, "adjust_balance", side_effect=adjust)

    def test_unrefunded_debit_is_flagged_then_reconciled(
        self, db_session, shop_service, wallet_service, fulfillment_factory
    ):
        service = PurchaseService(
            db_session, settings, fulfillment_factory(succeed=False), wallet_service=wallet_service
        )
        make_item(shop_service)
        fund(wallet_service, db_session, amount=200)

        with self._failing_refunds(wallet_service):
            with pytest.raises(UpstreamFailureError):
                service.purchase("user-1", 1, "gold_pack", "key-00000001")

        flagged = service.get_purchase("key-00000001")
        assert flagged.status == PurchaseStatus.DEBITED.value
        assert flagged.needs_reconciliation is True
        assert wallet_service.get_balance("user-1") == 50
        assert service.get_statistics().pending_reconciliation == 1

        reconciled = service.retry_compensation("key-00000001")

        assert reconciled.status == PurchaseStatus.FAILED.value
        assert reconciled.needs_reconciliation is False
        assert wallet_service.get_balance("user-1") == 200

    def test_retry_requires_flagged_purchase(self, purchase_service, shop_service, wallet_service, db_session):
        make_item(shop_service)
        fund(wallet_service, db_session)
        purchase_service.purchase("user-1", 1, "gold_pack", "key-00000001")

        with pytest.raises(InvalidStateError):
            purchase_service.retry_compensation("key-00000001")


class TestRefund:
    def test_admin_refund_once(self, purchase_service, shop_service, wallet_service, db_session):
        make_item(shop_service)
        fund(wallet_service, db_session)
        purchase_service.purchase("user-1", 1, "gold_pack", "key-00000001")

        refunded = purchase_service.refund("key-00000001", admin_id=3)

        assert refunded.status == PurchaseStatus.REFUNDED.value
        assert refunded.refunded_by == 3
        assert wallet_service.get_balance("user-1") == 500
        with pytest.raises(InvalidStateError):
            purchase_service.refund("key-00000001", admin_id=3)
        assert wallet_service.get_balance("user-1") == 500

    def test_statistics(self, purchase_service, shop_service, wallet_service, db_session):
        make_item(shop_service)
        fund(wallet_service, db_session)
        purchase_service.purchase("user-1", 1, "gold_pack", "key-00000001")
        purchase_service.purchase("user-1", 1, "gold_pack", "key-00000002")
        purchase_service.refund("key-00000002", admin_id=1)

        stats = purchase_service.get_statistics()

        assert stats.total_purchases == 2
        assert stats.delivered_purchases == 1
        assert stats.refunded_purchases == 1
        assert stats.tokens_spent == 150
        assert stats.top_items == [{"item_ref": "gold_pack", "purchases": 1}]
