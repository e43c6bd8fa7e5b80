import pytest

from backoffice.config import settings
from backoffice.core.exceptions import InsufficientBalanceError, ValidationError
from backoffice.schemas.reward_payload import CurrencyGrant, ItemGrant
from backoffice.services.wallet_service import WalletService


@pytest.fixture
def wallet_service(db_session):
    return WalletService(db_session, settings)


class TestAdjustBalance:
    def test_credit_then_debit(self, wallet_service, db_session):
        # Act
        wallet_service.adjust_balance("u1", 100, "seed", ref_id="seed:u1")
        balance = wallet_service.adjust_balance("u1", -30, "spend", ref_id="spend:u1")
        db_session.commit()

        # Assert
        assert balance == 70
        assert wallet_service.get_balance("u1") == 70

    def test_debit_beyond_balance_rejected(self, wallet_service, db_session):
        wallet_service.adjust_balance("u1", 100, "seed", ref_id="seed:u1")
        db_session.commit()

        with pytest.raises(InsufficientBalanceError) as exc_info:
            wallet_service.adjust_balance("u1", -150, "spend", ref_id="spend:u1")
        db_session.rollback()

        assert exc_info.value.details == {"required": 150, "balance": 100}
        assert wallet_service.get_balance("u1") == 100

    def test_same_ref_id_applied_once(self, wallet_service, db_session):
        first = wallet_service.adjust_balance("u1", 50, "grant", ref_id="grant:1")
        second = wallet_service.adjust_balance("u1", 50, "grant", ref_id="grant:1")
        db_session.commit()

        assert first == second == 50
        assert wallet_service.get_balance("u1") == 50

    def test_zero_delta_rejected(self, wallet_service):
        with pytest.raises(ValidationError):
            wallet_service.adjust_balance("u1", 0, "noop", ref_id="noop")

    def test_currencies_are_separate(self, wallet_service, db_session):
        wallet_service.adjust_balance("u1", 10, "gem", ref_id="gem:1", currency="gem")
        db_session.commit()

        assert wallet_service.get_balance("u1", "gem") == 10
        assert wallet_service.get_balance("u1") == 0


class TestGrantsAndLedger:
    def test_apply_grants_credits_currency_and_inventory(self, wallet_service, db_session):
        grants = [
            CurrencyGrant(currency="gold", amount=500),
            ItemGrant(item_id="sword_01", quantity=1),
            ItemGrant(item_id="sword_01", quantity=2),
        ]

        wallet_service.apply_grants("u1", grants, ref_prefix="gift:1:u1:1")
        db_session.commit()

        assert wallet_service.get_balance("u1", "gold") == 500
        inventory = wallet_service.get_inventory("u1")
        assert [(i.item_id, i.quantity) for i in inventory] == [("sword_01", 3)]

    def test_ledger_and_integrity(self, wallet_service, db_session):
        wallet_service.adjust_balance("u1", 100, "seed", ref_id="a")
        wallet_service.adjust_balance("u1", -40, "spend", ref_id="b")
        db_session.commit()

        ledger = wallet_service.get_ledger("u1", limit=1)
        integrity = wallet_service.verify_integrity("u1")

        assert ledger.balance == 60
        assert ledger.total_count == 2
        assert ledger.has_next is True
        assert ledger.entries[0].delta == -40
        assert integrity.status == "OK"
        assert integrity.calculated_balance == 60

    def test_admin_adjust_commits_with_generated_ref(self, wallet_service):
        result = wallet_service.admin_adjust(7, "u9", 25, "compensation")

        assert result.balance_after == 25
        assert result.ref_id.startswith("admin:7:u9:")
        assert wallet_service.get_balance("u9") == 25
