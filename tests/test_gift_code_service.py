from datetime import datetime, timedelta, timezone
from unittest.mock import patch

import pytest

from backoffice.config import settings
from backoffice.core.exceptions import (
    AlreadyRedeemedError,
    ConflictError,
    IneligibleError,
    NotFoundError,
    ValidationError,
)
from backoffice.schemas.gift_code import GiftCodeCreate, GiftCodeUpdate
from backoffice.services.gift_code_service import GiftCodeService
from backoffice.services.wallet_service import WalletService

GEM_BUNDLE = {
    "kind": "bundle",
    "grants": [
        {"kind": "currency", "currency": "gem", "amount": 100},
        {"kind": "item", "item_id": "sword_01", "quantity": 1, "rarity": 3},
    ],
}


@pytest.fixture
def gift_service(db_session):
    return GiftCodeService(db_session, settings)


@pytest.fixture
def wallet_service(db_session):
    return WalletService(db_session, settings)


def make_code(service, **overrides):
    data = {"code": "WELCOME2024", "reward_payload": GEM_BUNDLE}
    data.update(overrides)
    return service.create_code(1, GiftCodeCreate(**data))


class TestRedeem:
    """기프트 코드 사용"""

    def test_redeem_grants_payload_once(self, gift_service, wallet_service):
        # Arrange
        gift = make_code(gift_service)

        # Act
        result = gift_service.redeem("WELCOME2024", "user-1", ip_address="10.0.0.1")

        # Assert
        assert result.redemption_seq == 1
        assert result.granted_payload["kind"] == "bundle"
        assert wallet_service.get_balance("user-1", "gem") == 100
        assert wallet_service.get_inventory("user-1")[0].item_id == "sword_01"
        assert gift_service.get_code(gift.id).usage_count == 1

    def test_second_redeem_by_same_user_fails(self, gift_service, wallet_service):
        gift = make_code(gift_service)
        gift_service.redeem("WELCOME2024", "user-1")

        with pytest.raises(AlreadyRedeemedError):
            gift_service.redeem("WELCOME2024", "user-1")

        assert gift_service.get_code(gift.id).usage_count == 1
        assert wallet_service.get_balance("user-1", "gem") == 100

    def test_per_user_limit_allows_multiple(self, gift_service):
        make_code(gift_service, per_user_limit=2)

        gift_service.redeem("WELCOME2024", "user-1")
        second = gift_service.redeem("WELCOME2024", "user-1")

        assert second.redemption_seq == 2
        with pytest.raises(AlreadyRedeemedError):
            gift_service.redeem("WELCOME2024", "user-1")

    def test_unknown_code(self, gift_service):
        with pytest.raises(NotFoundError):
            gift_service.redeem("NOPE", "user-1")

    def test_inactive_code(self, gift_service):
        gift = make_code(gift_service)
        gift_service.set_active(gift.id, False)

        with pytest.raises(IneligibleError) as exc_info:
            gift_service.redeem("WELCOME2024", "user-1")

        assert exc_info.value.reason == "inactive"

    def test_expired_and_not_yet_valid(self, gift_service):
        now = datetime.now(timezone.utc)
        make_code(
            gift_service,
            code="OLDCODE1",
            valid_from=now - timedelta(days=10),
            valid_until=now - timedelta(days=1),
        )
        make_code(gift_service, code="FUTURE01", valid_from=now + timedelta(days=1))

        with pytest.raises(IneligibleError) as expired:
            gift_service.redeem("OLDCODE1", "user-1")
        with pytest.raises(IneligibleError) as early:
            gift_service.redeem("FUTURE01", "user-1")

        assert expired.value.reason == "expired"
        assert early.value.reason == "not_yet_valid"

    def test_exhausted_code(self, gift_service):
        make_code(gift_service, usage_limit=1)
        gift_service.redeem("WELCOME2024", "user-1")

        with pytest.raises(IneligibleError) as exc_info:
            gift_service.redeem("WELCOME2024", "user-2")

        assert exc_info.value.reason == "exhausted"

    def test_last_slot_race_leaves_no_partial_state(self, gift_service, wallet_service):
        """마지막 한 자리를 두 사용자가 동시에 검사를 통과한 경우"""
        make_code(gift_service, usage_limit=1)
        stale = gift_service.code_repo.get_by_code("WELCOME2024")
        gift_service.redeem("WELCOME2024", "user-1")

        with patch.object(gift_service.code_repo, "get_by_code", return_value=stale):
            with pytest.raises(IneligibleError) as exc_info:
                gift_service.redeem("WELCOME2024", "user-2")

        assert exc_info.value.reason == "exhausted"
        assert wallet_service.get_balance("user-2", "gem") == 0
        assert gift_service.get_user_redemptions("user-2")[1] == 0

    def test_same_user_race_hits_unique_slot(self, gift_service, wallet_service):
        """동일 사용자 동시 요청 - 같은 redemption_seq를 삽입하려다 유니크 제약에 걸림"""
        gift = make_code(gift_service)
        gift_service.redeem("WELCOME2024", "user-1")

        with patch.object(gift_service.redemption_repo, "count_for_user", return_value=0):
            with pytest.raises(AlreadyRedeemedError):
                gift_service.redeem("WELCOME2024", "user-1")

        assert wallet_service.get_balance("user-1", "gem") == 100
        assert gift_service.get_code(gift.id).usage_count == 1


class TestValidateCode:
    def test_reports_reason_without_redeeming(self, gift_service):
        gift = make_code(gift_service)

        assert gift_service.validate_code("WELCOME2024", "user-1").valid is True
        assert gift_service.validate_code("MISSING", "user-1").reason == "not_found"

        gift_service.redeem("WELCOME2024", "user-1")
        result = gift_service.validate_code("WELCOME2024", "user-1")

        assert result.valid is False
        assert result.reason == "already_redeemed"
        assert gift_service.get_code(gift.id).usage_count == 1


class TestAdminCrud:
    def test_generated_code_uses_prefix(self, gift_service):
        gift = gift_service.create_code(1, GiftCodeCreate(reward_payload=GEM_BUNDLE))

        assert gift.code.startswith(settings.GIFT_CODE_PREFIX)
        assert len(gift.code) == len(settings.GIFT_CODE_PREFIX) + settings.GIFT_CODE_LENGTH

    def test_duplicate_code_conflicts(self, gift_service):
        make_code(gift_service)

        with pytest.raises(ConflictError):
            make_code(gift_service)

    def test_usage_limit_cannot_drop_below_usage(self, gift_service):
        gift = make_code(gift_service, usage_limit=5)
        gift_service.redeem("WELCOME2024", "user-1")
        gift_service.redeem("WELCOME2024", "user-2")

        with pytest.raises(ValidationError):
            gift_service.update_code(gift.id, GiftCodeUpdate(usage_limit=1))

        updated = gift_service.update_code(gift.id, GiftCodeUpdate(usage_limit=2, title="Spring"))
        assert updated.usage_limit == 2
        assert updated.title == "Spring"

    def test_list_and_statistics(self, gift_service):
        make_code(gift_service, code="CODE0001")
        second = make_code(gift_service, code="CODE0002")
        gift_service.set_active(second.id, False)
        gift_service.redeem("CODE0001", "user-1")

        items, total = gift_service.list_codes(is_active=True)
        stats = gift_service.get_statistics()

        assert total == 1
        assert items[0].code == "CODE0001"
        assert stats.total_codes == 2
        assert stats.active_codes == 1
        assert stats.total_redemptions == 1
        assert stats.average_redemptions_per_code == 0.5

    def test_list_redemptions(self, gift_service):
        gift = make_code(gift_service, per_user_limit=1)
        gift_service.redeem("WELCOME2024", "user-1", user_agent="GameClient/1.0")

        items, total = gift_service.list_redemptions(gift.id)

        assert total == 1
        assert items[0].user_agent == "GameClient/1.0"
