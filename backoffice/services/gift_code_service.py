"""
기프트 코드 서비스

redeem() 흐름:
1. 코드 조회 (없으면 NotFound)
2. 활성/유효기간/사용 한도 검사 (Ineligible + 사유)
3. 사용자별 사용 횟수 검사 (AlreadyRedeemed)
4. 한 트랜잭션으로 사용 기록 삽입 + usage_count 증가 + 보상 지급

동시 요청은 (gift_code_id, user_id, redemption_seq) 유니크 제약과
조건부 usage_count 증가로 저장소 레벨에서 정리된다.
"""

import secrets
from typing import List, Optional, Tuple

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from backoffice.config import Settings
from backoffice.core.exceptions import (
    AlreadyRedeemedError,
    ConflictError,
    IneligibleError,
    InternalServerError,
    NotFoundError,
    ValidationError,
)
from backoffice.repositories.gift_code_repository import (
    GiftCodeRedemptionRepository,
    GiftCodeRepository,
)
from backoffice.schemas.gift_code import (
    GiftCodeCreate,
    GiftCodeRedemptionResponse,
    GiftCodeResponse,
    GiftCodeStatistics,
    GiftCodeUpdate,
    RedeemResponse,
    ValidateCodeResponse,
)
from backoffice.schemas.reward_payload import (
    dump_reward_payload,
    flatten_grants,
    parse_reward_payload,
)
from backoffice.services.wallet_service import WalletService
from backoffice.utils.date_utils import ensure_aware, is_within_window, utc_now
import logging

logger = logging.getLogger(__name__)

MAX_CODE_GENERATION_ATTEMPTS = 100

# 수정 요청에서 null로 비울 수 없는 컬럼
NON_NULLABLE_UPDATE_FIELDS = ("title", "reward_payload", "per_user_limit")


class GiftCodeService:
    def __init__(self, db: Session, settings: Settings, wallet_service: Optional[WalletService] = None):
        self.db = db
        self.settings = settings
        self.code_repo = GiftCodeRepository(db)
        self.redemption_repo = GiftCodeRedemptionRepository(db)
        self.wallet_service = wallet_service or WalletService(db, settings)

    # ------------------------------------------------------------------
    # Redemption
    # ------------------------------------------------------------------

    @staticmethod
    def _ineligible_reason(gift: GiftCodeResponse) -> Optional[str]:
        if not gift.is_active:
            return "inactive"
        window = is_within_window(utc_now(), gift.valid_from, gift.valid_until)
        if window:
            return window
        if gift.usage_limit is not None and gift.usage_count >= gift.usage_limit:
            return "exhausted"
        return None

    def redeem(
        self,
        code: str,
        user_id: str,
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None,
    ) -> RedeemResponse:
        gift = self.code_repo.get_by_code(code)
        if not gift:
            raise NotFoundError("Gift code not found")

        reason = self._ineligible_reason(gift)
        if reason:
            raise IneligibleError(reason)

        used = self.redemption_repo.count_for_user(gift.id, user_id)
        if used >= gift.per_user_limit:
            raise AlreadyRedeemedError(details={"code": code, "per_user_limit": gift.per_user_limit})

        payload = parse_reward_payload(gift.reward_payload)
        granted = dump_reward_payload(payload)
        grants = flatten_grants(payload)
        seq = used + 1

        try:
            self.redemption_repo.create(
                gift_code_id=gift.id,
                code=gift.code,
                user_id=user_id,
                redemption_seq=seq,
                granted_payload=granted,
                ip_address=ip_address,
                user_agent=user_agent,
            )
            if not self.code_repo.increment_usage(gift.id):
                raise IneligibleError("exhausted")

            self.wallet_service.apply_grants(
                user_id, grants, ref_prefix=f"gift:{gift.id}:{user_id}:{seq}"
            )
            self.db.commit()
        except IntegrityError:
            self.db.rollback()
            logger.warning(f"Concurrent redemption lost race: code={code} user={user_id} seq={seq}")
            raise AlreadyRedeemedError(details={"code": code})
        except Exception:
            self.db.rollback()
            raise

        logger.info(f"Gift code redeemed: code={code} user={user_id} seq={seq}")
        return RedeemResponse(
            code=gift.code,
            redemption_seq=seq,
            granted_payload=granted,
            grants=[g.model_dump(mode="json", exclude_none=True) for g in grants],
        )

    def validate_code(self, code: str, user_id: Optional[str] = None) -> ValidateCodeResponse:
        """사용 가능 여부만 확인 (기록/지급 없음)"""
        gift = self.code_repo.get_by_code(code)
        if not gift:
            return ValidateCodeResponse(valid=False, reason="not_found")

        reason = self._ineligible_reason(gift)
        if reason:
            return ValidateCodeResponse(valid=False, reason=reason)

        if user_id is not None:
            used = self.redemption_repo.count_for_user(gift.id, user_id)
            if used >= gift.per_user_limit:
                return ValidateCodeResponse(valid=False, reason="already_redeemed")

        return ValidateCodeResponse(valid=True)

    # ------------------------------------------------------------------
    # Admin CRUD
    # ------------------------------------------------------------------

    def _generate_code(self) -> str:
        length = self.settings.GIFT_CODE_LENGTH
        for _ in range(MAX_CODE_GENERATION_ATTEMPTS):
            random_part = secrets.token_hex((length + 1) // 2).upper()[:length]
            candidate = f"{self.settings.GIFT_CODE_PREFIX}{random_part}"
            if not self.code_repo.get_by_code(candidate):
                return candidate
        raise InternalServerError("Failed to generate a unique gift code")

    def create_code(self, admin_id: Optional[int], data: GiftCodeCreate) -> GiftCodeResponse:
        if data.code:
            code = data.code.strip()
            if self.code_repo.get_by_code(code):
                raise ConflictError(f"Gift code already exists: {code}")
        else:
            code = self._generate_code()

        try:
            gift = self.code_repo.create(
                code=code,
                title=data.title,
                description=data.description,
                reward_payload=dump_reward_payload(parse_reward_payload(data.reward_payload)),
                usage_limit=data.usage_limit,
                usage_count=0,
                per_user_limit=data.per_user_limit,
                is_active=data.is_active,
                valid_from=ensure_aware(data.valid_from),
                valid_until=ensure_aware(data.valid_until),
                created_by=admin_id,
            )
            self.db.commit()
        except IntegrityError:
            self.db.rollback()
            raise ConflictError(f"Gift code already exists: {code}")

        logger.info(f"Gift code created by admin {admin_id}: {code}")
        return gift

    def get_code(self, code_id: int) -> GiftCodeResponse:
        gift = self.code_repo.get_by_id(code_id)
        if not gift:
            raise NotFoundError(f"Gift code {code_id} not found")
        return gift

    def list_codes(
        self,
        limit: int = 20,
        offset: int = 0,
        is_active: Optional[bool] = None,
        search: Optional[str] = None,
    ) -> Tuple[List[GiftCodeResponse], int]:
        return self.code_repo.list_codes(
            limit=limit, offset=offset, is_active=is_active, search=search
        )

    def update_code(self, code_id: int, data: GiftCodeUpdate) -> GiftCodeResponse:
        gift = self.get_code(code_id)
        fields = data.model_dump(exclude_unset=True)

        nulls = sorted(k for k in NON_NULLABLE_UPDATE_FIELDS if k in fields and fields[k] is None)
        if nulls:
            raise ValidationError(
                f"{', '.join(nulls)} must not be null", details={"fields": nulls}
            )

        if "reward_payload" in fields:
            fields["reward_payload"] = dump_reward_payload(data.reward_payload)

        if fields.get("usage_limit") is not None and fields["usage_limit"] < gift.usage_count:
            raise ValidationError(
                "usage_limit cannot be lower than current usage_count",
                details={"usage_count": gift.usage_count},
            )

        for key in ("valid_from", "valid_until"):
            if key in fields:
                fields[key] = ensure_aware(fields[key])
        valid_from = fields.get("valid_from", gift.valid_from)
        valid_until = fields.get("valid_until", gift.valid_until)
        if valid_from and valid_until and ensure_aware(valid_from) >= ensure_aware(valid_until):
            raise ValidationError("valid_from must be earlier than valid_until")

        updated = self.code_repo.update(code_id, **fields)
        self.db.commit()
        logger.info(f"Gift code {gift.code} updated: {sorted(fields)}")
        return updated

    def set_active(self, code_id: int, is_active: bool) -> GiftCodeResponse:
        self.get_code(code_id)
        updated = self.code_repo.set_active(code_id, is_active)
        self.db.commit()
        logger.info(f"Gift code {updated.code} {'activated' if is_active else 'deactivated'}")
        return updated

    def get_statistics(self) -> GiftCodeStatistics:
        total = self.code_repo.count()
        total_redemptions = self.redemption_repo.count()
        return GiftCodeStatistics(
            total_codes=total,
            active_codes=self.code_repo.count({"is_active": True}),
            expired_codes=self.code_repo.count_expired(utc_now()),
            total_redemptions=total_redemptions,
            average_redemptions_per_code=round(total_redemptions / total, 2) if total else 0.0,
        )

    def list_redemptions(
        self, code_id: int, limit: int = 50, offset: int = 0
    ) -> Tuple[List[GiftCodeRedemptionResponse], int]:
        self.get_code(code_id)
        return self.redemption_repo.list_for_code(code_id, limit=limit, offset=offset)

    def get_user_redemptions(
        self, user_id: str, limit: int = 50, offset: int = 0
    ) -> Tuple[List[GiftCodeRedemptionResponse], int]:
        return self.redemption_repo.list_for_user(user_id, limit=limit, offset=offset)
