from typing import List, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from backoffice.core.exceptions import ConflictError, NotFoundError, ValidationError
from backoffice.repositories.shop_repository import ShopItemRepository
from backoffice.schemas.reward_payload import dump_reward_payload
from backoffice.schemas.shop import ShopItemCreate, ShopItemResponse, ShopItemUpdate
import logging

logger = logging.getLogger(__name__)

# 수정 요청에서 null로 비울 수 없는 컬럼
NON_NULLABLE_UPDATE_FIELDS = (
    "name",
    "price_tokens",
    "reward_payload",
    "stock_quantity",
    "is_active",
    "is_featured",
)


class ShopService:
    """토큰 상점 상품 관리"""

    def __init__(self, db: Session):
        self.db = db
        self.item_repo = ShopItemRepository(db)

    def list_items(
        self,
        active_only: bool = True,
        featured: Optional[bool] = None,
        kind: Optional[str] = None,
    ) -> List[ShopItemResponse]:
        return self.item_repo.list_items(active_only=active_only, featured=featured, kind=kind)

    def get_item(self, item_ref: str, active_only: bool = False) -> ShopItemResponse:
        item = self.item_repo.get_by_ref(item_ref)
        if not item or (active_only and not item.is_active):
            raise NotFoundError(f"Shop item not found: {item_ref}")
        return item

    def create_item(self, data: ShopItemCreate) -> ShopItemResponse:
        if self.item_repo.get_by_ref(data.item_ref):
            raise ConflictError(f"Shop item already exists: {data.item_ref}")

        values = data.model_dump(exclude={"reward_payload"})
        values["reward_payload"] = dump_reward_payload(data.reward_payload)
        try:
            item = self.item_repo.create(**values)
            self.db.commit()
        except IntegrityError:
            self.db.rollback()
            raise ConflictError(f"Shop item already exists: {data.item_ref}")

        logger.info(f"Shop item created: {item.item_ref} ({item.price_tokens} tokens)")
        return item

    def update_item(self, item_ref: str, data: ShopItemUpdate) -> ShopItemResponse:
        self.get_item(item_ref)
        fields = data.model_dump(exclude_unset=True)
        nulls = sorted(k for k in NON_NULLABLE_UPDATE_FIELDS if k in fields and fields[k] is None)
        if nulls:
            raise ValidationError(
                f"{', '.join(nulls)} must not be null", details={"fields": nulls}
            )
        if "reward_payload" in fields:
            fields["reward_payload"] = dump_reward_payload(data.reward_payload)

        item = self.item_repo.update_by_ref(item_ref, **fields)
        self.db.commit()
        logger.info(f"Shop item updated: {item_ref} {sorted(fields)}")
        return item

    def deactivate_item(self, item_ref: str) -> ShopItemResponse:
        self.get_item(item_ref)
        item = self.item_repo.update_by_ref(item_ref, is_active=False)
        self.db.commit()
        logger.info(f"Shop item deactivated: {item_ref}")
        return item
