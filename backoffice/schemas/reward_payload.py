"""
보상 페이로드 (tagged variant)

    {"kind": "currency", "currency": "gem", "amount": 100}
    {"kind": "item", "item_id": "sword_01", "quantity": 1, "rarity": 3}
    {"kind": "bundle", "grants": [ ... ]}

bundle은 중첩 가능하며, 지급 시 flatten_grants()로 단일 지급 목록으로 펼친다.
게임 우편 아이템 포맷은 {"i": id, "n": count, "q"?: rarity}.
"""

from typing import Annotated, Any, List, Literal, Optional, Union

from pydantic import BaseModel, Field, TypeAdapter
from pydantic import ValidationError as PydanticValidationError

from backoffice.core.exceptions import ValidationError


class CurrencyGrant(BaseModel):
    kind: Literal["currency"] = "currency"
    currency: str = Field(..., min_length=1, max_length=32)
    amount: int = Field(..., gt=0)


class ItemGrant(BaseModel):
    kind: Literal["item"] = "item"
    item_id: str = Field(..., min_length=1, max_length=64)
    quantity: int = Field(..., gt=0)
    rarity: Optional[int] = Field(None, ge=0)


class BundleGrant(BaseModel):
    kind: Literal["bundle"] = "bundle"
    grants: List["RewardPayload"] = Field(..., min_length=1)


RewardPayload = Annotated[
    Union[CurrencyGrant, ItemGrant, BundleGrant], Field(discriminator="kind")
]

BundleGrant.model_rebuild()

Grant = Union[CurrencyGrant, ItemGrant]

_payload_adapter: TypeAdapter = TypeAdapter(RewardPayload)


def parse_reward_payload(data: Any) -> Union[CurrencyGrant, ItemGrant, BundleGrant]:
    """저장된 JSON/요청 데이터를 검증된 페이로드로 변환"""
    if isinstance(data, (CurrencyGrant, ItemGrant, BundleGrant)):
        return data
    try:
        return _payload_adapter.validate_python(data)
    except PydanticValidationError as e:
        raise ValidationError(
            "Invalid reward payload", details={"errors": e.errors(include_url=False, include_context=False)}
        )


def dump_reward_payload(payload: Union[CurrencyGrant, ItemGrant, BundleGrant]) -> dict:
    return payload.model_dump(mode="json", exclude_none=True)


def flatten_grants(payload: Union[CurrencyGrant, ItemGrant, BundleGrant]) -> List[Grant]:
    if isinstance(payload, BundleGrant):
        grants: List[Grant] = []
        for child in payload.grants:
            grants.extend(flatten_grants(child))
        return grants
    return [payload]


def to_mail_items(grants: List[Grant]) -> List[dict]:
    items = []
    for grant in grants:
        if isinstance(grant, CurrencyGrant):
            items.append({"i": grant.currency, "n": grant.amount})
        else:
            item = {"i": grant.item_id, "n": grant.quantity}
            if grant.rarity is not None:
                item["q"] = grant.rarity
            items.append(item)
    return items
