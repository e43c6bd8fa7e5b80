import pytest

from backoffice.core.exceptions import ValidationError
from backoffice.schemas.reward_payload import (
    BundleGrant,
    CurrencyGrant,
    ItemGrant,
    dump_reward_payload,
    flatten_grants,
    parse_reward_payload,
    to_mail_items,
)

NESTED = {
    "kind": "bundle",
    "grants": [
        {"kind": "currency", "currency": "gem", "amount": 100},
        {
            "kind": "bundle",
            "grants": [
                {"kind": "item", "item_id": "sword_01", "quantity": 1, "rarity": 3},
                {"kind": "item", "item_id": "potion", "quantity": 5},
            ],
        },
    ],
}


def test_parse_nested_bundle():
    payload = parse_reward_payload(NESTED)

    assert isinstance(payload, BundleGrant)
    assert isinstance(payload.grants[1], BundleGrant)


def test_flatten_preserves_order():
    grants = flatten_grants(parse_reward_payload(NESTED))

    assert [type(g) for g in grants] == [CurrencyGrant, ItemGrant, ItemGrant]
    assert to_mail_items(grants) == [
        {"i": "gem", "n": 100},
        {"i": "sword_01", "n": 1, "q": 3},
        {"i": "potion", "n": 5},
    ]


def test_dump_omits_unset_rarity():
    payload = parse_reward_payload({"kind": "item", "item_id": "potion", "quantity": 2})

    assert dump_reward_payload(payload) == {"kind": "item", "item_id": "potion", "quantity": 2}


@pytest.mark.parametrize(
    "data",
    [
        {"kind": "coupon", "code": "X"},
        {"kind": "currency", "currency": "gem", "amount": 0},
        {"kind": "item", "item_id": "", "quantity": 1},
        {"kind": "bundle", "grants": []},
        "not-a-payload",
    ],
)
def test_invalid_payload_rejected(data):
    with pytest.raises(ValidationError):
        parse_reward_payload(data)
