"""
기본 데이터 시드 스크립트
- 서버 1 상금 풀 설정 + 순위 구간
- 상점 상품 / 결제 패키지
- super_admin 계정 (SEED_ADMIN_USERNAME / SEED_ADMIN_PASSWORD)
"""

import sys
import os

sys.path.append(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from decimal import Decimal

from backoffice.config import settings
from backoffice.core.exceptions import ConflictError
from backoffice.database.session import session_scope
from backoffice.models.admin import AdminRole
from backoffice.models.payment import PaymentPackage
from backoffice.models.shop import ShopItem
from backoffice.services.auth_service import AuthService
from backoffice.services.prize_service import PrizeService

DEFAULT_SERVER_ID = 1

DEFAULT_BANDS = [
    (1, 1, Decimal("30")),
    (2, 3, Decimal("20")),
    (4, 10, Decimal("15")),
    (11, 50, Decimal("15")),
    (51, 100, Decimal("20")),
]

DEFAULT_SHOP_ITEMS = [
    {
        "item_ref": "gold_pack_small",
        "kind": "reward",
        "name": "Gold Pack (S)",
        "price_tokens": 100,
        "reward_payload": {"kind": "currency", "currency": "gold", "amount": 10000},
    },
    {
        "item_ref": "hero_starter_bundle",
        "kind": "packet",
        "name": "Hero Starter Bundle",
        "price_tokens": 500,
        "reward_payload": {
            "kind": "bundle",
            "grants": [
                {"kind": "item", "item_id": "hero_scroll", "quantity": 5},
                {"kind": "currency", "currency": "gem", "amount": 300},
            ],
        },
        "max_purchases_per_user": 1,
        "is_featured": True,
    },
    {
        "item_ref": "daily_stamina",
        "kind": "reward",
        "name": "Daily Stamina",
        "price_tokens": 20,
        "reward_payload": {"kind": "item", "item_id": "stamina_potion", "quantity": 3},
        "daily_purchase_limit": 3,
    },
]

DEFAULT_PACKAGES = [
    ("Token Pouch", Decimal("0.99"), 100, 0, 1),
    ("Token Chest", Decimal("4.99"), 550, 50, 2),
    ("Token Vault", Decimal("19.99"), 2400, 400, 3),
]


def seed_prize_data(db):
    prize_service = PrizeService(db)
    try:
        prize_service.create_setting(
            server_id=DEFAULT_SERVER_ID,
            initial_prize=Decimal("1000"),
            contribution_rate_percent=Decimal("10"),
        )
    except ConflictError:
        print(f"Prize setting for server {DEFAULT_SERVER_ID} already exists, skipped")

    records = [
        {"from_rank": f, "to_rank": t, "percent_of_pool": p} for f, t, p in DEFAULT_BANDS
    ]
    result = prize_service.bulk_create_bands(DEFAULT_SERVER_ID, records)
    print(f"Prize bands: created={result.created_count} skipped={result.error_count}")


def seed_shop_data(db):
    created = 0
    for item in DEFAULT_SHOP_ITEMS:
        if db.query(ShopItem).filter(ShopItem.item_ref == item["item_ref"]).first():
            continue
        db.add(ShopItem(**item))
        created += 1

    for name, price, tokens, bonus, order in DEFAULT_PACKAGES:
        if db.query(PaymentPackage).filter(PaymentPackage.name == name).first():
            continue
        db.add(
            PaymentPackage(
                name=name,
                price=price,
                currency="USD",
                token_amount=tokens,
                bonus_tokens=bonus,
                sort_order=order,
            )
        )
        created += 1
    db.commit()
    print(f"Shop items / payment packages created: {created}")


def seed_admin(db):
    username = os.getenv("SEED_ADMIN_USERNAME", "superadmin")
    password = os.getenv("SEED_ADMIN_PASSWORD")
    if not password:
        print("SEED_ADMIN_PASSWORD is not set, admin account skipped")
        return
    try:
        AuthService(db, settings).create_admin(username, password, AdminRole.SUPER_ADMIN)
        print(f"Super admin created: {username}")
    except ConflictError:
        print(f"Admin {username} already exists, skipped")


def main():
    try:
        with session_scope() as db:
            seed_prize_data(db)
            seed_shop_data(db)
            seed_admin(db)
    except Exception as e:
        print(f"Seed failed: {str(e)}")
        raise


if __name__ == "__main__":
    main()
