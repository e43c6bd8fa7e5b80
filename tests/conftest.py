import os

os.environ["DATABASE_URL"] = "sqlite://"
os.environ["REDIS_ENABLED"] = "false"
os.environ["SECRET_KEY"] = "test-secret-key"
os.environ["GAME_JWT_SECRET"] = "test-game-secret"
os.environ["PAYMENT_WEBHOOK_SECRET"] = "test-webhook-secret"
os.environ["COMPENSATION_MAX_ATTEMPTS"] = "3"

from typing import List

import pytest
from dependency_injector import providers
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from backoffice.config import settings
from backoffice.core.security import create_game_token
from backoffice.database.connection import enable_sqlite_savepoints
from backoffice.database.session import get_db
from backoffice.models.admin import AdminRole
from backoffice.models.base import Base
from backoffice.models import admin, gift_code, payment, prize, shop, wallet  # noqa: F401
from backoffice.services.auth_service import AuthService


class FakeFulfillment:
    """게임 우편 API 대역 - 호출을 기록하고 지정된 결과를 돌려준다"""

    def __init__(self, succeed: bool = True, raises: bool = False):
        self.succeed = succeed
        self.raises = raises
        self.calls: List[dict] = []

    def deliver(self, user_id, server_id, role_id, grants, reference_id) -> bool:
        self.calls.append(
            {
                "user_id": user_id,
                "server_id": server_id,
                "role_id": role_id,
                "grants": grants,
                "reference_id": reference_id,
            }
        )
        if self.raises:
            raise RuntimeError("mail service exploded")
        return self.succeed


@pytest.fixture
def engine():
    test_engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    enable_sqlite_savepoints(test_engine)
    Base.metadata.create_all(bind=test_engine)
    yield test_engine
    Base.metadata.drop_all(bind=test_engine)
    test_engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(bind=engine, autocommit=False, autoflush=False, expire_on_commit=False)


@pytest.fixture
def db_session(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def fulfillment_factory():
    return FakeFulfillment


@pytest.fixture
def fake_fulfillment():
    return FakeFulfillment()


@pytest.fixture
def app(session_factory, fake_fulfillment):
    from backoffice.main import create_app

    application = create_app()

    def override_get_db():
        db = session_factory()
        try:
            yield db
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()

    application.dependency_overrides[get_db] = override_get_db
    application.container.infrastructure.fulfillment.override(providers.Object(fake_fulfillment))
    yield application
    application.container.infrastructure.fulfillment.reset_override()
    application.dependency_overrides.clear()


@pytest.fixture
def client(app):
    with TestClient(app) as test_client:
        yield test_client


def _admin_headers(session_factory, username: str, role: AdminRole) -> dict:
    with session_factory() as db:
        service = AuthService(db, settings)
        service.create_admin(username, "password123", role)
        token = service.login(username, "password123")
    return {"Authorization": f"Bearer {token.access_token}"}


@pytest.fixture
def admin_headers(session_factory):
    return _admin_headers(session_factory, "admin", AdminRole.ADMIN)


@pytest.fixture
def operator_headers(session_factory):
    return _admin_headers(session_factory, "operator", AdminRole.OPERATOR)


@pytest.fixture
def super_admin_headers(session_factory):
    return _admin_headers(session_factory, "root", AdminRole.SUPER_ADMIN)


@pytest.fixture
def player_headers():
    token = create_game_token("user-1", server_id=1, role_id="role-1")
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def other_player_headers():
    token = create_game_token("user-2", server_id=1)
    return {"Authorization": f"Bearer {token}"}
