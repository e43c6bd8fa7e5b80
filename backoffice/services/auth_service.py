from datetime import datetime, timedelta, timezone
from typing import Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from backoffice.config import Settings
from backoffice.core.exceptions import (
    AuthenticationError,
    ConflictError,
    NotFoundError,
    ValidationError,
)
from backoffice.core.security import (
    create_access_token,
    decode_access_token,
    hash_password,
    verify_password,
)
from backoffice.models.admin import AdminRole
from backoffice.repositories.admin_repository import AdminRepository
from backoffice.schemas.auth import Admin as AdminSchema
from backoffice.schemas.auth import AdminContext, Token
import logging

logger = logging.getLogger(__name__)

MIN_PASSWORD_LENGTH = 8


class AuthService:
    """관리자 인증 관련 비즈니스 로직을 담당하는 서비스"""

    def __init__(self, db: Session, settings: Settings):
        self.db = db
        self.admin_repo = AdminRepository(db)
        self.settings = settings

    def login(self, username: str, password: str) -> Token:
        """
        관리자 로그인

        존재하지 않는 계정과 비밀번호 불일치는 같은 메시지로 응답한다.
        """
        admin = self.admin_repo.get_by_username(username)
        password_hash = self.admin_repo.get_password_hash(admin.id) if admin else None

        if not admin or not password_hash or not verify_password(password, password_hash):
            logger.warning(f"Failed login attempt for username={username}")
            raise AuthenticationError("Invalid username or password")

        if not admin.is_active:
            logger.warning(f"Inactive admin tried to log in: {username}")
            raise AuthenticationError("Account is disabled")

        admin = self.admin_repo.update(admin.id, last_login_at=datetime.now(timezone.utc))
        self.db.commit()

        expires = timedelta(minutes=self.settings.ACCESS_TOKEN_EXPIRE_MINUTES)
        access_token = create_access_token(
            data={"sub": str(admin.id), "role": admin.role}, expires_delta=expires
        )
        logger.info(f"Admin logged in: {admin.username} ({admin.role})")

        return Token(
            access_token=access_token,
            token_type="bearer",
            expires_in=int(expires.total_seconds()),
            admin=admin,
        )

    def create_admin(
        self, username: str, password: str, role: AdminRole = AdminRole.OPERATOR
    ) -> AdminSchema:
        if len(password) < MIN_PASSWORD_LENGTH:
            raise ValidationError(
                f"Password must be at least {MIN_PASSWORD_LENGTH} characters"
            )
        role_value = role.value if isinstance(role, AdminRole) else str(role)
        if AdminRole.get_hierarchy_level(role_value) == 0:
            raise ValidationError(f"Unknown role: {role_value}")

        if self.admin_repo.get_by_username(username):
            raise ConflictError(f"Username already exists: {username}")

        try:
            admin = self.admin_repo.create_admin(
                username=username,
                password_hash=hash_password(password),
                role=role_value,
            )
            self.db.commit()
        except IntegrityError:
            self.db.rollback()
            raise ConflictError(f"Username already exists: {username}")

        logger.info(f"Admin created: {username} ({role_value})")
        return admin

    def change_password(self, admin_id: int, current_password: str, new_password: str) -> None:
        password_hash = self.admin_repo.get_password_hash(admin_id)
        if password_hash is None:
            raise NotFoundError("Admin not found")

        if not verify_password(current_password, password_hash):
            raise AuthenticationError("Current password is incorrect")

        if len(new_password) < MIN_PASSWORD_LENGTH:
            raise ValidationError(
                f"Password must be at least {MIN_PASSWORD_LENGTH} characters"
            )

        self.admin_repo.update(admin_id, password_hash=hash_password(new_password))
        self.db.commit()
        logger.info(f"Password changed for admin_id={admin_id}")

    def get_admin_from_token(self, token: str) -> AdminContext:
        payload = decode_access_token(token)
        try:
            admin_id = int(payload.sub)
        except ValueError:
            raise AuthenticationError("Invalid token subject")

        admin = self.admin_repo.get_by_id(admin_id)
        if not admin or not admin.is_active:
            raise AuthenticationError("Admin not found or inactive")

        return AdminContext(admin_id=admin.id, username=admin.username, role=admin.role)

    def get_admin(self, admin_id: int) -> Optional[AdminSchema]:
        return self.admin_repo.get_by_id(admin_id)
