from typing import Optional
from fastapi import Depends
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy.orm import Session

from backoffice.config import settings
from backoffice.models.admin import AdminRole
from backoffice.database.session import get_db
from backoffice.services.auth_service import AuthService
from backoffice.schemas.auth import AdminContext, PlayerContext
from backoffice.core.exceptions import AuthenticationError, AuthorizationError
from backoffice.core.security import decode_game_token

# JWT Bearer 토큰 스킴
security = HTTPBearer(auto_error=False)


def _require_token(credentials: Optional[HTTPAuthorizationCredentials]) -> str:
    if not credentials or not credentials.credentials:
        raise AuthenticationError("Authentication required")
    return credentials.credentials


def get_current_admin(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    db: Session = Depends(get_db),
) -> AdminContext:
    """관리자 인증 - 유효한 관리자 토큰이 필요함"""
    token = _require_token(credentials)
    auth_service = AuthService(db, settings=settings)
    return auth_service.get_admin_from_token(token)


def require_role(required_role: AdminRole):
    """특정 역할 이상의 권한이 필요한 엔드포인트용 의존성 팩토리"""

    def _require_role(
        current_admin: AdminContext = Depends(get_current_admin),
    ) -> AdminContext:
        if not AdminRole.has_permission(current_admin.role, required_role):
            raise AuthorizationError(f"Role '{required_role.value}' or higher required")
        return current_admin

    return _require_role


# 조회 전용 (operator 이상)
require_operator = require_role(AdminRole.OPERATOR)

# 설정 변경 (admin 이상)
require_admin = require_role(AdminRole.ADMIN)

# 관리자 계정 관리
require_super_admin = require_role(AdminRole.SUPER_ADMIN)


def get_current_player(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
) -> PlayerContext:
    """게임 서버가 발급한 플레이어 토큰 인증"""
    token = _require_token(credentials)
    return decode_game_token(token)
