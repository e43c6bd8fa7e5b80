from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field, field_validator

from backoffice.models.admin import AdminRole


class AdminLogin(BaseModel):
    username: str = Field(..., min_length=1, max_length=100)
    password: str = Field(..., min_length=1)


class AdminCreate(BaseModel):
    username: str = Field(..., min_length=3, max_length=100)
    password: str = Field(..., min_length=8, description="최소 8자")
    role: AdminRole = AdminRole.OPERATOR

    @field_validator("username")
    @classmethod
    def normalize_username(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("username must not be blank")
        return v


class PasswordChange(BaseModel):
    current_password: str = Field(..., min_length=1)
    new_password: str = Field(..., min_length=8)


class Admin(BaseModel):
    id: int
    username: str
    role: str
    is_active: bool
    last_login_at: Optional[datetime] = None
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class Token(BaseModel):
    access_token: str
    token_type: str = "bearer"
    expires_in: int
    admin: Admin


class AdminContext(BaseModel):
    """인증된 관리자 요청 컨텍스트"""

    admin_id: int
    username: str
    role: str


class PlayerContext(BaseModel):
    """게임 서버가 발급한 플레이어 토큰의 클레임"""

    user_id: str
    server_id: int
    role_id: Optional[str] = None
