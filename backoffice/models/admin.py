from datetime import datetime
from enum import Enum
from typing import Optional, Union

from sqlalchemy import Boolean, DateTime, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from backoffice.models.base import BaseModel, BigIntegerPK


class AdminRole(str, Enum):
    """백오피스 관리자 역할"""

    OPERATOR = "operator"  # 조회 전용 운영자
    ADMIN = "admin"  # 설정 변경 가능
    SUPER_ADMIN = "super_admin"  # 관리자 계정 관리

    @classmethod
    def get_hierarchy_level(cls, role: Union[str, "AdminRole"]) -> int:
        """역할의 계층 레벨을 반환 (숫자가 높을수록 높은 권한)"""
        if isinstance(role, cls):
            role = role.value

        hierarchy = {
            cls.OPERATOR.value: 1,
            cls.ADMIN.value: 2,
            cls.SUPER_ADMIN.value: 3,
        }
        return hierarchy.get(str(role), 0)

    @classmethod
    def has_permission(
        cls, role: Union[str, "AdminRole"], required_role: Union[str, "AdminRole"]
    ) -> bool:
        """역할이 요구되는 역할 이상인지 확인"""
        return cls.get_hierarchy_level(role) >= cls.get_hierarchy_level(required_role)


class Admin(BaseModel):
    __tablename__ = "admins"

    id: Mapped[int] = mapped_column(BigIntegerPK, primary_key=True, autoincrement=True)
    username: Mapped[str] = mapped_column(String(100), unique=True, nullable=False, index=True)
    password_hash: Mapped[str] = mapped_column(Text, nullable=False)
    role: Mapped[str] = mapped_column(String(20), default=AdminRole.OPERATOR.value, nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    last_login_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    def __repr__(self):
        return f"<Admin(id={self.id}, username={self.username}, role={self.role})>"
