from typing import Optional

from sqlalchemy.orm import Session

from backoffice.models.admin import Admin as AdminModel
from backoffice.repositories.base import BaseRepository
from backoffice.schemas.auth import Admin as AdminSchema


class AdminRepository(BaseRepository[AdminModel, AdminSchema]):
    def __init__(self, db: Session):
        super().__init__(AdminModel, AdminSchema, db)

    def get_by_username(self, username: str) -> Optional[AdminSchema]:
        return self.get_by_field("username", username)

    def get_password_hash(self, admin_id: int) -> Optional[str]:
        # 응답 스키마에는 해시를 노출하지 않으므로 모델에서 직접 조회
        admin = self._get_model(admin_id)
        return admin.password_hash if admin else None

    def create_admin(self, username: str, password_hash: str, role: str) -> AdminSchema:
        return self.create(username=username, password_hash=password_hash, role=role, is_active=True)
