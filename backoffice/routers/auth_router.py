from fastapi import APIRouter, Depends, status
from dependency_injector.wiring import inject

from backoffice.core.auth_middleware import get_current_admin, require_super_admin
from backoffice.core.exceptions import NotFoundError
from backoffice.deps import get_auth_service
from backoffice.schemas.auth import (
    Admin,
    AdminContext,
    AdminCreate,
    AdminLogin,
    PasswordChange,
    Token,
)
from backoffice.schemas.common import BaseResponse, ok
from backoffice.services.auth_service import AuthService
import logging

router = APIRouter(prefix="/auth", tags=["authentication"])
logger = logging.getLogger(__name__)


@router.post("/login", response_model=BaseResponse[Token])
@inject
async def login(
    body: AdminLogin,
    auth_service: AuthService = Depends(get_auth_service),
):
    """관리자 로그인 - bearer 토큰 발급"""
    token = auth_service.login(body.username, body.password)
    return ok(token)


@router.get("/me", response_model=BaseResponse[Admin])
@inject
async def get_me(
    current_admin: AdminContext = Depends(get_current_admin),
    auth_service: AuthService = Depends(get_auth_service),
):
    admin = auth_service.get_admin(current_admin.admin_id)
    if not admin:
        raise NotFoundError("Admin not found")
    return ok(admin)


@router.post(
    "/admins",
    response_model=BaseResponse[Admin],
    status_code=status.HTTP_201_CREATED,
)
@inject
async def create_admin(
    body: AdminCreate,
    current_admin: AdminContext = Depends(require_super_admin),
    auth_service: AuthService = Depends(get_auth_service),
):
    """관리자 계정 생성 (super_admin 전용)"""
    admin = auth_service.create_admin(body.username, body.password, body.role)
    logger.info(f"Admin {body.username} created by {current_admin.username}")
    return ok(admin, message="Admin created")


@router.put("/password", response_model=BaseResponse[None])
@inject
async def change_password(
    body: PasswordChange,
    current_admin: AdminContext = Depends(get_current_admin),
    auth_service: AuthService = Depends(get_auth_service),
):
    auth_service.change_password(
        current_admin.admin_id, body.current_password, body.new_password
    )
    return ok(message="Password changed")
