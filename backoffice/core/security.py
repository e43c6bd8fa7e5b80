from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

import bcrypt
from jose import jwt, JWTError
from pydantic import BaseModel, ValidationError

from backoffice.config import settings
from backoffice.core.exceptions import AuthenticationError
from backoffice.schemas.auth import PlayerContext


def hash_password(password: str) -> str:
    """bcrypt 해시 (72바이트 초과분은 bcrypt 규칙대로 잘린다)"""
    hashed = bcrypt.hashpw(password.encode("utf-8")[:72], bcrypt.gensalt())
    return hashed.decode("utf-8")


def verify_password(password: str, password_hash: str) -> bool:
    try:
        return bcrypt.checkpw(password.encode("utf-8")[:72], password_hash.encode("utf-8"))
    except ValueError:
        # 손상된 해시
        return False


def create_access_token(data: dict, expires_delta: Optional[timedelta] = None):
    to_encode = data.copy()
    if expires_delta:
        expire = datetime.now(timezone.utc) + expires_delta
    else:
        expire = datetime.now(timezone.utc) + timedelta(
            minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES
        )
    to_encode.update({"exp": expire})
    encoded_jwt = jwt.encode(
        to_encode, settings.SECRET_KEY, algorithm=settings.JWT_ALGORITHM
    )
    return encoded_jwt


class AdminTokenPayload(BaseModel):
    sub: str  # admin id
    role: str


def decode_access_token(token: str) -> AdminTokenPayload:
    """관리자 JWT 검증"""
    try:
        payload = jwt.decode(
            token, settings.SECRET_KEY, algorithms=[settings.JWT_ALGORITHM]
        )
        return AdminTokenPayload.model_validate(payload)
    except (JWTError, ValidationError):
        raise AuthenticationError("Invalid or expired token")


class GameTokenPayload(BaseModel):
    userid: str
    serverid: int
    id: Optional[str] = None  # role id


def create_game_token(
    user_id: str, server_id: int, role_id: Optional[str] = None, expires_minutes: int = 60
) -> str:
    """게임 서버와 동일한 클레임으로 플레이어 토큰 발급 (운영 도구/테스트용)"""
    claims: Dict[str, Any] = {
        "userid": user_id,
        "serverid": server_id,
        "exp": datetime.now(timezone.utc) + timedelta(minutes=expires_minutes),
    }
    if role_id is not None:
        claims["id"] = role_id
    return jwt.encode(claims, settings.GAME_JWT_SECRET, algorithm=settings.GAME_JWT_ALGORITHM)


def decode_game_token(token: str) -> PlayerContext:
    """게임 서버가 발급한 플레이어 토큰 검증 → PlayerContext"""
    try:
        payload = jwt.decode(
            token, settings.GAME_JWT_SECRET, algorithms=[settings.GAME_JWT_ALGORITHM]
        )
        claims = GameTokenPayload.model_validate(payload)
    except (JWTError, ValidationError):
        raise AuthenticationError("Invalid or expired player token")

    return PlayerContext(
        user_id=claims.userid,
        server_id=claims.serverid,
        role_id=claims.id,
    )
