"""
외부 지급(Fulfillment) 연동

구매한 보상은 게임 서버 우편함으로 발송된다. 게임 우편 API는 reference_id를
우편 ID/Idempotency-Key로 사용하므로 같은 구매를 재시도해도 우편은 한 번만 생성된다.
"""

import logging
from typing import List, Optional, Protocol

import httpx

from backoffice.config import Settings
from backoffice.schemas.reward_payload import Grant, to_mail_items

logger = logging.getLogger(__name__)


class FulfillmentProvider(Protocol):
    def deliver(
        self,
        user_id: str,
        server_id: int,
        role_id: Optional[str],
        grants: List[Grant],
        reference_id: str,
    ) -> bool:
        """지급 성공 여부 반환 (예외를 던지지 않는다)"""
        ...


class GameMailClient:
    """게임 우편 API 클라이언트"""

    def __init__(self, settings: Settings, transport: Optional[httpx.BaseTransport] = None):
        self._settings = settings
        self._url = settings.GAME_MAIL_API_URL
        self._timeout = httpx.Timeout(settings.GAME_MAIL_TIMEOUT_SECONDS, connect=5.0)
        self._transport = transport

    def _build_mail(
        self,
        user_id: str,
        server_id: int,
        role_id: Optional[str],
        grants: List[Grant],
        reference_id: str,
    ) -> dict:
        return {
            "id": reference_id,
            "serverid": server_id,
            "owner": role_id or user_id,
            "title": self._settings.PURCHASE_MAIL_TITLE,
            "content": self._settings.PURCHASE_MAIL_CONTENT,
            "items": to_mail_items(grants),
            "sender": "backend",
        }

    def deliver(
        self,
        user_id: str,
        server_id: int,
        role_id: Optional[str],
        grants: List[Grant],
        reference_id: str,
    ) -> bool:
        mail = self._build_mail(user_id, server_id, role_id, grants, reference_id)
        headers = {"Idempotency-Key": reference_id}
        if self._settings.GAME_MAIL_API_KEY:
            headers["Authorization"] = f"Bearer {self._settings.GAME_MAIL_API_KEY}"

        try:
            with httpx.Client(timeout=self._timeout, transport=self._transport) as client:
                response = client.post(self._url, json=mail, headers=headers)
        except httpx.TimeoutException as exc:
            logger.warning(f"Game mail delivery timed out: ref={reference_id} ({exc})")
            return False
        except httpx.RequestError as exc:
            logger.warning(f"Game mail request error: ref={reference_id} ({exc})")
            return False

        if response.is_success:
            logger.info(f"Game mail delivered: ref={reference_id} owner={mail['owner']}")
            return True

        logger.warning(
            f"Game mail rejected: ref={reference_id} status={response.status_code} body={response.text[:200]}"
        )
        return False
