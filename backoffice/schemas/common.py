from decimal import Decimal
from typing import Annotated, Any, Generic, Optional, TypeVar

from pydantic import BaseModel, PlainSerializer

T = TypeVar("T")

def decimal_to_str(value: Decimal) -> str:
    """자릿수 손실 없는 10진 문자열 (불필요한 0 제거, 지수 표기 없음)"""
    return format(value.normalize(), "f")


# 금액/비율은 Decimal 그대로, JSON 응답에서는 정확한 10진 문자열로 직렬화
Money = Annotated[
    Decimal, PlainSerializer(decimal_to_str, return_type=str, when_used="json")
]


class Error(BaseModel):
    code: str
    message: str
    details: Optional[dict] = None


class BaseResponse(BaseModel, Generic[T]):
    """표준 응답 envelope"""

    success: bool = True
    data: Optional[T] = None
    message: Optional[str] = None
    error: Optional[Error] = None


def ok(data: Any = None, message: Optional[str] = None) -> dict:
    body = {"success": True, "data": data}
    if message:
        body["message"] = message
    return body
