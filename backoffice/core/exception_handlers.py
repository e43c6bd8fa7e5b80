import logging
import traceback

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from sqlalchemy.exc import IntegrityError
from starlette.exceptions import HTTPException as StarletteHTTPException

from backoffice.logging_config import request_id_var

from .exceptions import BaseAPIException, ConflictError, InternalServerError

logger = logging.getLogger("backoffice.errors")


def _describe(request: Request) -> str:
    client = request.client.host if request.client else "-"
    return f"{request.method} {request.url.path} from {client}"


def _error_body(code: str, message: str, details=None) -> dict:
    return {
        "success": False,
        "error": {
            "code": code,
            "message": message,
            "details": details or {},
            "request_id": request_id_var.get(),
        },
    }


async def handle_base_api_exception(request: Request, exc: BaseAPIException):
    log = logger.error if exc.status_code >= 500 else logger.warning
    log(f"{_describe(request)} -> {exc.status_code} {exc.error_code}: {exc.message}")
    return JSONResponse(
        status_code=exc.status_code,
        content=jsonable_encoder(_error_body(exc.error_code, exc.message, exc.details)),
    )


async def handle_http_exception(request: Request, exc: StarletteHTTPException):
    logger.warning(f"{_describe(request)} -> {exc.status_code}: {exc.detail}")
    return JSONResponse(
        status_code=exc.status_code,
        content=_error_body("HTTP_ERROR", str(exc.detail)),
        headers=getattr(exc, "headers", None),
    )


async def handle_validation_error(request: Request, exc: RequestValidationError):
    logger.warning(f"{_describe(request)} -> 422: {exc.errors()}")
    return JSONResponse(
        status_code=422,
        content=_error_body(
            "INVALID_ARGUMENT",
            "Validation failed",
            {"errors": jsonable_encoder(exc.errors())},
        ),
    )


async def handle_integrity_error(request: Request, exc: IntegrityError):
    """서비스에서 잡지 못한 유니크/FK 제약 위반 - 동시 요청 경합으로 보고 409"""
    logger.warning(f"{_describe(request)} -> 409 integrity: {exc.orig}")
    conflict = ConflictError("Concurrent modification, please retry")
    return JSONResponse(
        status_code=conflict.status_code,
        content=_error_body(conflict.error_code, conflict.message),
    )


async def handle_unexpected_error(request: Request, exc: Exception):
    # 스택 트레이스는 로그에만 남긴다
    tb_str = "".join(traceback.format_exception(type(exc), exc, exc.__traceback__))
    logger.error(
        f"{_describe(request)} -> 500 {type(exc).__name__}: {exc}\n{tb_str}"
    )
    internal = InternalServerError()
    return JSONResponse(
        status_code=internal.status_code,
        content=_error_body(internal.error_code, internal.message),
    )


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(BaseAPIException, handle_base_api_exception)
    app.add_exception_handler(StarletteHTTPException, handle_http_exception)
    app.add_exception_handler(RequestValidationError, handle_validation_error)
    app.add_exception_handler(IntegrityError, handle_integrity_error)
    app.add_exception_handler(Exception, handle_unexpected_error)
