import logging
import time
import uuid

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint

from backoffice.logging_config import request_id_var

logger = logging.getLogger("backoffice.access")

REQUEST_ID_HEADER = "X-Request-ID"

# 성공 응답을 DEBUG로만 기록하는 경로
QUIET_PATHS = {"/", "/health"}


class LoggingMiddleware(BaseHTTPMiddleware):
    """요청마다 request id를 부여하고 처리 시간과 결과를 기록"""

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        request_id = request.headers.get(REQUEST_ID_HEADER) or uuid.uuid4().hex[:16]
        token = request_id_var.set(request_id)
        started = time.perf_counter()
        target = f"{request.method} {request.url.path}"

        try:
            response = await call_next(request)
            elapsed_ms = (time.perf_counter() - started) * 1000
            response.headers[REQUEST_ID_HEADER] = request_id

            if response.status_code >= 500:
                level = logging.ERROR
            elif response.status_code >= 400:
                level = logging.WARNING
            elif request.url.path in QUIET_PATHS:
                level = logging.DEBUG
            else:
                level = logging.INFO
            logger.log(level, f"{target} -> {response.status_code} ({elapsed_ms:.1f}ms)")
            return response
        except Exception:
            logger.exception(f"{target} crashed")
            raise
        finally:
            request_id_var.reset(token)
