import logging.config
import sys
from contextvars import ContextVar

# 요청 단위 상관관계 ID (LoggingMiddleware가 설정)
request_id_var: ContextVar[str] = ContextVar("request_id", default="-")


class RequestIdFilter(logging.Filter):
    """모든 로그 레코드에 request_id 필드를 채운다"""

    def filter(self, record: logging.LogRecord) -> bool:
        record.request_id = request_id_var.get()
        return True


def setup_logging(log_level: str = "INFO", debug: bool = False):
    log_level = log_level.upper()

    config = {
        "version": 1,
        "disable_existing_loggers": False,
        "filters": {
            "request_id": {"()": RequestIdFilter},
        },
        "formatters": {
            "line": {
                "format": "%(asctime)s | %(levelname)-8s | %(request_id)s | %(name)s | %(message)s",
            },
            "trace": {
                "format": (
                    "%(asctime)s | %(levelname)-8s | %(request_id)s | %(name)s\n"
                    "%(pathname)s:%(lineno)d\n%(message)s"
                ),
            },
        },
        "handlers": {
            "stdout": {
                "class": "logging.StreamHandler",
                "formatter": "line",
                "filters": ["request_id"],
                "stream": sys.stdout,
            },
            "stderr": {
                "class": "logging.StreamHandler",
                "formatter": "trace",
                "filters": ["request_id"],
                "stream": sys.stderr,
                "level": "ERROR",
            },
        },
        "loggers": {
            "": {
                "handlers": ["stdout", "stderr"],
                "level": log_level,
            },
            "backoffice": {
                "handlers": ["stdout", "stderr"],
                "level": log_level,
                "propagate": False,
            },
            "uvicorn.access": {
                # LoggingMiddleware가 요청/응답을 이미 기록함
                "level": "WARNING",
            },
            "httpx": {"level": "WARNING"},
            "sqlalchemy.engine": {"level": "INFO" if debug else "WARNING"},
        },
    }
    logging.config.dictConfig(config)
    logging.getLogger("backoffice").info(f"Logging initialized at level {log_level}")
