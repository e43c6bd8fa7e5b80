import logging
from contextlib import contextmanager
from typing import Iterator

from sqlalchemy.orm import Session

from backoffice.database.connection import SessionLocal

logger = logging.getLogger(__name__)


def get_db() -> Iterator[Session]:
    """
    요청 단위 세션

    커밋은 서비스가 한다. 요청이 예외로 끝나면 남은 트랜잭션을 되돌린다.
    """
    db = SessionLocal()
    try:
        yield db
    except Exception:
        if db.in_transaction():
            logger.debug("Rolling back open transaction after request error")
            db.rollback()
        raise
    finally:
        db.close()


@contextmanager
def session_scope() -> Iterator[Session]:
    """스크립트용 세션 - 정상 종료 시 커밋, 예외 시 롤백"""
    db = SessionLocal()
    try:
        yield db
        db.commit()
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()
