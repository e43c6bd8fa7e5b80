import sys
import os

sys.path.append(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from backoffice.database.connection import engine
from backoffice.models.base import Base

# create_all이 테이블을 찾을 수 있도록 모든 모델 모듈을 로드
from backoffice.models import admin, gift_code, payment, prize, shop, wallet  # noqa: F401


def init_db():
    """데이터베이스 초기화"""
    try:
        Base.metadata.create_all(bind=engine)
        print(f"Database initialized successfully: {len(Base.metadata.tables)} tables")
    except Exception as e:
        print(f"Database initialization failed: {str(e)}")
        raise


if __name__ == "__main__":
    init_db()
