from sqlalchemy import BigInteger, Column, DateTime, Integer, Numeric, func
from sqlalchemy.orm import declarative_base, declared_attr

Base = declarative_base()

# SQLite는 INTEGER PRIMARY KEY만 자동 증가시킨다
BigIntegerPK = BigInteger().with_variant(Integer(), "sqlite")

# 상금/기여금 금액 컬럼
Money = Numeric(18, 4)


class TimestampMixin:
    """생성/수정 시각 컬럼 믹스인"""

    @declared_attr
    def created_at(cls):
        return Column(DateTime(timezone=True), server_default=func.now())

    @declared_attr
    def updated_at(cls):
        return Column(
            DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
        )


class BaseModel(Base, TimestampMixin):
    """모든 백오피스 모델의 베이스 클래스"""

    __abstract__ = True
