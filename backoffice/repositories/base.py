from abc import ABC
from typing import TypeVar, Generic, Optional, List, Dict, Any, Type
from sqlalchemy.orm import Session
from pydantic import BaseModel

T = TypeVar("T")
SchemaType = TypeVar("SchemaType", bound=BaseModel)


class BaseRepository(Generic[T, SchemaType], ABC):
    """
    모든 리포지토리의 베이스 클래스 - Pydantic 응답 보장

    리포지토리는 flush까지만 수행하고, commit/rollback은 서비스가 결정한다.
    """

    def __init__(
        self, model_class: Type[T], schema_class: Type[SchemaType], db: Session
    ):
        self.model_class = model_class
        self.schema_class = schema_class
        self.db = db

    def _to_schema(self, model_instance: Any) -> Optional[SchemaType]:
        """SQLAlchemy 모델을 Pydantic 스키마로 변환"""
        if model_instance is None:
            return None
        return self.schema_class.model_validate(model_instance)

    def _to_schemas(self, model_instances: List[Any]) -> List[SchemaType]:
        return [self.schema_class.model_validate(m) for m in model_instances]

    def _get_model(self, id: Any) -> Optional[T]:
        return (
            self.db.query(self.model_class)
            .filter(getattr(self.model_class, "id") == id)
            .populate_existing()
            .first()
        )

    def get_by_id(self, id: Any) -> Optional[SchemaType]:
        """ID로 조회 - Pydantic 스키마 반환"""
        return self._to_schema(self._get_model(id))

    def get_by_field(self, field_name: str, value: Any) -> Optional[SchemaType]:
        """특정 필드로 조회 - Pydantic 스키마 반환"""
        model_instance = (
            self.db.query(self.model_class)
            .filter(getattr(self.model_class, field_name) == value)
            .first()
        )
        return self._to_schema(model_instance)

    def create(self, **kwargs) -> SchemaType:
        """새 레코드 생성 (flush only) - Pydantic 스키마 반환"""
        instance = self.model_class(**kwargs)
        self.db.add(instance)
        self.db.flush()
        self.db.refresh(instance)
        return self._to_schema(instance)

    def update(self, instance_id: Any, **kwargs) -> Optional[SchemaType]:
        """레코드 업데이트 (flush only) - Pydantic 스키마 반환"""
        instance = self._get_model(instance_id)
        if not instance:
            return None

        for key, value in kwargs.items():
            if hasattr(instance, key):
                setattr(instance, key, value)

        self.db.flush()
        self.db.refresh(instance)
        return self._to_schema(instance)

    def delete(self, instance_id: Any) -> bool:
        """레코드 삭제 (flush only)"""
        instance = self._get_model(instance_id)
        if not instance:
            return False

        self.db.delete(instance)
        self.db.flush()
        return True

    def count(self, filters: Optional[Dict[str, Any]] = None) -> int:
        """레코드 수 조회"""
        query = self.db.query(self.model_class)

        if filters:
            for key, value in filters.items():
                if hasattr(self.model_class, key):
                    query = query.filter(getattr(self.model_class, key) == value)

        return query.count()
