"""CRUD 基类：为各实体提供通用的数据访问方法。"""

from typing import Any, Dict, Generic, Optional, Type, TypeVar

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.packages.drive.core.exceptions import ConflictError
from app.packages.drive.core.logger import logger
from app.packages.drive.models.base import Base

ModelType = TypeVar("ModelType", bound=Base)


class CRUDBase(Generic[ModelType]):
    """封装常见的查询、创建与保存逻辑，减少重复代码。

    写操作默认立即提交；传入 ``auto_commit=False`` 时仅加入会话，
    由调用方通过 ``commit`` 统一提交，从而把多条写入放进同一个事务。
    """

    def __init__(self, model: Type[ModelType]):
        self.model = model

    def query(self, db: Session):
        return db.query(self.model)

    def get(self, db: Session, id: Any) -> Optional[ModelType]:
        if id is None:
            return None
        return self.query(db).filter(self.model.id == id).first()

    def create(self, db: Session, obj_in: Dict[str, Any], *, auto_commit: bool = True) -> ModelType:
        db_obj = self.model(**obj_in)
        db.add(db_obj)
        if auto_commit:
            self.commit(db)
            db.refresh(db_obj)
        return db_obj

    def save(self, db: Session, db_obj: ModelType, *, auto_commit: bool = True) -> ModelType:
        db.add(db_obj)
        if auto_commit:
            self.commit(db)
            db.refresh(db_obj)
        return db_obj

    def commit(self, db: Session) -> None:
        """提交事务；失败时回滚，唯一约束冲突转换为 ``ConflictError``。"""
        try:
            db.commit()
        except IntegrityError as exc:
            db.rollback()
            logger.warning("Integrity violation on %s: %s", self.model.__tablename__, exc.orig)
            raise ConflictError() from exc
        except Exception:
            db.rollback()
            raise
