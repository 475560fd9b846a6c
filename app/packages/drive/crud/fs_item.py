"""FsItem CRUD：文件系统条目的元数据存储。"""

from __future__ import annotations

from typing import List, Optional

from sqlalchemy import and_, func
from sqlalchemy.orm import Session

from app.packages.drive.crud.base import CRUDBase
from app.packages.drive.models.fs_item import FsItem


def _escape_like(value: str) -> str:
    return value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def _under(path_prefix: str):
    """path 以 ``path_prefix + '/'`` 开头的过滤条件。

    LIKE 用于走索引；SQLite 的 LIKE 对 ASCII 不区分大小写，再用 substr 精确比较一次。
    """
    prefix = path_prefix.rstrip("/") + "/"
    return and_(
        FsItem.path.like(_escape_like(prefix) + "%", escape="\\"),
        func.substr(FsItem.path, 1, len(prefix)) == prefix,
    )


class CRUDFsItem(CRUDBase[FsItem]):
    def list_by_owner(self, db: Session, *, owner_id: str, storage_provider: str) -> List[FsItem]:
        return (
            self.query(db)
            .filter(FsItem.owner_id == owner_id)
            .filter(FsItem.storage_provider == storage_provider)
            .order_by(FsItem.create_time.asc(), FsItem.path.asc())
            .all()
        )

    def find_siblings(
        self,
        db: Session,
        *,
        owner_id: str,
        parent_id: Optional[str],
        storage_provider: str,
        name: Optional[str] = None,
        exclude_id: Optional[str] = None,
    ) -> List[FsItem]:
        """同一 (owner, parent, provider) 下的条目；可按名称过滤并排除自身。"""
        q = (
            self.query(db)
            .filter(FsItem.owner_id == owner_id)
            .filter(FsItem.storage_provider == storage_provider)
        )
        if parent_id is None:
            q = q.filter(FsItem.parent_id.is_(None))
        else:
            q = q.filter(FsItem.parent_id == parent_id)
        if name is not None:
            q = q.filter(FsItem.name == name)
        if exclude_id is not None:
            q = q.filter(FsItem.id != exclude_id)
        return q.all()

    def list_descendants(
        self, db: Session, *, owner_id: str, storage_provider: str, path_prefix: str
    ) -> List[FsItem]:
        """返回 path 以 ``path_prefix + '/'`` 开头的所有条目，按路径深度升序。"""
        rows = (
            self.query(db)
            .filter(FsItem.owner_id == owner_id)
            .filter(FsItem.storage_provider == storage_provider)
            .filter(_under(path_prefix))
            .all()
        )
        return sorted(rows, key=lambda r: (r.path.count("/"), r.path))

    def delete_subtree(self, db: Session, item: FsItem) -> int:
        """在同一事务内删除条目及其全部后代，返回删除的行数。

        后代按路径前缀一次性删除，不依赖数据库的级联配置。
        """
        descendants = (
            self.query(db)
            .filter(FsItem.owner_id == item.owner_id)
            .filter(FsItem.storage_provider == item.storage_provider)
            .filter(_under(item.path))
        )
        # 先计数：SQLite 外键级联删除的行不计入 delete() 的 rowcount
        removed = descendants.count()
        descendants.delete(synchronize_session=False)
        db.delete(item)
        self.commit(db)
        return removed + 1


fs_item_crud = CRUDFsItem(FsItem)
