"""条目服务：协调元数据库与存储后端完成创建、重命名/移动、删除。

两侧没有共享事务，因此每个操作按固定顺序执行，并在部分失败时做补偿：
- 创建：先写 blob 再写记录；记录失败则删除刚写入的 blob；
- 移动：先迁移 blob 再更新记录（含全部后代路径，同一事务）；事务失败则把 blob 迁回；
- 删除：先尽力删除 blob（失败只记日志），再删除记录及后代。
补偿本身失败时只记录对账日志，不覆盖原始异常。宁可留下无人引用的 blob，
也不留下指向不存在内容的记录。
"""

from __future__ import annotations

import json
import threading
from contextlib import contextmanager
from typing import Any, Callable, Dict, Iterator, List, Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from app.packages.drive.core.constants import (
    DEFAULT_SCENE,
    ITEM_TYPE_FILE,
    ITEM_TYPES,
)
from app.packages.drive.core.exceptions import (
    CycleRejectedError,
    DuplicateNameError,
    InvalidParentError,
    NotFoundError,
    StorageError,
    ValidationError,
)
from app.packages.drive.core.logger import logger, reconcile_logger
from app.packages.drive.core.timezone import format_iso
from app.packages.drive.crud.fs_item import fs_item_crud
from app.packages.drive.models.fs_item import FsItem
from app.packages.drive.services.storage_backends import StorageBackend
from app.packages.drive.services.tree_index import PathMismatch, TreeIndex
from app.packages.drive.utils.path_utils import (
    canonical_name,
    is_ancestor,
    resolve_path,
    rewrite_descendant_path,
    storage_key,
)


class _Unset:
    def __repr__(self) -> str:
        return "UNSET"


# 区分“未传入”与“显式传入 None（移动到根目录）”
UNSET: Any = _Unset()

MAX_NAME_LENGTH = 255


class OwnerLockRegistry:
    """按用户划分的进程内互斥锁，串行化同一用户的结构性变更。

    只在单进程内生效；多实例部署仍可能交错执行。
    """

    def __init__(self) -> None:
        self._guard = threading.Lock()
        self._locks: Dict[str, threading.RLock] = {}

    @contextmanager
    def hold(self, owner_id: str) -> Iterator[None]:
        with self._guard:
            lock = self._locks.setdefault(owner_id, threading.RLock())
        with lock:
            yield


owner_locks = OwnerLockRegistry()


def encode_content(content: Any) -> bytes:
    """把请求中的内容转换为 blob 字节；未提供时返回空白画板。"""
    if content is None:
        return json.dumps(DEFAULT_SCENE).encode("utf-8")
    if isinstance(content, bytes):
        return content
    if isinstance(content, str):
        return content.encode("utf-8")
    return json.dumps(content, ensure_ascii=False).encode("utf-8")


def serialize_item(item: FsItem) -> dict[str, Any]:
    return {
        "id": item.id,
        "name": item.name,
        "type": item.type,
        "parentId": item.parent_id,
        "ownerId": item.owner_id,
        "path": item.path,
        "storageProvider": item.storage_provider,
        "createdAt": format_iso(item.create_time),
        "updatedAt": format_iso(item.update_time),
    }


class ItemService:
    def __init__(self, locks: Optional[OwnerLockRegistry] = None) -> None:
        self.locks = locks or owner_locks

    # ----------------------------
    # 查询
    # ----------------------------
    def read_tree(self, db: Session, storage: StorageBackend, *, owner_id: str) -> List[FsItem]:
        """当前后端下该用户的全部条目（扁平），按创建时间升序。"""
        return fs_item_crud.list_by_owner(db, owner_id=owner_id, storage_provider=storage.provider)

    def build_tree(self, db: Session, storage: StorageBackend, *, owner_id: str) -> List[dict]:
        index = TreeIndex(self.read_tree(db, storage, owner_id=owner_id))
        return index.to_nested(serialize_item)

    def find_path_mismatches(self, db: Session, storage: StorageBackend, *, owner_id: str) -> List[PathMismatch]:
        """找出存储路径与父链不一致的条目（通常来自中途失败的移动）。"""
        index = TreeIndex(self.read_tree(db, storage, owner_id=owner_id))
        return index.path_mismatches()

    def get_item(self, db: Session, storage: StorageBackend, *, owner_id: str, item_id: str) -> FsItem:
        return self._load_owned(db, storage, owner_id=owner_id, item_id=item_id)

    # ----------------------------
    # 创建
    # ----------------------------
    def create_item(
        self,
        db: Session,
        storage: StorageBackend,
        *,
        owner_id: str,
        name: str,
        item_type: str,
        parent_id: Optional[str] = None,
        content: Any = None,
    ) -> FsItem:
        item_type = (item_type or "").strip().upper()
        if item_type not in ITEM_TYPES:
            raise ValidationError("类型仅支持 FILE 或 FOLDER")
        item_name = self._canonical_name(name, item_type)

        with self.locks.hold(owner_id):
            parent_path = ""
            if parent_id:
                parent = self._load_parent(db, storage, owner_id=owner_id, parent_id=parent_id)
                parent_path = parent.path
            else:
                parent_id = None
            path = resolve_path(parent_path, item_name)
            self._ensure_unique(
                db, owner_id=owner_id, parent_id=parent_id, provider=storage.provider, name=item_name
            )

            key = storage_key(owner_id, path)
            is_file = item_type == ITEM_TYPE_FILE
            if is_file:
                self._call_storage("save", key, storage.save, key, encode_content(content))

            try:
                item = fs_item_crud.create(
                    db,
                    {
                        "name": item_name,
                        "type": item_type,
                        "parent_id": parent_id,
                        "owner_id": owner_id,
                        "path": path,
                        "storage_provider": storage.provider,
                    },
                )
            except Exception:
                if is_file:
                    self._rollback_blob(storage, key)
                raise

        logger.info("Created %s %s for owner %s (%s)", item_type, path, owner_id, storage.provider)
        return item

    # ----------------------------
    # 重命名 / 移动
    # ----------------------------
    def update_item(
        self,
        db: Session,
        storage: StorageBackend,
        *,
        owner_id: str,
        item_id: str,
        name: Any = UNSET,
        parent_id: Any = UNSET,
    ) -> FsItem:
        """重命名和/或移动条目。``parent_id`` 为 ``None`` 或空串表示移动到根目录，``UNSET`` 表示不变。"""
        with self.locks.hold(owner_id):
            if parent_id == "":
                parent_id = None
            item = self._load_owned(db, storage, owner_id=owner_id, item_id=item_id)

            new_name = item.name
            if name is not UNSET and name is not None and name != item.name:
                new_name = self._canonical_name(name, item.type)

            new_parent_id = item.parent_id
            parent_path: Optional[str] = None
            if parent_id is not UNSET and parent_id != item.parent_id:
                if parent_id is None:
                    new_parent_id = None
                    parent_path = ""
                else:
                    parent = self._load_parent(db, storage, owner_id=owner_id, parent_id=parent_id)
                    if item.is_folder and is_ancestor(item.path, parent.path):
                        raise CycleRejectedError()
                    new_parent_id = parent.id
                    parent_path = parent.path
            if parent_path is None:
                parent_path = self._current_parent_path(db, item)

            old_path = item.path
            new_path = resolve_path(parent_path, new_name)
            if new_path == old_path:
                return item

            self._ensure_unique(
                db,
                owner_id=owner_id,
                parent_id=new_parent_id,
                provider=item.storage_provider,
                name=new_name,
                exclude_id=item.id,
            )

            old_key = storage_key(owner_id, old_path)
            new_key = storage_key(owner_id, new_path)
            self._call_storage("rename", old_key, storage.rename, old_key, new_key)

            try:
                rewritten = self._apply_move(db, item, new_name, new_parent_id, old_path, new_path)
            except Exception:
                db.rollback()
                self._rollback_rename(storage, new_key=new_key, old_key=old_key)
                raise

        logger.info(
            "Moved %s %s -> %s for owner %s (%d descendants rewritten)",
            item.type, old_path, new_path, owner_id, rewritten,
        )
        return item

    def _apply_move(
        self,
        db: Session,
        item: FsItem,
        new_name: str,
        new_parent_id: Optional[str],
        old_path: str,
        new_path: str,
    ) -> int:
        """在同一事务内更新条目与其全部后代的路径，返回改写的后代数量。"""
        descendants: List[FsItem] = []
        if item.is_folder:
            descendants = fs_item_crud.list_descendants(
                db, owner_id=item.owner_id, storage_provider=item.storage_provider, path_prefix=old_path
            )
        item.name = new_name
        item.parent_id = new_parent_id
        item.path = new_path
        fs_item_crud.save(db, item, auto_commit=False)
        for child in descendants:
            child.path = rewrite_descendant_path(old_path, new_path, child.path)
            fs_item_crud.save(db, child, auto_commit=False)
        fs_item_crud.commit(db)
        db.refresh(item)
        return len(descendants)

    # ----------------------------
    # 删除
    # ----------------------------
    def delete_item(self, db: Session, storage: StorageBackend, *, owner_id: str, item_id: str) -> int:
        """删除条目及其后代，返回删除的记录数。存储删除失败不阻断元数据删除。"""
        with self.locks.hold(owner_id):
            item = self._load_owned(db, storage, owner_id=owner_id, item_id=item_id)
            path = item.path
            key = storage_key(owner_id, path)
            try:
                storage.delete(key)
            except Exception:
                reconcile_logger.warning(
                    "ORPHAN candidate: storage delete failed, metadata removal continues provider=%s key=%s",
                    storage.provider, key, exc_info=True,
                )
            removed = fs_item_crud.delete_subtree(db, item)

        logger.info("Deleted %s for owner %s (%d records)", path, owner_id, removed)
        return removed

    # ----------------------------
    # 内容读写
    # ----------------------------
    def read_content(self, db: Session, storage: StorageBackend, *, owner_id: str, item_id: str) -> bytes:
        item = self._load_owned_file(db, storage, owner_id=owner_id, item_id=item_id)
        key = storage_key(owner_id, item.path)
        content = self._call_storage("read", key, storage.read, key)
        if content is None:
            logger.warning("Blob missing for %s, serving empty scene", key)
            return encode_content(None)
        return content

    def save_content(
        self, db: Session, storage: StorageBackend, *, owner_id: str, item_id: str, content: bytes
    ) -> FsItem:
        item = self._load_owned_file(db, storage, owner_id=owner_id, item_id=item_id)
        key = storage_key(owner_id, item.path)
        self._call_storage("save", key, storage.save, key, content)
        # 与 TimestampMixin 一致，由数据库生成时间
        item.update_time = func.now()
        return fs_item_crud.save(db, item)

    # ----------------------------
    # 工具方法
    # ----------------------------
    def _validate_name(self, name: Optional[str]) -> str:
        s = (name or "").strip()
        if not s:
            raise ValidationError("名称不能为空")
        if "/" in s or "\\" in s or s in {".", ".."}:
            raise ValidationError("名称不能包含路径分隔符")
        if len(s) > MAX_NAME_LENGTH:
            raise ValidationError("名称过长")
        return s

    def _canonical_name(self, name: Optional[str], item_type: str) -> str:
        # 后缀计入长度
        item_name = canonical_name(self._validate_name(name), item_type)
        if len(item_name) > MAX_NAME_LENGTH:
            raise ValidationError("名称过长")
        return item_name

    def _load_owned(self, db: Session, storage: StorageBackend, *, owner_id: str, item_id: str) -> FsItem:
        item = fs_item_crud.get(db, item_id)
        if item is None or item.owner_id != owner_id or item.storage_provider != storage.provider:
            raise NotFoundError()
        return item

    def _load_owned_file(self, db: Session, storage: StorageBackend, *, owner_id: str, item_id: str) -> FsItem:
        item = self._load_owned(db, storage, owner_id=owner_id, item_id=item_id)
        if not item.is_file:
            raise NotFoundError("文件不存在")
        return item

    def _load_parent(self, db: Session, storage: StorageBackend, *, owner_id: str, parent_id: str) -> FsItem:
        parent = fs_item_crud.get(db, parent_id)
        if (
            parent is None
            or parent.owner_id != owner_id
            or parent.storage_provider != storage.provider
            or not parent.is_folder
        ):
            raise InvalidParentError()
        return parent

    def _current_parent_path(self, db: Session, item: FsItem) -> str:
        if item.parent_id is None:
            return ""
        parent = fs_item_crud.get(db, item.parent_id)
        if parent is not None:
            return parent.path
        return item.path.rsplit("/", 1)[0]

    def _ensure_unique(
        self,
        db: Session,
        *,
        owner_id: str,
        parent_id: Optional[str],
        provider: str,
        name: str,
        exclude_id: Optional[str] = None,
    ) -> None:
        clash = fs_item_crud.find_siblings(
            db,
            owner_id=owner_id,
            parent_id=parent_id,
            storage_provider=provider,
            name=name,
            exclude_id=exclude_id,
        )
        if clash:
            raise DuplicateNameError()

    def _call_storage(self, action: str, key: str, fn: Callable[..., Any], *args: Any) -> Any:
        try:
            return fn(*args)
        except StorageError:
            raise
        except Exception as exc:
            logger.exception("Storage %s failed for key %s", action, key)
            raise StorageError() from exc

    def _rollback_blob(self, storage: StorageBackend, key: str) -> None:
        try:
            storage.delete(key)
            logger.info("Rolled back blob after metadata failure: %s", key)
        except Exception:
            reconcile_logger.error(
                "ORPHAN blob: rollback delete failed after metadata failure provider=%s key=%s",
                storage.provider, key, exc_info=True,
            )

    def _rollback_rename(self, storage: StorageBackend, *, new_key: str, old_key: str) -> None:
        try:
            storage.rename(new_key, old_key)
            logger.info("Rolled back blob move after metadata failure: %s -> %s", new_key, old_key)
        except Exception:
            reconcile_logger.error(
                "RECONCILE: blob left at %s while metadata still points to %s (provider=%s)",
                new_key, old_key, storage.provider, exc_info=True,
            )


item_service = ItemService()
