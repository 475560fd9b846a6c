"""文件系统条目模型（文件与文件夹合并为一张表）。

存储规则：
- path：物化路径，以 '/' 开头、不以 '/' 结尾，等于父级 path（根为 ""）拼接 "/" + name；
- type：FILE 或 FOLDER，创建后不可修改；
- owner_id：归属用户，所有唯一性校验与存储 key 均按用户隔离；
- storage_provider：blob 所在后端的标签，由当前注入的后端决定；
- 文件的 blob 位于 key = owner_id + path；文件夹自身没有 blob。
"""

import uuid
from typing import Optional

from sqlalchemy import ForeignKey, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from app.packages.drive.core.constants import ITEM_TYPE_FILE, ITEM_TYPE_FOLDER
from app.packages.drive.models.base import Base, TimestampMixin


def _new_id() -> str:
    return str(uuid.uuid4())


class FsItem(TimestampMixin, Base):
    __tablename__ = "fs_items"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    name: Mapped[str] = mapped_column(String(255), index=True)
    type: Mapped[str] = mapped_column(String(16))
    parent_id: Mapped[Optional[str]] = mapped_column(
        String(36),
        ForeignKey("fs_items.id", ondelete="CASCADE"),
        nullable=True,
        index=True,
    )
    owner_id: Mapped[str] = mapped_column(String(64), index=True)
    path: Mapped[str] = mapped_column(String(1024), index=True)
    storage_provider: Mapped[str] = mapped_column(String(32), index=True)

    __table_args__ = (
        UniqueConstraint(
            "owner_id", "parent_id", "storage_provider", "name",
            name="uq_fs_items_owner_parent_provider_name",
        ),
        # parent_id 为 NULL 时上一个约束不生效，按 path 再兜底一次
        UniqueConstraint("owner_id", "storage_provider", "path", name="uq_fs_items_owner_provider_path"),
    )

    @property
    def is_file(self) -> bool:
        return self.type == ITEM_TYPE_FILE

    @property
    def is_folder(self) -> bool:
        return self.type == ITEM_TYPE_FOLDER
