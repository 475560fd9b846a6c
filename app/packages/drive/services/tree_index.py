"""树形索引：由扁平的条目记录重建单个用户的目录森林。

只在内存中工作，不访问数据库或存储后端；用于向调用方返回层级结构、
定位子树，以及按父链重新计算路径以发现被中断的移动留下的不一致。
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Callable, Dict, Iterable, List, Optional

from app.packages.drive.models.fs_item import FsItem
from app.packages.drive.utils.path_utils import resolve_path


@dataclass
class TreeNode:
    item: FsItem
    children: List["TreeNode"] = field(default_factory=list)


@dataclass
class PathMismatch:
    item: FsItem
    stored_path: str
    expected_path: str


class TreeIndex:
    def __init__(self, items: Iterable[FsItem]):
        self._nodes: Dict[str, TreeNode] = {}
        self.roots: List[TreeNode] = []
        # 父节点不在记录集中的条目（父记录缺失或属于其他后端），按根节点处理
        self.detached: List[TreeNode] = []

        ordered = list(items)
        for item in ordered:
            self._nodes[item.id] = TreeNode(item=item)
        for item in ordered:
            node = self._nodes[item.id]
            if item.parent_id is None:
                self.roots.append(node)
            elif item.parent_id in self._nodes:
                self._nodes[item.parent_id].children.append(node)
            else:
                self.roots.append(node)
                self.detached.append(node)

        for node in self._nodes.values():
            node.children.sort(key=_sort_key)
        self.roots.sort(key=_sort_key)

    def __len__(self) -> int:
        return len(self._nodes)

    def __contains__(self, item_id: object) -> bool:
        return item_id in self._nodes

    def get(self, item_id: str) -> Optional[TreeNode]:
        return self._nodes.get(item_id)

    def children_of(self, item_id: Optional[str]) -> List[FsItem]:
        if item_id is None:
            return [n.item for n in self.roots if n.item.parent_id is None]
        node = self._nodes.get(item_id)
        return [c.item for c in node.children] if node else []

    def subtree(self, item_id: str) -> List[FsItem]:
        """返回以 ``item_id`` 为根的子树（含自身），先序遍历。"""
        node = self._nodes.get(item_id)
        if node is None:
            return []
        result: List[FsItem] = []
        stack = [node]
        while stack:
            current = stack.pop()
            result.append(current.item)
            stack.extend(reversed(current.children))
        return result

    def expected_path(self, item_id: str) -> Optional[str]:
        """按父链拼接名称得到的路径；父链断裂或成环时返回 ``None``。"""
        names: List[str] = []
        seen: set[str] = set()
        current = self._nodes.get(item_id)
        while current is not None:
            if current.item.id in seen:
                return None
            seen.add(current.item.id)
            names.append(current.item.name)
            parent_id = current.item.parent_id
            if parent_id is None:
                break
            current = self._nodes.get(parent_id)
            if current is None:
                return None
        if not names:
            return None
        path = ""
        for name in reversed(names):
            path = resolve_path(path, name)
        return path

    def path_mismatches(self) -> List[PathMismatch]:
        mismatches: List[PathMismatch] = []
        for item_id, node in self._nodes.items():
            expected = self.expected_path(item_id)
            if expected is not None and expected != node.item.path:
                mismatches.append(PathMismatch(node.item, node.item.path, expected))
        mismatches.sort(key=lambda m: m.stored_path)
        return mismatches

    def to_nested(self, serialize: Callable[[FsItem], dict]) -> List[dict]:
        def _walk(node: TreeNode) -> dict:
            data = serialize(node.item)
            data["children"] = [_walk(c) for c in node.children]
            return data

        return [_walk(n) for n in self.roots]


def _sort_key(node: TreeNode):
    # 文件夹在前，同类按名称
    return (0 if node.item.is_folder else 1, node.item.name.lower())
