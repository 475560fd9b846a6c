"""树形索引的单元测试（纯内存，不访问数据库）。"""

from app.packages.drive.models.fs_item import FsItem
from app.packages.drive.services.tree_index import TreeIndex


def _item(id, name, type, parent_id, path):
    return FsItem(
        id=id,
        name=name,
        type=type,
        parent_id=parent_id,
        owner_id="u",
        path=path,
        storage_provider="local",
    )


def _sample():
    return [
        _item("1", "a", "FOLDER", None, "/a"),
        _item("2", "b.excalidraw", "FILE", "1", "/a/b.excalidraw"),
        _item("3", "c", "FOLDER", "1", "/a/c"),
        _item("4", "d.excalidraw", "FILE", "3", "/a/c/d.excalidraw"),
        _item("5", "top.excalidraw", "FILE", None, "/top.excalidraw"),
    ]


def test_builds_forest_with_folders_first():
    index = TreeIndex(_sample())
    assert len(index) == 5
    assert [n.item.id for n in index.roots] == ["1", "5"]
    assert [i.id for i in index.children_of("1")] == ["3", "2"]
    assert [i.id for i in index.children_of(None)] == ["1", "5"]


def test_subtree_is_preorder_and_includes_root():
    index = TreeIndex(_sample())
    assert [i.id for i in index.subtree("1")] == ["1", "3", "4", "2"]
    assert index.subtree("missing") == []


def test_recomputed_paths_match_stored_paths():
    items = _sample()
    index = TreeIndex(items)
    for item in items:
        assert index.expected_path(item.id) == item.path
    assert index.path_mismatches() == []


def test_detects_descendants_left_behind_by_interrupted_move():
    items = _sample()
    # top folder renamed to /x, but the grandchild still carries the old prefix
    items[0].name = "x"
    items[0].path = "/x"
    items[1].path = "/x/b.excalidraw"
    items[2].path = "/x/c"
    index = TreeIndex(items)
    mismatches = index.path_mismatches()
    assert [(m.stored_path, m.expected_path) for m in mismatches] == [
        ("/a/c/d.excalidraw", "/x/c/d.excalidraw"),
    ]


def test_items_with_unknown_parent_are_detached_roots():
    items = [_item("9", "lost.excalidraw", "FILE", "gone", "/gone/lost.excalidraw")]
    index = TreeIndex(items)
    assert [n.item.id for n in index.detached] == ["9"]
    assert index.expected_path("9") is None


def test_to_nested_serializes_children():
    index = TreeIndex(_sample())
    nested = index.to_nested(lambda i: {"id": i.id})
    assert nested[0]["id"] == "1"
    assert [c["id"] for c in nested[0]["children"]] == ["3", "2"]
    assert nested[0]["children"][0]["children"] == [{"id": "4", "children": []}]
