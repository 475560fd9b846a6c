"""物化路径计算的单元测试。"""

from app.packages.drive.utils.path_utils import (
    canonical_name,
    is_ancestor,
    resolve_path,
    rewrite_descendant_path,
    storage_key,
)


def test_resolve_path_normalizes_root_parent():
    assert resolve_path("", "a") == "/a"
    assert resolve_path("/", "a") == "/a"
    assert resolve_path(None, "a") == "/a"
    assert resolve_path("/a/b", "c.excalidraw") == "/a/b/c.excalidraw"


def test_is_ancestor_requires_segment_boundary():
    assert is_ancestor("/a", "/a")
    assert is_ancestor("/a", "/a/b")
    assert is_ancestor("/a", "/a/b/c")
    assert not is_ancestor("/a", "/ab")
    assert not is_ancestor("/a/b", "/a")


def test_rewrite_descendant_path_only_touches_leading_prefix():
    assert rewrite_descendant_path("/a", "/x/a", "/a/b.excalidraw") == "/x/a/b.excalidraw"
    # later occurrence of the prefix stays as is
    assert rewrite_descendant_path("/a", "/z", "/a/q/a/b") == "/z/q/a/b"
    assert rewrite_descendant_path("/a", "/z", "/other/a/b") == "/other/a/b"


def test_canonical_name_appends_suffix_for_files_only():
    assert canonical_name("plan", "FILE") == "plan.excalidraw"
    assert canonical_name("plan.excalidraw", "FILE") == "plan.excalidraw"
    assert canonical_name("  plan ", "FILE") == "plan.excalidraw"
    assert canonical_name("plans", "FOLDER") == "plans"


def test_storage_key_concatenates_owner_and_path():
    assert storage_key("user-1", "/a/b.excalidraw") == "user-1/a/b.excalidraw"
