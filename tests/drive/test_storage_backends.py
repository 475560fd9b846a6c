"""存储后端契约测试：本地文件系统与 S3（内存客户端）。"""

import pytest

from app.packages.drive.core.config import Settings
from app.packages.drive.core.exceptions import AppException
from app.packages.drive.services.storage_backends import LocalBackend, S3Backend, build_backend


# ----------------------------
# LOCAL
# ----------------------------


def test_local_save_read_overwrite(local_storage: LocalBackend):
    local_storage.save("u1/a/b.excalidraw", b"one")
    assert local_storage.read("u1/a/b.excalidraw") == b"one"
    local_storage.save("u1/a/b.excalidraw", b"two")
    assert local_storage.read("u1/a/b.excalidraw") == b"two"


def test_local_read_missing_returns_none(local_storage: LocalBackend):
    assert local_storage.read("u1/nothing.excalidraw") is None
    # directories are not blobs
    local_storage.save("u1/dir/x.excalidraw", b"x")
    assert local_storage.read("u1/dir") is None


def test_local_delete_is_recursive_and_idempotent(local_storage: LocalBackend):
    local_storage.save("u1/a/b.excalidraw", b"b")
    local_storage.save("u1/a/c/d.excalidraw", b"d")
    local_storage.delete("u1/a")
    assert local_storage.read("u1/a/b.excalidraw") is None
    assert local_storage.read("u1/a/c/d.excalidraw") is None
    local_storage.delete("u1/a")


def test_local_rename_moves_whole_subtree(local_storage: LocalBackend):
    local_storage.save("u1/a/b.excalidraw", b"b")
    local_storage.save("u1/a/c/d.excalidraw", b"d")
    local_storage.rename("u1/a", "u1/x/a")
    assert local_storage.read("u1/x/a/b.excalidraw") == b"b"
    assert local_storage.read("u1/x/a/c/d.excalidraw") == b"d"
    assert local_storage.read("u1/a/b.excalidraw") is None


def test_local_rename_missing_source_is_noop(local_storage: LocalBackend):
    local_storage.rename("u1/ghost.excalidraw", "u1/elsewhere.excalidraw")
    assert local_storage.read("u1/elsewhere.excalidraw") is None


def test_local_rename_clears_orphaned_destination(local_storage: LocalBackend, reconcile_records):
    local_storage.save("u1/a/f.excalidraw", b"stale")
    local_storage.save("u1/c/g.excalidraw", b"g")
    local_storage.rename("u1/c", "u1/a")
    assert local_storage.read("u1/a/g.excalidraw") == b"g"
    assert local_storage.read("u1/a/f.excalidraw") is None
    assert local_storage.read("u1/c/g.excalidraw") is None
    assert any("ORPHAN" in r.getMessage() for r in reconcile_records)


def test_local_rejects_traversal(local_storage: LocalBackend):
    with pytest.raises(AppException):
        local_storage.save("u1/../../escape.txt", b"x")


# ----------------------------
# S3
# ----------------------------


def test_s3_save_read_and_missing(s3_storage: S3Backend, s3_client):
    s3_storage.save("u1/a/b.excalidraw", b"hello")
    assert s3_client.objects == {"u1/a/b.excalidraw": b"hello"}
    assert s3_storage.read("u1/a/b.excalidraw") == b"hello"
    assert s3_storage.read("u1/a/none.excalidraw") is None


def test_s3_delete_removes_key_and_nested_prefix(s3_storage: S3Backend, s3_client):
    for key in ("u1/a/1.excalidraw", "u1/a/2.excalidraw", "u1/a/c/3.excalidraw", "u1/ab.excalidraw"):
        s3_storage.save(key, b"x")
    s3_storage.delete("u1/a")
    # sibling sharing the textual prefix survives
    assert set(s3_client.objects) == {"u1/ab.excalidraw"}
    s3_storage.delete("u1/a")


def test_s3_rename_single_object(s3_storage: S3Backend, s3_client):
    s3_storage.save("u1/a.excalidraw", b"a")
    s3_storage.rename("u1/a.excalidraw", "u1/f/a.excalidraw")
    assert s3_client.objects == {"u1/f/a.excalidraw": b"a"}


def test_s3_rename_relocates_every_nested_key(s3_storage: S3Backend, s3_client):
    for key in ("u1/a/1.excalidraw", "u1/a/2.excalidraw", "u1/a/c/3.excalidraw", "u1/ab.excalidraw"):
        s3_storage.save(key, key.encode())
    s3_storage.rename("u1/a", "u1/x/a")
    assert set(s3_client.objects) == {
        "u1/x/a/1.excalidraw",
        "u1/x/a/2.excalidraw",
        "u1/x/a/c/3.excalidraw",
        "u1/ab.excalidraw",
    }
    assert s3_client.objects["u1/x/a/c/3.excalidraw"] == b"u1/a/c/3.excalidraw"


def test_s3_rename_missing_source_is_noop(s3_storage: S3Backend, s3_client):
    s3_storage.rename("u1/ghost", "u1/other")
    assert s3_client.objects == {}
    assert "copy_object" not in s3_client.calls


def test_s3_prefix_is_applied_to_keys(s3_client):
    backend = S3Backend(bucket="drawings", prefix="/tenant-a/", client=s3_client)
    backend.save("u1/a.excalidraw", b"a")
    assert list(s3_client.objects) == ["tenant-a/u1/a.excalidraw"]
    assert backend.read("u1/a.excalidraw") == b"a"


def test_s3_endpoint_without_scheme_gets_https():
    assert S3Backend._normalize_endpoint("oss.example.com") == "https://oss.example.com"
    assert S3Backend._normalize_endpoint("http://minio:9000") == "http://minio:9000"
    assert S3Backend._normalize_endpoint(None) is None


# ----------------------------
# 工厂
# ----------------------------


def test_build_backend_local(tmp_path):
    settings = Settings(STORAGE_PROVIDER="LOCAL", LOCAL_STORAGE_ROOT=str(tmp_path / "root"))
    backend = build_backend(settings)
    assert isinstance(backend, LocalBackend)
    assert backend.provider == "local"


def test_build_backend_rejects_incomplete_s3_and_unknown_types():
    with pytest.raises(AppException):
        build_backend(Settings(STORAGE_PROVIDER="s3"))
    with pytest.raises(AppException):
        build_backend(Settings(STORAGE_PROVIDER="ftp"))
