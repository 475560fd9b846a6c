"""条目模块测试夹具：内存版 S3 客户端与可注入故障的存储后端。"""

import logging
from typing import Dict, Iterator, List, Optional

import pytest
from botocore.exceptions import ClientError

from app.packages.drive.core.logger import reconcile_logger
from app.packages.drive.services.storage_backends import LocalBackend, S3Backend


def _client_error(code: str, status: int, op: str) -> ClientError:
    return ClientError(
        {"Error": {"Code": code, "Message": code}, "ResponseMetadata": {"HTTPStatusCode": status}},
        op,
    )


class _Body:
    def __init__(self, data: bytes):
        self._data = data

    def read(self) -> bytes:
        return self._data


class _Paginator:
    def __init__(self, client: "InMemoryS3Client"):
        self._client = client

    def paginate(self, *, Bucket: str, Prefix: str = ""):
        keys = sorted(k for k in self._client.objects if k.startswith(Prefix))
        size = self._client.page_size
        if not keys:
            yield {"KeyCount": 0}
            return
        for i in range(0, len(keys), size):
            chunk = keys[i : i + size]
            yield {"KeyCount": len(chunk), "Contents": [{"Key": k, "Size": len(self._client.objects[k])} for k in chunk]}


class InMemoryS3Client:
    """只实现后端用到的 boto3 S3 客户端方法，按 key 保存对象。"""

    def __init__(self, page_size: int = 2):
        self.objects: Dict[str, bytes] = {}
        self.page_size = page_size
        self.calls: List[str] = []

    def put_object(self, *, Bucket: str, Key: str, Body: bytes = b""):
        self.calls.append("put_object")
        self.objects[Key] = bytes(Body)
        return {}

    def get_object(self, *, Bucket: str, Key: str):
        self.calls.append("get_object")
        if Key not in self.objects:
            raise _client_error("NoSuchKey", 404, "GetObject")
        return {"Body": _Body(self.objects[Key])}

    def head_object(self, *, Bucket: str, Key: str):
        self.calls.append("head_object")
        if Key not in self.objects:
            raise _client_error("404", 404, "HeadObject")
        return {"ContentLength": len(self.objects[Key])}

    def copy_object(self, *, Bucket: str, Key: str, CopySource: dict):
        self.calls.append("copy_object")
        src = CopySource["Key"]
        if src not in self.objects:
            raise _client_error("NoSuchKey", 404, "CopyObject")
        self.objects[Key] = self.objects[src]
        return {}

    def delete_object(self, *, Bucket: str, Key: str):
        self.calls.append("delete_object")
        self.objects.pop(Key, None)
        return {}

    def delete_objects(self, *, Bucket: str, Delete: dict):
        self.calls.append("delete_objects")
        for obj in Delete["Objects"]:
            self.objects.pop(obj["Key"], None)
        return {}

    def get_paginator(self, name: str):
        assert name == "list_objects_v2"
        return _Paginator(self)


class FlakyBackend(LocalBackend):
    """本地后端的故障注入版本：按开关让指定操作抛出 IO 异常。"""

    def __init__(self, root):
        super().__init__(root)
        self.fail_on: set[str] = set()
        self.calls: List[tuple] = []

    def _maybe_fail(self, op: str) -> None:
        if op in self.fail_on:
            raise OSError(f"injected {op} failure")

    def save(self, key: str, content: bytes) -> None:
        self.calls.append(("save", key))
        self._maybe_fail("save")
        super().save(key, content)

    def read(self, key: str) -> Optional[bytes]:
        self.calls.append(("read", key))
        self._maybe_fail("read")
        return super().read(key)

    def delete(self, key: str) -> None:
        self.calls.append(("delete", key))
        self._maybe_fail("delete")
        super().delete(key)

    def rename(self, old_key: str, new_key: str) -> None:
        self.calls.append(("rename", old_key, new_key))
        self._maybe_fail("rename")
        super().rename(old_key, new_key)


@pytest.fixture()
def s3_client() -> InMemoryS3Client:
    return InMemoryS3Client()


@pytest.fixture()
def s3_storage(s3_client) -> S3Backend:
    return S3Backend(bucket="drawings", client=s3_client)


@pytest.fixture()
def flaky_storage(tmp_path) -> FlakyBackend:
    return FlakyBackend(tmp_path / "flaky")


class _ListHandler(logging.Handler):
    def __init__(self) -> None:
        super().__init__(level=logging.DEBUG)
        self.records: List[logging.LogRecord] = []

    def emit(self, record: logging.LogRecord) -> None:
        self.records.append(record)


@pytest.fixture()
def reconcile_records() -> Iterator[List[logging.LogRecord]]:
    """收集对账 logger 的输出。``app`` logger 不向根传播，caplog 捕获不到。"""
    handler = _ListHandler()
    reconcile_logger.addHandler(handler)
    try:
        yield handler.records
    finally:
        reconcile_logger.removeHandler(handler)
