"""存储后端抽象与实现：统一封装本地与 S3 的 blob 操作。

所有方法接收的 key 均为 ``owner_id + path``（见 ``utils.path_utils.storage_key``）。
两种实现遵循同一约定：
- ``save`` 覆盖写入并按需创建中间结构；
- ``read`` 在 key 不存在时返回 ``None`` 而不是抛错；
- ``delete`` 递归删除 key 及其下所有内容，key 不存在时视为成功；
- ``rename`` 把 key 及其下所有内容迁移到新 key，源不存在时为空操作（便于重试）。
"""

from __future__ import annotations

import shutil
from pathlib import Path
from typing import List, Optional

import boto3
from botocore.exceptions import ClientError

from app.packages.drive.core.config import Settings
from app.packages.drive.core.constants import (
    HTTP_STATUS_BAD_REQUEST,
    STORAGE_PROVIDER_LOCAL,
    STORAGE_PROVIDER_S3,
)
from app.packages.drive.core.exceptions import AppException
from app.packages.drive.core.logger import logger, reconcile_logger


class StorageBackend:
    """存储后端接口。"""

    provider: str = ""

    def save(self, key: str, content: bytes) -> None:
        raise NotImplementedError

    def read(self, key: str) -> Optional[bytes]:
        raise NotImplementedError

    def delete(self, key: str) -> None:
        raise NotImplementedError

    def rename(self, old_key: str, new_key: str) -> None:
        raise NotImplementedError


# ------------------------------------------
# 本地文件系统实现
# ------------------------------------------


class LocalBackend(StorageBackend):
    """key 直接映射到根目录下的真实路径；目录级 rename 一次性搬迁整棵子树。"""

    provider = STORAGE_PROVIDER_LOCAL

    def __init__(self, root: str | Path):
        self.root = Path(root).resolve()
        self.root.mkdir(parents=True, exist_ok=True)

    # 统一的安全路径拼接，防止路径遍历
    def _resolve(self, key: str) -> Path:
        rel_norm = key.strip().lstrip("/")
        candidate = (self.root / rel_norm).resolve()
        try:
            candidate.relative_to(self.root)
        except ValueError as exc:
            raise AppException("非法路径: 越权访问", HTTP_STATUS_BAD_REQUEST) from exc
        if candidate == self.root:
            raise AppException("非法路径: 不允许操作存储根目录", HTTP_STATUS_BAD_REQUEST)
        return candidate

    def save(self, key: str, content: bytes) -> None:
        target = self._resolve(key)
        target.parent.mkdir(parents=True, exist_ok=True)
        with open(target, "wb") as f:
            f.write(content)

    def read(self, key: str) -> Optional[bytes]:
        target = self._resolve(key)
        if not target.is_file():
            return None
        return target.read_bytes()

    def delete(self, key: str) -> None:
        target = self._resolve(key)
        if not target.exists():
            # 允许幂等：不存在则忽略
            return
        if target.is_dir():
            shutil.rmtree(target)
        else:
            target.unlink()

    def rename(self, old_key: str, new_key: str) -> None:
        src = self._resolve(old_key)
        dst = self._resolve(new_key)
        if not src.exists():
            logger.debug("Local rename skipped, source missing: %s", old_key)
            return
        if dst.exists():
            # 目标处残留的孤儿内容
            reconcile_logger.warning("ORPHAN cleared before local rename: %s", new_key)
            if dst.is_dir():
                shutil.rmtree(dst)
            else:
                dst.unlink()
        dst.parent.mkdir(parents=True, exist_ok=True)
        src.replace(dst)


# ------------------------------------------
# S3 实现（boto3）
# ------------------------------------------


class S3Backend(StorageBackend):
    """S3 兼容对象存储。

    对象存储没有目录概念，rename 需要先迁移 key 本身，再枚举 ``key + '/'``
    前缀下的全部对象逐个复制、删除，才能让文件夹移动带上其中的内容。
    """

    provider = STORAGE_PROVIDER_S3

    _NOT_FOUND_CODES = {"NoSuchKey", "NotFound", "404"}

    def __init__(
        self,
        *,
        bucket: str,
        region: Optional[str] = None,
        access_key_id: Optional[str] = None,
        secret_access_key: Optional[str] = None,
        endpoint_url: Optional[str] = None,
        prefix: Optional[str] = None,
        client=None,
    ):
        self.bucket = bucket
        self.prefix = (prefix or "").strip("/")
        if client is None:
            client = boto3.client(
                "s3",
                region_name=region,
                endpoint_url=self._normalize_endpoint(endpoint_url),
                aws_access_key_id=access_key_id,
                aws_secret_access_key=secret_access_key,
            )
        self._client = client

    @staticmethod
    def _normalize_endpoint(endpoint_url: Optional[str]) -> Optional[str]:
        # 兼容未写协议的 S3 兼容服务地址（例如 oss-cn-hangzhou.aliyuncs.com）
        if not endpoint_url:
            return None
        if endpoint_url.startswith(("http://", "https://")):
            return endpoint_url
        return f"https://{endpoint_url}"

    # 拼接基于 prefix 的对象 key
    def _join_key(self, key: str) -> str:
        rel_norm = key.lstrip("/")
        if self.prefix:
            return f"{self.prefix}/{rel_norm}"
        return rel_norm

    def _is_not_found(self, exc: ClientError) -> bool:
        code = str(exc.response.get("Error", {}).get("Code", ""))
        status_code = exc.response.get("ResponseMetadata", {}).get("HTTPStatusCode")
        return code in self._NOT_FOUND_CODES or status_code == 404

    def _exists(self, full_key: str) -> bool:
        try:
            self._client.head_object(Bucket=self.bucket, Key=full_key)
            return True
        except ClientError as exc:
            if self._is_not_found(exc):
                return False
            raise

    def _list_keys(self, full_prefix: str) -> List[str]:
        paginator = self._client.get_paginator("list_objects_v2")
        keys: List[str] = []
        for page in paginator.paginate(Bucket=self.bucket, Prefix=full_prefix):
            for obj in page.get("Contents", []):
                keys.append(obj["Key"])
        return keys

    def _delete_keys(self, keys: List[str]) -> None:
        # 批量删除（分批防止一次过多）
        for i in range(0, len(keys), 1000):
            batch = [{"Key": k} for k in keys[i : i + 1000]]
            if batch:
                self._client.delete_objects(Bucket=self.bucket, Delete={"Objects": batch})

    def _copy(self, src_key: str, dst_key: str) -> None:
        self._client.copy_object(
            Bucket=self.bucket,
            Key=dst_key,
            CopySource={"Bucket": self.bucket, "Key": src_key},
        )

    def save(self, key: str, content: bytes) -> None:
        self._client.put_object(Bucket=self.bucket, Key=self._join_key(key), Body=content)

    def read(self, key: str) -> Optional[bytes]:
        try:
            resp = self._client.get_object(Bucket=self.bucket, Key=self._join_key(key))
        except ClientError as exc:
            if self._is_not_found(exc):
                return None
            raise
        body = resp.get("Body")
        if body is None:
            return None
        return body.read()

    def delete(self, key: str) -> None:
        full_key = self._join_key(key)
        self._client.delete_object(Bucket=self.bucket, Key=full_key)
        nested = self._list_keys(full_key.rstrip("/") + "/")
        self._delete_keys(nested)

    def rename(self, old_key: str, new_key: str) -> None:
        src_key = self._join_key(old_key)
        dst_key = self._join_key(new_key)
        moved: List[str] = []

        if self._exists(src_key):
            self._copy(src_key, dst_key)
            moved.append(src_key)

        src_prefix = src_key.rstrip("/") + "/"
        dst_prefix = dst_key.rstrip("/") + "/"
        for key in self._list_keys(src_prefix):
            self._copy(key, dst_prefix + key[len(src_prefix) :])
            moved.append(key)

        if not moved:
            logger.debug("S3 rename skipped, source missing: %s", old_key)
            return
        # 全部复制成功后再删除源，中途失败时源数据仍完整
        self._delete_keys(moved)


def build_backend(settings: Settings) -> StorageBackend:
    """根据配置构建当前启用的存储后端。"""
    t = settings.normalized_storage_provider
    if t == STORAGE_PROVIDER_LOCAL:
        return LocalBackend(settings.local_storage_directory)
    if t == STORAGE_PROVIDER_S3:
        if not settings.s3_bucket:
            raise AppException("S3 配置不完整：缺少 AWS_S3_BUCKET", HTTP_STATUS_BAD_REQUEST)
        return S3Backend(
            bucket=settings.s3_bucket,
            region=settings.s3_region,
            access_key_id=settings.s3_access_key_id,
            secret_access_key=settings.s3_secret_access_key,
            endpoint_url=settings.s3_endpoint,
            prefix=settings.s3_prefix,
        )
    raise AppException("不支持的存储类型", HTTP_STATUS_BAD_REQUEST)
