"""测试夹具：为 pytest 提供数据库、存储后端与客户端的共享配置。"""

import os
import tempfile
from typing import Callable, Generator

TEST_DB_PATH = os.path.join(os.path.dirname(__file__), "test.db")
TEST_DATABASE_URL = f"sqlite:///{TEST_DB_PATH}"

# 必须在导入应用之前设置，避免加载默认的 PostgreSQL 配置与日志目录
os.environ.setdefault("DATABASE_URL", TEST_DATABASE_URL)
os.environ.setdefault("LOG_DIR", tempfile.mkdtemp(prefix="drawvault_logs_"))
os.environ.setdefault("JWT_SECRET_KEY", "test-secret")
os.environ.setdefault("STORAGE_PROVIDER", "local")

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import Session, sessionmaker

from app.main import app
from app.packages.drive.core.dependencies import get_db, get_storage
from app.packages.drive.core.security import create_access_token
from app.packages.drive.db import session as db_session
from app.packages.drive.db.init_db import init_db
from app.packages.drive.models.fs_item import FsItem
from app.packages.drive.services.storage_backends import LocalBackend


@pytest.fixture(scope="session", autouse=True)
def setup_test_database() -> Generator[None, None, None]:
    """创建隔离的 SQLite 测试数据库，并在会话结束后清理。"""
    if os.path.exists(TEST_DB_PATH):
        os.remove(TEST_DB_PATH)

    engine = db_session.build_engine(TEST_DATABASE_URL)
    TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

    db_session.engine = engine
    db_session.SessionLocal = TestingSessionLocal

    init_db()
    yield

    engine.dispose()
    if os.path.exists(TEST_DB_PATH):
        os.remove(TEST_DB_PATH)


@pytest.fixture(autouse=True)
def clean_items() -> Generator[None, None, None]:
    """每个用例结束后清空条目表，保证用例之间互不影响。"""
    yield
    session = db_session.SessionLocal()
    try:
        session.query(FsItem).delete()
        session.commit()
    finally:
        session.close()


@pytest.fixture()
def db_session_fixture() -> Generator[Session, None, None]:
    """提供给测试用例使用的数据库会话。"""
    session = db_session.SessionLocal()
    try:
        yield session
    finally:
        session.rollback()
        session.close()


@pytest.fixture()
def local_storage(tmp_path) -> LocalBackend:
    return LocalBackend(tmp_path / "blobs")


@pytest.fixture()
def client(local_storage):
    """构建 FastAPI TestClient，并注入测试专用的数据库与存储依赖。"""
    def override_get_db() -> Generator[Session, None, None]:
        session = db_session.SessionLocal()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_storage] = lambda: local_storage

    with TestClient(app) as test_client:
        yield test_client

    app.dependency_overrides.clear()


@pytest.fixture()
def auth_headers() -> Callable[[str], dict[str, str]]:
    """按归属用户生成 Bearer 认证头。"""
    def _headers(owner_id: str = "user-1") -> dict[str, str]:
        token = create_access_token({"sub": owner_id})
        return {"Authorization": f"Bearer {token}"}

    return _headers
