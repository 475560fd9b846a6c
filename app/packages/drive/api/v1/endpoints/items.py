"""文件/文件夹条目路由。

归属用户来自访问令牌，存储后端由依赖注入提供；路由只负责参数转换与响应封装，
一致性相关的顺序与补偿全部在 ``item_service`` 中完成。
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Request, status
from fastapi.responses import Response
from sqlalchemy.orm import Session
from starlette.concurrency import run_in_threadpool

from app.packages.drive.api.v1.schemas.items import (
    ItemCreateBody,
    ItemDeleteResponse,
    ItemListResponse,
    ItemResponse,
    ItemTreeResponse,
    ItemUpdateBody,
)
from app.packages.drive.core.constants import HTTP_STATUS_CREATED, HTTP_STATUS_OK
from app.packages.drive.core.dependencies import get_current_owner, get_db, get_storage
from app.packages.drive.core.responses import create_response
from app.packages.drive.services.item_service import UNSET, item_service, serialize_item
from app.packages.drive.services.storage_backends import StorageBackend

router = APIRouter(tags=["items"])


@router.get("/items", response_model=ItemListResponse)
def list_items(
    db: Session = Depends(get_db),
    storage: StorageBackend = Depends(get_storage),
    owner_id: str = Depends(get_current_owner),
):
    """返回当前用户在当前存储后端下的全部条目（扁平列表，由前端组装树）。"""
    items = item_service.read_tree(db, storage, owner_id=owner_id)
    return create_response("获取文件列表成功", [serialize_item(i) for i in items], HTTP_STATUS_OK)


@router.get("/items/tree", response_model=ItemTreeResponse)
def get_tree(
    db: Session = Depends(get_db),
    storage: StorageBackend = Depends(get_storage),
    owner_id: str = Depends(get_current_owner),
):
    tree = item_service.build_tree(db, storage, owner_id=owner_id)
    return create_response("获取目录树成功", tree, HTTP_STATUS_OK)


@router.post("/items", response_model=ItemResponse, status_code=status.HTTP_201_CREATED)
def create_item(
    body: ItemCreateBody,
    db: Session = Depends(get_db),
    storage: StorageBackend = Depends(get_storage),
    owner_id: str = Depends(get_current_owner),
):
    item = item_service.create_item(
        db,
        storage,
        owner_id=owner_id,
        name=body.name,
        item_type=body.type,
        parent_id=body.parentId,
        content=body.content,
    )
    return create_response("创建成功", serialize_item(item), HTTP_STATUS_CREATED)


@router.patch("/items/{item_id}", response_model=ItemResponse)
def update_item(
    item_id: str,
    body: ItemUpdateBody,
    db: Session = Depends(get_db),
    storage: StorageBackend = Depends(get_storage),
    owner_id: str = Depends(get_current_owner),
):
    """重命名或移动条目。请求体中未出现 ``parentId`` 时保持原父级。"""
    fields = body.model_fields_set
    item = item_service.update_item(
        db,
        storage,
        owner_id=owner_id,
        item_id=item_id,
        name=body.name if "name" in fields else UNSET,
        parent_id=body.parentId if "parentId" in fields else UNSET,
    )
    return create_response("更新成功", serialize_item(item), HTTP_STATUS_OK)


@router.delete("/items/{item_id}", response_model=ItemDeleteResponse)
def delete_item(
    item_id: str,
    db: Session = Depends(get_db),
    storage: StorageBackend = Depends(get_storage),
    owner_id: str = Depends(get_current_owner),
):
    removed = item_service.delete_item(db, storage, owner_id=owner_id, item_id=item_id)
    return create_response("删除成功", {"success": True, "removed": removed}, HTTP_STATUS_OK)


@router.get("/items/{item_id}/content")
def read_content(
    item_id: str,
    db: Session = Depends(get_db),
    storage: StorageBackend = Depends(get_storage),
    owner_id: str = Depends(get_current_owner),
):
    content = item_service.read_content(db, storage, owner_id=owner_id, item_id=item_id)
    return Response(content=content, media_type="application/json")


@router.put("/items/{item_id}/content", response_model=ItemResponse)
async def save_content(
    item_id: str,
    request: Request,
    db: Session = Depends(get_db),
    storage: StorageBackend = Depends(get_storage),
    owner_id: str = Depends(get_current_owner),
):
    """以原始请求体整体覆盖文件内容，并刷新更新时间。"""
    content = await request.body()
    item = await run_in_threadpool(
        item_service.save_content,
        db,
        storage,
        owner_id=owner_id,
        item_id=item_id,
        content=content,
    )
    return create_response("保存成功", serialize_item(item), HTTP_STATUS_OK)
