"""文件系统条目请求/响应模型。"""

from typing import Any, Optional

from pydantic import BaseModel, Field

from app.packages.drive.api.v1.schemas.common import ResponseEnvelope


class ItemCreateBody(BaseModel):
    name: str = Field(..., min_length=1)
    type: str = Field(..., pattern=r"^(FILE|FOLDER)$")
    parentId: Optional[str] = None
    content: Any = None


class ItemUpdateBody(BaseModel):
    """未出现的字段保持不变；``parentId: null`` 表示移动到根目录。"""

    name: Optional[str] = Field(None, min_length=1)
    parentId: Optional[str] = None


class ItemOut(BaseModel):
    id: str
    name: str
    type: str
    parentId: Optional[str] = None
    ownerId: str
    path: str
    storageProvider: str
    createdAt: Optional[str] = None
    updatedAt: Optional[str] = None


class ItemDeleteResult(BaseModel):
    success: bool
    removed: int


ItemResponse = ResponseEnvelope[ItemOut]
ItemListResponse = ResponseEnvelope[list[ItemOut]]
ItemTreeResponse = ResponseEnvelope[list[dict]]
ItemDeleteResponse = ResponseEnvelope[ItemDeleteResult]
