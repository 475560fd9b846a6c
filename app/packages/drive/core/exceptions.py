"""异常处理模块：定义统一的业务异常与响应格式。

业务异常均继承 ``AppException``，并通过 ``kind`` 区分失败类型；
全局处理器把 ``kind`` 写入响应体 ``data.error``，调用方据此分支处理。
"""

from fastapi import HTTPException, Request, status
from fastapi.responses import JSONResponse

from app.packages.drive.core.constants import (
    HTTP_STATUS_BAD_GATEWAY,
    HTTP_STATUS_BAD_REQUEST,
    HTTP_STATUS_CONFLICT,
    HTTP_STATUS_NOT_FOUND,
)


class AppException(HTTPException):
    """携带统一响应结构的业务异常，方便在全局处理中转换响应体。"""

    kind = "APP_ERROR"

    def __init__(self, msg: str, code: int = status.HTTP_400_BAD_REQUEST, data=None) -> None:
        super().__init__(status_code=code, detail=msg)
        if data is None:
            data = {"error": self.kind}
        self.data = data

    @property
    def msg(self) -> str:
        return str(self.detail)


class ValidationError(AppException):
    kind = "VALIDATION_ERROR"

    def __init__(self, msg: str = "请求参数不合法") -> None:
        super().__init__(msg, HTTP_STATUS_BAD_REQUEST)


class NotFoundError(AppException):
    """条目不存在，或不属于当前用户（两者对调用方不可区分）。"""

    kind = "NOT_FOUND"

    def __init__(self, msg: str = "条目不存在") -> None:
        super().__init__(msg, HTTP_STATUS_NOT_FOUND)


class InvalidParentError(AppException):
    kind = "INVALID_PARENT"

    def __init__(self, msg: str = "父级目录无效") -> None:
        super().__init__(msg, HTTP_STATUS_BAD_REQUEST)


class DuplicateNameError(AppException):
    kind = "DUPLICATE_NAME"

    def __init__(self, msg: str = "目标位置已存在同名文件或文件夹") -> None:
        super().__init__(msg, HTTP_STATUS_CONFLICT)


class CycleRejectedError(AppException):
    kind = "CYCLE_REJECTED"

    def __init__(self, msg: str = "不能将文件夹移动到其自身或子目录中") -> None:
        super().__init__(msg, HTTP_STATUS_BAD_REQUEST)


class StorageError(AppException):
    """存储后端读写失败。消息保持通用，不暴露存储 key 或底层异常。"""

    kind = "STORAGE_ERROR"

    def __init__(self, msg: str = "存储操作失败，请稍后重试") -> None:
        super().__init__(msg, HTTP_STATUS_BAD_GATEWAY)


class ConflictError(AppException):
    """数据库唯一约束兜底触发。"""

    kind = "CONFLICT"

    def __init__(self, msg: str = "数据冲突，请刷新后重试") -> None:
        super().__init__(msg, HTTP_STATUS_CONFLICT)


async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:  # pragma: no cover - framework glue
    """将 FastAPI 的 ``HTTPException`` 转换为统一响应格式。"""
    payload = {"msg": exc.detail, "data": getattr(exc, "data", None), "code": exc.status_code}
    return JSONResponse(status_code=exc.status_code, content=payload, headers=getattr(exc, "headers", None))


async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:  # pragma: no cover - framework glue
    """兜底处理：将未捕获异常转换为标准的 500 响应结构。"""
    payload = {
        "msg": "服务器内部错误",
        "data": None,
        "code": status.HTTP_500_INTERNAL_SERVER_ERROR,
    }
    return JSONResponse(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, content=payload)
