"""通用常量定义。"""

HTTP_STATUS_OK = 200
HTTP_STATUS_CREATED = 201
HTTP_STATUS_BAD_REQUEST = 400
HTTP_STATUS_UNAUTHORIZED = 401
HTTP_STATUS_NOT_FOUND = 404
HTTP_STATUS_CONFLICT = 409
HTTP_STATUS_BAD_GATEWAY = 502

ACCESS_TOKEN_TYPE = "bearer"

ITEM_TYPE_FILE = "FILE"
ITEM_TYPE_FOLDER = "FOLDER"
ITEM_TYPES = (ITEM_TYPE_FILE, ITEM_TYPE_FOLDER)

# 文件类节点统一携带的内容类型后缀
FILE_NAME_SUFFIX = ".excalidraw"

STORAGE_PROVIDER_LOCAL = "local"
STORAGE_PROVIDER_S3 = "s3"

# 新建文件且未提供内容时写入的空白画板
DEFAULT_SCENE = {
    "type": "excalidraw",
    "version": 2,
    "source": "drawvault",
    "elements": [],
    "appState": {"viewBackgroundColor": "#ffffff", "gridModeEnabled": False},
    "files": {},
}
