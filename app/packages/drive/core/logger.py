"""日志配置模块：提供彩色输出能力并统一全局日志格式。"""

import json
import logging
import logging.config
import sys
from contextvars import ContextVar
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Optional

from .config import get_settings


class _TZFormatter(logging.Formatter):
    """Formatter that renders timestamps in Settings.timezone.

    Falls back to ISO-8601 with milliseconds when no datefmt is provided.
    """

    def formatTime(self, record: logging.LogRecord, datefmt: str | None = None) -> str:  # noqa: D401
        tz = get_settings().timezone_info
        dt = datetime.fromtimestamp(record.created, tz)
        if datefmt:
            return dt.strftime(datefmt)
        return dt.isoformat(sep=" ", timespec="milliseconds")


class ColorFormatter(_TZFormatter):
    """ANSI 彩色格式化器：根据不同日志级别渲染不同颜色，便于快速辨识。"""

    RESET = "\033[0m"
    COLORS = {
        logging.DEBUG: "\033[36m",   # Cyan
        logging.INFO: "\033[32m",    # Green
        logging.WARNING: "\033[33m", # Yellow
        logging.ERROR: "\033[31m",   # Red
        logging.CRITICAL: "\033[41m",  # Red background
    }

    def __init__(
        self,
        fmt: str,
        datefmt: Optional[str] = None,
        style: str = "%",
        use_colors: Optional[bool] = None,
    ) -> None:
        super().__init__(fmt=fmt, datefmt=datefmt, style=style)
        if use_colors is None:
            use_colors = sys.stderr.isatty()
        self.use_colors = use_colors

    def format(self, record: logging.LogRecord) -> str:
        message = super().format(record)
        if not self.use_colors:
            return message

        color = self.COLORS.get(record.levelno)
        if not color:
            return message

        return f"{color}{message}{self.RESET}"


class JsonFormatter(_TZFormatter):
    """Structured JSON formatter for logs."""

    def format(self, record: logging.LogRecord) -> str:
        payload = {
            "ts": self.formatTime(record, datefmt=None),
            "logger": record.name,
            "level": record.levelname,
            "msg": record.getMessage(),
            "request_id": getattr(record, "request_id", None),
        }
        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(payload, ensure_ascii=False)


_request_id_ctx: ContextVar[Optional[str]] = ContextVar("request_id", default=None)


class RequestIdFilter(logging.Filter):
    """Injects request_id from contextvars into every LogRecord."""

    def filter(self, record: logging.LogRecord) -> bool:  # noqa: D401
        setattr(record, "request_id", _request_id_ctx.get())
        return True


def _file_handler(path: Path, level: str, formatter: str) -> Dict[str, Any]:
    return {
        "level": level,
        "class": "logging.handlers.TimedRotatingFileHandler",
        "formatter": formatter,
        "filename": str(path),
        "when": "midnight",
        "backupCount": 14,
        "encoding": "utf-8",
        "delay": True,
        "filters": ["request_id"],
    }


def setup_logging() -> None:
    """初始化日志：控制台 + 按天滚动的应用日志，对账记录另写一份独立文件。"""
    settings = get_settings()
    settings.log_directory.mkdir(parents=True, exist_ok=True)
    level = settings.log_level

    line_format = "%(asctime)s - %(name)s - %(levelname)s - [%(request_id)s] %(message)s"
    console_formatter = "json" if settings.log_json else "standard"
    file_formatter = "json" if settings.log_json else "plain"
    app_handlers = ["default", "file"]

    loggers: Dict[str, Dict[str, Any]] = {
        name: {"handlers": app_handlers, "level": level, "propagate": False}
        for name in ("uvicorn", "uvicorn.error", "uvicorn.access", "app")
    }
    # 对账记录同时写入独立文件，并继续向 "app" 传播
    loggers["app.reconcile"] = {"handlers": ["reconcile"], "level": "WARNING", "propagate": True}

    logging.config.dictConfig(
        {
            "version": 1,
            "disable_existing_loggers": False,
            "formatters": {
                "standard": {"()": f"{__name__}.ColorFormatter", "format": line_format},
                "plain": {"()": f"{__name__}._TZFormatter", "format": line_format},
                "json": {"()": f"{__name__}.JsonFormatter"},
            },
            "filters": {"request_id": {"()": f"{__name__}.RequestIdFilter"}},
            "handlers": {
                "default": {
                    "level": level,
                    "class": "logging.StreamHandler",
                    "formatter": console_formatter,
                    "filters": ["request_id"],
                },
                "file": _file_handler(settings.log_file_path, level, file_formatter),
                "reconcile": _file_handler(settings.reconcile_log_file_path, "WARNING", file_formatter),
            },
            "loggers": loggers,
            "root": {"handlers": app_handlers, "level": level},
        }
    )


logger = logging.getLogger("app")

# 跨存储不一致（孤儿 blob、路径分叉）
reconcile_logger = logging.getLogger("app.reconcile")


def set_request_id(request_id: Optional[str]) -> None:
    _request_id_ctx.set(request_id)


def get_request_id() -> Optional[str]:
    return _request_id_ctx.get()
