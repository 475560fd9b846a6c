"""时区工具方法：支持根据配置动态获取当前时区。"""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from zoneinfo import ZoneInfo

from app.packages.drive.core.config import get_settings


def get_timezone() -> ZoneInfo:
    """返回配置指定的时区信息。"""
    return get_settings().timezone_info


def to_local(value: Optional[datetime]) -> Optional[datetime]:
    """将 ``datetime`` 转换为配置时区，支持处理空值与无时区对象。

    SQLite 取回的时间不带时区，按 UTC 解释。
    """
    if value is None:
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=ZoneInfo("UTC"))
    return value.astimezone(get_timezone())


def format_iso(value: Optional[datetime]) -> Optional[str]:
    """格式化为带时区偏移的 ISO-8601 字符串。"""
    localized = to_local(value)
    if localized is None:
        return None
    return localized.isoformat()
