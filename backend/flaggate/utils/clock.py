"""
时间工具
统一使用带时区的 UTC 时间，避免服务器本地时区影响审计与日志时间戳
"""

from datetime import datetime, timezone


def utcnow() -> datetime:
    """当前 UTC 时间"""
    return datetime.now(timezone.utc)
