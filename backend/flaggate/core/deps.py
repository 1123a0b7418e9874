"""
FastAPI 依赖注入工具 - 管理端鉴权与请求上下文
"""

import hmac
from typing import Any, Dict, Optional

from fastapi import Header, HTTPException, Request, status

from flaggate.core.config import settings
from flaggate.db.database import get_db

__all__ = ["get_db", "get_trace_id", "require_admin"]


async def require_admin(
    x_admin_token: Optional[str] = Header(default=None, alias="X-Admin-Token"),
    x_actor_id: Optional[str] = Header(default=None, alias="X-Actor-Id"),
) -> Dict[str, Any]:
    """
    校验管理员令牌

    返回:
        操作人信息字典（actor_id 来自 X-Actor-Id，缺省为 None 即系统操作）

    异常:
        401: 未提供令牌
        403: 令牌无效
    """
    if not x_admin_token:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="未提供管理员令牌",
        )
    if not hmac.compare_digest(x_admin_token.encode("utf-8"), settings.ADMIN_TOKEN.encode("utf-8")):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="管理员令牌无效",
        )
    actor_id = (x_actor_id or "").strip() or None
    return {"actor_id": actor_id, "role_code": "admin"}


def get_trace_id(request: Request) -> Optional[str]:
    """读取 RequestIdMiddleware 写入的请求ID"""
    return getattr(request.state, "request_id", None)
