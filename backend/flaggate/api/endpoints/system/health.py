"""
健康检查 API 端点
同时挂载在根路径和 /api/v1 下
"""

from datetime import datetime
from typing import Any, Dict

from fastapi import APIRouter, Depends, HTTPException
from loguru import logger
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from flaggate.core.config import settings
from flaggate.db.database import get_db
from flaggate.utils.cache import cache

router = APIRouter()


async def _database_status(db: AsyncSession) -> str:
    result = await db.execute(text("SELECT 1"))
    return "healthy" if result.scalar() == 1 else "unhealthy"


async def _cache_status() -> str:
    if not settings.FEATURE_FLAG_CACHE_ENABLED:
        return "disabled"
    try:
        client = await cache.get_client()
        pong = await client.ping()
    except Exception as e:
        logger.warning(f"开关缓存健康检查失败: {e}")
        return "unhealthy"
    return "healthy" if pong is True or pong == "PONG" else "unhealthy"


def _overall(db_status: str, redis_status: str) -> str:
    # 缓存故障时评估直连数据库，只算降级
    if db_status != "healthy":
        return "unhealthy"
    return "degraded" if redis_status == "unhealthy" else "healthy"


@router.get("/health")
async def health_check(db: AsyncSession = Depends(get_db)) -> Dict[str, Any]:
    """
    健康检查接口

    数据库不可达时返回 503；Redis 不可达时 status 为 degraded。
    """
    try:
        db_status = await _database_status(db)
    except SQLAlchemyError as e:
        logger.error(f"数据库健康检查失败: {e}")
        raise HTTPException(
            status_code=503,
            detail={"status": "unhealthy", "service": settings.PROJECT_NAME, "error": str(e)},
        )

    redis_status = await _cache_status()
    return {
        "status": _overall(db_status, redis_status),
        "checks": {"database": db_status, "redis": redis_status},
        "system": {
            "service": settings.PROJECT_NAME,
            "version": settings.VERSION,
            "environment": settings.DEPLOYMENT_ENV,
            "cache_ttl_seconds": settings.FEATURE_FLAG_CACHE_TTL if redis_status != "disabled" else None,
            "timestamp": datetime.now().isoformat(),
        },
    }


@router.get("/ping")
async def ping() -> Dict[str, str]:
    return {"message": "pong", "service": settings.PROJECT_NAME}


@router.get("/version")
async def version() -> Dict[str, str]:
    """服务与 API 版本"""
    return {
        "name": settings.PROJECT_NAME,
        "version": settings.VERSION,
        "api_version": settings.API_V1_STR,
        "environment": settings.DEPLOYMENT_ENV,
    }
