"""
开关存储连接
异步引擎、会话工厂与开发环境建表
"""

from typing import Any, AsyncGenerator, Dict
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase
from sqlalchemy.pool import StaticPool
from loguru import logger

from flaggate.core.config import settings


class Base(DeclarativeBase):
    pass


if not settings.DATABASE_URL:
    raise ValueError("DATABASE_URL 未配置，请检查 .env 中的数据库配置")

DATABASE_URL = str(settings.DATABASE_URL)


def _engine_options(url: str) -> Dict[str, Any]:
    # SQLite 只用于测试和本地调试，单连接共享
    if url.startswith("sqlite"):
        return {"poolclass": StaticPool, "connect_args": {"check_same_thread": False}}
    return {
        "pool_size": settings.POSTGRES_MAX_CONNECTIONS,
        "max_overflow": settings.DB_MAX_OVERFLOW,
        "pool_timeout": settings.DB_POOL_TIMEOUT_SECONDS,
        "pool_pre_ping": True,
        "pool_recycle": 3600,
        # 单条语句超时，避免评估请求被慢查询拖住
        "connect_args": {"server_settings": {"statement_timeout": str(settings.POSTGRES_STATEMENT_TIMEOUT)}},
    }


engine = create_async_engine(DATABASE_URL, echo=settings.SQLALCHEMY_ECHO, **_engine_options(DATABASE_URL))

AsyncSessionLocal = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
    autoflush=False,
)


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """FastAPI 依赖：每个请求一个会话"""
    async with AsyncSessionLocal() as session:
        yield session


async def init_db() -> None:
    """
    开发环境建表

    仅在 DEBUG 或 AUTO_CREATE_TABLES 时执行；其它环境的表结构由 Alembic 迁移维护。
    """
    if not (settings.DEBUG or settings.AUTO_CREATE_TABLES):
        logger.info("跳过自动建表，表结构由 Alembic 迁移维护")
        return

    import flaggate.models  # noqa: F401

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("功能开关表已就绪")


async def close_db() -> None:
    await engine.dispose()
