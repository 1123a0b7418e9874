"""
Alembic 迁移环境
连接串取自 flaggate 配置，在线模式使用异步引擎
"""

import asyncio
import os
import sys
from logging.config import fileConfig

from alembic import context
from sqlalchemy import pool
from sqlalchemy.ext.asyncio import create_async_engine

# backend/ 目录加入导入路径，以便加载 flaggate
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from flaggate.core.config import settings
from flaggate.models import Base

config = context.config
if config.config_file_name is not None:
    fileConfig(config.config_file_name)

# 只管理功能开关相关的表，库中其它表不参与自动生成
MANAGED_TABLE_PREFIX = "sys_feature_flag"


def _database_url() -> str:
    if not settings.DATABASE_URL:
        raise ValueError("DATABASE_URL 未配置，无法执行迁移")
    return str(settings.DATABASE_URL)


def _include_name(name, type_, parent_names) -> bool:
    if type_ == "table":
        return bool(name) and name.startswith(MANAGED_TABLE_PREFIX)
    return True


def _configure(**kwargs) -> None:
    url = kwargs.pop("url", None) or _database_url()
    context.configure(
        url=url if "connection" not in kwargs else None,
        target_metadata=Base.metadata,
        include_name=_include_name,
        compare_type=True,
        # SQLite（本地调试）不支持大部分 ALTER，使用批量模式
        render_as_batch=url.startswith("sqlite"),
        **kwargs,
    )


def run_offline() -> None:
    """离线模式：只生成 SQL 脚本"""
    _configure(literal_binds=True, dialect_opts={"paramstyle": "named"})
    with context.begin_transaction():
        context.run_migrations()


def _run_sync(connection) -> None:
    _configure(connection=connection)
    with context.begin_transaction():
        context.run_migrations()


async def run_online() -> None:
    engine = create_async_engine(_database_url(), poolclass=pool.NullPool)
    try:
        async with engine.connect() as connection:
            await connection.run_sync(_run_sync)
    finally:
        await engine.dispose()


if context.is_offline_mode():
    run_offline()
else:
    asyncio.run(run_online())
