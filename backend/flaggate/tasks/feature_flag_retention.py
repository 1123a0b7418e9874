import asyncio
from typing import Optional

from loguru import logger

from flaggate.celery_app import celery
from flaggate.core.config import settings
from flaggate.db.database import AsyncSessionLocal
from flaggate.services.feature_flags import EvaluationLogService

_loop: asyncio.AbstractEventLoop | None = None


def _run(coro):
    global _loop
    if _loop is None or _loop.is_closed():
        _loop = asyncio.new_event_loop()
    asyncio.set_event_loop(_loop)
    return _loop.run_until_complete(coro)


async def _purge(retention_days: int) -> dict:
    async with AsyncSessionLocal() as db:
        deleted = await EvaluationLogService.purge_expired_evaluations(db, retention_days)
    logger.info(f"评估日志清理完成: 保留 {retention_days} 天, 删除 {deleted} 条")
    return {"retention_days": retention_days, "deleted": deleted}


@celery.task(name="flaggate.tasks.feature_flag_retention.purge_feature_flag_evaluations")
def purge_feature_flag_evaluations(retention_days: Optional[int] = None) -> dict:
    days = retention_days or settings.FEATURE_FLAG_EVALUATION_RETENTION_DAYS
    return _run(_purge(days))
