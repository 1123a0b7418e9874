"""
功能开关评估日志服务
写入为尽力而为：失败只记录警告，不影响评估结果
"""

from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional

from loguru import logger
from sqlalchemy import delete, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from flaggate.models import FeatureFlagEvaluation
from flaggate.utils.clock import utcnow


class EvaluationLogService:
    """评估日志写入、查询与清理"""

    @staticmethod
    async def record_evaluation(
        db: AsyncSession,
        flag_key: str,
        subject_type: str,
        subject_id: str,
        result: bool,
        consent_granted: bool,
        rollout_percentage: int,
        reason: str,
        trace_id: Optional[str] = None,
    ) -> Optional[FeatureFlagEvaluation]:
        """
        写入一条评估日志

        使用与调用方同一引擎上的独立会话，事务只包含这一行：
        调用方会话中未提交的改动既不会被顺带提交，也不会因日志失败被回滚。
        """
        entry = FeatureFlagEvaluation(
            flag_key=flag_key,
            subject_type=subject_type,
            subject_id=subject_id,
            result=result,
            consent_granted=consent_granted,
            rollout_percentage_snapshot=rollout_percentage,
            evaluation_reason=reason,
            trace_id=trace_id,
            timestamp=utcnow(),
        )
        async with AsyncSession(bind=db.bind, expire_on_commit=False, autoflush=False) as log_db:
            try:
                log_db.add(entry)
                await log_db.commit()
                return entry
            except Exception as e:
                logger.warning(f"写入功能开关评估日志失败 flag={flag_key}: {e}")
                try:
                    await log_db.rollback()
                except Exception as rollback_error:
                    logger.warning(f"评估日志回滚失败 flag={flag_key}: {rollback_error}")
                return None

    @staticmethod
    async def list_evaluations(
        db: AsyncSession,
        flag_key: str,
        subject_type: Optional[str] = None,
        subject_id: Optional[str] = None,
        limit: int = 100,
    ) -> List[FeatureFlagEvaluation]:
        """按时间倒序查询评估日志"""
        query = select(FeatureFlagEvaluation).where(FeatureFlagEvaluation.flag_key == flag_key)
        if subject_type:
            query = query.where(FeatureFlagEvaluation.subject_type == subject_type)
        if subject_id:
            query = query.where(FeatureFlagEvaluation.subject_id == subject_id)
        query = query.order_by(FeatureFlagEvaluation.timestamp.desc(), FeatureFlagEvaluation.id.desc()).limit(limit)

        result = await db.execute(query)
        return list(result.scalars().all())

    @staticmethod
    async def summarize_evaluations(
        db: AsyncSession,
        flag_key: str,
        since: Optional[datetime] = None,
    ) -> Dict[str, Any]:
        """按原因与结果汇总评估次数"""
        query = (
            select(
                FeatureFlagEvaluation.evaluation_reason,
                FeatureFlagEvaluation.result,
                func.count(),
            )
            .where(FeatureFlagEvaluation.flag_key == flag_key)
            .group_by(FeatureFlagEvaluation.evaluation_reason, FeatureFlagEvaluation.result)
        )
        if since is not None:
            query = query.where(FeatureFlagEvaluation.timestamp >= since)

        rows = (await db.execute(query)).all()

        by_reason: Dict[str, int] = {}
        enabled = disabled = 0
        for reason, result, count in rows:
            by_reason[reason] = by_reason.get(reason, 0) + int(count)
            if result:
                enabled += int(count)
            else:
                disabled += int(count)

        return {
            "flag_key": flag_key,
            "total": enabled + disabled,
            "enabled": enabled,
            "disabled": disabled,
            "by_reason": by_reason,
            "since": since,
        }

    @staticmethod
    async def purge_expired_evaluations(
        db: AsyncSession,
        retention_days: int,
        now: Optional[datetime] = None,
    ) -> int:
        """删除超过保留期的评估日志，返回删除条数"""
        if retention_days <= 0:
            raise ValueError("retention_days 必须大于 0")
        cutoff = (now or utcnow()) - timedelta(days=retention_days)

        result = await db.execute(
            delete(FeatureFlagEvaluation)
            .where(FeatureFlagEvaluation.timestamp < cutoff)
            .execution_options(synchronize_session=False)
        )
        await db.commit()

        deleted = int(result.rowcount or 0)
        if deleted:
            logger.info(f"清理了 {deleted} 条过期功能开关评估日志（早于 {cutoff.isoformat()}）")
        return deleted

    @staticmethod
    async def delete_subject_evaluations(
        db: AsyncSession,
        subject_type: str,
        subject_id: str,
    ) -> int:
        """删除某个主体的全部评估日志（隐私删除请求）"""
        result = await db.execute(
            delete(FeatureFlagEvaluation)
            .where(
                FeatureFlagEvaluation.subject_type == subject_type,
                FeatureFlagEvaluation.subject_id == subject_id,
            )
            .execution_options(synchronize_session=False)
        )
        await db.commit()

        deleted = int(result.rowcount or 0)
        logger.info(f"删除主体评估日志 subject_type={subject_type} 共 {deleted} 条")
        return deleted
