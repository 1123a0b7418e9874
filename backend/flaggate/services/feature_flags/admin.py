"""
功能开关管理服务 - 创建、部分更新、软删除及审计查询
每次成功的变更与其审计记录在同一个事务中提交
"""

from dataclasses import replace
from typing import List, Optional

from loguru import logger
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from flaggate.models import FeatureFlag, FeatureFlagAudit
from flaggate.schemas.core import FeatureFlagCreate, FeatureFlagUpdate
from flaggate.services.feature_flags.exceptions import (
    FeatureFlagConflictError,
    FeatureFlagNotFoundError,
    FeatureFlagValidationError,
)
from flaggate.services.feature_flags.store import FeatureFlagStore, FlagSnapshot, audit_state
from flaggate.utils.cache import clear_feature_flag_cache
from flaggate.utils.clock import utcnow

ACTOR_ADMIN = "admin"
ACTOR_SYSTEM = "system"

ACTION_CREATE = "create"
ACTION_UPDATE = "update"
ACTION_DELETE = "delete"

# 允许通过部分更新修改的字段
MUTABLE_FIELDS = ("description", "enabled", "rollout_percentage", "whitelist", "analytics_enabled")


def _actor_type(actor_id: Optional[str]) -> str:
    return ACTOR_ADMIN if actor_id else ACTOR_SYSTEM


def _validate_rollout(value: Optional[int]) -> None:
    if value is None:
        return
    if isinstance(value, bool) or not isinstance(value, int):
        raise FeatureFlagValidationError("rollout_percentage 必须是整数")
    if value < 0 or value > 100:
        raise FeatureFlagValidationError("rollout_percentage 必须在 0 到 100 之间")


def _apply_changes(snapshot: FlagSnapshot, changes: FeatureFlagUpdate) -> FlagSnapshot:
    """把显式提供的字段应用到快照上，返回新快照"""
    updates = {}
    for field in MUTABLE_FIELDS:
        if field not in changes.model_fields_set:
            continue
        value = getattr(changes, field)
        if value is None:
            continue
        updates[field] = tuple(value) if field == "whitelist" else value
    return replace(snapshot, **updates)


class FeatureFlagAdminService:
    """功能开关管理服务类"""

    @staticmethod
    async def list_flags(db: AsyncSession, include_deleted: bool = False) -> List[FeatureFlag]:
        query = select(FeatureFlag).order_by(FeatureFlag.flag_key)
        if not include_deleted:
            query = query.where(FeatureFlag.is_deleted.is_(False))
        result = await db.execute(query)
        return list(result.scalars().all())

    @staticmethod
    async def get_flag(db: AsyncSession, flag_key: str) -> Optional[FeatureFlag]:
        return await FeatureFlagStore.get_by_key(db, flag_key)

    @staticmethod
    async def create_flag(
        db: AsyncSession,
        data: FeatureFlagCreate,
        actor_id: Optional[str] = None,
        reason: Optional[str] = None,
        trace_id: Optional[str] = None,
    ) -> FeatureFlag:
        """
        创建开关并写入 create 审计
        """
        _validate_rollout(data.rollout_percentage)

        existing = await FeatureFlagStore.get_by_key(db, data.flag_key, include_deleted=True)
        if existing:
            raise FeatureFlagConflictError(f"功能开关 '{data.flag_key}' 已存在")

        now = utcnow()
        flag = FeatureFlag(
            flag_key=data.flag_key,
            description=data.description,
            enabled=data.enabled,
            rollout_percentage=data.rollout_percentage,
            whitelist=list(data.whitelist),
            analytics_enabled=data.analytics_enabled,
            is_deleted=False,
            created_at=now,
            updated_at=now,
        )
        db.add(flag)
        db.add(
            FeatureFlagAudit(
                flag_key=flag.flag_key,
                actor_id=actor_id,
                actor_type=_actor_type(actor_id),
                action=ACTION_CREATE,
                before_state=None,
                after_state=audit_state(flag),
                reason=reason,
                trace_id=trace_id,
                timestamp=now,
            )
        )

        try:
            await db.commit()
        except IntegrityError:
            await db.rollback()
            raise FeatureFlagConflictError(f"功能开关 '{data.flag_key}' 已存在")

        await clear_feature_flag_cache(flag.flag_key)
        logger.info(f"功能开关已创建: {flag.flag_key} by actor={actor_id or ACTOR_SYSTEM}")
        return flag

    @staticmethod
    async def update_flag(
        db: AsyncSession,
        flag_key: str,
        changes: FeatureFlagUpdate,
        actor_id: Optional[str] = None,
        reason: Optional[str] = None,
        trace_id: Optional[str] = None,
    ) -> FeatureFlag:
        """
        部分更新开关

        配置未发生实际变化时不写审计、不更新 updated_at。
        """
        if "rollout_percentage" in changes.model_fields_set:
            _validate_rollout(changes.rollout_percentage)

        flag = await FeatureFlagStore.get_by_key(db, flag_key, for_update=True)
        if flag is None:
            raise FeatureFlagNotFoundError(flag_key)

        before = FlagSnapshot.from_model(flag)
        after = _apply_changes(before, changes)

        if after == before:
            # 提交空事务以释放行锁
            await db.commit()
            logger.debug(f"功能开关无实际变化，跳过更新: {flag_key}")
            return flag

        before_state = audit_state(flag)

        flag.description = after.description
        flag.enabled = after.enabled
        flag.rollout_percentage = after.rollout_percentage
        flag.whitelist = list(after.whitelist)
        flag.analytics_enabled = after.analytics_enabled
        flag.updated_at = utcnow()

        db.add(
            FeatureFlagAudit(
                flag_key=flag_key,
                actor_id=actor_id,
                actor_type=_actor_type(actor_id),
                action=ACTION_UPDATE,
                before_state=before_state,
                after_state=audit_state(flag),
                reason=reason,
                trace_id=trace_id,
                timestamp=flag.updated_at,
            )
        )

        try:
            await db.commit()
        except SQLAlchemyError:
            await db.rollback()
            raise

        await clear_feature_flag_cache(flag_key)
        logger.info(f"功能开关已更新: {flag_key} by actor={actor_id or ACTOR_SYSTEM}")
        return flag

    @staticmethod
    async def delete_flag(
        db: AsyncSession,
        flag_key: str,
        actor_id: Optional[str] = None,
        reason: Optional[str] = None,
        trace_id: Optional[str] = None,
    ) -> FeatureFlag:
        """
        软删除开关：保留记录供审计和评估日志引用，评估时视为不存在
        """
        flag = await FeatureFlagStore.get_by_key(db, flag_key, for_update=True)
        if flag is None:
            raise FeatureFlagNotFoundError(flag_key)

        before_state = audit_state(flag)

        now = utcnow()
        flag.is_deleted = True
        flag.enabled = False
        flag.deleted_at = now
        flag.updated_at = now

        db.add(
            FeatureFlagAudit(
                flag_key=flag_key,
                actor_id=actor_id,
                actor_type=_actor_type(actor_id),
                action=ACTION_DELETE,
                before_state=before_state,
                after_state=audit_state(flag),
                reason=reason,
                trace_id=trace_id,
                timestamp=now,
            )
        )

        try:
            await db.commit()
        except SQLAlchemyError:
            await db.rollback()
            raise

        await clear_feature_flag_cache(flag_key)
        logger.info(f"功能开关已删除: {flag_key} by actor={actor_id or ACTOR_SYSTEM}")
        return flag

    @staticmethod
    async def list_audit(
        db: AsyncSession,
        flag_key: str,
        actor_id: Optional[str] = None,
        limit: int = 50,
    ) -> List[FeatureFlagAudit]:
        """按时间倒序查询审计记录"""
        query = select(FeatureFlagAudit).where(FeatureFlagAudit.flag_key == flag_key)
        if actor_id:
            query = query.where(FeatureFlagAudit.actor_id == actor_id)
        query = query.order_by(FeatureFlagAudit.timestamp.desc(), FeatureFlagAudit.id.desc()).limit(limit)

        result = await db.execute(query)
        return list(result.scalars().all())
