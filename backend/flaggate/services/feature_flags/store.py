"""
功能开关读取
评估只使用不可变的配置快照，而不是会被后续修改的 ORM 对象
"""

from dataclasses import dataclass
from typing import Any, Dict, Optional, Tuple

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from flaggate.core.config import settings
from flaggate.models import FeatureFlag
from flaggate.utils.cache import FeatureFlagCacheKeys, cache, get_feature_flag_generation


@dataclass(frozen=True)
class FlagSnapshot:
    """开关配置快照"""

    flag_key: str
    description: str
    enabled: bool
    rollout_percentage: int
    whitelist: Tuple[str, ...]
    analytics_enabled: bool
    is_deleted: bool = False

    @classmethod
    def from_model(cls, flag: FeatureFlag) -> "FlagSnapshot":
        return cls(
            flag_key=flag.flag_key,
            description=flag.description or "",
            enabled=bool(flag.enabled),
            rollout_percentage=int(flag.rollout_percentage or 0),
            whitelist=tuple(flag.whitelist or ()),
            analytics_enabled=bool(flag.analytics_enabled),
            is_deleted=bool(flag.is_deleted),
        )

    @classmethod
    def from_state(cls, data: Dict[str, Any]) -> "FlagSnapshot":
        return cls(
            flag_key=data["flag_key"],
            description=data.get("description", ""),
            enabled=bool(data.get("enabled", False)),
            rollout_percentage=int(data.get("rollout_percentage", 0)),
            whitelist=tuple(data.get("whitelist") or ()),
            analytics_enabled=bool(data.get("analytics_enabled", False)),
            is_deleted=bool(data.get("is_deleted", False)),
        )

    def to_state(self) -> Dict[str, Any]:
        return {
            "flag_key": self.flag_key,
            "description": self.description,
            "enabled": self.enabled,
            "rollout_percentage": self.rollout_percentage,
            "whitelist": list(self.whitelist),
            "analytics_enabled": self.analytics_enabled,
            "is_deleted": self.is_deleted,
        }

    def is_whitelisted(self, subject_id: str) -> bool:
        return bool(subject_id) and subject_id in self.whitelist


def audit_state(flag: FeatureFlag) -> Dict[str, Any]:
    """审计用快照：配置字段 + 更新时间"""
    state = FlagSnapshot.from_model(flag).to_state()
    state["updated_at"] = flag.updated_at.isoformat() if flag.updated_at else None
    return state


class FeatureFlagStore:
    """功能开关数据访问"""

    @staticmethod
    async def get_by_key(
        db: AsyncSession,
        flag_key: str,
        include_deleted: bool = False,
        for_update: bool = False,
    ) -> Optional[FeatureFlag]:
        if not flag_key:
            return None
        stmt = select(FeatureFlag).where(FeatureFlag.flag_key == flag_key)
        if not include_deleted:
            stmt = stmt.where(FeatureFlag.is_deleted.is_(False))
        if for_update:
            # PostgreSQL 行锁，保证同一开关的并发修改串行化
            stmt = stmt.with_for_update()
        result = await db.execute(stmt)
        return result.scalar_one_or_none()

    @staticmethod
    async def load_snapshot(db: AsyncSession, flag_key: str) -> Optional[FlagSnapshot]:
        """
        读取未删除开关的快照

        启用缓存时先读当前代数的缓存键；代数在读库之前确定，
        读库期间发生的写入会递增代数，本次回填只会写到旧代数的键上。
        未找到的开关不缓存。
        """
        use_cache = settings.FEATURE_FLAG_CACHE_ENABLED
        cache_key = None

        if use_cache:
            generation = await get_feature_flag_generation(flag_key)
            cache_key = FeatureFlagCacheKeys.snapshot(flag_key, generation)
            cached = await cache.get(cache_key)
            if isinstance(cached, dict) and cached.get("flag_key") == flag_key:
                return FlagSnapshot.from_state(cached)

        flag = await FeatureFlagStore.get_by_key(db, flag_key)
        if flag is None:
            return None

        snapshot = FlagSnapshot.from_model(flag)
        if cache_key is not None:
            await cache.set(cache_key, snapshot.to_state(), settings.FEATURE_FLAG_CACHE_TTL)
        return snapshot
