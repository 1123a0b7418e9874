"""
功能开关评估

优先级（自上而下，命中即返回）：
1. 开关不存在或已删除      -> flag_not_found
2. 未提供主体标识          -> missing_subject
3. 主开关关闭              -> master_disabled
4. 主体在白名单中          -> whitelisted
5. 灰度 >= 100             -> full_rollout
6. 灰度 <= 0               -> zero_rollout
7. 稳定分桶 < 灰度百分比   -> cohort_included / cohort_excluded

步骤 3-7 之后，若调用方授权分析且开关启用分析，则写入一条评估日志。
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional, Tuple, Union

from loguru import logger
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from flaggate.services.feature_flags.bucketing import compute_cohort
from flaggate.services.feature_flags.evaluation_log import EvaluationLogService
from flaggate.services.feature_flags.store import FeatureFlagStore, FlagSnapshot

SUBJECT_USER = "user"
SUBJECT_SESSION = "session"


class EvaluationReason(str, Enum):
    """评估原因"""

    FLAG_NOT_FOUND = "flag_not_found"
    MISSING_SUBJECT = "missing_subject"
    MASTER_DISABLED = "master_disabled"
    WHITELISTED = "whitelisted"
    FULL_ROLLOUT = "full_rollout"
    ZERO_ROLLOUT = "zero_rollout"
    COHORT_INCLUDED = "cohort_included"
    COHORT_EXCLUDED = "cohort_excluded"


@dataclass(frozen=True)
class EvaluationResult:
    """评估结果"""

    flag_key: str
    enabled: bool
    reason: EvaluationReason
    rollout_percentage: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        return {"flag_key": self.flag_key, "enabled": self.enabled, "reason": self.reason.value}


def resolve_subject(
    user_id: Optional[Union[int, str]],
    session_hash: Optional[str],
) -> Optional[Tuple[str, str]]:
    """
    确定评估主体，返回 (subject_type, subject_id)

    同时提供用户ID与会话哈希时以用户ID为准。
    """
    if user_id is not None and str(user_id).strip():
        return SUBJECT_USER, str(user_id).strip()
    if session_hash is not None and session_hash.strip():
        return SUBJECT_SESSION, session_hash.strip()
    return None


def decide(snapshot: FlagSnapshot, subject_id: str) -> Tuple[bool, EvaluationReason]:
    """对已确定主体的开关按优先级判定（纯函数）"""
    if not snapshot.enabled:
        return False, EvaluationReason.MASTER_DISABLED
    if snapshot.is_whitelisted(subject_id):
        return True, EvaluationReason.WHITELISTED
    if snapshot.rollout_percentage >= 100:
        return True, EvaluationReason.FULL_ROLLOUT
    if snapshot.rollout_percentage <= 0:
        return False, EvaluationReason.ZERO_ROLLOUT
    if compute_cohort(snapshot.flag_key, subject_id) < snapshot.rollout_percentage:
        return True, EvaluationReason.COHORT_INCLUDED
    return False, EvaluationReason.COHORT_EXCLUDED


class FeatureFlagEvaluator:
    """功能开关评估服务"""

    @staticmethod
    async def evaluate(
        db: AsyncSession,
        flag_key: str,
        user_id: Optional[Union[int, str]] = None,
        session_hash: Optional[str] = None,
        analytics_consent: bool = False,
        trace_id: Optional[str] = None,
    ) -> EvaluationResult:
        """
        评估开关对主体是否生效

        开关不存在、主体缺失都作为正常的否定结果返回；
        存储故障（SQLAlchemyError）向上抛出，由调用方决定降级策略。
        """
        snapshot = await FeatureFlagStore.load_snapshot(db, flag_key)
        if snapshot is None:
            return EvaluationResult(flag_key, False, EvaluationReason.FLAG_NOT_FOUND)

        subject = resolve_subject(user_id, session_hash)
        if subject is None:
            logger.warning(f"功能开关评估缺少主体标识 flag={flag_key}")
            return EvaluationResult(
                flag_key, False, EvaluationReason.MISSING_SUBJECT, snapshot.rollout_percentage
            )
        subject_type, subject_id = subject

        enabled, reason = decide(snapshot, subject_id)
        result = EvaluationResult(flag_key, enabled, reason, snapshot.rollout_percentage)

        if analytics_consent and snapshot.analytics_enabled:
            await EvaluationLogService.record_evaluation(
                db,
                flag_key=flag_key,
                subject_type=subject_type,
                subject_id=subject_id,
                result=enabled,
                consent_granted=True,
                rollout_percentage=snapshot.rollout_percentage,
                reason=reason.value,
                trace_id=trace_id,
            )

        return result

    @staticmethod
    async def is_enabled(
        db: AsyncSession,
        flag_key: str,
        user_id: Optional[Union[int, str]] = None,
        session_hash: Optional[str] = None,
        analytics_consent: bool = False,
        trace_id: Optional[str] = None,
    ) -> bool:
        """进程内调用的便捷接口；存储故障时按关闭处理"""
        try:
            result = await FeatureFlagEvaluator.evaluate(
                db,
                flag_key,
                user_id=user_id,
                session_hash=session_hash,
                analytics_consent=analytics_consent,
                trace_id=trace_id,
            )
        except SQLAlchemyError as e:
            logger.error(f"功能开关评估失败，按关闭处理 flag={flag_key}: {e}")
            return False
        return result.enabled
