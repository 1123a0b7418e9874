"""
功能开关评估 API 端点
主体标识与分析授权由上游身份服务提供
"""

from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from loguru import logger
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from flaggate.core.deps import get_db, get_trace_id
from flaggate.schemas.core import EvaluationResponse
from flaggate.services.feature_flags import FeatureFlagEvaluator

router = APIRouter()


@router.get("/{flag_key}/evaluate", response_model=EvaluationResponse)
async def evaluate_feature_flag(
    flag_key: str,
    user_id: Optional[str] = Query(None, max_length=128, description="已登录用户ID"),
    session_hash: Optional[str] = Query(None, max_length=128, description="匿名会话哈希"),
    analytics_consent: bool = Query(False, description="主体是否授权分析"),
    db: AsyncSession = Depends(get_db),
    trace_id: Optional[str] = Depends(get_trace_id),
) -> Dict[str, Any]:
    """
    评估开关对当前主体是否生效

    开关不存在或主体缺失返回 enabled=false 及对应原因；存储不可用返回 503。
    """
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
        logger.error(f"功能开关评估失败 flag={flag_key}: {e}")
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="功能开关存储暂不可用",
        )
    return result.to_dict()
