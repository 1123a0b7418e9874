"""
功能开关管理 API 端点
提供开关的创建、部分更新、软删除，以及审计与评估日志查询，需要管理员令牌
"""

from datetime import datetime
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException, Path, Query, status
from loguru import logger
from sqlalchemy.ext.asyncio import AsyncSession

from flaggate.core.config import settings
from flaggate.core.deps import get_db, get_trace_id, require_admin
from flaggate.schemas.core import (
    EvaluationSummary,
    FeatureFlagAuditResponse,
    FeatureFlagCreateRequest,
    FeatureFlagEvaluationResponse,
    FeatureFlagResponse,
    FeatureFlagUpdateRequest,
)
from flaggate.services.feature_flags import (
    EvaluationLogService,
    FeatureFlagAdminService,
    FeatureFlagConflictError,
    FeatureFlagNotFoundError,
    FeatureFlagValidationError,
)

router = APIRouter()


def _not_found(flag_key: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_404_NOT_FOUND,
        detail=f"功能开关 '{flag_key}' 不存在",
    )


@router.get("", response_model=List[FeatureFlagResponse])
async def list_feature_flags(
    include_deleted: bool = Query(False, description="是否包含已删除的开关"),
    db: AsyncSession = Depends(get_db),
    _: Dict[str, Any] = Depends(require_admin),
) -> Any:
    """
    获取全部功能开关（按 flag_key 排序）
    """
    return await FeatureFlagAdminService.list_flags(db, include_deleted=include_deleted)


@router.post("", response_model=FeatureFlagResponse, status_code=status.HTTP_201_CREATED)
async def create_feature_flag(
    payload: FeatureFlagCreateRequest,
    db: AsyncSession = Depends(get_db),
    admin: Dict[str, Any] = Depends(require_admin),
    trace_id: Optional[str] = Depends(get_trace_id),
) -> Any:
    """
    创建功能开关
    """
    try:
        return await FeatureFlagAdminService.create_flag(
            db,
            payload,
            actor_id=admin["actor_id"],
            reason=payload.reason,
            trace_id=trace_id,
        )
    except FeatureFlagConflictError as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e))
    except FeatureFlagValidationError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))


@router.delete("/evaluations/subjects/{subject_type}/{subject_id}")
async def delete_subject_evaluations(
    subject_type: str = Path(..., pattern="^(user|session)$"),
    subject_id: str = Path(..., min_length=1, max_length=128),
    db: AsyncSession = Depends(get_db),
    _: Dict[str, Any] = Depends(require_admin),
) -> Dict[str, Any]:
    """
    删除某个主体的全部评估日志（隐私删除请求）
    """
    deleted = await EvaluationLogService.delete_subject_evaluations(db, subject_type, subject_id)
    return {"subject_type": subject_type, "deleted": deleted}


@router.get("/{flag_key}", response_model=FeatureFlagResponse)
async def get_feature_flag(
    flag_key: str,
    db: AsyncSession = Depends(get_db),
    _: Dict[str, Any] = Depends(require_admin),
) -> Any:
    """
    根据 flag_key 获取开关配置
    """
    flag = await FeatureFlagAdminService.get_flag(db, flag_key)
    if not flag:
        raise _not_found(flag_key)
    return flag


@router.patch("/{flag_key}", response_model=FeatureFlagResponse)
async def update_feature_flag(
    flag_key: str,
    payload: FeatureFlagUpdateRequest,
    db: AsyncSession = Depends(get_db),
    admin: Dict[str, Any] = Depends(require_admin),
    trace_id: Optional[str] = Depends(get_trace_id),
) -> Any:
    """
    部分更新开关配置，未提供的字段保持不变

    所有实际变更都会同步写入审计记录。
    """
    try:
        return await FeatureFlagAdminService.update_flag(
            db,
            flag_key,
            payload,
            actor_id=admin["actor_id"],
            reason=payload.reason,
            trace_id=trace_id,
        )
    except FeatureFlagNotFoundError:
        raise _not_found(flag_key)
    except FeatureFlagValidationError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    except Exception as e:
        logger.error(f"更新功能开关失败 flag={flag_key}: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="更新功能开关失败",
        )


@router.delete("/{flag_key}", response_model=FeatureFlagResponse)
async def delete_feature_flag(
    flag_key: str,
    reason: Optional[str] = Query(None, max_length=1000, description="删除原因"),
    db: AsyncSession = Depends(get_db),
    admin: Dict[str, Any] = Depends(require_admin),
    trace_id: Optional[str] = Depends(get_trace_id),
) -> Any:
    """
    软删除开关，删除后评估结果为 flag_not_found
    """
    try:
        return await FeatureFlagAdminService.delete_flag(
            db,
            flag_key,
            actor_id=admin["actor_id"],
            reason=reason,
            trace_id=trace_id,
        )
    except FeatureFlagNotFoundError:
        raise _not_found(flag_key)


@router.get("/{flag_key}/audit", response_model=List[FeatureFlagAuditResponse])
async def list_feature_flag_audit(
    flag_key: str,
    actor_id: Optional[str] = Query(None, description="按操作人过滤"),
    limit: int = Query(
        settings.FEATURE_FLAG_AUDIT_PAGE_SIZE_DEFAULT,
        ge=1,
        le=settings.FEATURE_FLAG_AUDIT_PAGE_SIZE_MAX,
        description="返回条数",
    ),
    db: AsyncSession = Depends(get_db),
    _: Dict[str, Any] = Depends(require_admin),
) -> Any:
    """
    查询开关的变更审计（最新在前）
    """
    return await FeatureFlagAdminService.list_audit(db, flag_key, actor_id=actor_id, limit=limit)


@router.get("/{flag_key}/evaluations", response_model=List[FeatureFlagEvaluationResponse])
async def list_feature_flag_evaluations(
    flag_key: str,
    subject_type: Optional[str] = Query(None, pattern="^(user|session)$"),
    subject_id: Optional[str] = Query(None, max_length=128),
    limit: int = Query(
        settings.FEATURE_FLAG_EVALUATION_PAGE_SIZE_DEFAULT,
        ge=1,
        le=settings.FEATURE_FLAG_EVALUATION_PAGE_SIZE_MAX,
        description="返回条数",
    ),
    db: AsyncSession = Depends(get_db),
    _: Dict[str, Any] = Depends(require_admin),
) -> Any:
    """
    查询评估日志（排查与灰度监控用）
    """
    return await EvaluationLogService.list_evaluations(
        db,
        flag_key,
        subject_type=subject_type,
        subject_id=subject_id,
        limit=limit,
    )


@router.get("/{flag_key}/evaluations/summary", response_model=EvaluationSummary)
async def summarize_feature_flag_evaluations(
    flag_key: str,
    since: Optional[datetime] = Query(None, description="起始时间（ISO 8601）"),
    db: AsyncSession = Depends(get_db),
    _: Dict[str, Any] = Depends(require_admin),
) -> Dict[str, Any]:
    """
    按评估原因与结果汇总
    """
    return await EvaluationLogService.summarize_evaluations(db, flag_key, since=since)
