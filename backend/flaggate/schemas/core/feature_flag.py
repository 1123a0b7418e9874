"""
功能开关相关的 Pydantic 模型
用于请求/响应的数据验证
"""

import re
from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, field_validator

FLAG_KEY_PATTERN = re.compile(r"^[a-z0-9][a-z0-9_.-]*$")


def normalize_whitelist(values: Optional[List[Any]]) -> Optional[List[str]]:
    """白名单去空、去重并保持原有顺序"""
    if values is None:
        return None
    seen = set()
    result: List[str] = []
    for item in values:
        text = str(item).strip()
        if not text or text in seen:
            continue
        seen.add(text)
        result.append(text)
    return result


class FeatureFlagCreate(BaseModel):
    """功能开关创建模型"""
    flag_key: str = Field(..., min_length=1, max_length=100, description="开关键，创建后不可修改")
    description: str = Field("", description="开关说明")
    enabled: bool = Field(False, description="主开关")
    rollout_percentage: int = Field(0, ge=0, le=100, description="灰度百分比 0-100")
    whitelist: List[str] = Field(default_factory=list, description="白名单（用户ID或会话哈希）")
    analytics_enabled: bool = Field(False, description="是否记录评估日志")

    @field_validator("flag_key")
    @classmethod
    def validate_flag_key(cls, v: str) -> str:
        v = v.strip()
        if not FLAG_KEY_PATTERN.match(v):
            raise ValueError("flag_key只能包含小写字母、数字、下划线、点和破折号")
        return v

    @field_validator("whitelist", mode="before")
    @classmethod
    def validate_whitelist(cls, v):
        return normalize_whitelist(v) if v is not None else []


class FeatureFlagUpdate(BaseModel):
    """
    功能开关更新模型（部分更新）

    只有显式提供的字段会被应用，未提供的字段保持不变；
    显式传 null 与未提供等价。
    """
    description: Optional[str] = Field(None, description="开关说明")
    enabled: Optional[bool] = Field(None, description="主开关")
    rollout_percentage: Optional[int] = Field(None, ge=0, le=100, description="灰度百分比 0-100")
    whitelist: Optional[List[str]] = Field(None, description="白名单（整体替换）")
    analytics_enabled: Optional[bool] = Field(None, description="是否记录评估日志")

    @field_validator("whitelist", mode="before")
    @classmethod
    def validate_whitelist(cls, v):
        return normalize_whitelist(v)


class FeatureFlagUpdateRequest(FeatureFlagUpdate):
    """管理端更新请求（附带变更原因）"""
    reason: Optional[str] = Field(None, max_length=1000, description="变更原因")


class FeatureFlagCreateRequest(FeatureFlagCreate):
    """管理端创建请求（附带变更原因）"""
    reason: Optional[str] = Field(None, max_length=1000, description="变更原因")


class FeatureFlagResponse(BaseModel):
    """功能开关响应模型"""
    flag_key: str
    description: str
    enabled: bool
    rollout_percentage: int
    whitelist: List[str]
    analytics_enabled: bool
    is_deleted: bool = False
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class FeatureFlagAuditResponse(BaseModel):
    """审计记录响应模型"""
    id: int
    flag_key: str
    actor_id: Optional[str] = None
    actor_type: str
    action: str
    before_state: Optional[Dict[str, Any]] = None
    after_state: Dict[str, Any]
    reason: Optional[str] = None
    trace_id: Optional[str] = None
    timestamp: datetime

    class Config:
        from_attributes = True


class FeatureFlagEvaluationResponse(BaseModel):
    """评估日志响应模型"""
    flag_key: str
    subject_type: str
    subject_id: str
    result: bool
    consent_granted: bool
    rollout_percentage_snapshot: int
    evaluation_reason: str
    trace_id: Optional[str] = None
    timestamp: datetime

    class Config:
        from_attributes = True


class EvaluationSummary(BaseModel):
    """评估日志汇总（灰度监控）"""
    flag_key: str
    total: int
    enabled: int
    disabled: int
    by_reason: Dict[str, int]
    since: Optional[datetime] = None


class EvaluationResponse(BaseModel):
    """评估结果响应模型"""
    flag_key: str
    enabled: bool
    reason: str
