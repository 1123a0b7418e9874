"""
核心系统Schema模块
包含功能开关相关的Pydantic模型
"""

from .feature_flag import (
    EvaluationResponse,
    EvaluationSummary,
    FeatureFlagAuditResponse,
    FeatureFlagCreate,
    FeatureFlagCreateRequest,
    FeatureFlagEvaluationResponse,
    FeatureFlagResponse,
    FeatureFlagUpdate,
    FeatureFlagUpdateRequest,
)

__all__ = [
    "EvaluationResponse",
    "EvaluationSummary",
    "FeatureFlagAuditResponse",
    "FeatureFlagCreate",
    "FeatureFlagCreateRequest",
    "FeatureFlagEvaluationResponse",
    "FeatureFlagResponse",
    "FeatureFlagUpdate",
    "FeatureFlagUpdateRequest",
]
