"""
项目所有Pydantic Schema定义
按功能模块组织在子目录中

导入结构示例：
    from flaggate.schemas.core import FeatureFlagCreate, FeatureFlagResponse
"""

from .core import *

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
