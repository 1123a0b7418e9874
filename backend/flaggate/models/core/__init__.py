"""
核心系统模型模块
包含功能开关、审计与评估日志模型
"""

from flaggate.models.core.feature_flag import FeatureFlag
from flaggate.models.core.feature_flag_audit import FeatureFlagAudit
from flaggate.models.core.feature_flag_evaluation import FeatureFlagEvaluation

__all__ = ["FeatureFlag", "FeatureFlagAudit", "FeatureFlagEvaluation"]
