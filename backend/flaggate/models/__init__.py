"""
数据库模型定义
表名前缀：sys_ (系统表)
"""

from flaggate.db.database import Base

from .core import FeatureFlag, FeatureFlagAudit, FeatureFlagEvaluation

__all__ = [
    "Base",
    "FeatureFlag",
    "FeatureFlagAudit",
    "FeatureFlagEvaluation",
]
