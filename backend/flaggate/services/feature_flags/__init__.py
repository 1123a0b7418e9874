"""
功能开关服务
"""

from flaggate.services.feature_flags.admin import FeatureFlagAdminService
from flaggate.services.feature_flags.bucketing import compute_cohort
from flaggate.services.feature_flags.evaluation import (
    EvaluationReason,
    EvaluationResult,
    FeatureFlagEvaluator,
)
from flaggate.services.feature_flags.evaluation_log import EvaluationLogService
from flaggate.services.feature_flags.exceptions import (
    FeatureFlagConflictError,
    FeatureFlagError,
    FeatureFlagNotFoundError,
    FeatureFlagValidationError,
)
from flaggate.services.feature_flags.store import FeatureFlagStore, FlagSnapshot

__all__ = [
    "EvaluationLogService",
    "EvaluationReason",
    "EvaluationResult",
    "FeatureFlagAdminService",
    "FeatureFlagConflictError",
    "FeatureFlagError",
    "FeatureFlagEvaluator",
    "FeatureFlagNotFoundError",
    "FeatureFlagStore",
    "FeatureFlagValidationError",
    "FlagSnapshot",
    "compute_cohort",
]
