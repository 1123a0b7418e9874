"""
功能开关模块 API 端点
"""

from fastapi import APIRouter
from flaggate.api.endpoints.feature_flags.evaluate import router as evaluate_router
from flaggate.api.endpoints.feature_flags.admin import router as admin_router


router = APIRouter()

router.include_router(evaluate_router, tags=["feature-flags"], prefix="/feature-flags")
router.include_router(admin_router, tags=["feature-flags-admin"], prefix="/admin/feature-flags")
