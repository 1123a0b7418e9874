"""
API 路由注册
"""

from fastapi import APIRouter
from flaggate.api.endpoints.system.health import router as health_router
from flaggate.api.endpoints.feature_flags import router as feature_flags_router

api_router = APIRouter()

# 注册各个模块的路由
api_router.include_router(health_router, tags=["health"])
api_router.include_router(feature_flags_router)
