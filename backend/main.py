"""
FlagGate 后端入口
功能开关评估（公开）与开关管理（管理员令牌）接口
"""

import uuid
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from loguru import logger
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request

from flaggate.api import api_router
from flaggate.api.endpoints.system.health import router as health_router
from flaggate.celery_app import celery_app
from flaggate.core.config import settings
from flaggate.db.database import close_db, init_db
from flaggate.utils.cache import shutdown_cache, startup_cache

DESCRIPTION = "FlagGate 功能开关评估与灰度发布服务"


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info(f"{settings.PROJECT_NAME} 启动中 env={settings.DEPLOYMENT_ENV}")
    await init_db()

    if settings.FEATURE_FLAG_CACHE_ENABLED:
        try:
            await startup_cache()
        except Exception as e:
            # 缓存不可用时评估直接读数据库
            logger.error(f"开关缓存初始化失败，评估将直连数据库: {e}")
    else:
        logger.info("开关缓存已关闭")

    yield

    try:
        await shutdown_cache()
    except Exception as e:
        logger.error(f"开关缓存关闭失败: {e}")
    await close_db()
    logger.info(f"{settings.PROJECT_NAME} 已关闭")


class RequestIdMiddleware(BaseHTTPMiddleware):
    """
    请求ID中间件

    沿用调用方的 X-Request-ID，缺省时生成；
    该值即审计记录与评估日志中的 trace_id。
    """

    async def dispatch(self, request: Request, call_next):
        request_id = request.headers.get("x-request-id") or uuid.uuid4().hex
        request.state.request_id = request_id
        response = await call_next(request)
        response.headers["X-Request-ID"] = request_id
        return response


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    HEADERS = {
        "X-Content-Type-Options": "nosniff",
        "X-Frame-Options": "DENY",
        "Referrer-Policy": "strict-origin-when-cross-origin",
    }

    async def dispatch(self, request: Request, call_next):
        response = await call_next(request)
        for name, value in self.HEADERS.items():
            response.headers.setdefault(name, value)
        return response


def _cors_options() -> dict:
    # 开发环境放行任意本机端口
    if settings.DEBUG:
        return {"allow_origin_regex": r"^http://(localhost|127\.0\.0\.1)(:\d+)?$"}
    return {"allow_origins": [str(origin) for origin in settings.CORS_ORIGINS]}


def create_app() -> FastAPI:
    application = FastAPI(
        title=settings.PROJECT_NAME,
        version=settings.VERSION,
        description=DESCRIPTION,
        openapi_url=f"{settings.API_V1_STR}/openapi.json",
        docs_url="/docs" if settings.DEBUG else None,
        redoc_url=None,
        lifespan=lifespan,
    )

    if settings.DEBUG or settings.CORS_ORIGINS:
        application.add_middleware(
            CORSMiddleware,
            allow_credentials=True,
            allow_methods=["*"],
            allow_headers=["*"],
            **_cors_options(),
        )
    application.add_middleware(SecurityHeadersMiddleware)
    application.add_middleware(RequestIdMiddleware)

    # 探活接口在根路径也可访问，供负载均衡使用
    application.include_router(health_router, tags=["health"])
    application.include_router(api_router, prefix=settings.API_V1_STR)

    @application.get("/")
    async def root():
        return {
            "name": settings.PROJECT_NAME,
            "version": settings.VERSION,
            "description": DESCRIPTION,
            "docs": "/docs" if settings.DEBUG else None,
            "health": "/health",
        }

    return application


app = create_app()

# celery -A main.celery worker
celery = celery_app

if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "main:app",
        host=settings.BACKEND_HOST,
        port=settings.BACKEND_PORT,
        reload=settings.BACKEND_RELOAD,
        log_level=settings.LOG_LEVEL.lower(),
    )
