"""
应用配置管理
从环境变量（及项目根目录 .env）加载，未显式给出的连接串由各组件拼接
"""

import json
from pathlib import Path
from typing import List, Optional, Union
from pydantic_settings import BaseSettings
from pydantic import Field, field_validator, model_validator

PROJECT_ROOT = Path(__file__).resolve().parents[3]

# 生产环境拒绝的占位值
PLACEHOLDER_SECRETS = {"", "change_me"}


def _split_list(v: Union[str, List[str]]) -> List[str]:
    """列表型配置：接受 JSON 数组或逗号分隔字符串"""
    if not isinstance(v, str):
        return v
    try:
        return json.loads(v)
    except json.JSONDecodeError:
        return [item.strip() for item in v.split(",") if item.strip()]


class Settings(BaseSettings):
    """FlagGate 配置"""

    # ==================== 服务 ====================
    PROJECT_NAME: str = Field(default="FlagGate")
    VERSION: str = Field(default="1.0.0")
    API_V1_STR: str = Field(default="/api/v1")
    DEPLOYMENT_ENV: str = Field(default="development")  # development / docker / production
    BACKEND_HOST: str = Field(default="0.0.0.0")
    BACKEND_PORT: int = Field(default=8000)
    BACKEND_RELOAD: bool = Field(default=True)
    DEBUG: bool = Field(default=True)
    LOG_LEVEL: str = Field(default="INFO")
    TIMEZONE: str = Field(default="UTC")
    CORS_ORIGINS: List[str] = Field(default=["http://localhost:6608", "http://127.0.0.1:6608"])

    # 管理端接口凭据，请求头 X-Admin-Token
    ADMIN_TOKEN: str = Field(default="change_me")

    # ==================== 开关存储（PostgreSQL） ====================
    DATABASE_URL: Optional[str] = Field(default=None)
    DATABASE_DRIVER: str = Field(default="asyncpg")
    POSTGRES_USER: str = Field(default="admin")
    POSTGRES_PASSWORD: str = Field(default="change_me")
    POSTGRES_DB: str = Field(default="flaggate_db")
    POSTGRES_HOST: str = Field(default="127.0.0.1")
    POSTGRES_PORT: int = Field(default=5432)
    # 连接池大小未显式设置时按 DEBUG 取默认值
    POSTGRES_MAX_CONNECTIONS: Optional[int] = Field(default=None)
    DB_MAX_OVERFLOW: Optional[int] = Field(default=None)
    DB_POOL_TIMEOUT_SECONDS: Optional[int] = Field(default=None)
    POSTGRES_STATEMENT_TIMEOUT: int = Field(default=30000)  # 毫秒
    SQLALCHEMY_ECHO: bool = Field(default=False)
    AUTO_CREATE_TABLES: bool = Field(default=False)

    # ==================== 开关缓存（Redis） ====================
    REDIS_HOST: str = Field(default="localhost")
    REDIS_PORT: int = Field(default=6379)
    REDIS_DB_CACHE: int = Field(default=1)
    REDIS_CONNECT_TIMEOUT: int = Field(default=5)
    # 管理员写入后同步失效，其它读者最多滞后 TTL 秒
    FEATURE_FLAG_CACHE_ENABLED: bool = Field(default=True)
    FEATURE_FLAG_CACHE_TTL: int = Field(default=5, ge=1)

    # ==================== 评估日志保留（Celery） ====================
    REDIS_URL: Optional[str] = Field(default=None)
    CELERY_BROKER_URL: Optional[str] = Field(default=None)
    CELERY_RESULT_BACKEND: Optional[str] = Field(default=None)
    CELERY_TASK_SERIALIZER: str = Field(default="json")
    CELERY_RESULT_SERIALIZER: str = Field(default="json")
    CELERY_ACCEPT_CONTENT: List[str] = Field(default=["json"])
    FEATURE_FLAG_EVALUATION_RETENTION_DAYS: int = Field(default=90, ge=1)
    FEATURE_FLAG_RETENTION_SCHEDULE_SECONDS: int = Field(default=86400, ge=60)

    # ==================== 管理端分页 ====================
    FEATURE_FLAG_AUDIT_PAGE_SIZE_DEFAULT: int = Field(default=50)
    FEATURE_FLAG_AUDIT_PAGE_SIZE_MAX: int = Field(default=500)
    FEATURE_FLAG_EVALUATION_PAGE_SIZE_DEFAULT: int = Field(default=100)
    FEATURE_FLAG_EVALUATION_PAGE_SIZE_MAX: int = Field(default=1000)

    @field_validator("CORS_ORIGINS", "CELERY_ACCEPT_CONTENT", mode="before")
    @classmethod
    def parse_list(cls, v: Union[str, List[str]]) -> List[str]:
        return _split_list(v)

    @model_validator(mode="after")
    def derive_connections(self):
        """补全未显式配置的连接串和连接池参数"""
        if not self.DATABASE_URL:
            self.DATABASE_URL = (
                f"postgresql+{self.DATABASE_DRIVER}://{self.POSTGRES_USER}:{self.POSTGRES_PASSWORD}"
                f"@{self.POSTGRES_HOST}:{self.POSTGRES_PORT}/{self.POSTGRES_DB}"
            )
        if not self.REDIS_URL:
            self.REDIS_URL = f"redis://{self.REDIS_HOST}:{self.REDIS_PORT}/0"
        self.CELERY_BROKER_URL = self.CELERY_BROKER_URL or self.REDIS_URL
        self.CELERY_RESULT_BACKEND = self.CELERY_RESULT_BACKEND or self.REDIS_URL

        if self.POSTGRES_MAX_CONNECTIONS is None:
            self.POSTGRES_MAX_CONNECTIONS = 20 if self.DEBUG else 50
        if self.DB_MAX_OVERFLOW is None:
            self.DB_MAX_OVERFLOW = 10 if self.DEBUG else 20
        if self.DB_POOL_TIMEOUT_SECONDS is None:
            self.DB_POOL_TIMEOUT_SECONDS = 15 if self.DEBUG else 30
        return self

    @model_validator(mode="after")
    def reject_placeholder_secrets(self):
        if self.DEBUG:
            return self
        for name in ("ADMIN_TOKEN", "POSTGRES_PASSWORD"):
            if str(getattr(self, name) or "").strip() in PLACEHOLDER_SECRETS:
                raise ValueError(f"{name} 未配置或仍为默认值，请在 .env 中设置为安全值")
        if len(self.ADMIN_TOKEN) < 32:
            raise ValueError("ADMIN_TOKEN 长度过短，建议至少 32 字符")
        return self

    class Config:
        env_file = str(PROJECT_ROOT / ".env")
        env_file_encoding = "utf-8"
        case_sensitive = False
        extra = "ignore"


settings = Settings()
