import os

# 必须在导入 flaggate 之前设置，Settings 在导入时实例化
os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"
os.environ["FEATURE_FLAG_CACHE_ENABLED"] = "false"
os.environ["ADMIN_TOKEN"] = "test-admin-token"
os.environ["DEBUG"] = "true"

import httpx
import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

import flaggate.models  # noqa: F401
from flaggate.db.database import Base, get_db
from flaggate.schemas.core import FeatureFlagCreate
from flaggate.services.feature_flags import FeatureFlagAdminService

ADMIN_TOKEN = "test-admin-token"


@pytest.fixture
async def session_factory():
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False, autoflush=False)
    yield factory
    await engine.dispose()


@pytest.fixture
async def db(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
def make_flag(db):
    async def _make(flag_key: str, **fields):
        return await FeatureFlagAdminService.create_flag(db, FeatureFlagCreate(flag_key=flag_key, **fields))

    return _make


@pytest.fixture
async def client(session_factory):
    from main import app

    async def _override_get_db():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = _override_get_db
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://testserver") as c:
        yield c
    app.dependency_overrides.clear()


@pytest.fixture
def admin_headers():
    return {"X-Admin-Token": ADMIN_TOKEN, "X-Actor-Id": "admin-7"}
