"""
开关快照缓存
Redis 读缓存：故障时按未命中处理，评估退回直接读库
"""

import asyncio
import json
import logging
from typing import Any, Optional

import redis.asyncio as redis
from flaggate.core.config import settings

logger = logging.getLogger(__name__)


class RedisCache:
    """
    进程内单例的 Redis 客户端

    客户端绑定创建它的事件循环；在另一个循环里使用时（例如 Celery 任务
    每次新建循环）先丢弃旧连接再重连。读写方法不抛出 Redis 异常。
    """

    _instance: Optional["RedisCache"] = None

    def __new__(cls):
        if cls._instance is None:
            instance = super().__new__(cls)
            instance._client = None
            instance._loop = None
            cls._instance = instance
        return cls._instance

    @staticmethod
    def _connect() -> redis.Redis:
        return redis.Redis(
            host=settings.REDIS_HOST,
            port=settings.REDIS_PORT,
            db=settings.REDIS_DB_CACHE,
            decode_responses=True,
            socket_connect_timeout=settings.REDIS_CONNECT_TIMEOUT,
            socket_keepalive=True,
            retry_on_timeout=True,
        )

    async def initialize(self) -> None:
        loop = asyncio.get_running_loop()
        if self._client is not None and self._loop is loop:
            return
        client = self._connect()
        try:
            await client.ping()
        except Exception as e:
            logger.error(f"开关缓存连接 Redis 失败 {settings.REDIS_HOST}:{settings.REDIS_PORT}: {e}")
            await client.aclose()
            raise
        self._client, self._loop = client, loop
        logger.info(f"开关缓存已连接 Redis db={settings.REDIS_DB_CACHE}")

    async def _discard(self) -> None:
        client, self._client, self._loop = self._client, None, None
        if client is None:
            return
        try:
            await client.aclose()
        except Exception as e:
            # 原事件循环已关闭时关闭连接会失败，连接随循环一起释放
            logger.debug(f"丢弃旧 Redis 连接时出错: {e}")

    async def get_client(self) -> redis.Redis:
        if self._client is not None and self._loop is not asyncio.get_running_loop():
            await self._discard()
        if self._client is None:
            await self.initialize()
        return self._client

    async def close(self) -> None:
        if self._client is not None:
            await self._discard()
            logger.info("开关缓存 Redis 连接已关闭")

    async def get(self, key: str) -> Optional[Any]:
        """读取 JSON 值；未命中或 Redis 故障时返回 None"""
        try:
            client = await self.get_client()
            raw = await client.get(key)
        except Exception as e:
            logger.warning(f"读取缓存失败 {key}: {e}")
            return None
        if raw is None:
            return None
        try:
            return json.loads(raw)
        except json.JSONDecodeError:
            return raw

    async def set(self, key: str, value: Any, expire_seconds: Optional[int] = None) -> bool:
        try:
            client = await self.get_client()
            payload = json.dumps(value, ensure_ascii=False)
            return bool(await client.set(key, payload, ex=expire_seconds or None))
        except Exception as e:
            logger.warning(f"写入缓存失败 {key}: {e}")
            return False

    async def delete(self, key: str) -> bool:
        try:
            client = await self.get_client()
            return await client.delete(key) > 0
        except Exception as e:
            logger.warning(f"删除缓存失败 {key}: {e}")
            return False

    async def incr(self, key: str) -> Optional[int]:
        """计数器加一，Redis 不可用时返回 None"""
        try:
            client = await self.get_client()
            return int(await client.incr(key))
        except Exception as e:
            logger.warning(f"缓存计数器自增失败 {key}: {e}")
            return None


cache: RedisCache = RedisCache()


class FeatureFlagCacheKeys:
    """
    功能开关缓存键生成器

    快照键带有代数（generation）：每次写入提交后代数加一，
    读者总是按当前代数读写，写入前已开始的读取只会落到旧代数的键上。
    """

    PREFIX = "feature_flags"

    @staticmethod
    def generation(flag_key: str) -> str:
        return f"{FeatureFlagCacheKeys.PREFIX}:gen:{flag_key}"

    @staticmethod
    def snapshot(flag_key: str, generation: int = 0) -> str:
        """开关配置快照缓存键"""
        return f"{FeatureFlagCacheKeys.PREFIX}:snapshot:{flag_key}:{generation}"


async def get_feature_flag_generation(flag_key: str) -> int:
    value = await cache.get(FeatureFlagCacheKeys.generation(flag_key))
    try:
        return int(value or 0)
    except (TypeError, ValueError):
        return 0


async def clear_feature_flag_cache(flag_key: str) -> None:
    """使开关缓存失效（写入提交后同步调用）"""
    if not settings.FEATURE_FLAG_CACHE_ENABLED:
        return
    generation = await cache.incr(FeatureFlagCacheKeys.generation(flag_key))
    if generation is None:
        logger.warning(f"功能开关缓存代数递增失败，旧快照将在 TTL 后过期: {flag_key}")
        return
    # 旧代数的快照已不会被读取，顺手删除
    await cache.delete(FeatureFlagCacheKeys.snapshot(flag_key, generation - 1))


# FastAPI生命周期事件
async def startup_cache():
    """应用启动时初始化缓存"""
    await cache.initialize()
    logger.info("缓存服务启动完成")


async def shutdown_cache():
    """应用关闭时清理缓存连接"""
    await cache.close()
    logger.info("缓存服务已关闭")
