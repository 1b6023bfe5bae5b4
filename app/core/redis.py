"""Redis 客户端配置模块"""

from redis import Redis
from redis.asyncio import Redis as AsyncRedis

from app.core.config import settings

REDIS_URL = settings.redis_url

# 同步客户端用于实时推送（PUBLISH），异步客户端用于启动时健康检查
redis_client = Redis.from_url(
    REDIS_URL,
    decode_responses=True,
    socket_connect_timeout=settings.REDIS_SOCKET_TIMEOUT,
    socket_timeout=settings.REDIS_SOCKET_TIMEOUT,
)
async_redis = AsyncRedis.from_url(
    REDIS_URL,
    decode_responses=True,
    socket_connect_timeout=settings.REDIS_SOCKET_TIMEOUT,
    socket_timeout=settings.REDIS_SOCKET_TIMEOUT,
)

# 导出
__all__ = [
    "redis_client",
    "async_redis",
    "REDIS_URL"
]
