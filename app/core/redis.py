import redis.asyncio as aioredis
from typing import Optional
from app.core.config import Settings, settings
import structlog

"redis连接管理器 - 承载访客横幅展示历史"

logger = structlog.get_logger()


class RedisManager:
    """Redis连接管理器

    读操作在Redis不可用时返回空值，写操作返回False，
    调用方按没有展示历史处理。
    """

    def __init__(self, config: Settings = settings):
        self.config = config
        self.redis_pool: Optional[aioredis.Redis] = None

    async def init_redis(self) -> None:
        """初始化Redis连接池"""
        try:
            self.redis_pool = aioredis.from_url(
                self.config.redis_url_computed,
                encoding="utf-8",
                decode_responses=True,
                max_connections=20,
                socket_timeout=self.config.redis_socket_timeout,
                socket_connect_timeout=self.config.redis_socket_timeout,
                retry_on_timeout=True
            )
            await self.redis_pool.ping()
            logger.info("Redis连接初始化成功", url=self.config.redis_url_computed.split("@")[-1])
        except Exception as e:
            logger.error("Redis连接初始化失败", error=str(e))
            raise

    async def close_redis(self) -> None:
        """关闭Redis连接"""
        if self.redis_pool:
            await self.redis_pool.close()
            self.redis_pool = None
            logger.info("Redis连接已关闭")

    async def health_check(self) -> dict:
        if not self.redis_pool:
            return {"status": "error", "message": "连接池未初始化"}
        try:
            await self.redis_pool.ping()
            return {"status": "healthy", "message": "连接正常"}
        except Exception as e:
            return {"status": "error", "message": f"连接失败: {str(e)}"}

    async def hgetall(self, name: str) -> dict:
        """获取hash所有字段"""
        try:
            return await self.redis_pool.hgetall(name)
        except Exception as e:
            logger.error("Redis获取hash所有数据失败", hash_name=name, error=str(e))
            return {}

    async def hincrby_with_stamp(
        self,
        name: str,
        counter_field: str,
        stamp_field: str,
        stamp: str,
        ttl: int
    ) -> Optional[int]:
        """在一个事务内自增计数字段、写入时间戳并刷新过期时间，返回自增后的计数"""
        try:
            async with self.redis_pool.pipeline(transaction=True) as pipe:
                pipe.hincrby(name, counter_field, 1)
                pipe.hset(name, stamp_field, stamp)
                pipe.expire(name, ttl)
                count, _, _ = await pipe.execute()
            return count
        except Exception as e:
            logger.error("Redis更新hash计数失败", hash_name=name, field=counter_field, error=str(e))
            return None
