"""
访客横幅展示历史

每位访客一个Redis hash：banner_history:{visitor_id}，
每个横幅两个字段：{banner_id}:count 为展示次数，{banner_id}:last 为最近展示时间(iso)。
计数用HINCRBY自增，同一访客并发展示也只会有一次被判定为首次。
Redis不可用时历史为空，横幅不受频次限制。
"""

from collections import defaultdict
from datetime import datetime
from typing import Dict, Optional

import structlog

from app.core.config import settings
from app.core.redis import RedisManager
from app.models.banner import DisplayHistory

logger = structlog.get_logger()

COUNT_SUFFIX = "count"
LAST_SUFFIX = "last"


class BannerDisplayHistoryStore:
    """访客展示历史存储"""

    key_prefix = "banner_history"

    def __init__(self, redis_manager: RedisManager, ttl: int = settings.banner_history_ttl):
        self.redis = redis_manager
        self.ttl = ttl

    def _key(self, visitor_id: str) -> str:
        return f"{self.key_prefix}:{visitor_id}"

    async def get_history(self, visitor_id: Optional[str]) -> Dict[str, DisplayHistory]:
        """读取访客全部横幅的展示历史"""
        if not visitor_id:
            return {}

        raw = await self.redis.hgetall(self._key(visitor_id))
        fields = defaultdict(dict)
        for field, value in (raw or {}).items():
            banner_id, _, suffix = field.rpartition(":")
            if banner_id:
                fields[banner_id][suffix] = value

        history = {}
        for banner_id, values in fields.items():
            if COUNT_SUFFIX not in values:
                continue
            try:
                history[banner_id] = DisplayHistory(
                    display_count=int(values[COUNT_SUFFIX]),
                    last_displayed_at=values.get(LAST_SUFFIX) or None
                )
            except (TypeError, ValueError):
                logger.warning("展示历史数据损坏，已忽略", visitor_id=visitor_id, banner_id=banner_id)
        return history

    async def record_display(
        self,
        visitor_id: str,
        banner_id: str,
        now: Optional[datetime] = None
    ) -> bool:
        """记录一次展示，返回是否为该访客首次看到此横幅"""
        now = now or datetime.now()
        count = await self.redis.hincrby_with_stamp(
            self._key(visitor_id),
            f"{banner_id}:{COUNT_SUFFIX}",
            f"{banner_id}:{LAST_SUFFIX}",
            now.isoformat(),
            self.ttl
        )
        return count == 1
