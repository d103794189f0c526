"""
促销横幅业务服务层
把投放规则、展示历史、缓存和数据库组合起来
"""

import logging
from typing import List, Optional
from datetime import datetime

from app.core.config import settings
from app.core.exceptions import NotFoundError, ValidationError
from app.models.banner import (
    BannerCreate,
    BannerEventKind,
    BannerUpdate,
    PromotionalBanner,
    VisitorContext,
)
from app.repositories.banner_repository import BannerRepository
from app.services.banner_targeting import select_banners
from app.services.common_cache import SimpleCache, banner_cache
from app.services.display_history import BannerDisplayHistoryStore

logger = logging.getLogger(__name__)


class BannerService:
    """促销横幅业务服务"""

    def __init__(
        self,
        banner_repo: BannerRepository,
        history_store: Optional[BannerDisplayHistoryStore] = None,
        cache: Optional[SimpleCache] = None
    ):
        self.banner_repo = banner_repo
        self.history_store = history_store
        self.cache = cache or banner_cache
        self.cache_prefix = "active"
        self.cache_ttl = settings.banner_cache_ttl

    async def get_candidate_banners(
        self,
        banner_type: Optional[str] = None,
        position: Optional[str] = None,
        use_cache: bool = True
    ) -> List[PromotionalBanner]:
        """获取当前时间窗口内启用的横幅"""
        cache_key = f"{self.cache_prefix}:{banner_type or 'all'}:{position or 'all'}"

        if use_cache:
            cached = await self.cache.get(cache_key)
            if cached is not None:
                return [PromotionalBanner(**data) for data in cached]

        db_banners = await self.banner_repo.get_active_banners(
            banner_type=banner_type,
            position=position
        )
        banners = [self.banner_repo.to_model(db_banner) for db_banner in db_banners]

        if use_cache:
            await self.cache.set(
                cache_key,
                [banner.dict() for banner in banners],
                ttl=self.cache_ttl
            )

        return banners

    async def get_active_banners(
        self,
        visitor: VisitorContext,
        page_path: str,
        banner_type: Optional[str] = None,
        position: Optional[str] = None,
        now: Optional[datetime] = None
    ) -> List[PromotionalBanner]:
        """为访客在指定页面挑选横幅，按展示顺序返回"""
        candidates = await self.get_candidate_banners(banner_type, position)

        history = {}
        if self.history_store is not None:
            history = await self.history_store.get_history(visitor.visitor_id)

        return select_banners(candidates, visitor, page_path, history=history, now=now)

    async def record_event(
        self,
        banner_id: str,
        kind: BannerEventKind,
        visitor_id: Optional[str] = None
    ) -> None:
        """记录展示/点击/转化，计数为数据库原子自增"""
        if not await self.banner_repo.increment_counter(banner_id, kind):
            raise NotFoundError(f"Banner {banner_id} not found")

        if kind == BannerEventKind.IMPRESSION and visitor_id and self.history_store is not None:
            first_view = await self.history_store.record_display(visitor_id, banner_id)
            if first_view:
                await self.banner_repo.increment_unique_views(banner_id)

    # ==================== 后台管理 ====================

    async def get_banner(self, banner_id: str) -> PromotionalBanner:
        db_banner = await self.banner_repo.get_by_banner_id(banner_id)
        if not db_banner:
            raise NotFoundError(f"Banner {banner_id} not found")
        return self.banner_repo.to_model(db_banner)

    async def list_banners(self, limit: int = 50, offset: int = 0) -> List[PromotionalBanner]:
        db_banners = await self.banner_repo.list_banners(limit=limit, offset=offset)
        return [self.banner_repo.to_model(b) for b in db_banners]

    async def create_banner(self, banner_data: BannerCreate) -> PromotionalBanner:
        db_banner = await self.banner_repo.create(banner_data)
        await self.invalidate_cache()
        logger.info(f"创建横幅: {db_banner.banner_id} {db_banner.title}")
        return self.banner_repo.to_model(db_banner)

    async def update_banner(self, banner_id: str, banner_data: BannerUpdate) -> PromotionalBanner:
        current = await self.get_banner(banner_id)

        # 合并后整体校验时间窗口
        merged = current.dict()
        merged.update(banner_data.dict(exclude_unset=True))
        try:
            PromotionalBanner(**merged)
        except ValueError as e:
            raise ValidationError(str(e))

        db_banner = await self.banner_repo.update(banner_id, banner_data)
        await self.invalidate_cache()
        return self.banner_repo.to_model(db_banner)

    async def invalidate_cache(self) -> None:
        await self.cache.delete_pattern(f"{self.cache_prefix}:*")
