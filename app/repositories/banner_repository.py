"""
促销横幅数据库操作层
"""

from typing import List, Optional
from datetime import datetime
import uuid

from sqlalchemy import select, update, and_, desc
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.banner import (
    PromotionalBanner,
    BannerCreate,
    BannerUpdate,
    BannerEventKind,
    BannerTracking,
    TargetAudience,
    DisplayRules,
    BannerContent
)
from app.models.database.banner_db import PromotionalBannerDB

# 事件类型到计数列的映射
EVENT_COUNTER_COLUMNS = {
    BannerEventKind.IMPRESSION: PromotionalBannerDB.impressions,
    BannerEventKind.CLICK: PromotionalBannerDB.clicks,
    BannerEventKind.CONVERSION: PromotionalBannerDB.conversions,
}


class BannerRepository:
    """促销横幅数据库操作类"""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_by_banner_id(self, banner_id: str) -> Optional[PromotionalBannerDB]:
        """根据横幅ID获取横幅"""
        result = await self.db.execute(
            select(PromotionalBannerDB)
            .where(PromotionalBannerDB.banner_id == banner_id)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def get_active_banners(
        self,
        current_time: Optional[datetime] = None,
        banner_type: Optional[str] = None,
        position: Optional[str] = None
    ) -> List[PromotionalBannerDB]:
        """获取当前生效的横幅，按优先级和创建时间倒序"""
        if current_time is None:
            current_time = datetime.now()

        conditions = [
            PromotionalBannerDB.is_active.is_(True),
            PromotionalBannerDB.start_date <= current_time,
            PromotionalBannerDB.end_date >= current_time
        ]
        if banner_type:
            conditions.append(PromotionalBannerDB.banner_type == banner_type)
        if position:
            conditions.append(PromotionalBannerDB.position == position)

        query = select(PromotionalBannerDB).where(and_(*conditions)).order_by(
            desc(PromotionalBannerDB.priority),
            desc(PromotionalBannerDB.created_at)
        )
        result = await self.db.execute(query)
        return list(result.scalars().all())

    async def list_banners(self, limit: int = 50, offset: int = 0) -> List[PromotionalBannerDB]:
        """获取全部横幅(后台)"""
        result = await self.db.execute(
            select(PromotionalBannerDB)
            .order_by(desc(PromotionalBannerDB.created_at))
            .limit(limit)
            .offset(offset)
        )
        return list(result.scalars().all())

    async def increment_counter(self, banner_id: str, kind: BannerEventKind) -> bool:
        """原子增加追踪计数"""
        column = EVENT_COUNTER_COLUMNS[kind]
        result = await self.db.execute(
            update(PromotionalBannerDB)
            .where(PromotionalBannerDB.banner_id == banner_id)
            .values({column: column + 1})
            .execution_options(synchronize_session=False)
        )
        return result.rowcount > 0

    async def increment_unique_views(self, banner_id: str) -> bool:
        """原子增加独立访客数"""
        result = await self.db.execute(
            update(PromotionalBannerDB)
            .where(PromotionalBannerDB.banner_id == banner_id)
            .values(unique_views=PromotionalBannerDB.unique_views + 1)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount > 0

    async def create(self, banner_data: BannerCreate) -> PromotionalBannerDB:
        """创建横幅"""
        now = datetime.now()
        db_banner = PromotionalBannerDB(
            banner_id=uuid.uuid4().hex,
            title=banner_data.title,
            subtitle=banner_data.subtitle,
            description=banner_data.description,
            banner_type=banner_data.banner_type.value,
            position=banner_data.position.value,
            priority=banner_data.priority,
            is_active=banner_data.is_active,
            start_date=banner_data.start_date,
            end_date=banner_data.end_date,
            target_audience=banner_data.target_audience.dict(),
            display_rules=banner_data.display_rules.dict(),
            content=banner_data.content.dict(),
            impressions=0,
            clicks=0,
            conversions=0,
            unique_views=0,
            campaign=banner_data.campaign,
            tags=list(banner_data.tags),
            created_at=now,
            updated_at=now
        )
        self.db.add(db_banner)
        await self.db.flush()
        return db_banner

    async def update(self, banner_id: str, banner_data: BannerUpdate) -> Optional[PromotionalBannerDB]:
        """更新横幅"""
        values = {}
        for key, value in banner_data.dict(exclude_unset=True).items():
            values[key] = value
        values["updated_at"] = datetime.now()

        result = await self.db.execute(
            update(PromotionalBannerDB)
            .where(PromotionalBannerDB.banner_id == banner_id)
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            return None
        return await self.get_by_banner_id(banner_id)

    def to_model(self, db_banner: PromotionalBannerDB) -> PromotionalBanner:
        """转换为Pydantic模型"""
        return PromotionalBanner(
            banner_id=db_banner.banner_id,
            title=db_banner.title,
            subtitle=db_banner.subtitle,
            description=db_banner.description,
            banner_type=db_banner.banner_type,
            position=db_banner.position,
            priority=db_banner.priority,
            is_active=db_banner.is_active,
            start_date=db_banner.start_date,
            end_date=db_banner.end_date,
            target_audience=TargetAudience(**(db_banner.target_audience or {})),
            display_rules=DisplayRules(**(db_banner.display_rules or {})),
            content=BannerContent(**(db_banner.content or {})),
            tracking=BannerTracking(
                impressions=db_banner.impressions or 0,
                clicks=db_banner.clicks or 0,
                conversions=db_banner.conversions or 0,
                unique_views=db_banner.unique_views or 0
            ),
            campaign=db_banner.campaign,
            tags=db_banner.tags or [],
            created_at=db_banner.created_at,
            updated_at=db_banner.updated_at
        )
