"""
优惠券数据库操作层
"""

from typing import List, Optional, Dict, Any
from datetime import datetime
import uuid

from sqlalchemy import select, update, and_, or_, desc, func
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.coupon import Coupon, CouponConditions, CouponCreate, CouponUpdate, normalize_coupon_code
from app.models.database.coupon_db import CouponDB, CouponUsageDB


class CouponRepository:
    """优惠券数据库操作类"""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_by_code(self, code: str) -> Optional[CouponDB]:
        """根据优惠券代码获取优惠券(代码不区分大小写)"""
        result = await self.db.execute(
            select(CouponDB)
            .where(CouponDB.code == normalize_coupon_code(code))
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def get_by_coupon_id(self, coupon_id: str) -> Optional[CouponDB]:
        """根据优惠券ID获取优惠券"""
        result = await self.db.execute(
            select(CouponDB)
            .where(CouponDB.coupon_id == coupon_id)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def list_coupons(
        self,
        active_only: bool = False,
        limit: int = 50,
        offset: int = 0
    ) -> List[CouponDB]:
        """获取优惠券列表"""
        query = select(CouponDB)
        if active_only:
            query = query.where(CouponDB.is_active.is_(True))
        query = query.order_by(desc(CouponDB.created_at)).limit(limit).offset(offset)

        result = await self.db.execute(query)
        return list(result.scalars().all())

    async def get_user_coupon_usage_count(self, user_id: str, coupon_id: str) -> int:
        """获取用户对特定优惠券的使用次数"""
        result = await self.db.execute(
            select(func.count(CouponUsageDB.usage_id)).where(
                and_(
                    CouponUsageDB.user_id == user_id,
                    CouponUsageDB.coupon_id == coupon_id
                )
            )
        )
        return result.scalar() or 0

    async def increment_usage(self, coupon_id: str) -> bool:
        """原子增加使用次数，已达上限时不修改并返回False"""
        result = await self.db.execute(
            update(CouponDB)
            .where(
                and_(
                    CouponDB.coupon_id == coupon_id,
                    or_(
                        CouponDB.usage_limit.is_(None),
                        CouponDB.usage_count < CouponDB.usage_limit
                    )
                )
            )
            .values(
                usage_count=CouponDB.usage_count + 1,
                updated_at=datetime.now()
            )
            .execution_options(synchronize_session=False)
        )
        return result.rowcount > 0

    async def record_usage(
        self,
        coupon: CouponDB,
        user_id: str,
        order_id: str,
        discount_amount: int
    ) -> CouponUsageDB:
        """写入使用记录"""
        usage = CouponUsageDB(
            usage_id=uuid.uuid4().hex,
            coupon_id=coupon.coupon_id,
            coupon_code=coupon.code,
            user_id=user_id,
            order_id=order_id,
            discount_amount=discount_amount,
            used_at=datetime.now()
        )
        self.db.add(usage)
        await self.db.flush()
        return usage

    async def get_coupon_stats(self, coupon_id: str) -> Dict[str, Any]:
        """获取优惠券统计信息"""
        coupon = await self.get_by_coupon_id(coupon_id)
        if not coupon:
            return {}

        usage_stats = await self.db.execute(
            select(
                func.count(CouponUsageDB.usage_id).label("total_usage"),
                func.sum(CouponUsageDB.discount_amount).label("total_discount"),
                func.count(func.distinct(CouponUsageDB.user_id)).label("unique_users")
            ).where(CouponUsageDB.coupon_id == coupon_id)
        )
        stats_row = usage_stats.fetchone()

        return {
            "coupon_id": coupon.coupon_id,
            "code": coupon.code,
            "usage_limit": coupon.usage_limit,
            "usage_count": coupon.usage_count,
            "remaining": (coupon.usage_limit - coupon.usage_count) if coupon.usage_limit else None,
            "total_usage": stats_row.total_usage or 0,
            "total_discount": int(stats_row.total_discount or 0),
            "unique_users": stats_row.unique_users or 0
        }

    async def create(self, coupon_data: CouponCreate) -> CouponDB:
        """创建优惠券"""
        now = datetime.now()
        data = coupon_data.dict()
        db_coupon = CouponDB(
            coupon_id=uuid.uuid4().hex,
            code=data["code"],
            name=data["name"],
            description=data["description"],
            coupon_type=coupon_data.coupon_type.value,
            value=data["value"],
            minimum_amount=data["minimum_amount"],
            maximum_discount=data["maximum_discount"],
            usage_limit=data["usage_limit"],
            usage_count=0,
            user_limit=data["user_limit"],
            valid_from=data["valid_from"],
            valid_until=data["valid_until"],
            is_active=data["is_active"],
            applicable_products=data["applicable_products"],
            applicable_categories=[c.value for c in coupon_data.applicable_categories],
            excluded_products=data["excluded_products"],
            excluded_categories=[c.value for c in coupon_data.excluded_categories],
            customer_segments=[s.value for s in coupon_data.customer_segments],
            conditions=coupon_data.conditions.dict(),
            campaign=data["campaign"],
            created_at=now,
            updated_at=now
        )
        self.db.add(db_coupon)
        await self.db.flush()
        return db_coupon

    async def update(self, coupon_id: str, coupon_data: CouponUpdate) -> Optional[CouponDB]:
        """更新优惠券"""
        values = coupon_data.dict(exclude_unset=True)
        for key in ("applicable_categories", "excluded_categories", "customer_segments"):
            if values.get(key) is not None:
                values[key] = [getattr(v, "value", v) for v in values[key]]
        values["updated_at"] = datetime.now()

        result = await self.db.execute(
            update(CouponDB)
            .where(CouponDB.coupon_id == coupon_id)
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            return None
        return await self.get_by_coupon_id(coupon_id)

    def to_model(self, db_coupon: CouponDB) -> Coupon:
        """转换为Pydantic模型"""
        return Coupon(
            coupon_id=db_coupon.coupon_id,
            code=db_coupon.code,
            name=db_coupon.name,
            description=db_coupon.description,
            coupon_type=db_coupon.coupon_type,
            value=db_coupon.value,
            minimum_amount=db_coupon.minimum_amount,
            maximum_discount=db_coupon.maximum_discount,
            usage_limit=db_coupon.usage_limit,
            usage_count=db_coupon.usage_count or 0,
            user_limit=db_coupon.user_limit,
            valid_from=db_coupon.valid_from,
            valid_until=db_coupon.valid_until,
            is_active=db_coupon.is_active,
            applicable_products=db_coupon.applicable_products or [],
            applicable_categories=db_coupon.applicable_categories or [],
            excluded_products=db_coupon.excluded_products or [],
            excluded_categories=db_coupon.excluded_categories or [],
            customer_segments=db_coupon.customer_segments or [],
            conditions=CouponConditions(**(db_coupon.conditions or {})),
            campaign=db_coupon.campaign,
            created_at=db_coupon.created_at,
            updated_at=db_coupon.updated_at
        )
