"""
优惠券业务服务层
提供优惠券校验、核销以及后台管理
"""

import logging
from typing import List, Optional
from datetime import datetime

from app.core.exceptions import ConflictError, NotFoundError, ValidationError
from app.models.coupon import (
    BuyerContext,
    Coupon,
    CouponCreate,
    CouponEvaluation,
    CouponLineItem,
    CouponRejection,
    CouponUpdate,
)
from app.repositories.coupon_repository import CouponRepository
from app.repositories.order_repository import OrderRepository
from app.repositories.product_repository import ProductRepository

logger = logging.getLogger(__name__)


class CouponService:
    """优惠券业务服务"""

    def __init__(
        self,
        coupon_repo: CouponRepository,
        product_repo: Optional[ProductRepository] = None,
        order_repo: Optional[OrderRepository] = None
    ):
        self.coupon_repo = coupon_repo
        self.product_repo = product_repo
        self.order_repo = order_repo

    async def evaluate(
        self,
        code: str,
        order_amount: int,
        items: Optional[List[CouponLineItem]] = None,
        user_id: Optional[str] = None,
        buyer_context: Optional[BuyerContext] = None,
        now: Optional[datetime] = None
    ) -> CouponEvaluation:
        """校验优惠券并计算折扣

        检查顺序固定，第一个失败的检查决定原因：
        不存在/停用 -> 过期 -> 总次数用尽 -> 单用户次数用尽 -> 未达门槛
        -> 商品/分类适用性 -> 客户分群与附加条件。
        校验不产生任何写入。
        """
        # 优惠券校验不使用缓存，确保实时性
        db_coupon = await self.coupon_repo.get_by_code(code)
        if not db_coupon or not db_coupon.is_active:
            return CouponEvaluation.reject(CouponRejection.NOT_FOUND)

        coupon = self.coupon_repo.to_model(db_coupon)
        items = list(items or [])

        if not coupon.is_within_validity(now):
            return CouponEvaluation.reject(CouponRejection.EXPIRED, coupon)

        if coupon.is_usage_exhausted():
            return CouponEvaluation.reject(CouponRejection.USAGE_EXHAUSTED, coupon)

        user_id = user_id or (buyer_context.user_id if buyer_context else None)
        if user_id and coupon.user_limit is not None:
            used = await self.coupon_repo.get_user_coupon_usage_count(user_id, coupon.coupon_id)
            if used >= coupon.user_limit:
                return CouponEvaluation.reject(CouponRejection.USAGE_EXHAUSTED, coupon)

        if coupon.is_below_minimum(order_amount):
            return CouponEvaluation.reject(CouponRejection.BELOW_MINIMUM, coupon)

        items = await self._fill_categories(items)
        if not coupon.is_applicable_to_items(items):
            return CouponEvaluation.reject(CouponRejection.NOT_APPLICABLE, coupon)

        buyer = await self._resolve_buyer(coupon, user_id, buyer_context)
        if not coupon.matches_buyer(buyer, items):
            return CouponEvaluation.reject(CouponRejection.NOT_APPLICABLE, coupon)

        return CouponEvaluation.accept(coupon, coupon.calculate_discount(order_amount))

    async def apply_to_order(
        self,
        code: str,
        order_id: str,
        order_amount: int,
        items: Optional[List[CouponLineItem]] = None,
        user_id: Optional[str] = None,
        buyer_context: Optional[BuyerContext] = None
    ) -> CouponEvaluation:
        """在订单落库的同一事务中核销优惠券

        重新校验后原子增加使用次数并写入使用记录；
        校验失败或并发下次数已被用尽时抛出ConflictError。
        """
        evaluation = await self.evaluate(code, order_amount, items, user_id, buyer_context)
        if not evaluation.valid:
            raise ConflictError(
                evaluation.message or "Coupon cannot be applied",
                details={"code": code, "reason": evaluation.reason.value}
            )

        coupon = evaluation.coupon
        if not await self.coupon_repo.increment_usage(coupon.coupon_id):
            raise ConflictError(
                "Coupon usage limit exceeded",
                details={"code": coupon.code, "reason": CouponRejection.USAGE_EXHAUSTED.value}
            )

        if user_id:
            db_coupon = await self.coupon_repo.get_by_coupon_id(coupon.coupon_id)
            await self.coupon_repo.record_usage(db_coupon, user_id, order_id, evaluation.discount_amount)

        logger.info(f"优惠券 {coupon.code} 已核销到订单 {order_id}，折扣 {evaluation.discount_amount}")
        return evaluation

    async def _fill_categories(self, items: List[CouponLineItem]) -> List[CouponLineItem]:
        """请求中缺少分类时从商品表补齐"""
        missing = [item.id for item in items if not item.category]
        if not missing or self.product_repo is None:
            return items

        products = await self.product_repo.get_many(missing)
        return [
            item if item.category or item.id not in products
            else item.copy(update={"category": products[item.id].category})
            for item in items
        ]

    async def _resolve_buyer(
        self,
        coupon: Coupon,
        user_id: Optional[str],
        buyer_context: Optional[BuyerContext]
    ) -> BuyerContext:
        buyer = buyer_context or BuyerContext(user_id=user_id)
        if (
            coupon.conditions.first_time_only
            and buyer.completed_orders is None
            and user_id
            and self.order_repo is not None
        ):
            completed = await self.order_repo.count_user_orders(user_id)
            buyer = buyer.copy(update={"completed_orders": completed})
        return buyer

    # ==================== 后台管理 ====================

    async def get_coupon_by_code(self, code: str) -> Coupon:
        db_coupon = await self.coupon_repo.get_by_code(code)
        if not db_coupon:
            raise NotFoundError(f"Coupon {code} not found")
        return self.coupon_repo.to_model(db_coupon)

    async def get_coupon_stats(self, coupon_id: str) -> dict:
        stats = await self.coupon_repo.get_coupon_stats(coupon_id)
        if not stats:
            raise NotFoundError(f"Coupon {coupon_id} not found")
        return stats

    async def list_coupons(self, active_only: bool = False, limit: int = 50, offset: int = 0) -> List[Coupon]:
        db_coupons = await self.coupon_repo.list_coupons(active_only=active_only, limit=limit, offset=offset)
        return [self.coupon_repo.to_model(c) for c in db_coupons]

    async def create_coupon(self, coupon_data: CouponCreate) -> Coupon:
        """创建优惠券，代码重复或引用了不存在的商品时拒绝"""
        if await self.coupon_repo.get_by_code(coupon_data.code):
            raise ConflictError(f"Coupon code {coupon_data.code} already exists")

        await self._validate_product_references(
            coupon_data.applicable_products + coupon_data.excluded_products
        )

        db_coupon = await self.coupon_repo.create(coupon_data)
        logger.info(f"创建优惠券: {db_coupon.code}")
        return self.coupon_repo.to_model(db_coupon)

    async def update_coupon(self, coupon_id: str, coupon_data: CouponUpdate) -> Coupon:
        """更新优惠券"""
        db_coupon = await self.coupon_repo.get_by_coupon_id(coupon_id)
        if not db_coupon:
            raise NotFoundError(f"Coupon {coupon_id} not found")

        await self._validate_product_references(
            (coupon_data.applicable_products or []) + (coupon_data.excluded_products or [])
        )

        # 合并后整体校验有效期和折扣值
        merged = self.coupon_repo.to_model(db_coupon).dict()
        merged.update(coupon_data.dict(exclude_unset=True))
        try:
            Coupon(**merged)
        except ValueError as e:
            raise ValidationError(str(e))

        updated = await self.coupon_repo.update(coupon_id, coupon_data)
        return self.coupon_repo.to_model(updated)

    async def _validate_product_references(self, product_ids: List[str]) -> None:
        if not product_ids or self.product_repo is None:
            return
        missing = await self.product_repo.get_missing_ids(product_ids)
        if missing:
            raise ValidationError(
                f"Unknown product ids: {', '.join(missing)}",
                details={"missing_products": missing}
            )
