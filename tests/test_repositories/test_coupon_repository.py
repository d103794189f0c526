"""
优惠券Repository数据库操作测试 - 使用真实数据库
"""

import pytest

from app.repositories.coupon_repository import CouponRepository


@pytest.mark.asyncio
class TestCouponRepository:
    """优惠券Repository数据库操作测试类"""

    async def test_create_and_get_by_code(self, db_session, make_coupon):
        """代码统一大写存储，查询不区分大小写"""
        coupon = await make_coupon(code="  spring20 ")
        coupon_repo = CouponRepository(db_session)

        retrieved = await coupon_repo.get_by_code("Spring20")

        assert retrieved is not None
        assert retrieved.coupon_id == coupon.coupon_id
        assert retrieved.code == "SPRING20"
        assert retrieved.usage_count == 0

    async def test_get_nonexistent_coupon(self, db_session):
        coupon_repo = CouponRepository(db_session)
        assert await coupon_repo.get_by_code("NONEXISTENT") is None

    async def test_increment_usage_respects_limit(self, db_session, make_coupon):
        coupon = await make_coupon(usage_limit=2)
        coupon_repo = CouponRepository(db_session)

        assert await coupon_repo.increment_usage(coupon.coupon_id) is True
        assert await coupon_repo.increment_usage(coupon.coupon_id) is True
        assert await coupon_repo.increment_usage(coupon.coupon_id) is False

        refreshed = await coupon_repo.get_by_coupon_id(coupon.coupon_id)
        assert refreshed.usage_count == 2

    async def test_increment_usage_unlimited(self, db_session, make_coupon):
        coupon = await make_coupon(usage_limit=None)
        coupon_repo = CouponRepository(db_session)

        for _ in range(5):
            assert await coupon_repo.increment_usage(coupon.coupon_id) is True

        assert (await coupon_repo.get_by_coupon_id(coupon.coupon_id)).usage_count == 5

    async def test_usage_ledger_and_stats(self, db_session, make_coupon):
        coupon = await make_coupon(usage_limit=10)
        coupon_repo = CouponRepository(db_session)

        await coupon_repo.record_usage(coupon, "u1", "ORDER_1", 1000)
        await coupon_repo.record_usage(coupon, "u1", "ORDER_2", 500)
        await coupon_repo.record_usage(coupon, "u2", "ORDER_3", 700)

        assert await coupon_repo.get_user_coupon_usage_count("u1", coupon.coupon_id) == 2
        assert await coupon_repo.get_user_coupon_usage_count("u3", coupon.coupon_id) == 0

        stats = await coupon_repo.get_coupon_stats(coupon.coupon_id)
        assert stats["total_usage"] == 3
        assert stats["total_discount"] == 2200
        assert stats["unique_users"] == 2
        assert stats["remaining"] == 10

    async def test_to_model(self, db_session, make_coupon):
        coupon = await make_coupon(applicable_categories=["Bags"])
        model = CouponRepository(db_session).to_model(coupon)

        assert model.code == "SAVE10"
        assert model.minimum_amount == 5000
        assert model.applicable_categories == ["Bags"]
