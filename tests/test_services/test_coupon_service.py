"""
CouponService业务逻辑测试
"""

import pytest
from datetime import datetime, timedelta
from unittest.mock import AsyncMock

from app.core.exceptions import ConflictError, NotFoundError, ValidationError
from app.models.coupon import BuyerContext, CouponCreate, CouponLineItem, CouponRejection
from app.models.database.coupon_db import CouponDB
from app.repositories.coupon_repository import CouponRepository
from app.repositories.order_repository import OrderRepository
from app.repositories.product_repository import ProductRepository
from app.services.coupon_service import CouponService


def coupon_db(**overrides) -> CouponDB:
    data = {
        "coupon_id": "coupon_001",
        "code": "SAVE10",
        "name": "Save 10%",
        "coupon_type": "percentage",
        "value": 10,
        "minimum_amount": 5000,
        "usage_count": 0,
        "valid_from": datetime.now() - timedelta(days=1),
        "valid_until": datetime.now() + timedelta(days=30),
        "is_active": True,
    }
    data.update(overrides)
    return CouponDB(**data)


@pytest.mark.asyncio
class TestCouponEvaluation:
    """优惠券校验测试类"""

    @pytest.fixture
    def mock_coupon_repo(self):
        """模拟CouponRepository，to_model使用真实转换"""
        repo = AsyncMock(spec=CouponRepository)
        repo.to_model.side_effect = CouponRepository(AsyncMock()).to_model
        repo.get_user_coupon_usage_count.return_value = 0
        return repo

    @pytest.fixture
    def mock_order_repo(self):
        return AsyncMock(spec=OrderRepository)

    @pytest.fixture
    def coupon_service(self, mock_coupon_repo, mock_order_repo):
        return CouponService(mock_coupon_repo, order_repo=mock_order_repo)

    async def test_percentage_coupon_above_minimum(self, coupon_service, mock_coupon_repo):
        """SAVE10 10% 门槛5000分，订单10000分折扣1000分"""
        mock_coupon_repo.get_by_code.return_value = coupon_db()

        result = await coupon_service.evaluate("save10", 10000, [])

        assert result.valid is True
        assert result.discount_amount == 1000
        assert result.reason is None

    async def test_below_minimum(self, coupon_service, mock_coupon_repo):
        mock_coupon_repo.get_by_code.return_value = coupon_db()

        result = await coupon_service.evaluate("SAVE10", 4000, [])

        assert result.valid is False
        assert result.reason == CouponRejection.BELOW_MINIMUM
        assert result.discount_amount is None

    async def test_not_found(self, coupon_service, mock_coupon_repo):
        mock_coupon_repo.get_by_code.return_value = None

        result = await coupon_service.evaluate("NOPE", 10000, [])

        assert result.reason == CouponRejection.NOT_FOUND

    async def test_inactive_coupon_reported_as_not_found(self, coupon_service, mock_coupon_repo):
        mock_coupon_repo.get_by_code.return_value = coupon_db(is_active=False)

        result = await coupon_service.evaluate("SAVE10", 10000, [])

        assert result.reason == CouponRejection.NOT_FOUND

    async def test_expired_wins_over_other_failures(self, coupon_service, mock_coupon_repo):
        """过期优先于次数用尽、门槛和适用性"""
        mock_coupon_repo.get_by_code.return_value = coupon_db(
            valid_from=datetime.now() - timedelta(days=10),
            valid_until=datetime.now() - timedelta(days=1),
            usage_limit=1,
            usage_count=1,
            excluded_products=["p1"]
        )

        result = await coupon_service.evaluate("SAVE10", 100, [CouponLineItem(id="p1")])

        assert result.reason == CouponRejection.EXPIRED

    async def test_usage_exhausted_before_minimum(self, coupon_service, mock_coupon_repo):
        mock_coupon_repo.get_by_code.return_value = coupon_db(usage_limit=5, usage_count=5)

        result = await coupon_service.evaluate("SAVE10", 100, [])

        assert result.reason == CouponRejection.USAGE_EXHAUSTED

    async def test_per_user_limit(self, coupon_service, mock_coupon_repo):
        mock_coupon_repo.get_by_code.return_value = coupon_db(user_limit=1)
        mock_coupon_repo.get_user_coupon_usage_count.return_value = 1

        result = await coupon_service.evaluate("SAVE10", 10000, [], user_id="u1")

        assert result.reason == CouponRejection.USAGE_EXHAUSTED
        mock_coupon_repo.get_user_coupon_usage_count.assert_called_once_with("u1", "coupon_001")

    async def test_per_user_limit_ignored_for_anonymous(self, coupon_service, mock_coupon_repo):
        mock_coupon_repo.get_by_code.return_value = coupon_db(user_limit=1)

        result = await coupon_service.evaluate("SAVE10", 10000, [])

        assert result.valid is True
        mock_coupon_repo.get_user_coupon_usage_count.assert_not_called()

    async def test_excluded_product_not_applicable(self, coupon_service, mock_coupon_repo):
        mock_coupon_repo.get_by_code.return_value = coupon_db(excluded_products=["p2"])

        result = await coupon_service.evaluate(
            "SAVE10", 10000, [CouponLineItem(id="p1"), CouponLineItem(id="p2")]
        )

        assert result.reason == CouponRejection.NOT_APPLICABLE

    async def test_category_filled_from_catalog(self, mock_coupon_repo):
        mock_coupon_repo.get_by_code.return_value = coupon_db(applicable_categories=["Home"])
        product_repo = AsyncMock(spec=ProductRepository)
        product_repo.get_many.return_value = {"p1": type("P", (), {"category": "Home"})()}
        service = CouponService(mock_coupon_repo, product_repo=product_repo)

        result = await service.evaluate("SAVE10", 10000, [CouponLineItem(id="p1")])

        assert result.valid is True

    async def test_first_time_only_uses_order_history(self, coupon_service, mock_coupon_repo, mock_order_repo):
        mock_coupon_repo.get_by_code.return_value = coupon_db(conditions={"first_time_only": True})
        mock_order_repo.count_user_orders.return_value = 2

        result = await coupon_service.evaluate("SAVE10", 10000, [], user_id="u1")

        assert result.reason == CouponRejection.NOT_APPLICABLE

    async def test_first_time_only_with_buyer_context(self, coupon_service, mock_coupon_repo, mock_order_repo):
        mock_coupon_repo.get_by_code.return_value = coupon_db(conditions={"first_time_only": True})

        result = await coupon_service.evaluate(
            "SAVE10", 10000, [], buyer_context=BuyerContext(user_id="u1", completed_orders=0)
        )

        assert result.valid is True
        mock_order_repo.count_user_orders.assert_not_called()

    async def test_fixed_coupon_clamped(self, coupon_service, mock_coupon_repo):
        mock_coupon_repo.get_by_code.return_value = coupon_db(
            coupon_type="fixed", value=8000, minimum_amount=None
        )

        result = await coupon_service.evaluate("SAVE10", 3000, [])

        assert result.discount_amount == 3000

    async def test_evaluate_has_no_side_effects(self, coupon_service, mock_coupon_repo):
        mock_coupon_repo.get_by_code.return_value = coupon_db()

        await coupon_service.evaluate("SAVE10", 10000, [])
        await coupon_service.evaluate("SAVE10", 10000, [])

        mock_coupon_repo.increment_usage.assert_not_called()
        mock_coupon_repo.record_usage.assert_not_called()


@pytest.mark.asyncio
class TestCouponApplication:
    """优惠券核销测试类"""

    @pytest.fixture
    def mock_coupon_repo(self):
        repo = AsyncMock(spec=CouponRepository)
        repo.to_model.side_effect = CouponRepository(AsyncMock()).to_model
        repo.get_user_coupon_usage_count.return_value = 0
        repo.get_by_code.return_value = coupon_db()
        repo.get_by_coupon_id.return_value = coupon_db()
        return repo

    async def test_apply_increments_usage_and_records_ledger(self, mock_coupon_repo):
        mock_coupon_repo.increment_usage.return_value = True
        service = CouponService(mock_coupon_repo)

        result = await service.apply_to_order("SAVE10", "ORDER_1", 10000, user_id="u1")

        assert result.discount_amount == 1000
        mock_coupon_repo.increment_usage.assert_called_once_with("coupon_001")
        mock_coupon_repo.record_usage.assert_called_once()
        args = mock_coupon_repo.record_usage.call_args[0]
        assert args[1:] == ("u1", "ORDER_1", 1000)

    async def test_apply_conflict_when_limit_reached_concurrently(self, mock_coupon_repo):
        mock_coupon_repo.increment_usage.return_value = False
        service = CouponService(mock_coupon_repo)

        with pytest.raises(ConflictError):
            await service.apply_to_order("SAVE10", "ORDER_1", 10000, user_id="u1")

        mock_coupon_repo.record_usage.assert_not_called()

    async def test_apply_invalid_coupon_raises_conflict(self, mock_coupon_repo):
        service = CouponService(mock_coupon_repo)

        with pytest.raises(ConflictError) as exc_info:
            await service.apply_to_order("SAVE10", "ORDER_1", 4000)

        assert exc_info.value.details["reason"] == "BelowMinimum"
        mock_coupon_repo.increment_usage.assert_not_called()


@pytest.mark.asyncio
class TestCouponAdmin:
    """优惠券后台管理测试类"""

    @pytest.fixture
    def coupon_create(self):
        return CouponCreate(
            code="bags5",
            name="Bags $5 off",
            coupon_type="fixed",
            value=500,
            valid_until=datetime.now() + timedelta(days=7),
            applicable_products=["p1", "p404"]
        )

    async def test_create_rejects_unknown_products(self, coupon_create):
        coupon_repo = AsyncMock(spec=CouponRepository)
        coupon_repo.get_by_code.return_value = None
        product_repo = AsyncMock(spec=ProductRepository)
        product_repo.get_missing_ids.return_value = ["p404"]
        service = CouponService(coupon_repo, product_repo=product_repo)

        with pytest.raises(ValidationError) as exc_info:
            await service.create_coupon(coupon_create)

        assert exc_info.value.details["missing_products"] == ["p404"]
        coupon_repo.create.assert_not_called()

    async def test_create_rejects_duplicate_code(self, coupon_create):
        coupon_repo = AsyncMock(spec=CouponRepository)
        coupon_repo.get_by_code.return_value = coupon_db(code="BAGS5")
        service = CouponService(coupon_repo)

        with pytest.raises(ConflictError):
            await service.create_coupon(coupon_create)

    async def test_get_unknown_code(self):
        coupon_repo = AsyncMock(spec=CouponRepository)
        coupon_repo.get_by_code.return_value = None

        with pytest.raises(NotFoundError):
            await CouponService(coupon_repo).get_coupon_by_code("MISSING")
