"""
OrderService订单流程测试 - 使用内存数据库
"""

import json
import pytest
from decimal import Decimal
from unittest.mock import AsyncMock
from sqlalchemy import func, select

from app.core.exceptions import ConflictError, NotFoundError, TransientStoreError, ValidationError
from app.models.database.coupon_db import CouponUsageDB
from app.models.database.order_db import OrderDB, ProcessedPaymentEventDB
from app.models.database.product_db import ProductDB
from app.models.order import OrderCreate, OrderLineRequest, OrderStatus, OrderStatusUpdate, ShippingAddress
from app.models.payment import CheckoutCompletedEvent
from app.repositories.cart_repository import CartRepository
from app.repositories.coupon_repository import CouponRepository
from app.repositories.order_repository import OrderRepository, PaymentEventRepository
from app.repositories.product_repository import ProductRepository
from app.services.common_cache import SimpleCache
from app.services.coupon_service import CouponService
from app.services.order_service import OrderService, build_shipping_address, parse_metadata_items
from app.services.product_service import ProductService


@pytest.fixture
def order_service(db_session):
    product_repo = ProductRepository(db_session)
    order_repo = OrderRepository(db_session)
    return OrderService(
        order_repo=order_repo,
        product_repo=product_repo,
        cart_repo=CartRepository(db_session),
        payment_event_repo=PaymentEventRepository(db_session),
        coupon_service=CouponService(CouponRepository(db_session), product_repo, order_repo)
    )


@pytest.fixture
def shipping_address():
    return ShippingAddress(
        first_name="Ada",
        last_name="Lovelace",
        address="1 Main St",
        city="Springfield",
        state="IL",
        zip_code="62701",
        country="US"
    )


def checkout_event(session_id="cs_test_1", items=None, amount_total=10000, address=None,
                   user_id="u1", coupon_code=None, name="Ada Lovelace",
                   payment_status="paid") -> CheckoutCompletedEvent:
    if items is None:
        items = [{"id": "p1", "name": "Bag", "price": 100, "quantity": 1, "image": "x"}]
    metadata = {"userId": user_id, "items": json.dumps(items)}
    if coupon_code:
        metadata["couponCode"] = coupon_code
    if address is None:
        address = {"line1": "1 Main St", "city": "Springfield", "state": "IL",
                   "postal_code": "62701", "country": "US"}
    return CheckoutCompletedEvent.from_event({
        "id": f"evt_{session_id}",
        "type": "checkout.session.completed",
        "data": {"object": {
            "id": session_id,
            "amount_total": amount_total,
            "payment_status": payment_status,
            "customer_details": {"name": name, "email": "ada@example.com", "address": address},
            "metadata": metadata
        }}
    })


async def get_stock(db_session, product_id: str) -> int:
    result = await db_session.execute(
        select(ProductDB.stock).where(ProductDB.product_id == product_id)
    )
    return result.scalar_one()


async def count_rows(db_session, model) -> int:
    result = await db_session.execute(select(func.count()).select_from(model))
    return result.scalar_one()


@pytest.mark.asyncio
class TestDirectCheckout:
    """直接下单流程测试类"""

    async def test_insufficient_stock_rejected(self, db_session, order_service, make_product, shipping_address):
        """库存2件，购买3件：拒绝下单，库存不变，无订单"""
        await make_product("p1", stock=2, price=10000)
        order_data = OrderCreate(
            items=[OrderLineRequest(product_id="p1", quantity=3)],
            total_amount=30000,
            shipping_address=shipping_address
        )

        with pytest.raises(ConflictError) as exc_info:
            await order_service.create_direct_order("u1", order_data)

        assert "Insufficient stock for Bag. Available: 2" in exc_info.value.message
        assert await get_stock(db_session, "p1") == 2
        assert await count_rows(db_session, OrderDB) == 0

    async def test_successful_order(self, db_session, order_service, make_product, shipping_address):
        await make_product("p1", stock=5, price=10000)
        await make_product("p2", stock=1, price=2500, name="Vase", category="Decor")
        cart_repo = CartRepository(db_session)
        await cart_repo.add_item("u1", "p1", 2)
        order_data = OrderCreate(
            items=[
                OrderLineRequest(product_id="p1", quantity=2),
                OrderLineRequest(product_id="p2", quantity=1),
            ],
            total_amount=22500,
            shipping_address=shipping_address
        )

        order = await order_service.create_direct_order("u1", order_data)

        assert order.status == OrderStatus.PENDING
        assert order.total_price == Decimal("225.00")
        assert len(order.items) == 2
        assert await get_stock(db_session, "p1") == 3
        assert await get_stock(db_session, "p2") == 0
        assert (await ProductRepository(db_session).get_by_product_id("p2")).in_stock is False
        assert await cart_repo.get_user_items("u1") == []

    async def test_snapshot_taken_from_catalog(self, order_service, make_product, shipping_address):
        await make_product("p1", stock=5, price=10000, name="Leather Bag")
        order_data = OrderCreate(
            items=[{"product_id": "p1", "name": "stale name", "price": 1, "quantity": 1}],
            total_amount=10000,
            shipping_address=shipping_address
        )

        order = await order_service.create_direct_order("u1", order_data)

        assert order.items[0].name == "Leather Bag"
        assert order.items[0].price == 10000
        assert order.items[0].image == "https://cdn.example.com/p1.jpg"

    async def test_unknown_product(self, order_service, shipping_address):
        order_data = OrderCreate(
            items=[OrderLineRequest(product_id="ghost", quantity=1)],
            total_amount=100,
            shipping_address=shipping_address
        )

        with pytest.raises(NotFoundError):
            await order_service.create_direct_order("u1", order_data)

    async def test_total_must_cover_items(self, order_service, make_product, shipping_address):
        await make_product("p1", stock=5, price=10000)
        order_data = OrderCreate(
            items=[OrderLineRequest(product_id="p1", quantity=1)],
            total_amount=100,
            shipping_address=shipping_address
        )

        with pytest.raises(ValidationError):
            await order_service.create_direct_order("u1", order_data)

    async def test_coupon_applied_and_counted(self, db_session, order_service, make_product,
                                              make_coupon, shipping_address):
        await make_product("p1", stock=5, price=10000)
        coupon = await make_coupon(usage_limit=10)
        order_data = OrderCreate(
            items=[OrderLineRequest(product_id="p1", quantity=1)],
            total_amount=9000,
            coupon_code="save10",
            shipping_address=shipping_address
        )

        order = await order_service.create_direct_order("u1", order_data)

        assert order.discount_amount == 1000
        assert order.coupon_code == "SAVE10"
        refreshed = await CouponRepository(db_session).get_by_coupon_id(coupon.coupon_id)
        assert refreshed.usage_count == 1
        assert await count_rows(db_session, CouponUsageDB) == 1

    async def test_invalid_coupon_fails_checkout(self, order_service, make_product, make_coupon, shipping_address):
        await make_product("p1", stock=5, price=4000)
        await make_coupon()
        order_data = OrderCreate(
            items=[OrderLineRequest(product_id="p1", quantity=1)],
            total_amount=4000,
            coupon_code="SAVE10",
            shipping_address=shipping_address
        )

        with pytest.raises(ConflictError):
            await order_service.create_direct_order("u1", order_data)

    async def test_payment_session_idempotent(self, db_session, order_service, make_product, shipping_address):
        await make_product("p1", stock=5, price=10000)
        order_data = OrderCreate(
            items=[OrderLineRequest(product_id="p1", quantity=1)],
            total_amount=10000,
            payment_session_id="cs_direct",
            shipping_address=shipping_address
        )

        first = await order_service.create_direct_order("u1", order_data)
        second = await order_service.create_direct_order("u1", order_data)

        assert first.order_id == second.order_id
        assert await count_rows(db_session, OrderDB) == 1
        assert await get_stock(db_session, "p1") == 4


@pytest.mark.asyncio
class TestCheckoutReconciliation:
    """支付回调对账流程测试类"""

    async def test_checkout_completed_creates_processing_order(self, db_session, order_service, make_product):
        """元数据单价100(主币种)，实收10000分：订单总额100.00，库存减1"""
        await make_product("p1", stock=3)

        order, duplicate = await order_service.reconcile_checkout_completed(checkout_event())

        assert duplicate is False
        assert order.status == OrderStatus.PROCESSING
        assert order.total_price == Decimal("100.00")
        assert order.items[0].price == 10000
        assert order.items[0].image == "x"
        assert order.needs_review is False
        assert await get_stock(db_session, "p1") == 2

        ledger = await PaymentEventRepository(db_session).get_by_session_id("cs_test_1")
        assert ledger.order_id == order.order_id

    async def test_redelivery_is_noop(self, db_session, order_service, make_product):
        await make_product("p1", stock=3)
        event = checkout_event()

        first, _ = await order_service.reconcile_checkout_completed(event)
        second, duplicate = await order_service.reconcile_checkout_completed(event)

        assert duplicate is True
        assert second.order_id == first.order_id
        assert await count_rows(db_session, OrderDB) == 1
        assert await count_rows(db_session, ProcessedPaymentEventDB) == 1
        assert await get_stock(db_session, "p1") == 2

    async def test_missing_address_uses_placeholders(self, order_service, make_product):
        await make_product("p1", stock=3)

        order, _ = await order_service.reconcile_checkout_completed(
            checkout_event(address={"city": "Springfield"}, name="Ada")
        )

        assert order.shipping_address.address == "ADDRESS MISSING - REVIEW"
        assert order.shipping_address.city == "Springfield"
        assert order.shipping_address.zip_code == "00000"
        assert order.needs_review is True
        assert "address" in order.review_reason

    async def test_oversold_stock_clamped_and_flagged(self, db_session, order_service, make_product):
        await make_product("p1", stock=1)
        items = [{"id": "p1", "name": "Bag", "price": 100, "quantity": 3}]

        order, _ = await order_service.reconcile_checkout_completed(
            checkout_event(items=items, amount_total=30000)
        )

        assert await get_stock(db_session, "p1") == 0
        assert order.needs_review is True
        assert "clamped" in order.review_reason
        assert order.items[0].quantity == 3

    async def test_unknown_product_flagged_not_failed(self, order_service):
        order, _ = await order_service.reconcile_checkout_completed(checkout_event())

        assert order.needs_review is True
        assert "Unknown product p1" in order.review_reason

    async def test_clears_buyer_cart(self, db_session, order_service, make_product):
        await make_product("p1", stock=3)
        cart_repo = CartRepository(db_session)
        await cart_repo.add_item("u1", "p1", 1)
        await cart_repo.add_item("u2", "p1", 1)

        await order_service.reconcile_checkout_completed(checkout_event())

        assert await cart_repo.get_user_items("u1") == []
        assert len(await cart_repo.get_user_items("u2")) == 1

    async def test_guest_checkout_without_user(self, order_service, make_product):
        await make_product("p1", stock=3)

        order, _ = await order_service.reconcile_checkout_completed(checkout_event(user_id=None))

        assert order.user_id is None

    async def test_unreadable_metadata_kept_for_review(self, db_session, order_service, make_product):
        """款项已收但购物车元数据无法解析：保留订单待复核，不扣库存"""
        await make_product("p1", stock=3)
        event = checkout_event()
        event.raw_items = '[{"id": "p1", "price": "oops", "quantity": 1}]'

        order, duplicate = await order_service.reconcile_checkout_completed(event)

        assert duplicate is False
        assert order.items == []
        assert order.total_amount == 10000
        assert order.needs_review is True
        assert '"price": "oops"' in order.review_reason
        assert await get_stock(db_session, "p1") == 3

        again, duplicate = await order_service.reconcile_checkout_completed(event)
        assert duplicate is True
        assert again.order_id == order.order_id

    async def test_unreadable_metadata_without_payment_is_retriable(self, db_session, order_service):
        event = checkout_event(payment_status="unpaid")
        event.raw_items = "{not json"

        with pytest.raises(TransientStoreError):
            await order_service.reconcile_checkout_completed(event)

        assert await count_rows(db_session, OrderDB) == 0

    async def test_malformed_coupon_code_kept_out_of_order(self, order_service, make_product):
        await make_product("p1", stock=3)
        long_code = "SUMMER-SALE-" + "X" * 30

        order, _ = await order_service.reconcile_checkout_completed(checkout_event(coupon_code=long_code))

        assert order.coupon_code is None
        assert order.discount_amount == 0
        assert order.needs_review is True
        assert long_code in order.review_reason

    async def test_stock_change_invalidates_product_cache(self, db_session, make_product):
        await make_product("p1", stock=3)
        product_cache = AsyncMock(spec=SimpleCache)
        product_repo = ProductRepository(db_session)
        service = OrderService(
            order_repo=OrderRepository(db_session),
            product_repo=product_repo,
            cart_repo=CartRepository(db_session),
            payment_event_repo=PaymentEventRepository(db_session),
            product_service=ProductService(product_repo, cache=product_cache)
        )

        await service.reconcile_checkout_completed(checkout_event())

        product_cache.delete_pattern.assert_awaited_once_with("detail:p1")

    async def test_session_claimed_but_not_committed_is_retriable(self, db_session, order_service):
        await PaymentEventRepository(db_session).claim("cs_test_1", "evt_other")

        with pytest.raises(TransientStoreError):
            await order_service.reconcile_checkout_completed(checkout_event())

    async def test_coupon_failure_flags_review(self, order_service, make_product, make_coupon):
        await make_product("p1", stock=3)
        await make_coupon(minimum_amount=50000)

        order, _ = await order_service.reconcile_checkout_completed(checkout_event(coupon_code="SAVE10"))

        assert order.coupon_code == "SAVE10"
        assert order.discount_amount == 0
        assert order.needs_review is True


@pytest.mark.asyncio
class TestOrderAdmin:
    """订单后台管理测试类"""

    async def test_status_update_unconstrained(self, order_service, make_product):
        await make_product("p1", stock=3)
        order, _ = await order_service.reconcile_checkout_completed(checkout_event())

        delivered = await order_service.update_order(
            order.order_id, OrderStatusUpdate(status="delivered", tracking_url="https://track.example.com/1")
        )
        back_to_pending = await order_service.update_order(order.order_id, OrderStatusUpdate(status="pending"))

        assert delivered.status == OrderStatus.DELIVERED
        assert delivered.tracking_url == "https://track.example.com/1"
        assert back_to_pending.status == OrderStatus.PENDING

    async def test_update_unknown_order(self, order_service):
        with pytest.raises(NotFoundError):
            await order_service.update_order("ORDER_MISSING", OrderStatusUpdate(status="shipped"))

    async def test_list_orders_needing_review(self, order_service, make_product):
        await make_product("p1", stock=3)
        await order_service.reconcile_checkout_completed(checkout_event(session_id="cs_a"))
        flagged, _ = await order_service.reconcile_checkout_completed(
            checkout_event(session_id="cs_b", address={})
        )

        review = await order_service.list_orders(needs_review=True)

        assert [o.order_id for o in review] == [flagged.order_id]


class TestMetadataParsing:
    """元数据解析测试"""

    def test_quantity_defaults_to_one(self):
        items = parse_metadata_items('[{"id": "p1", "name": "Bag", "price": "12.50"}]')
        assert items[0].quantity == 1
        assert items[0].price == 1250

    @pytest.mark.parametrize("raw", [None, "", "[]", "{}", '[{"name": "no id"}]',
                                     '[{"id": "p1", "quantity": 0}]', '[{"id": "p1", "price": "abc"}]'])
    def test_invalid_metadata(self, raw):
        with pytest.raises(ValidationError):
            parse_metadata_items(raw)

    def test_address_fully_present(self):
        address, missing = build_shipping_address(checkout_event())
        assert missing == []
        assert address.full_name == "Ada Lovelace"
