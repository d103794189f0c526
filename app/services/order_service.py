"""
订单业务服务层
直接下单与支付回调两条路径汇合到同一组订单不变量：
订单只创建一次、库存原子扣减、下单后清空购物车。
"""

import json
from collections import OrderedDict
from typing import Any, Dict, List, Optional, Tuple, Union

import structlog
from sqlalchemy.exc import SQLAlchemyError

from app.core.config import Settings, settings
from app.core.exceptions import ConflictError, NotFoundError, TransientStoreError, ValidationError
from app.models.coupon import COUPON_CODE_PATTERN, CouponLineItem, normalize_coupon_code
from app.models.order import (
    Order,
    OrderCreate,
    OrderItem,
    OrderLineRequest,
    OrderStatus,
    OrderStatusUpdate,
    ShippingAddress,
)
from app.models.payment import CheckoutCompletedEvent
from app.repositories.cart_repository import CartRepository
from app.repositories.order_repository import OrderRepository, PaymentEventRepository, generate_order_id
from app.repositories.product_repository import ProductRepository
from app.services.coupon_service import CouponService
from app.services.product_service import ProductService
from app.utils.money import to_cents

logger = structlog.get_logger()

# 订单合计与明细之间允许的舍入误差(分)
ROUNDING_TOLERANCE = 1


def parse_metadata_items(raw_items: Any) -> List[OrderItem]:
    """解析支付会话元数据中的购物车

    元数据里的价格为主币种金额，这里转换为分；数量缺省为1。
    """
    if raw_items is None or raw_items == "":
        raise ValidationError("支付事件缺少购物车元数据")

    if isinstance(raw_items, str):
        try:
            raw_items = json.loads(raw_items)
        except json.JSONDecodeError:
            raise ValidationError("购物车元数据不是合法JSON")

    if not isinstance(raw_items, list) or not raw_items:
        raise ValidationError("购物车元数据必须是非空列表")

    items = []
    for index, entry in enumerate(raw_items):
        if not isinstance(entry, dict) or not entry.get("id"):
            raise ValidationError(f"第{index + 1}个商品缺少ID")
        try:
            quantity = entry.get("quantity")
            quantity = 1 if quantity in (None, "") else int(quantity)
            price = to_cents(entry.get("price") or 0)
        except (TypeError, ValueError):
            raise ValidationError(f"商品 {entry['id']} 的价格或数量格式错误")
        if quantity < 1 or price < 0:
            raise ValidationError(f"商品 {entry['id']} 的价格或数量超出范围")

        items.append(OrderItem(
            product_id=str(entry["id"]),
            name=str(entry.get("name") or entry["id"]),
            price=price,
            quantity=quantity,
            image=str(entry.get("image") or "")
        ))
    return items


def build_shipping_address(
    event: CheckoutCompletedEvent,
    config: Settings = settings
) -> Tuple[ShippingAddress, List[str]]:
    """尽量从支付方返回的信息重建收货地址

    缺失的字段用明显的占位值替代，并返回缺失字段列表供人工复核。
    """
    name = (event.customer_name or "").strip()
    first_name, _, last_name = name.partition(" ")
    address = event.address

    line = " ".join(part for part in (address.line1, address.line2) if part and part.strip())

    fields = OrderedDict([
        ("first_name", (first_name, "Customer")),
        ("last_name", (last_name.strip(), "-")),
        ("address", (line, config.placeholder_address_line)),
        ("city", (address.city, config.placeholder_city)),
        ("state", (address.state, config.placeholder_state)),
        ("zip_code", (address.postal_code, config.placeholder_zip_code)),
        ("country", (address.country, config.placeholder_country)),
    ])

    values = {}
    missing = []
    for field, (value, placeholder) in fields.items():
        if value and str(value).strip():
            values[field] = str(value)
        else:
            values[field] = placeholder
            missing.append(field)

    return ShippingAddress(**values), missing


def aggregate_quantities(items: List[Union[OrderItem, OrderLineRequest]]) -> Dict[str, int]:
    """同一商品多行时合并数量"""
    quantities: Dict[str, int] = OrderedDict()
    for item in items:
        quantities[item.product_id] = quantities.get(item.product_id, 0) + item.quantity
    return quantities


class OrderService:
    """订单业务服务"""

    def __init__(
        self,
        order_repo: OrderRepository,
        product_repo: ProductRepository,
        cart_repo: CartRepository,
        payment_event_repo: PaymentEventRepository,
        coupon_service: Optional[CouponService] = None,
        product_service: Optional[ProductService] = None,
        config: Settings = settings
    ):
        self.order_repo = order_repo
        self.product_repo = product_repo
        self.cart_repo = cart_repo
        self.payment_event_repo = payment_event_repo
        self.coupon_service = coupon_service
        self.product_service = product_service or ProductService(product_repo)
        self.config = config

    # ==================== 直接下单 ====================

    async def create_direct_order(self, user_id: str, order_data: OrderCreate) -> Order:
        """直接下单：校验库存 -> 创建待处理订单 -> 扣减库存 -> 清空购物车

        库存不足时抛出ConflictError，不创建订单也不修改库存。
        带 payment_session_id 时按会话幂等，重复请求返回已有订单。
        """
        session_id = order_data.payment_session_id
        if session_id:
            if not await self.payment_event_repo.claim(session_id, event_id=session_id, source="checkout"):
                return await self._existing_order_for_session(session_id)

        quantities = aggregate_quantities(order_data.items)
        products = await self.product_repo.get_many(quantities.keys())

        for product_id, quantity in quantities.items():
            product = products.get(product_id)
            if product is None:
                raise NotFoundError(f"Product {product_id} not found")
            if product.stock < quantity:
                raise ConflictError(
                    f"Insufficient stock for {product.name}. Available: {product.stock}",
                    details={"product_id": product_id, "available": product.stock, "requested": quantity}
                )

        # 名称、价格、图片为下单时的商品快照
        items = []
        for item in order_data.items:
            product = products[item.product_id]
            items.append(OrderItem(
                product_id=item.product_id,
                name=product.name,
                price=product.price,
                quantity=item.quantity,
                image=item.image or ((product.images or [""])[0])
            ))

        order = Order(
            order_id=generate_order_id(),
            user_id=user_id,
            items=items,
            total_amount=order_data.total_amount,
            coupon_code=order_data.coupon_code,
            status=OrderStatus.PENDING,
            shipping_address=order_data.shipping_address,
            payment_session_id=session_id,
            customer_email=order_data.customer_email,
            customer_phone=order_data.customer_phone,
            special_instructions=order_data.special_instructions,
            privacy_instructions=order_data.privacy_instructions
        )

        if order_data.coupon_code:
            if self.coupon_service is None:
                raise ConflictError("Coupons are not accepted for this order")
            evaluation = await self.coupon_service.apply_to_order(
                order_data.coupon_code,
                order_id=order.order_id,
                order_amount=order.items_subtotal,
                items=self._coupon_line_items(items, products),
                user_id=user_id
            )
            order.discount_amount = evaluation.discount_amount
            order.coupon_code = evaluation.coupon.code

        self._check_totals(order, [])

        db_order = await self.order_repo.create_order_with_items(order)

        for product_id, quantity in quantities.items():
            if not await self.product_repo.decrement_stock(product_id, quantity):
                # 校验之后被并发订单抢先扣减
                product = await self.product_repo.get_by_product_id(product_id)
                available = product.stock if product else 0
                raise ConflictError(
                    f"Insufficient stock for {products[product_id].name}. Available: {available}",
                    details={"product_id": product_id, "available": available, "requested": quantity}
                )

        await self.product_service.invalidate(quantities.keys())
        await self.cart_repo.clear_user_cart(user_id)
        if session_id:
            await self.payment_event_repo.attach_order(session_id, order.order_id)

        logger.info("直接下单成功", order_id=order.order_id, user_id=user_id, total_amount=order.total_amount)
        return self.order_repo.to_model(db_order)

    # ==================== 支付回调 ====================

    async def reconcile_checkout_completed(self, event: CheckoutCompletedEvent) -> Tuple[Order, bool]:
        """把已验签的支付完成事件落为订单

        返回 (订单, 是否重复投递)。同一支付会话只会生成一个订单；
        库存不足时清零并标记人工复核，收货地址缺失时使用占位值。
        持久化失败抛出TransientStoreError，由支付方重新投递。
        """
        log = logger.bind(event_id=event.event_id, session_id=event.session_id)
        if not event.session_id:
            raise ValidationError("支付事件缺少会话ID")

        try:
            if not await self.payment_event_repo.claim(event.session_id, event.event_id):
                order = await self._existing_order_for_session(event.session_id)
                log.info("重复投递的支付事件，跳过", order_id=order.order_id)
                return order, True

            review_reasons = []
            try:
                items = parse_metadata_items(event.raw_items)
            except ValidationError as e:
                if not event.payment_captured:
                    log.warning("未到账会话的购物车元数据无法解析，等待重新投递", reason=e.message)
                    raise TransientStoreError(f"Checkout metadata unreadable: {e.message}") from e
                # 款项已收，保留原始元数据供人工补录
                log.error("购物车元数据无法解析，订单待复核", reason=e.message)
                items = []
                review_reasons.append(f"Cart metadata unreadable ({e.message}): {event.raw_items!r}")

            shipping_address, missing_fields = build_shipping_address(event, self.config)
            if missing_fields:
                review_reasons.append(f"Shipping address incomplete: {', '.join(missing_fields)}")

            for product_id, quantity in aggregate_quantities(items).items():
                if await self.product_repo.decrement_stock(product_id, quantity):
                    continue
                if await self.product_repo.clamp_stock_to_zero(product_id):
                    review_reasons.append(f"Stock for {product_id} clamped at zero")
                    log.warning("库存不足，已清零", product_id=product_id, requested=quantity)
                else:
                    review_reasons.append(f"Unknown product {product_id}")
                    log.warning("支付事件包含未知商品", product_id=product_id)

            order = Order(
                order_id=generate_order_id(),
                user_id=event.user_id,
                items=items,
                total_amount=event.amount_total,
                status=OrderStatus.PROCESSING,
                shipping_address=shipping_address,
                payment_session_id=event.session_id,
                customer_email=event.customer_email,
                customer_phone=event.customer_phone
            )

            if event.coupon_code:
                await self._apply_coupon_after_payment(order, event, review_reasons)

            self._check_totals(order, review_reasons)
            if review_reasons:
                order.needs_review = True
                order.review_reason = "; ".join(review_reasons)

            db_order = await self.order_repo.create_order_with_items(order)

            await self.product_service.invalidate(aggregate_quantities(items).keys())
            if event.user_id:
                await self.cart_repo.clear_user_cart(event.user_id)
            await self.payment_event_repo.attach_order(event.session_id, order.order_id)

        except SQLAlchemyError as e:
            log.error("支付事件落库失败", error=str(e))
            raise TransientStoreError("Order store unavailable, please retry") from e

        log.info(
            "支付事件已生成订单",
            order_id=order.order_id,
            total_amount=order.total_amount,
            needs_review=order.needs_review
        )
        return self.order_repo.to_model(db_order), False

    async def _apply_coupon_after_payment(
        self,
        order: Order,
        event: CheckoutCompletedEvent,
        review_reasons: List[str]
    ) -> None:
        """款项已收，优惠券核销失败只记录复核原因

        订单上只保存格式合法的券码，其余原样写入复核原因。
        """
        code = normalize_coupon_code(event.coupon_code)
        order.coupon_code = code if COUPON_CODE_PATTERN.match(code) else None
        if self.coupon_service is None:
            return
        if order.coupon_code is None:
            review_reasons.append(f"Coupon {event.coupon_code!r} not applied: malformed code")
            return
        try:
            evaluation = await self.coupon_service.apply_to_order(
                event.coupon_code,
                order_id=order.order_id,
                order_amount=order.items_subtotal,
                items=[CouponLineItem(id=item.product_id, quantity=item.quantity) for item in order.items],
                user_id=event.user_id
            )
        except ConflictError as e:
            review_reasons.append(f"Coupon {event.coupon_code} not applied: {e.message}")
            return
        order.discount_amount = evaluation.discount_amount
        order.coupon_code = evaluation.coupon.code

    async def _existing_order_for_session(self, session_id: str) -> Order:
        db_order = await self.order_repo.get_by_payment_session_id(session_id)
        if db_order is None:
            # 另一个请求已占用会话但尚未提交
            raise TransientStoreError(f"Payment session {session_id} is being processed")
        return self.order_repo.to_model(db_order)

    def _check_totals(self, order: Order, review_reasons: List[str]) -> None:
        """明细合计扣除折扣后不应超过订单总额"""
        expected = order.items_subtotal - order.discount_amount
        if expected > order.total_amount + ROUNDING_TOLERANCE:
            if order.status == OrderStatus.PENDING:
                raise ValidationError(
                    "Order total does not cover the items",
                    details={"items_total": expected, "total_amount": order.total_amount}
                )
            review_reasons.append(
                f"Items total {expected} exceeds amount captured {order.total_amount}"
            )

    @staticmethod
    def _coupon_line_items(items: List[OrderItem], products: Dict[str, Any]) -> List[CouponLineItem]:
        return [
            CouponLineItem(
                id=item.product_id,
                category=products[item.product_id].category,
                quantity=item.quantity
            )
            for item in items
        ]

    # ==================== 查询与后台管理 ====================

    async def get_order(self, order_id: str) -> Order:
        db_order = await self.order_repo.get_by_order_id(order_id)
        if not db_order:
            raise NotFoundError(f"Order {order_id} not found")
        return self.order_repo.to_model(db_order)

    async def get_user_orders(self, user_id: str, limit: int = 20, offset: int = 0) -> List[Order]:
        db_orders = await self.order_repo.get_user_orders(user_id, limit=limit, offset=offset)
        return [self.order_repo.to_model(o) for o in db_orders]

    async def list_orders(
        self,
        status: Optional[OrderStatus] = None,
        needs_review: Optional[bool] = None,
        limit: int = 50,
        offset: int = 0
    ) -> List[Order]:
        db_orders = await self.order_repo.list_orders(
            status=status.value if status else None,
            needs_review=needs_review,
            limit=limit,
            offset=offset
        )
        return [self.order_repo.to_model(o) for o in db_orders]

    async def update_order(self, order_id: str, update_data: OrderStatusUpdate) -> Order:
        """管理员更新订单状态/物流信息，状态之间不做流转限制"""
        values = update_data.dict(exclude_unset=True)
        if "status" in values and values["status"] is not None:
            values["status"] = values["status"].value
        if values.get("needs_review") is False:
            values["review_reason"] = None

        if not values:
            return await self.get_order(order_id)

        if not await self.order_repo.update_order(order_id, values):
            raise NotFoundError(f"Order {order_id} not found")

        logger.info("订单已更新", order_id=order_id, fields=sorted(values.keys()))
        return await self.get_order(order_id)
