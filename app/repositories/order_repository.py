"""
订单数据库操作层
"""

from typing import List, Optional, Dict, Any
from datetime import datetime
import uuid

from sqlalchemy import select, update, and_, desc, func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from app.models.order import Order, OrderItem, ShippingAddress
from app.models.database.order_db import OrderDB, OrderItemDB, ProcessedPaymentEventDB


def generate_order_id() -> str:
    return f"ORDER_{datetime.now().strftime('%Y%m%d%H%M%S')}_{uuid.uuid4().hex[:8].upper()}"


class OrderRepository:
    """订单数据库操作层"""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_by_order_id(self, order_id: str) -> Optional[OrderDB]:
        """根据订单ID获取订单（包含订单项）"""
        result = await self.db.execute(
            select(OrderDB)
            .options(selectinload(OrderDB.items))
            .where(OrderDB.order_id == order_id)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def get_by_payment_session_id(self, session_id: str) -> Optional[OrderDB]:
        """根据支付会话ID获取订单"""
        result = await self.db.execute(
            select(OrderDB)
            .options(selectinload(OrderDB.items))
            .where(OrderDB.payment_session_id == session_id)
        )
        return result.scalar_one_or_none()

    async def get_user_orders(
        self,
        user_id: str,
        limit: int = 20,
        offset: int = 0
    ) -> List[OrderDB]:
        """获取用户订单列表"""
        query = select(OrderDB).options(
            selectinload(OrderDB.items)
        ).where(
            OrderDB.user_id == user_id
        ).order_by(desc(OrderDB.created_at)).limit(limit).offset(offset)

        result = await self.db.execute(query)
        return list(result.scalars().all())

    async def count_user_orders(self, user_id: str) -> int:
        """用户历史订单数(不含已取消)"""
        result = await self.db.execute(
            select(func.count(OrderDB.order_id)).where(
                and_(
                    OrderDB.user_id == user_id,
                    OrderDB.status != "cancelled"
                )
            )
        )
        return result.scalar() or 0

    async def list_orders(
        self,
        status: Optional[str] = None,
        needs_review: Optional[bool] = None,
        limit: int = 50,
        offset: int = 0
    ) -> List[OrderDB]:
        """后台订单列表"""
        conditions = []
        if status:
            conditions.append(OrderDB.status == status)
        if needs_review is not None:
            conditions.append(OrderDB.needs_review.is_(needs_review))

        query = select(OrderDB).options(selectinload(OrderDB.items))
        if conditions:
            query = query.where(and_(*conditions))
        query = query.order_by(desc(OrderDB.created_at)).limit(limit).offset(offset)

        result = await self.db.execute(query)
        return list(result.scalars().all())

    async def create_order_with_items(self, order: Order) -> OrderDB:
        """创建订单及订单项"""
        db_order = OrderDB(
            order_id=order.order_id,
            user_id=order.user_id,
            total_amount=order.total_amount,
            discount_amount=order.discount_amount,
            coupon_code=order.coupon_code,
            status=order.status.value,
            shipping_address=order.shipping_address.dict(),
            customer_email=order.customer_email,
            customer_phone=order.customer_phone,
            special_instructions=order.special_instructions,
            privacy_instructions=order.privacy_instructions,
            payment_session_id=order.payment_session_id,
            external_order_id=order.external_order_id,
            tracking_url=order.tracking_url,
            needs_review=order.needs_review,
            review_reason=order.review_reason,
            created_at=order.created_at,
            updated_at=order.updated_at,
            items=[
                OrderItemDB(
                    item_id=item.item_id or uuid.uuid4().hex,
                    product_id=item.product_id,
                    name=item.name,
                    price=item.price,
                    quantity=item.quantity,
                    image=item.image
                )
                for item in order.items
            ]
        )

        self.db.add(db_order)
        await self.db.flush()
        return db_order

    async def update_order(self, order_id: str, values: Dict[str, Any]) -> bool:
        """更新订单字段"""
        values = dict(values)
        values["updated_at"] = datetime.now()

        result = await self.db.execute(
            update(OrderDB)
            .where(OrderDB.order_id == order_id)
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount > 0

    def to_model(self, db_order: OrderDB) -> Order:
        """转换为Pydantic模型"""
        items = [
            OrderItem(
                item_id=db_item.item_id,
                product_id=db_item.product_id,
                name=db_item.name,
                price=db_item.price,
                quantity=db_item.quantity,
                image=db_item.image or ""
            )
            for db_item in db_order.items
        ]

        return Order(
            order_id=db_order.order_id,
            user_id=db_order.user_id,
            items=items,
            total_amount=db_order.total_amount,
            discount_amount=db_order.discount_amount or 0,
            coupon_code=db_order.coupon_code,
            status=db_order.status,
            shipping_address=ShippingAddress(**db_order.shipping_address),
            payment_session_id=db_order.payment_session_id,
            external_order_id=db_order.external_order_id,
            tracking_url=db_order.tracking_url,
            customer_email=db_order.customer_email,
            customer_phone=db_order.customer_phone,
            special_instructions=db_order.special_instructions,
            privacy_instructions=db_order.privacy_instructions,
            needs_review=db_order.needs_review,
            review_reason=db_order.review_reason,
            created_at=db_order.created_at,
            updated_at=db_order.updated_at
        )


class PaymentEventRepository:
    """支付事件幂等记录操作层"""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_by_session_id(self, session_id: str) -> Optional[ProcessedPaymentEventDB]:
        result = await self.db.execute(
            select(ProcessedPaymentEventDB).where(ProcessedPaymentEventDB.session_id == session_id)
        )
        return result.scalar_one_or_none()

    async def claim(self, session_id: str, event_id: str, source: str = "webhook") -> bool:
        """占用幂等键，已被占用时返回False

        必须是事务中的第一次写入：并发冲突时整个事务回滚。
        """
        if await self.get_by_session_id(session_id):
            return False

        self.db.add(ProcessedPaymentEventDB(
            session_id=session_id,
            event_id=event_id,
            source=source,
            received_at=datetime.now()
        ))
        try:
            await self.db.flush()
        except IntegrityError:
            await self.db.rollback()
            return False
        return True

    async def attach_order(self, session_id: str, order_id: str) -> None:
        """记录幂等键对应的订单"""
        await self.db.execute(
            update(ProcessedPaymentEventDB)
            .where(ProcessedPaymentEventDB.session_id == session_id)
            .values(order_id=order_id)
            .execution_options(synchronize_session=False)
        )
