"""
购物车数据库操作层
"""

from typing import List, Optional
from datetime import datetime
import uuid

from sqlalchemy import select, update, delete, and_
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.cart import CartItem
from app.models.database.cart_db import CartItemDB


class CartRepository:
    """购物车数据库操作类"""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_user_items(self, user_id: str) -> List[CartItemDB]:
        """获取用户购物车"""
        result = await self.db.execute(
            select(CartItemDB)
            .where(CartItemDB.user_id == user_id)
            .order_by(CartItemDB.created_at)
            .execution_options(populate_existing=True)
        )
        return list(result.scalars().all())

    async def find_variant(
        self,
        user_id: str,
        product_id: str,
        size: str = "",
        color: str = ""
    ) -> Optional[CartItemDB]:
        """按 (用户, 商品, 尺码, 颜色) 查找条目"""
        result = await self.db.execute(
            select(CartItemDB).where(
                and_(
                    CartItemDB.user_id == user_id,
                    CartItemDB.product_id == product_id,
                    CartItemDB.size == size,
                    CartItemDB.color == color
                )
            ).execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def add_item(
        self,
        user_id: str,
        product_id: str,
        quantity: int,
        size: Optional[str] = None,
        color: Optional[str] = None
    ) -> CartItemDB:
        """加入购物车，同一规格累加数量"""
        size = size or ""
        color = color or ""
        existing = await self.find_variant(user_id, product_id, size, color)
        if existing:
            await self.db.execute(
                update(CartItemDB)
                .where(CartItemDB.cart_item_id == existing.cart_item_id)
                .values(quantity=CartItemDB.quantity + quantity, updated_at=datetime.now())
                .execution_options(synchronize_session=False)
            )
            return await self.find_variant(user_id, product_id, size, color)

        now = datetime.now()
        item = CartItemDB(
            cart_item_id=uuid.uuid4().hex,
            user_id=user_id,
            product_id=product_id,
            quantity=quantity,
            size=size,
            color=color,
            created_at=now,
            updated_at=now
        )
        self.db.add(item)
        await self.db.flush()
        return item

    async def remove_item(self, user_id: str, cart_item_id: str) -> bool:
        """删除单个条目"""
        result = await self.db.execute(
            delete(CartItemDB).where(
                and_(
                    CartItemDB.cart_item_id == cart_item_id,
                    CartItemDB.user_id == user_id
                )
            ).execution_options(synchronize_session=False)
        )
        return result.rowcount > 0

    async def clear_user_cart(self, user_id: str) -> int:
        """清空用户购物车，返回删除条数"""
        result = await self.db.execute(
            delete(CartItemDB)
            .where(CartItemDB.user_id == user_id)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount

    def to_model(self, db_item: CartItemDB) -> CartItem:
        return CartItem(
            cart_item_id=db_item.cart_item_id,
            user_id=db_item.user_id,
            product_id=db_item.product_id,
            quantity=db_item.quantity,
            size=db_item.size or None,
            color=db_item.color or None,
            created_at=db_item.created_at,
            updated_at=db_item.updated_at
        )
