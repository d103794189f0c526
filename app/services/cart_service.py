"""
购物车业务服务层(仅登录用户)
"""

from typing import List

from app.core.exceptions import NotFoundError
from app.models.cart import CartItem, CartItemAdd
from app.repositories.cart_repository import CartRepository
from app.repositories.product_repository import ProductRepository


class CartService:
    """购物车业务服务"""

    def __init__(self, cart_repo: CartRepository, product_repo: ProductRepository):
        self.cart_repo = cart_repo
        self.product_repo = product_repo

    async def get_cart(self, user_id: str) -> List[CartItem]:
        db_items = await self.cart_repo.get_user_items(user_id)
        return [self.cart_repo.to_model(item) for item in db_items]

    async def add_item(self, user_id: str, item_data: CartItemAdd) -> CartItem:
        """加入购物车，同一商品同一规格累加数量"""
        if not await self.product_repo.get_by_product_id(item_data.product_id):
            raise NotFoundError(f"Product {item_data.product_id} not found")

        db_item = await self.cart_repo.add_item(
            user_id=user_id,
            product_id=item_data.product_id,
            quantity=item_data.quantity,
            size=item_data.size,
            color=item_data.color
        )
        return self.cart_repo.to_model(db_item)

    async def remove_item(self, user_id: str, cart_item_id: str) -> None:
        if not await self.cart_repo.remove_item(user_id, cart_item_id):
            raise NotFoundError(f"Cart item {cart_item_id} not found")
