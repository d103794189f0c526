from typing import List

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.deps import CurrentUser, get_cart_service, get_current_user
from app.core.database import get_db_session
from app.models.cart import CartItem, CartItemAdd
from app.services.cart_service import CartService

router = APIRouter(prefix="/cart", tags=["购物车"])


@router.get("", response_model=List[CartItem])
async def get_cart(
    user: CurrentUser = Depends(get_current_user),
    cart_service: CartService = Depends(get_cart_service)
):
    return await cart_service.get_cart(user.user_id)


@router.post("", response_model=CartItem, status_code=201)
async def add_to_cart(
    item: CartItemAdd,
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
    cart_service: CartService = Depends(get_cart_service)
):
    """加入购物车，同一规格累加数量"""
    cart_item = await cart_service.add_item(user.user_id, item)
    await db.commit()
    return cart_item


@router.delete("/{item_id}")
async def remove_from_cart(
    item_id: str,
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
    cart_service: CartService = Depends(get_cart_service)
):
    await cart_service.remove_item(user.user_id, item_id)
    await db.commit()
    return {"success": True}
