from typing import List

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.deps import CurrentUser, get_current_user, get_order_service
from app.core.database import get_db_session
from app.models.order import OrderCreate, OrderResponse
from app.services.order_service import OrderService

router = APIRouter(prefix="/orders", tags=["订单"])


@router.post("", response_model=OrderResponse, status_code=201)
async def create_order(
    order_data: OrderCreate,
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
    order_service: OrderService = Depends(get_order_service)
):
    """直接下单，库存不足返回409"""
    order = await order_service.create_direct_order(user.user_id, order_data)
    await db.commit()
    return OrderResponse.from_order(order)


@router.get("", response_model=List[OrderResponse])
async def list_my_orders(
    limit: int = Query(20, ge=1, le=100),
    offset: int = Query(0, ge=0),
    user: CurrentUser = Depends(get_current_user),
    order_service: OrderService = Depends(get_order_service)
):
    """当前买家的订单列表"""
    orders = await order_service.get_user_orders(user.user_id, limit=limit, offset=offset)
    return [OrderResponse.from_order(order) for order in orders]
