"""
后台管理接口，需要 admin 角色
"""

from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.deps import (
    get_banner_service,
    get_coupon_service,
    get_order_service,
    get_product_service,
    require_admin,
)
from app.core.database import get_db_session
from app.models.banner import BannerCreate, BannerUpdate, PromotionalBanner
from app.models.coupon import Coupon, CouponCreate, CouponUpdate
from app.models.order import OrderResponse, OrderStatus, OrderStatusUpdate
from app.models.product import Product, ProductCategory, ProductCreate, ProductUpdate
from app.services.banner_service import BannerService
from app.services.coupon_service import CouponService
from app.services.order_service import OrderService
from app.services.product_service import ProductService

router = APIRouter(prefix="/admin", tags=["后台管理"], dependencies=[Depends(require_admin)])


# ==================== 商品 ====================

@router.get("/products", response_model=List[Product])
async def list_products(
    category: Optional[ProductCategory] = None,
    in_stock_only: bool = False,
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
    product_service: ProductService = Depends(get_product_service)
):
    return await product_service.list_products(category, in_stock_only, limit, offset)


@router.post("/products", response_model=Product, status_code=201)
async def create_product(
    product_data: ProductCreate,
    db: AsyncSession = Depends(get_db_session),
    product_service: ProductService = Depends(get_product_service)
):
    product = await product_service.create_product(product_data)
    await db.commit()
    return product


@router.patch("/products/{product_id}", response_model=Product)
async def update_product(
    product_id: str,
    product_data: ProductUpdate,
    db: AsyncSession = Depends(get_db_session),
    product_service: ProductService = Depends(get_product_service)
):
    product = await product_service.update_product(product_id, product_data)
    await db.commit()
    return product


# ==================== 优惠券 ====================

@router.get("/coupons", response_model=List[Coupon])
async def list_coupons(
    active_only: bool = False,
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
    coupon_service: CouponService = Depends(get_coupon_service)
):
    return await coupon_service.list_coupons(active_only, limit, offset)


@router.get("/coupons/code/{code}", response_model=Coupon)
async def get_coupon(code: str, coupon_service: CouponService = Depends(get_coupon_service)):
    return await coupon_service.get_coupon_by_code(code)


@router.get("/coupons/{coupon_id}/stats")
async def get_coupon_stats(coupon_id: str, coupon_service: CouponService = Depends(get_coupon_service)):
    return await coupon_service.get_coupon_stats(coupon_id)


@router.post("/coupons", response_model=Coupon, status_code=201)
async def create_coupon(
    coupon_data: CouponCreate,
    db: AsyncSession = Depends(get_db_session),
    coupon_service: CouponService = Depends(get_coupon_service)
):
    """创建优惠券，引用的商品ID必须存在"""
    coupon = await coupon_service.create_coupon(coupon_data)
    await db.commit()
    return coupon


@router.patch("/coupons/{coupon_id}", response_model=Coupon)
async def update_coupon(
    coupon_id: str,
    coupon_data: CouponUpdate,
    db: AsyncSession = Depends(get_db_session),
    coupon_service: CouponService = Depends(get_coupon_service)
):
    coupon = await coupon_service.update_coupon(coupon_id, coupon_data)
    await db.commit()
    return coupon


# ==================== 促销横幅 ====================

@router.get("/banners", response_model=List[PromotionalBanner])
async def list_banners(
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
    banner_service: BannerService = Depends(get_banner_service)
):
    return await banner_service.list_banners(limit, offset)


@router.get("/banners/{banner_id}", response_model=PromotionalBanner)
async def get_banner(banner_id: str, banner_service: BannerService = Depends(get_banner_service)):
    return await banner_service.get_banner(banner_id)


@router.post("/banners", response_model=PromotionalBanner, status_code=201)
async def create_banner(
    banner_data: BannerCreate,
    db: AsyncSession = Depends(get_db_session),
    banner_service: BannerService = Depends(get_banner_service)
):
    banner = await banner_service.create_banner(banner_data)
    await db.commit()
    return banner


@router.patch("/banners/{banner_id}", response_model=PromotionalBanner)
async def update_banner(
    banner_id: str,
    banner_data: BannerUpdate,
    db: AsyncSession = Depends(get_db_session),
    banner_service: BannerService = Depends(get_banner_service)
):
    banner = await banner_service.update_banner(banner_id, banner_data)
    await db.commit()
    return banner


# ==================== 订单 ====================

@router.get("/orders", response_model=List[OrderResponse])
async def list_orders(
    status: Optional[OrderStatus] = None,
    needs_review: Optional[bool] = None,
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
    order_service: OrderService = Depends(get_order_service)
):
    orders = await order_service.list_orders(
        status=status,
        needs_review=needs_review,
        limit=limit,
        offset=offset
    )
    return [OrderResponse.from_order(order) for order in orders]


@router.get("/orders/{order_id}", response_model=OrderResponse)
async def get_order(order_id: str, order_service: OrderService = Depends(get_order_service)):
    return OrderResponse.from_order(await order_service.get_order(order_id))


@router.patch("/orders/{order_id}", response_model=OrderResponse)
async def update_order(
    order_id: str,
    update_data: OrderStatusUpdate,
    db: AsyncSession = Depends(get_db_session),
    order_service: OrderService = Depends(get_order_service)
):
    """更新订单状态、物流地址等，状态不做流转限制"""
    order = await order_service.update_order(order_id, update_data)
    await db.commit()
    return OrderResponse.from_order(order)
