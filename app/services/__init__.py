"""
服务包初始化文件
"""

from .coupon_service import CouponService
from .banner_service import BannerService
from .order_service import OrderService
from .cart_service import CartService
from .product_service import ProductService

__all__ = [
    "CouponService",
    "BannerService",
    "OrderService",
    "CartService",
    "ProductService"
]
