"""
仓库包初始化文件 - 数据库访问层
"""

from .product_repository import ProductRepository
from .coupon_repository import CouponRepository
from .banner_repository import BannerRepository
from .order_repository import OrderRepository, PaymentEventRepository
from .cart_repository import CartRepository

__all__ = [
    "ProductRepository",
    "CouponRepository",
    "BannerRepository",
    "OrderRepository",
    "PaymentEventRepository",
    "CartRepository"
]
