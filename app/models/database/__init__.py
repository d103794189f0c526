"""
数据库模型包初始化文件
"""

from .product_db import ProductDB
from .coupon_db import CouponDB, CouponUsageDB
from .banner_db import PromotionalBannerDB
from .order_db import OrderDB, OrderItemDB, ProcessedPaymentEventDB
from .cart_db import CartItemDB

__all__ = [
    "ProductDB",
    "CouponDB",
    "CouponUsageDB",
    "PromotionalBannerDB",
    "OrderDB",
    "OrderItemDB",
    "ProcessedPaymentEventDB",
    "CartItemDB"
]
