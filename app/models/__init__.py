"""
数据模型包初始化文件
"""

from .product import Product, ProductCreate, ProductUpdate, ProductCategory
from .coupon import (
    Coupon,
    CouponCreate,
    CouponUpdate,
    CouponType,
    CouponRejection,
    CouponEvaluation,
    CouponLineItem,
    BuyerContext
)
from .banner import (
    PromotionalBanner,
    BannerCreate,
    BannerUpdate,
    VisitorContext,
    DisplayHistory,
    BannerEventKind
)
from .order import Order, OrderItem, OrderCreate, OrderLineRequest, OrderStatus, ShippingAddress
from .cart import CartItem, CartItemAdd
from .payment import CheckoutCompletedEvent, WebhookAck

__all__ = [
    "Product",
    "ProductCreate",
    "ProductUpdate",
    "ProductCategory",
    "Coupon",
    "CouponCreate",
    "CouponUpdate",
    "CouponType",
    "CouponRejection",
    "CouponEvaluation",
    "CouponLineItem",
    "BuyerContext",
    "PromotionalBanner",
    "BannerCreate",
    "BannerUpdate",
    "VisitorContext",
    "DisplayHistory",
    "BannerEventKind",
    "Order",
    "OrderItem",
    "OrderCreate",
    "OrderLineRequest",
    "OrderStatus",
    "ShippingAddress",
    "CartItem",
    "CartItemAdd",
    "CheckoutCompletedEvent",
    "WebhookAck"
]
