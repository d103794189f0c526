"""
订单相关数据模型
"""

from decimal import Decimal
from datetime import datetime
from typing import List, Optional
from pydantic import BaseModel, Field, validator
from enum import Enum

from app.utils.money import from_cents


class OrderStatus(str, Enum):
    """订单状态枚举，由管理员变更，不强制状态机"""
    PENDING = "pending"  # 直接下单，待处理
    PROCESSING = "processing"  # 支付回调确认
    SHIPPED = "shipped"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"


class ShippingAddress(BaseModel):
    """收货地址，所有字段必填"""

    first_name: str = Field(..., min_length=1)
    last_name: str = Field(..., min_length=1)
    address: str = Field(..., min_length=1)
    city: str = Field(..., min_length=1)
    state: str = Field(..., min_length=1)
    zip_code: str = Field(..., min_length=1)
    country: str = Field(..., min_length=1)

    @validator('*', pre=True)
    def strip_strings(cls, v):
        return v.strip() if isinstance(v, str) else v

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}"


class OrderItem(BaseModel):
    """订单项目模型，名称/价格/图片为下单时快照"""

    item_id: Optional[str] = Field(None, description="项目ID")
    product_id: str = Field(..., description="商品ID")
    name: str = Field(..., min_length=1, description="商品名称快照")
    price: int = Field(..., ge=0, description="单价快照(分)")
    quantity: int = Field(default=1, ge=1, description="数量")
    image: str = Field(default="", description="图片快照")

    @property
    def subtotal(self) -> int:
        return self.price * self.quantity


class Order(BaseModel):
    """订单基础模型"""

    order_id: str = Field(..., description="订单ID")
    user_id: Optional[str] = Field(None, description="买家ID，游客支付时为空")
    items: List[OrderItem] = Field(default_factory=list, description="购物车元数据无法解析时为空，订单待复核")
    total_amount: int = Field(..., ge=0, description="订单总额(分)")
    discount_amount: int = Field(default=0, ge=0, description="优惠券折扣(分)")
    coupon_code: Optional[str] = None
    status: OrderStatus = Field(default=OrderStatus.PENDING)
    shipping_address: ShippingAddress
    payment_session_id: Optional[str] = Field(None, description="支付会话ID")
    external_order_id: Optional[str] = None
    tracking_url: Optional[str] = None
    customer_email: Optional[str] = Field(None, max_length=100)
    customer_phone: Optional[str] = Field(None, max_length=20)
    special_instructions: Optional[str] = Field(None, max_length=500)
    privacy_instructions: Optional[str] = Field(None, max_length=500)
    needs_review: bool = False
    review_reason: Optional[str] = None
    created_at: datetime = Field(default_factory=datetime.now)
    updated_at: datetime = Field(default_factory=datetime.now)

    @property
    def total_price(self) -> Decimal:
        """订单总额(主币种)"""
        return from_cents(self.total_amount)

    @property
    def items_subtotal(self) -> int:
        return sum(item.subtotal for item in self.items)

    @property
    def total_quantity(self) -> int:
        return sum(item.quantity for item in self.items)


class OrderLineRequest(BaseModel):
    """直接下单的商品行，名称和价格以下单时的商品目录为准"""

    product_id: str = Field(..., description="商品ID")
    quantity: int = Field(default=1, ge=1)
    image: Optional[str] = Field(None, description="所选款式图片，缺省用商品首图")


class OrderCreate(BaseModel):
    """直接下单请求模型"""

    items: List[OrderLineRequest] = Field(..., min_items=1)
    total_amount: int = Field(..., gt=0, description="订单总额(分)")
    shipping_address: ShippingAddress
    coupon_code: Optional[str] = None
    payment_session_id: Optional[str] = Field(None, description="幂等键")
    customer_email: Optional[str] = Field(None, max_length=100)
    customer_phone: Optional[str] = Field(None, max_length=20)
    special_instructions: Optional[str] = Field(None, max_length=500)
    privacy_instructions: Optional[str] = Field(None, max_length=500)


class OrderStatusUpdate(BaseModel):
    """管理员更新订单模型"""

    status: Optional[OrderStatus] = None
    tracking_url: Optional[str] = None
    external_order_id: Optional[str] = None
    needs_review: Optional[bool] = None


class OrderResponse(BaseModel):
    """订单响应模型"""

    order_id: str
    user_id: Optional[str]
    items: List[OrderItem]
    total_amount: int
    total_price: Decimal
    discount_amount: int
    coupon_code: Optional[str]
    status: OrderStatus
    shipping_address: ShippingAddress
    tracking_url: Optional[str]
    external_order_id: Optional[str]
    customer_email: Optional[str]
    special_instructions: Optional[str]
    privacy_instructions: Optional[str]
    needs_review: bool
    review_reason: Optional[str]
    items_count: int
    created_at: datetime
    updated_at: datetime

    class Config:
        json_encoders = {
            Decimal: str,
            datetime: lambda v: v.isoformat()
        }

    @classmethod
    def from_order(cls, order: Order) -> "OrderResponse":
        """从Order模型创建响应对象"""
        return cls(
            order_id=order.order_id,
            user_id=order.user_id,
            items=order.items,
            total_amount=order.total_amount,
            total_price=order.total_price,
            discount_amount=order.discount_amount,
            coupon_code=order.coupon_code,
            status=order.status,
            shipping_address=order.shipping_address,
            tracking_url=order.tracking_url,
            external_order_id=order.external_order_id,
            customer_email=order.customer_email,
            special_instructions=order.special_instructions,
            privacy_instructions=order.privacy_instructions,
            needs_review=order.needs_review,
            review_reason=order.review_reason,
            items_count=len(order.items),
            created_at=order.created_at,
            updated_at=order.updated_at
        )
