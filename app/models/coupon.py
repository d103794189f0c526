"""
优惠券相关数据模型

金额字段(value 对 fixed 类型、minimum_amount、maximum_discount)均为整数分，
percentage 类型的 value 为 0-100 的整数百分比。
"""

import re
from decimal import Decimal
from datetime import datetime
from typing import List, Optional
from pydantic import BaseModel, Field, validator
from enum import Enum

from app.models.product import ProductCategory
from app.utils.dates import to_naive_local
from app.utils.money import round_cents

COUPON_CODE_PATTERN = re.compile(r"^[A-Z0-9_-]{3,20}$")


def normalize_coupon_code(code: str) -> str:
    """优惠券代码统一转大写并去除首尾空白"""
    return (code or "").strip().upper()


class CouponType(str, Enum):
    """优惠券类型枚举"""
    PERCENTAGE = "percentage"  # 百分比折扣券
    FIXED = "fixed"  # 固定金额折扣券
    FREE_SHIPPING = "free_shipping"  # 免运费券，由运费计算处理
    BUY_X_GET_Y = "buy_x_get_y"  # 买X送Y，由组合促销处理


class CustomerSegment(str, Enum):
    """客户分群"""
    NEW = "new"
    RETURNING = "returning"
    VIP = "vip"
    ALL = "all"


class CouponRejection(str, Enum):
    """优惠券校验失败原因"""
    NOT_FOUND = "NotFound"
    EXPIRED = "Expired"
    USAGE_EXHAUSTED = "UsageExhausted"
    BELOW_MINIMUM = "BelowMinimum"
    NOT_APPLICABLE = "NotApplicable"


REJECTION_MESSAGES = {
    CouponRejection.NOT_FOUND: "Invalid coupon code",
    CouponRejection.EXPIRED: "Coupon has expired",
    CouponRejection.USAGE_EXHAUSTED: "Coupon usage limit exceeded",
    CouponRejection.BELOW_MINIMUM: "Order amount is below the coupon minimum",
    CouponRejection.NOT_APPLICABLE: "Coupon cannot be applied to items in your cart",
}


class CouponConditions(BaseModel):
    """附加使用条件"""

    first_time_only: bool = Field(default=False, description="仅限首单")
    minimum_quantity: Optional[int] = Field(None, ge=1, description="最少件数")
    maximum_quantity: Optional[int] = Field(None, ge=1, description="最多件数")


class CouponLineItem(BaseModel):
    """参与优惠券校验的订单行"""

    id: str = Field(..., description="商品ID")
    category: Optional[str] = Field(None, description="商品分类")
    quantity: int = Field(default=1, ge=1)


class BuyerContext(BaseModel):
    """买家上下文"""

    user_id: Optional[str] = None
    segment: Optional[CustomerSegment] = None
    completed_orders: Optional[int] = Field(None, ge=0, description="历史订单数，未知时为None")


class Coupon(BaseModel):
    """优惠券基础模型"""

    coupon_id: str = Field(..., description="优惠券ID")
    code: str = Field(..., description="优惠券代码")
    name: str = Field(..., max_length=100, description="优惠券名称")
    description: Optional[str] = Field(None, max_length=500, description="优惠券描述")
    coupon_type: CouponType = Field(..., description="优惠券类型")
    value: int = Field(..., ge=0, description="折扣值")
    minimum_amount: Optional[int] = Field(None, ge=0, description="最小订单金额(分)")
    maximum_discount: Optional[int] = Field(None, ge=0, description="最大折扣金额(分)")
    usage_limit: Optional[int] = Field(None, ge=1, description="总使用次数限制")
    usage_count: int = Field(default=0, ge=0, description="已使用次数")
    user_limit: Optional[int] = Field(None, ge=1, description="单用户使用次数限制")
    valid_from: datetime = Field(..., description="有效开始时间")
    valid_until: datetime = Field(..., description="有效结束时间")
    is_active: bool = Field(default=True)
    applicable_products: List[str] = Field(default_factory=list)
    applicable_categories: List[str] = Field(default_factory=list)
    excluded_products: List[str] = Field(default_factory=list)
    excluded_categories: List[str] = Field(default_factory=list)
    customer_segments: List[CustomerSegment] = Field(default_factory=list)
    conditions: CouponConditions = Field(default_factory=CouponConditions)
    campaign: Optional[str] = Field(None, description="所属活动")
    created_at: datetime = Field(default_factory=datetime.now)
    updated_at: datetime = Field(default_factory=datetime.now)

    @validator('code')
    def validate_code(cls, v):
        v = normalize_coupon_code(v)
        if not COUPON_CODE_PATTERN.match(v):
            raise ValueError('优惠券代码只能包含大写字母、数字、下划线和连字符，长度3-20')
        return v

    @validator('valid_from', 'valid_until')
    def normalize_timezone(cls, v):
        return to_naive_local(v)

    @validator('valid_until')
    def validate_validity_period(cls, v, values):
        """验证有效期"""
        if 'valid_from' in values and v <= values['valid_from']:
            raise ValueError('结束时间必须晚于开始时间')
        return v

    @validator('value')
    def validate_value(cls, v, values):
        """验证折扣值"""
        if values.get('coupon_type') == CouponType.PERCENTAGE and v > 100:
            raise ValueError('百分比折扣值不能超过100')
        return v

    def is_within_validity(self, now: Optional[datetime] = None) -> bool:
        now = now or datetime.now()
        return self.valid_from <= now <= self.valid_until

    def is_usage_exhausted(self) -> bool:
        return self.usage_limit is not None and self.usage_count >= self.usage_limit

    def is_below_minimum(self, order_amount: int) -> bool:
        return self.minimum_amount is not None and order_amount < self.minimum_amount

    def is_applicable_to_items(self, items: List[CouponLineItem]) -> bool:
        """商品/分类适用性检查，排除规则优先"""
        product_ids = {item.id for item in items}
        categories = {item.category for item in items if item.category}

        if product_ids & set(self.excluded_products):
            return False
        if categories & set(self.excluded_categories):
            return False
        if self.applicable_products and not product_ids & set(self.applicable_products):
            return False
        if self.applicable_categories and not categories & set(self.applicable_categories):
            return False
        return True

    def matches_buyer(self, buyer: BuyerContext, items: List[CouponLineItem]) -> bool:
        """客户分群与附加条件检查"""
        segments = set(self.customer_segments) - {CustomerSegment.ALL}
        if segments and buyer.segment not in segments:
            return False

        if self.conditions.first_time_only:
            # 无法确认是首单时按不满足处理
            if buyer.completed_orders is None or buyer.completed_orders > 0:
                return False

        quantity = sum(item.quantity for item in items)
        if self.conditions.minimum_quantity and quantity < self.conditions.minimum_quantity:
            return False
        if self.conditions.maximum_quantity and quantity > self.conditions.maximum_quantity:
            return False
        return True

    def calculate_discount(self, order_amount: int) -> int:
        """计算具体折扣金额(分)，不超过订单金额"""
        if order_amount <= 0:
            return 0

        if self.coupon_type == CouponType.PERCENTAGE:
            discount = round_cents(Decimal(order_amount) * self.value / 100)
            if self.maximum_discount is not None:
                discount = min(discount, self.maximum_discount)
        elif self.coupon_type == CouponType.FIXED:
            discount = self.value
        else:
            # 免运费和买X送Y不减免商品金额
            discount = 0

        return max(0, min(discount, order_amount))


class CouponCreate(BaseModel):
    """创建优惠券模型"""

    code: str = Field(..., min_length=3, max_length=20)
    name: str = Field(..., max_length=100)
    description: Optional[str] = Field(None, max_length=500)
    coupon_type: CouponType = Field(...)
    value: int = Field(..., ge=0)
    minimum_amount: Optional[int] = Field(None, ge=0)
    maximum_discount: Optional[int] = Field(None, ge=0)
    usage_limit: Optional[int] = Field(None, ge=1)
    user_limit: Optional[int] = Field(None, ge=1)
    valid_from: datetime = Field(default_factory=datetime.now)
    valid_until: datetime = Field(...)
    is_active: bool = True
    applicable_products: List[str] = Field(default_factory=list)
    applicable_categories: List[ProductCategory] = Field(default_factory=list)
    excluded_products: List[str] = Field(default_factory=list)
    excluded_categories: List[ProductCategory] = Field(default_factory=list)
    customer_segments: List[CustomerSegment] = Field(default_factory=list)
    conditions: CouponConditions = Field(default_factory=CouponConditions)
    campaign: Optional[str] = None

    @validator('code')
    def validate_code(cls, v):
        v = normalize_coupon_code(v)
        if not COUPON_CODE_PATTERN.match(v):
            raise ValueError('优惠券代码只能包含大写字母、数字、下划线和连字符，长度3-20')
        return v

    @validator('valid_from', 'valid_until')
    def normalize_timezone(cls, v):
        return to_naive_local(v)

    @validator('valid_until')
    def validate_validity_period(cls, v, values):
        if 'valid_from' in values and v <= values['valid_from']:
            raise ValueError('结束时间必须晚于开始时间')
        return v

    @validator('value')
    def validate_value(cls, v, values):
        if values.get('coupon_type') == CouponType.PERCENTAGE and v > 100:
            raise ValueError('百分比折扣值不能超过100')
        return v


class CouponUpdate(BaseModel):
    """更新优惠券模型"""

    name: Optional[str] = Field(None, max_length=100)
    description: Optional[str] = Field(None, max_length=500)
    value: Optional[int] = Field(None, ge=0)
    minimum_amount: Optional[int] = Field(None, ge=0)
    maximum_discount: Optional[int] = Field(None, ge=0)
    usage_limit: Optional[int] = Field(None, ge=1)
    user_limit: Optional[int] = Field(None, ge=1)
    valid_from: Optional[datetime] = None
    valid_until: Optional[datetime] = None
    is_active: Optional[bool] = None
    applicable_products: Optional[List[str]] = None
    applicable_categories: Optional[List[ProductCategory]] = None
    excluded_products: Optional[List[str]] = None
    excluded_categories: Optional[List[ProductCategory]] = None
    customer_segments: Optional[List[CustomerSegment]] = None
    conditions: Optional[CouponConditions] = None
    campaign: Optional[str] = None

    @validator('valid_from', 'valid_until')
    def normalize_timezone(cls, v):
        return to_naive_local(v)


class CouponEvaluation(BaseModel):
    """优惠券校验结果"""

    valid: bool = Field(..., description="是否有效")
    discount_amount: Optional[int] = Field(None, ge=0, description="折扣金额(分)")
    reason: Optional[CouponRejection] = Field(None, description="失败原因")
    message: Optional[str] = Field(None, description="展示给用户的提示")
    coupon: Optional[Coupon] = Field(None, description="优惠券信息")

    @classmethod
    def accept(cls, coupon: Coupon, discount_amount: int) -> "CouponEvaluation":
        return cls(valid=True, discount_amount=discount_amount, coupon=coupon)

    @classmethod
    def reject(cls, reason: CouponRejection, coupon: Optional[Coupon] = None) -> "CouponEvaluation":
        return cls(valid=False, reason=reason, message=REJECTION_MESSAGES[reason], coupon=coupon)


class CouponValidationRequest(BaseModel):
    """优惠券校验接口请求"""

    code: str = Field(..., min_length=1)
    order_amount: int = Field(..., ge=0, alias="orderAmount")
    items: List[CouponLineItem] = Field(default_factory=list)
    user_id: Optional[str] = Field(None, alias="userId")

    class Config:
        populate_by_name = True


class CouponValidationResponse(BaseModel):
    """优惠券校验接口响应"""

    valid: bool
    discount_amount: Optional[int] = Field(None, alias="discountAmount")
    reason: Optional[CouponRejection] = None
    message: Optional[str] = None
    code: Optional[str] = None
    coupon_type: Optional[CouponType] = Field(None, alias="type")

    class Config:
        populate_by_name = True

    @classmethod
    def from_evaluation(cls, evaluation: CouponEvaluation) -> "CouponValidationResponse":
        return cls(
            valid=evaluation.valid,
            discount_amount=evaluation.discount_amount,
            reason=evaluation.reason,
            message=evaluation.message,
            code=evaluation.coupon.code if evaluation.coupon and evaluation.valid else None,
            coupon_type=evaluation.coupon.coupon_type if evaluation.coupon and evaluation.valid else None
        )
