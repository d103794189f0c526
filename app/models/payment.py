"""
支付处理方回调事件模型
"""

from typing import Any, Dict, Optional
from pydantic import BaseModel, Field

CHECKOUT_COMPLETED = "checkout.session.completed"


class CustomerAddress(BaseModel):
    """支付方返回的地址，任何字段都可能缺失"""

    line1: Optional[str] = None
    line2: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    postal_code: Optional[str] = None
    country: Optional[str] = None


class CheckoutCompletedEvent(BaseModel):
    """checkout.session.completed 事件中订单重建需要的字段"""

    event_id: str = Field(..., description="事件ID")
    session_id: str = Field(..., description="支付会话ID，幂等键")
    amount_total: int = Field(default=0, ge=0, description="实收金额(分)")
    payment_status: Optional[str] = Field(None, description="paid / unpaid / no_payment_required")
    customer_name: Optional[str] = None
    customer_email: Optional[str] = None
    customer_phone: Optional[str] = None
    address: CustomerAddress = Field(default_factory=CustomerAddress)
    user_id: Optional[str] = Field(None, description="元数据中的买家ID")
    raw_items: Optional[str] = Field(None, description="元数据中序列化的购物车")
    coupon_code: Optional[str] = None

    @classmethod
    def from_event(cls, event: Dict[str, Any]) -> "CheckoutCompletedEvent":
        """从原始事件字典提取字段"""
        session = ((event.get("data") or {}).get("object")) or {}
        details = session.get("customer_details") or {}
        metadata = session.get("metadata") or {}
        shipping = (session.get("shipping_details") or {}).get("address")

        return cls(
            event_id=event.get("id") or "",
            session_id=session.get("id") or "",
            amount_total=session.get("amount_total") or 0,
            payment_status=session.get("payment_status"),
            customer_name=details.get("name"),
            customer_email=details.get("email"),
            customer_phone=details.get("phone"),
            address=CustomerAddress(**(details.get("address") or shipping or {})),
            user_id=metadata.get("userId") or metadata.get("user_id"),
            raw_items=metadata.get("items"),
            coupon_code=metadata.get("couponCode") or metadata.get("coupon_code")
        )

    @property
    def payment_captured(self) -> bool:
        """异步支付方式完成会话时款项可能尚未到账"""
        return self.payment_status != "unpaid"


class WebhookAck(BaseModel):
    """回调确认"""

    received: bool = True
    duplicate: bool = False
    order_id: Optional[str] = None
