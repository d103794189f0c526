"""
订单相关数据库模型
"""

from sqlalchemy import Column, String, Integer, Text, Boolean, DateTime, ForeignKey, JSON
from datetime import datetime
from sqlalchemy.orm import relationship
from app.core.database import Base


class OrderDB(Base):
    """订单数据库表"""

    __tablename__ = "orders"

    # 主键和用户信息
    order_id = Column(String(50), primary_key=True, comment="订单ID")
    user_id = Column(String(50), index=True, comment="用户ID")

    # 金额信息(分)
    total_amount = Column(Integer, nullable=False, comment="订单总额")
    discount_amount = Column(Integer, nullable=False, default=0, comment="优惠券折扣")
    coupon_code = Column(String(20), comment="使用的优惠券代码")

    # 订单状态
    status = Column(String(20), nullable=False, default="pending", index=True, comment="订单状态")

    # 收货与联系信息
    shipping_address = Column(JSON, nullable=False, comment="收货地址")
    customer_email = Column(String(100), comment="联系邮箱")
    customer_phone = Column(String(20), comment="联系电话")
    special_instructions = Column(Text, comment="特殊要求")
    privacy_instructions = Column(Text, comment="隐私要求")

    # 外部信息
    payment_session_id = Column(String(255), unique=True, comment="支付会话ID")
    external_order_id = Column(String(100), index=True, comment="外部履约订单ID")
    tracking_url = Column(Text, comment="物流追踪地址")

    # 人工复核
    needs_review = Column(Boolean, nullable=False, default=False, index=True, comment="是否需要人工复核")
    review_reason = Column(Text, comment="复核原因")

    # 时间戳
    created_at = Column(DateTime, default=datetime.now, index=True, comment="创建时间")
    updated_at = Column(DateTime, default=datetime.now, onupdate=datetime.now, comment="更新时间")

    # 关系映射
    items = relationship("OrderItemDB", back_populates="order", cascade="all, delete-orphan")

    __table_args__ = (
        {'comment': '订单主表'}
    )


class OrderItemDB(Base):
    """订单项目数据库表"""

    __tablename__ = "order_items"

    item_id = Column(String(50), primary_key=True, comment="项目ID")
    order_id = Column(String(50), ForeignKey("orders.order_id"), nullable=False, index=True, comment="订单ID")

    # 下单时的商品快照
    product_id = Column(String(50), nullable=False, comment="商品ID")
    name = Column(String(200), nullable=False, comment="商品名称")
    price = Column(Integer, nullable=False, comment="单价(分)")
    quantity = Column(Integer, nullable=False, default=1, comment="数量")
    image = Column(Text, nullable=False, default="", comment="图片")

    order = relationship("OrderDB", back_populates="items")

    __table_args__ = (
        {'comment': '订单项目表'}
    )


class ProcessedPaymentEventDB(Base):
    """已处理的支付事件，按支付会话ID去重"""

    __tablename__ = "processed_payment_events"

    session_id = Column(String(255), primary_key=True, comment="支付会话ID")
    event_id = Column(String(255), nullable=False, comment="事件ID")
    order_id = Column(String(50), comment="生成的订单ID")
    source = Column(String(20), nullable=False, default="webhook", comment="来源: webhook / checkout")
    received_at = Column(DateTime, default=datetime.now, comment="接收时间")

    __table_args__ = (
        {'comment': '支付事件幂等表'}
    )
