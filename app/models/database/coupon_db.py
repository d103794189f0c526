"""
优惠券数据库模型
"""

from sqlalchemy import Column, String, Integer, Text, Boolean, DateTime, JSON
from datetime import datetime
from app.core.database import Base


class CouponDB(Base):
    """优惠券数据库表"""

    __tablename__ = "coupons"

    # 主键和基本信息
    coupon_id = Column(String(50), primary_key=True, comment="优惠券ID")
    code = Column(String(20), nullable=False, unique=True, index=True, comment="优惠券代码")
    name = Column(String(100), nullable=False, comment="优惠券名称")
    description = Column(Text, comment="优惠券描述")
    coupon_type = Column(String(20), nullable=False, comment="优惠券类型")

    # 折扣信息，金额单位为分
    value = Column(Integer, nullable=False, comment="折扣值")
    minimum_amount = Column(Integer, comment="最小订单金额")
    maximum_discount = Column(Integer, comment="最大折扣金额")

    # 有效期
    valid_from = Column(DateTime, nullable=False, index=True, comment="有效开始时间")
    valid_until = Column(DateTime, nullable=False, index=True, comment="有效结束时间")
    is_active = Column(Boolean, nullable=False, default=True, index=True, comment="是否启用")

    # 使用限制
    usage_limit = Column(Integer, comment="总使用次数限制")
    usage_count = Column(Integer, nullable=False, default=0, comment="已使用次数")
    user_limit = Column(Integer, comment="单用户使用次数限制")

    # 适用范围
    applicable_products = Column(JSON, default=list, comment="适用商品ID列表")
    applicable_categories = Column(JSON, default=list, comment="适用分类列表")
    excluded_products = Column(JSON, default=list, comment="排除商品ID列表")
    excluded_categories = Column(JSON, default=list, comment="排除分类列表")
    customer_segments = Column(JSON, default=list, comment="客户分群限制")
    conditions = Column(JSON, default=dict, comment="附加条件")

    campaign = Column(String(100), comment="所属活动")

    # 时间戳
    created_at = Column(DateTime, default=datetime.now, comment="创建时间")
    updated_at = Column(DateTime, default=datetime.now, onupdate=datetime.now, comment="更新时间")

    __table_args__ = (
        {'comment': '优惠券信息表'}
    )


class CouponUsageDB(Base):
    """优惠券使用记录表，用于单用户使用次数限制"""

    __tablename__ = "coupon_usage"

    usage_id = Column(String(50), primary_key=True, comment="使用记录ID")
    coupon_id = Column(String(50), nullable=False, index=True, comment="优惠券ID")
    coupon_code = Column(String(20), nullable=False, comment="优惠券代码")
    user_id = Column(String(50), nullable=False, index=True, comment="使用用户ID")
    order_id = Column(String(50), nullable=False, comment="关联订单ID")
    discount_amount = Column(Integer, nullable=False, comment="折扣金额(分)")
    used_at = Column(DateTime, default=datetime.now, comment="使用时间")

    __table_args__ = (
        {'comment': '优惠券使用记录表'}
    )
