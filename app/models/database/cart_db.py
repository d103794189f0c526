"""
购物车数据库模型
"""

from sqlalchemy import Column, String, Integer, DateTime, UniqueConstraint
from datetime import datetime
from app.core.database import Base


class CartItemDB(Base):
    """购物车条目表"""

    __tablename__ = "cart_items"

    cart_item_id = Column(String(50), primary_key=True, comment="条目ID")
    user_id = Column(String(50), nullable=False, index=True, comment="用户ID")
    product_id = Column(String(50), nullable=False, comment="商品ID")
    quantity = Column(Integer, nullable=False, default=1, comment="数量")

    # 未选择时存空字符串，保证唯一约束生效
    size = Column(String(20), nullable=False, default="", comment="尺码")
    color = Column(String(30), nullable=False, default="", comment="颜色")

    created_at = Column(DateTime, default=datetime.now, comment="创建时间")
    updated_at = Column(DateTime, default=datetime.now, onupdate=datetime.now, comment="更新时间")

    __table_args__ = (
        UniqueConstraint("user_id", "product_id", "size", "color", name="uq_cart_items_variant"),
        {'comment': '购物车条目表'}
    )
