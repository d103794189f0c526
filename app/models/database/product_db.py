"""
商品数据库模型
"""

from sqlalchemy import Column, String, Integer, Text, Boolean, DateTime, JSON, CheckConstraint
from datetime import datetime
from app.core.database import Base


class ProductDB(Base):
    """商品数据库表"""

    __tablename__ = "products"

    product_id = Column(String(50), primary_key=True, comment="商品ID")
    name = Column(String(100), nullable=False, comment="商品名称")
    description = Column(Text, nullable=False, comment="商品描述")
    price = Column(Integer, nullable=False, comment="单价(分)")
    images = Column(JSON, nullable=False, default=list, comment="图片地址列表")
    category = Column(String(30), nullable=False, index=True, comment="商品分类")

    # 库存，in_stock 随库存写入一起更新
    stock = Column(Integer, nullable=False, default=0, comment="库存数量")
    in_stock = Column(Boolean, nullable=False, default=False, comment="是否有货")

    created_at = Column(DateTime, default=datetime.now, comment="创建时间")
    updated_at = Column(DateTime, default=datetime.now, onupdate=datetime.now, comment="更新时间")

    __table_args__ = (
        CheckConstraint("price >= 0", name="ck_products_price_non_negative"),
        CheckConstraint("stock >= 0", name="ck_products_stock_non_negative"),
        {'comment': '商品信息表'}
    )
