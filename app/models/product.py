"""
商品相关数据模型
"""

from datetime import datetime
from decimal import Decimal
from typing import List, Optional
from pydantic import BaseModel, Field, validator
from enum import Enum

from app.utils.money import from_cents


class ProductCategory(str, Enum):
    """商品分类枚举"""
    BAGS = "Bags"
    ACCESSORIES = "Accessories"
    HOME = "Home"
    FURNITURE = "Furniture"
    DECOR = "Decor"


class Product(BaseModel):
    """商品基础模型"""

    product_id: str = Field(..., description="商品ID")
    name: str = Field(..., min_length=1, max_length=100, description="商品名称")
    description: str = Field(..., max_length=1000, description="商品描述")
    price: int = Field(..., ge=0, description="单价(分)")
    images: List[str] = Field(default_factory=list, description="图片地址列表")
    category: ProductCategory = Field(..., description="商品分类")
    stock: int = Field(default=0, ge=0, description="库存数量")
    in_stock: bool = Field(default=False, description="是否有货")
    created_at: datetime = Field(default_factory=datetime.now)
    updated_at: datetime = Field(default_factory=datetime.now)

    @validator('in_stock', always=True)
    def derive_in_stock(cls, v, values):
        """是否有货总是由库存推导"""
        return values.get('stock', 0) > 0

    @property
    def display_price(self) -> Decimal:
        return from_cents(self.price)


class ProductCreate(BaseModel):
    """创建商品模型"""

    name: str = Field(..., min_length=1, max_length=100)
    description: str = Field(..., max_length=1000)
    price: int = Field(..., ge=0)
    images: List[str] = Field(..., min_items=1)
    category: ProductCategory = Field(...)
    stock: int = Field(default=0, ge=0)


class ProductUpdate(BaseModel):
    """更新商品模型"""

    name: Optional[str] = Field(None, min_length=1, max_length=100)
    description: Optional[str] = Field(None, max_length=1000)
    price: Optional[int] = Field(None, ge=0)
    images: Optional[List[str]] = None
    category: Optional[ProductCategory] = None
    stock: Optional[int] = Field(None, ge=0)


class ProductPage(BaseModel):
    """商品分页列表"""

    items: List[Product]
    page: int
    limit: int
    total: int
    total_pages: int = Field(..., alias="totalPages")

    class Config:
        populate_by_name = True
