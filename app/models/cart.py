"""
服务端购物车数据模型(仅登录用户)
"""

from datetime import datetime
from typing import Optional
from pydantic import BaseModel, Field


class CartItem(BaseModel):
    """购物车条目"""

    cart_item_id: str
    user_id: str
    product_id: str
    quantity: int = Field(..., ge=1)
    size: Optional[str] = None
    color: Optional[str] = None
    created_at: datetime = Field(default_factory=datetime.now)
    updated_at: datetime = Field(default_factory=datetime.now)


class CartItemAdd(BaseModel):
    """加入购物车请求"""

    product_id: str
    quantity: int = Field(default=1, ge=1, le=99)
    size: Optional[str] = Field(None, max_length=20)
    color: Optional[str] = Field(None, max_length=30)
