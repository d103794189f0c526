from typing import Optional

from fastapi import APIRouter, Depends, Query

from app.api.deps import get_product_service
from app.models.product import Product, ProductCategory, ProductPage
from app.services.product_service import ProductService

router = APIRouter(prefix="/products", tags=["商品目录"])


@router.get("", response_model=ProductPage)
async def list_products(
    page: int = Query(1, ge=1),
    limit: int = Query(12, ge=1, le=50),
    category: Optional[ProductCategory] = None,
    product_service: ProductService = Depends(get_product_service)
):
    """店铺商品分页列表"""
    return await product_service.list_page(page=page, limit=limit, category=category)


@router.get("/{product_id}", response_model=Product)
async def get_product(product_id: str, product_service: ProductService = Depends(get_product_service)):
    return await product_service.get_product(product_id)
