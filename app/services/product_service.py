"""
商品目录业务服务层
提供商品查询和后台维护，单个商品读取带缓存
"""

import logging
import math
from typing import Iterable, List, Optional

from app.core.exceptions import NotFoundError
from app.models.product import Product, ProductCategory, ProductCreate, ProductPage, ProductUpdate
from app.repositories.product_repository import ProductRepository
from app.services.common_cache import SimpleCache, product_cache

logger = logging.getLogger(__name__)


def product_detail_key(product_id: str) -> str:
    """商品详情缓存key，库存变化的一方需要按此失效"""
    return f"detail:{product_id}"


class ProductService:
    """商品业务服务"""

    def __init__(self, product_repo: ProductRepository, cache: Optional[SimpleCache] = None):
        self.product_repo = product_repo
        self.cache = cache or product_cache
        self.cache_ttl = 300  # 库存变化频繁，缓存5分钟

    async def get_product(self, product_id: str, use_cache: bool = True) -> Product:
        """获取商品详情"""
        cache_key = product_detail_key(product_id)

        if use_cache:
            cached_product = await self.cache.get(cache_key)
            if cached_product:
                return Product(**cached_product)

        db_product = await self.product_repo.get_by_product_id(product_id)
        if not db_product:
            raise NotFoundError(f"Product {product_id} not found")

        product = self.product_repo.to_model(db_product)

        if use_cache:
            await self.cache.set(cache_key, product.dict(), ttl=self.cache_ttl)

        return product

    async def list_products(
        self,
        category: Optional[ProductCategory] = None,
        in_stock_only: bool = False,
        limit: int = 50,
        offset: int = 0
    ) -> List[Product]:
        db_products = await self.product_repo.list_products(
            category=category.value if category else None,
            in_stock_only=in_stock_only,
            limit=limit,
            offset=offset
        )
        return [self.product_repo.to_model(p) for p in db_products]

    async def list_page(
        self,
        page: int = 1,
        limit: int = 12,
        category: Optional[ProductCategory] = None
    ) -> ProductPage:
        """店铺前台商品分页，按上架时间倒序"""
        items = await self.list_products(category, limit=limit, offset=(page - 1) * limit)
        total = await self.product_repo.count_products(category=category.value if category else None)
        return ProductPage(
            items=items,
            page=page,
            limit=limit,
            total=total,
            total_pages=math.ceil(total / limit)
        )

    async def create_product(self, product_data: ProductCreate) -> Product:
        db_product = await self.product_repo.create(product_data)
        logger.info(f"创建商品: {db_product.product_id} {db_product.name}")
        return self.product_repo.to_model(db_product)

    async def update_product(self, product_id: str, product_data: ProductUpdate) -> Product:
        """更新商品，库存变化时 in_stock 同步重算"""
        db_product = await self.product_repo.update(product_id, product_data)
        if not db_product:
            raise NotFoundError(f"Product {product_id} not found")

        await self.invalidate([product_id])
        return self.product_repo.to_model(db_product)

    async def invalidate(self, product_ids: Iterable[str]) -> None:
        """清除商品详情缓存"""
        for product_id in product_ids:
            await self.cache.delete_pattern(product_detail_key(product_id))
