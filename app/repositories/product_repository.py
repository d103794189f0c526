"""
商品数据库操作层
"""

from typing import Dict, Iterable, List, Optional
from datetime import datetime
import uuid

from sqlalchemy import select, update, and_, desc, func
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.product import Product, ProductCreate, ProductUpdate
from app.models.database.product_db import ProductDB


class ProductRepository:
    """商品数据库操作类"""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_by_product_id(self, product_id: str) -> Optional[ProductDB]:
        """根据商品ID获取商品"""
        result = await self.db.execute(
            select(ProductDB)
            .where(ProductDB.product_id == product_id)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def get_many(self, product_ids: Iterable[str]) -> Dict[str, ProductDB]:
        """批量获取商品，返回 {商品ID: 商品}"""
        ids = list(set(product_ids))
        if not ids:
            return {}
        result = await self.db.execute(
            select(ProductDB)
            .where(ProductDB.product_id.in_(ids))
            .execution_options(populate_existing=True)
        )
        return {product.product_id: product for product in result.scalars().all()}

    async def get_missing_ids(self, product_ids: Iterable[str]) -> List[str]:
        """返回不存在的商品ID"""
        ids = list(dict.fromkeys(product_ids))
        found = await self.get_many(ids)
        return [product_id for product_id in ids if product_id not in found]

    async def list_products(
        self,
        category: Optional[str] = None,
        in_stock_only: bool = False,
        limit: int = 50,
        offset: int = 0
    ) -> List[ProductDB]:
        """获取商品列表"""
        conditions = self._list_conditions(category, in_stock_only)

        query = select(ProductDB)
        if conditions:
            query = query.where(and_(*conditions))
        query = query.order_by(desc(ProductDB.created_at)).limit(limit).offset(offset)

        result = await self.db.execute(query)
        return list(result.scalars().all())

    async def count_products(self, category: Optional[str] = None, in_stock_only: bool = False) -> int:
        query = select(func.count()).select_from(ProductDB)
        conditions = self._list_conditions(category, in_stock_only)
        if conditions:
            query = query.where(and_(*conditions))
        result = await self.db.execute(query)
        return result.scalar_one()

    @staticmethod
    def _list_conditions(category: Optional[str], in_stock_only: bool) -> list:
        conditions = []
        if category:
            conditions.append(ProductDB.category == category)
        if in_stock_only:
            conditions.append(ProductDB.in_stock.is_(True))
        return conditions

    async def create(self, product_data: ProductCreate) -> ProductDB:
        """创建商品"""
        now = datetime.now()
        db_product = ProductDB(
            product_id=uuid.uuid4().hex,
            name=product_data.name,
            description=product_data.description,
            price=product_data.price,
            images=list(product_data.images),
            category=product_data.category.value,
            stock=product_data.stock,
            in_stock=product_data.stock > 0,
            created_at=now,
            updated_at=now
        )
        self.db.add(db_product)
        await self.db.flush()
        return db_product

    async def update(self, product_id: str, product_data: ProductUpdate) -> Optional[ProductDB]:
        """更新商品，库存变化时同步 in_stock"""
        values = product_data.dict(exclude_unset=True)
        if not values:
            return await self.get_by_product_id(product_id)

        if "category" in values and values["category"] is not None:
            values["category"] = values["category"].value
        if "stock" in values:
            values["in_stock"] = values["stock"] > 0
        values["updated_at"] = datetime.now()

        result = await self.db.execute(
            update(ProductDB)
            .where(ProductDB.product_id == product_id)
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            return None
        return await self.get_by_product_id(product_id)

    async def decrement_stock(self, product_id: str, quantity: int) -> bool:
        """原子扣减库存，库存不足时不修改并返回False"""
        result = await self.db.execute(
            update(ProductDB)
            .where(
                and_(
                    ProductDB.product_id == product_id,
                    ProductDB.stock >= quantity
                )
            )
            .values(
                stock=ProductDB.stock - quantity,
                in_stock=(ProductDB.stock - quantity) > 0,
                updated_at=datetime.now()
            )
            .execution_options(synchronize_session=False)
        )
        return result.rowcount > 0

    async def clamp_stock_to_zero(self, product_id: str) -> bool:
        """库存不足以扣减时清零，返回商品是否存在"""
        result = await self.db.execute(
            update(ProductDB)
            .where(ProductDB.product_id == product_id)
            .values(stock=0, in_stock=False, updated_at=datetime.now())
            .execution_options(synchronize_session=False)
        )
        return result.rowcount > 0

    def to_model(self, db_product: ProductDB) -> Product:
        """转换为Pydantic模型"""
        return Product(
            product_id=db_product.product_id,
            name=db_product.name,
            description=db_product.description,
            price=db_product.price,
            images=db_product.images or [],
            category=db_product.category,
            stock=db_product.stock,
            created_at=db_product.created_at,
            updated_at=db_product.updated_at
        )
