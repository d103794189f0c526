"""
店铺数据库表初始化脚本

运行方式:
python -m app.scripts.init_store_tables
"""

import asyncio
import logging

from sqlalchemy import text

from app.core.config import settings
from app.core.database import DatabaseManager

logger = logging.getLogger(__name__)

# 库存、使用次数和优先级的检查约束(仅PostgreSQL)
CHECK_CONSTRAINTS = [
    "ALTER TABLE products ADD CONSTRAINT chk_product_stock CHECK (stock >= 0)",
    "ALTER TABLE coupons ADD CONSTRAINT chk_coupon_usage "
    "CHECK (usage_limit IS NULL OR usage_count <= usage_limit)",
    "ALTER TABLE promotional_banners ADD CONSTRAINT chk_banner_priority "
    "CHECK (priority BETWEEN 1 AND 10)",
]


async def create_store_tables(database: DatabaseManager) -> None:
    """创建全部店铺数据表"""
    await database.create_tables()
    logger.info("店铺数据表创建成功")

    if database.engine.dialect.name != "postgresql":
        return

    async with database.engine.begin() as conn:
        for statement in CHECK_CONSTRAINTS:
            # 约束已存在时跳过
            await conn.execute(text(
                f"DO $$ BEGIN {statement}; EXCEPTION WHEN duplicate_object THEN NULL; END $$;"
            ))
    logger.info("检查约束已创建")


async def main():
    database = DatabaseManager(settings)
    try:
        await database.init_database()
        await create_store_tables(database)
    finally:
        await database.close_database()


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)
    asyncio.run(main())
