"""
测试配置文件 - pytest fixtures和共用配置
"""

import pytest
import pytest_asyncio
from datetime import datetime, timedelta
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine, async_sessionmaker
from sqlalchemy.pool import StaticPool

from app.core.database import Base
import app.models.database  # noqa: F401
from app.models.banner import PromotionalBanner
from app.models.coupon import CouponCreate
from app.models.database.product_db import ProductDB
from app.repositories.coupon_repository import CouponRepository


# 配置pytest-asyncio
pytest_plugins = ('pytest_asyncio',)


@pytest_asyncio.fixture(scope="function")
async def test_db_engine():
    """测试数据库引擎 - 内存SQLite，每个测试独立建表"""
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        echo=False,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest_asyncio.fixture
async def db_session(test_db_engine) -> AsyncSession:
    """测试数据库会话"""
    async_session_maker = async_sessionmaker(
        test_db_engine,
        class_=AsyncSession,
        expire_on_commit=False
    )

    async with async_session_maker() as session:
        try:
            yield session
        finally:
            await session.rollback()
            await session.close()


@pytest.fixture
def make_product(db_session):
    """创建商品的工厂函数"""
    async def _make(product_id: str = "p1", stock: int = 5, price: int = 10000,
                    name: str = "Bag", category: str = "Bags") -> ProductDB:
        now = datetime.now()
        product = ProductDB(
            product_id=product_id,
            name=name,
            description=f"{name} description",
            price=price,
            images=[f"https://cdn.example.com/{product_id}.jpg"],
            category=category,
            stock=stock,
            in_stock=stock > 0,
            created_at=now,
            updated_at=now
        )
        db_session.add(product)
        await db_session.flush()
        return product

    return _make


@pytest.fixture
def make_coupon(db_session):
    """创建优惠券的工厂函数"""
    async def _make(**overrides):
        data = {
            "code": "SAVE10",
            "name": "Save 10%",
            "coupon_type": "percentage",
            "value": 10,
            "minimum_amount": 5000,
            "valid_from": datetime.now() - timedelta(days=1),
            "valid_until": datetime.now() + timedelta(days=30),
        }
        data.update(overrides)
        return await CouponRepository(db_session).create(CouponCreate(**data))

    return _make


@pytest.fixture
def build_banner():
    """构造横幅模型的工厂函数 - 同步fixture"""
    base_time = datetime(2026, 1, 1, 12, 0, 0)

    def _build(banner_id: str = "b1", **overrides) -> PromotionalBanner:
        data = {
            "banner_id": banner_id,
            "title": f"Banner {banner_id}",
            "banner_type": "top_bar",
            "position": "top",
            "priority": 5,
            "start_date": base_time - timedelta(days=1),
            "end_date": base_time + timedelta(days=30),
            "created_at": base_time - timedelta(days=1),
        }
        data.update(overrides)
        return PromotionalBanner(**data)

    return _build


@pytest.fixture
def banner_now():
    """与build_banner配套的当前时间"""
    return datetime(2026, 1, 1, 12, 0, 0)
