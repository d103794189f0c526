from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.exceptions import RequestValidationError
from contextlib import asynccontextmanager
from sqlalchemy.exc import SQLAlchemyError
from starlette.exceptions import HTTPException as StarletteHTTPException
import uvicorn

from app.core.config import settings
from app.core.database import DatabaseManager
from app.core.redis import RedisManager
from app.services.common_cache import banner_cache, product_cache
from app.api.health import router as health_router
from app.api.coupons import router as coupons_router
from app.api.banners import router as banners_router
from app.api.orders import router as orders_router
from app.api.webhooks import router as webhooks_router
from app.api.cart import router as cart_router
from app.api.products import router as products_router
from app.api.admin import router as admin_router
from app.api.exceptions import (
    validation_exception_handler,
    http_exception_handler,
    database_exception_handler,
    general_exception_handler,
    business_exception_handler,
    BusinessException
)

# 简化日志配置
import logging

logging.basicConfig(
    level=getattr(logging, settings.log_level.upper(), logging.INFO),
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """应用生命周期管理"""
    logger.info("正在启动店铺后端服务")

    database = DatabaseManager(settings)
    redis_manager = RedisManager(settings)

    try:
        await database.init_database()
        if settings.is_testing:
            await database.create_tables()
        app.state.database = database
        logger.info("数据库初始化成功")
    except Exception as e:
        logger.error(f"应用启动失败: {e}")
        raise

    # Redis只承载缓存和横幅展示历史，不可用时降级运行
    app.state.redis = None
    try:
        await redis_manager.init_redis()
        await banner_cache.init_redis(redis_manager.redis_pool)
        await product_cache.init_redis(redis_manager.redis_pool)
        app.state.redis = redis_manager
        logger.info("Redis初始化成功")
    except Exception as e:
        logger.warning(f"Redis不可用，缓存和频次限制已停用: {e}")

    logger.info("应用启动完成")

    yield

    logger.info("正在关闭应用")
    await database.close_database()
    if app.state.redis:
        await redis_manager.close_redis()
    logger.info("应用关闭完成")


# 创建FastAPI应用
app = FastAPI(
    title=settings.app_name,
    version=settings.app_version,
    description="精品店铺后端 - 优惠券规则、促销横幅投放与支付订单对账",
    debug=settings.debug,
    lifespan=lifespan
)

# CORS中间件
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# 注册路由
app.include_router(health_router)
app.include_router(coupons_router)
app.include_router(banners_router)
app.include_router(orders_router)
app.include_router(webhooks_router)
app.include_router(cart_router)
app.include_router(products_router)
app.include_router(admin_router)

# 注册异常处理器
app.add_exception_handler(RequestValidationError, validation_exception_handler)
app.add_exception_handler(StarletteHTTPException, http_exception_handler)
app.add_exception_handler(SQLAlchemyError, database_exception_handler)
app.add_exception_handler(BusinessException, business_exception_handler)
app.add_exception_handler(Exception, general_exception_handler)


@app.get("/")
async def root():
    """根路径"""
    return {
        "message": f"欢迎使用 {settings.app_name}",
        "version": settings.app_version,
        "docs": "/docs",
        "health": "/health",
    }


if __name__ == "__main__":
    uvicorn.run(
        "app.main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.debug,
        log_level=settings.log_level.lower()
    )
