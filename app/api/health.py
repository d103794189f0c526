from fastapi import APIRouter, Depends, Request
import logging

from app.core.config import settings
from app.core.database import DatabaseManager, get_database_manager

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/health", tags=["健康检查"])


@router.get("")
async def health_check():
    """基础健康检查接口"""
    return {
        "status": "healthy",
        "app_name": settings.app_name,
        "version": settings.app_version,
        "environment": settings.environment
    }


@router.get("/database")
async def database_health(
    request: Request,
    database: DatabaseManager = Depends(get_database_manager)
):
    """数据库与Redis连接健康检查，Redis只影响横幅频次限制"""
    health_status = {
        "database": False,
        "redis": False,
        "overall": False,
        "details": {}
    }

    db_status = await database.health_check()
    health_status["database"] = db_status["status"] == "healthy"
    health_status["details"]["database"] = db_status["message"]

    redis_manager = getattr(request.app.state, "redis", None)
    if redis_manager:
        redis_status = await redis_manager.health_check()
        health_status["redis"] = redis_status["status"] == "healthy"
        health_status["details"]["redis"] = redis_status["message"]
    else:
        health_status["details"]["redis"] = "未启用，横幅频次限制已停用"

    health_status["overall"] = health_status["database"]

    if not health_status["redis"] or not health_status["database"]:
        logger.warning(f"连接检查部分失败: {health_status['details']}")
    return health_status
