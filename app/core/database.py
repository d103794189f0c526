from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine, AsyncEngine
from sqlalchemy.orm import sessionmaker, declarative_base
from sqlalchemy.pool import NullPool
from sqlalchemy import text
from fastapi import Request
from typing import AsyncGenerator, Optional
import logging

from app.core.config import Settings, settings

logger = logging.getLogger(__name__)

# 创建基础模型类
Base = declarative_base()


class DatabaseManager:
    """数据库连接注册表

    每个进程只初始化一次，由应用生命周期创建并挂在 app.state 上，
    请求处理通过依赖注入拿到会话。
    """

    def __init__(self, config: Settings = settings):
        self.config = config
        self.engine: Optional[AsyncEngine] = None
        self.session_maker: Optional[sessionmaker] = None

    @property
    def is_initialized(self) -> bool:
        return self.engine is not None

    async def init_database(self) -> None:
        """初始化数据库连接"""
        if self.is_initialized:
            return

        url = self.config.database_url_computed
        engine_kwargs = {
            "echo": self.config.debug and not self.config.is_testing,
            "pool_pre_ping": True,
        }
        if url.startswith("postgresql+asyncpg"):
            # 所有数据库调用都要有超时
            engine_kwargs["connect_args"] = {
                "timeout": self.config.db_connect_timeout,
                "command_timeout": self.config.db_command_timeout,
            }
            engine_kwargs["pool_recycle"] = 3600
            if self.config.is_testing:
                engine_kwargs["poolclass"] = NullPool

        try:
            self.engine = create_async_engine(url, **engine_kwargs)
            self.session_maker = sessionmaker(
                self.engine,
                class_=AsyncSession,
                expire_on_commit=False
            )
            logger.info("数据库连接初始化成功")
        except Exception as e:
            logger.error(f"数据库连接初始化失败: {e}")
            raise

    async def create_tables(self) -> None:
        """根据已注册的模型创建表"""
        # 导入所有数据库模型，确保表被注册到Base.metadata
        import app.models.database  # noqa: F401

        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    async def close_database(self) -> None:
        """关闭数据库连接"""
        if self.engine:
            await self.engine.dispose()
            self.engine = None
            self.session_maker = None
            logger.info("数据库连接已关闭")

    async def session(self) -> AsyncGenerator[AsyncSession, None]:
        """单次请求的事务会话，成功提交，异常回滚"""
        if not self.session_maker:
            raise RuntimeError("数据库未初始化，请先调用 init_database()")

        async with self.session_maker() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    async def health_check(self) -> dict:
        """数据库健康检查"""
        try:
            if not self.engine:
                return {"status": "error", "message": "数据库引擎未初始化"}

            # 执行简单查询测试连接
            async with self.engine.begin() as conn:
                result = await conn.execute(text("SELECT 1"))
                row = result.fetchone()

            return {
                "status": "healthy",
                "message": "数据库连接正常",
                "test_query_result": row[0] if row else None
            }

        except Exception as e:
            return {
                "status": "error",
                "message": f"数据库连接失败: {str(e)}"
            }


def get_database_manager(request: Request) -> DatabaseManager:
    """从应用状态中取出数据库注册表"""
    return request.app.state.database


async def get_db_session(request: Request) -> AsyncGenerator[AsyncSession, None]:
    """获取数据库会话依赖注入函数"""
    async for session in get_database_manager(request).session():
        yield session
