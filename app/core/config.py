from pydantic_settings import BaseSettings
from typing import Optional
from enum import Enum


class Environment(str, Enum):

    """运行环境枚举"""
    TESTING = "testing"
    PRODUCTION = "production"


class Settings(BaseSettings):

    # 应用基础配置
    app_name: str = "Boutique Storefront"
    app_version: str = "1.0.0"
    environment: Environment = Environment.TESTING
    debug: bool = True

    # 数据库配置
    database_url: Optional[str] = None
    db_host: str = "localhost"
    db_port: int = 5432
    db_name: str = "storefront_db"
    db_user: str = "storefront_user"
    db_password: str = "storefront_password"
    db_connect_timeout: int = 10  # 秒
    db_command_timeout: int = 15  # 秒

    # Redis配置 (横幅展示历史 + 缓存)
    redis_url: Optional[str] = None
    redis_host: str = "localhost"
    redis_port: int = 6379
    redis_password: Optional[str] = None
    redis_db: int = 0
    redis_socket_timeout: int = 5

    # 支付处理方配置
    payment_webhook_secret: str = "whsec_change_in_production"
    webhook_tolerance_seconds: int = 300
    currency: str = "usd"

    # 促销横幅配置
    banner_cache_ttl: int = 60
    banner_history_ttl: int = 60 * 60 * 24 * 30  # 展示历史保留30天

    # 收货地址缺失时的占位值
    placeholder_address_line: str = "ADDRESS MISSING - REVIEW"
    placeholder_city: str = "UNKNOWN"
    placeholder_state: str = "UNKNOWN"
    placeholder_zip_code: str = "00000"
    placeholder_country: str = "US"

    # 日志配置
    log_level: str = "INFO"

    @property
    def is_testing(self) -> bool:
        return self.environment == Environment.TESTING

    @property
    def is_production(self) -> bool:
        return self.environment == Environment.PRODUCTION

    @property
    def database_url_computed(self) -> str:
        """计算数据库URL"""
        if self.database_url:
            return self.database_url
        return f"postgresql+asyncpg://{self.db_user}:{self.db_password}@{self.db_host}:{self.db_port}/{self.db_name}"

    @property
    def redis_url_computed(self) -> str:
        """计算Redis URL"""
        if self.redis_url:
            return self.redis_url
        if self.redis_password:
            return f"redis://:{self.redis_password}@{self.redis_host}:{self.redis_port}/{self.redis_db}"
        return f"redis://{self.redis_host}:{self.redis_port}/{self.redis_db}"

    class Config:
        env_file = ".env"
        case_sensitive = False


# 全局配置实例
settings = Settings()
