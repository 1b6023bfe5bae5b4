import os
from pydantic_settings import BaseSettings

class Settings(BaseSettings):
    # 数据库配置
    POSTGRES_USER: str = os.getenv("POSTGRES_USER", "postgres")
    POSTGRES_PASSWORD: str = os.getenv("POSTGRES_PASSWORD", "123456")
    POSTGRES_HOST: str = os.getenv("POSTGRES_HOST", "localhost")
    POSTGRES_PORT: int = int(os.getenv("POSTGRES_PORT", "5432"))
    POSTGRES_DB: str = os.getenv("POSTGRES_DB", "marketplace")
    
    # Redis 配置
    REDIS_HOST: str = os.getenv("REDIS_HOST", "localhost")
    REDIS_PORT: int = int(os.getenv("REDIS_PORT", "6379"))
    REDIS_DB: int = int(os.getenv("REDIS_DB", "0"))
    REDIS_SOCKET_TIMEOUT: float = float(os.getenv("REDIS_SOCKET_TIMEOUT", "2"))

    # 上游认证网关转发的用户ID请求头
    PRINCIPAL_HEADER: str = os.getenv("PRINCIPAL_HEADER", "X-User-Id")

    # 实时推送频道前缀，完整频道为 {prefix}:{user_id}
    REALTIME_CHANNEL_PREFIX: str = os.getenv("REALTIME_CHANNEL_PREFIX", "notifications:user")

    # 订单业务配置
    ANALYTICS_DEFAULT_DAYS: int = int(os.getenv("ANALYTICS_DEFAULT_DAYS", "30"))
    DEFAULT_CANCEL_REASON: str = os.getenv("DEFAULT_CANCEL_REASON", "Cancelled by user")

    # 邮件配置（未配置 SMTP_HOST 时跳过发送）
    SMTP_HOST: str = os.getenv("SMTP_HOST", "")
    SMTP_PORT: int = int(os.getenv("SMTP_PORT", "587"))
    SMTP_USER: str = os.getenv("SMTP_USER", "")
    SMTP_PASSWORD: str = os.getenv("SMTP_PASSWORD", "")
    EMAIL_FROM: str = os.getenv("EMAIL_FROM", "no-reply@marketplace.local")

    @property
    def database_url(self) -> str:
        return (
            f"postgresql+psycopg://"
            f"{self.POSTGRES_USER}:{self.POSTGRES_PASSWORD}"
            f"@{self.POSTGRES_HOST}:{self.POSTGRES_PORT}/"
            f"{self.POSTGRES_DB}"
        )

    @property
    def redis_url(self) -> str:
        return f"redis://{self.REDIS_HOST}:{self.REDIS_PORT}/{self.REDIS_DB}"

    @property
    def smtp_configured(self) -> bool:
        return bool(self.SMTP_HOST)

settings = Settings()
