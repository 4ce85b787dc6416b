"""Application configuration"""

from typing import Optional
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables"""

    model_config = SettingsConfigDict(env_file=".env", case_sensitive=False, extra="ignore")

    # API
    API_V1_PREFIX: str = "/api"
    PROJECT_NAME: str = "Payment Order Workflow API"
    VERSION: str = "0.1.0"
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"

    # Security
    # WHY: Tokens are issued by the identity provider; we only verify them
    JWT_SECRET: str
    JWT_ALGORITHM: str = "HS256"
    JWT_EXPIRATION_MINUTES: int = 1440  # 24 hours

    # Database
    DATABASE_URL: str

    # Workflow rules
    MAX_ALLOWED_EMAILS: int = 100
    # WHY: None means the usage-limit check always allows creation
    MONTHLY_ORDER_LIMIT: Optional[int] = None
    # Extra attempts after a concurrent-write conflict before giving up
    TRANSITION_RETRY_ATTEMPTS: int = 1

    # S3 / AWS
    # WHY: Document bytes live in the upload provider's bucket; we only delete objects
    S3_ENDPOINT: Optional[str] = None
    S3_BUCKET_NAME: Optional[str] = None
    AWS_ACCESS_KEY_ID: Optional[str] = None
    AWS_SECRET_ACCESS_KEY: Optional[str] = None
    AWS_REGION: str = "us-east-1"

    # Notifications
    NOTIFICATION_WEBHOOK_URL: Optional[str] = None
    NOTIFICATION_TIMEOUT_SECONDS: float = 10.0

    # Outbox redelivery
    SCHEDULER_ENABLED: bool = True
    OUTBOX_REDELIVERY_INTERVAL_SECONDS: int = 60
    OUTBOX_MAX_ATTEMPTS: int = 5
    # Pending events younger than this are left to the post-commit dispatch
    OUTBOX_REDELIVERY_GRACE_SECONDS: int = 30

    # CORS
    CORS_ORIGINS: list[str] = [
        "http://localhost:3000",
        "http://localhost:5173",
        "http://127.0.0.1:5173",
    ]

    @property
    def async_database_url(self) -> str:
        """Get async database URL"""
        return self.DATABASE_URL.replace("postgresql://", "postgresql+asyncpg://")


settings = Settings()
