from pydantic_settings import BaseSettings
from typing import Optional
import os
from dotenv import load_dotenv

load_dotenv()

class Settings(BaseSettings):
    # Application Settings
    APP_NAME: str = "Shift Marketplace Service"
    VERSION: str = "1.0.0"
    API_V1_STR: str = "/api/v1"
    API_HOST: str = os.getenv("API_HOST", "0.0.0.0")
    API_PORT: int = int(os.getenv("API_PORT", "8000"))

    # JWT Settings (tokens are issued by the external identity provider)
    SECRET_KEY: str = os.getenv("SECRET_KEY", "your-secret-key-here")
    ALGORITHM: str = os.getenv("JWT_ALGORITHM", "HS256")
    JWT_PUBLIC_KEY: Optional[str] = os.getenv("JWT_PUBLIC_KEY", None)
    JWT_AUDIENCE: Optional[str] = os.getenv("JWT_AUDIENCE", None)

    # Database Settings
    POSTGRES_USER: str = os.getenv("POSTGRES_USER", "marketplace")
    POSTGRES_PASSWORD: str = os.getenv("POSTGRES_PASSWORD", "marketplace")
    POSTGRES_DB: str = os.getenv("POSTGRES_DB", "marketplace_db")
    POSTGRES_HOST: str = os.getenv("POSTGRES_HOST", "localhost")
    POSTGRES_PORT: str = os.getenv("POSTGRES_PORT", "5432")
    DATABASE_URL: Optional[str] = os.getenv("DATABASE_URL", None)
    DATABASE_ECHO: bool = os.getenv("DATABASE_ECHO", "false").lower() == "true"

    # Redis Settings
    REDIS_HOST: str = os.getenv("REDIS_HOST", "localhost")
    REDIS_PORT: int = int(os.getenv("REDIS_PORT", "6379"))
    REDIS_DB: int = int(os.getenv("REDIS_DB", "0"))
    REDIS_PASSWORD: Optional[str] = os.getenv("REDIS_PASSWORD", None)
    REDIS_STREAM_BLOCK_MS: int = int(os.getenv("REDIS_STREAM_BLOCK_MS", "5000"))
    REDIS_STREAM_CLAIM_IDLE_MS: int = int(os.getenv("REDIS_STREAM_CLAIM_IDLE_MS", "30000"))
    REDIS_STREAM_MAXLEN: int = int(os.getenv("REDIS_STREAM_MAXLEN", "10000"))

    # Event Gateway Settings
    EVENT_GATEWAY: str = os.getenv("EVENT_GATEWAY", "redis")
    CONSUMER_GROUP: str = os.getenv("CONSUMER_GROUP", "shift-marketplace-service")
    CONSUMER_NAME: str = os.getenv("CONSUMER_NAME", os.getenv("HOSTNAME", "marketplace-1"))
    MAX_DELIVERY_ATTEMPTS: int = int(os.getenv("MAX_DELIVERY_ATTEMPTS", "5"))

    # Topics
    TOPIC_SHIFT_EXCHANGE_APPROVAL: str = "shift-exchange-approval"
    TOPIC_SHIFT_EXCHANGE_CONFIRMATIONS: str = "shift-exchange-confirmations"
    TOPIC_SCHEDULE_CONFLICT_CHECK_REQUEST: str = "schedule-conflict-check-request"
    TOPIC_SCHEDULE_CONFLICT_CHECK_RESPONSE: str = "schedule-conflict-check-response"
    TOPIC_SWAP_CONFLICT_CHECK_REQUEST: str = "swap-conflict-check-request"
    TOPIC_SWAP_CONFLICT_CHECK_RESPONSE: str = "swap-conflict-check-response"
    TOPIC_USERS_BY_BUSINESS_UNIT_REQUEST: str = "users-by-business-unit-request"
    TOPIC_USERS_BY_BUSINESS_UNIT_RESPONSE: str = "users-by-business-unit-response"

    # Correlation Timeouts
    CONFLICT_CHECK_TIMEOUT_SECONDS: float = float(os.getenv("CONFLICT_CHECK_TIMEOUT_SECONDS", "30"))
    NOTIFICATION_TIMEOUT_SECONDS: float = float(os.getenv("NOTIFICATION_TIMEOUT_SECONDS", "30"))

    # Push Notification Settings
    NOTIFICATIONS_ENABLED: bool = os.getenv("NOTIFICATIONS_ENABLED", "true").lower() == "true"
    FIREBASE_PROJECT_ID: str = os.getenv("FIREBASE_PROJECT_ID", "")
    FIREBASE_CREDENTIALS_PATH: str = os.getenv("FIREBASE_CREDENTIALS_PATH", "")
    FIREBASE_HTTP_TIMEOUT_SECONDS: float = 10.0

    # CORS Settings
    BACKEND_CORS_ORIGINS: list = ["*"]

    # Rate Limiting
    RATE_LIMIT_PER_MINUTE: int = 60

    # Pagination
    DEFAULT_PAGE_SIZE: int = 20
    MAX_PAGE_SIZE: int = 100

    @property
    def database_url(self) -> str:
        if self.DATABASE_URL:
            return self.DATABASE_URL
        return (
            f"postgresql+asyncpg://{self.POSTGRES_USER}:{self.POSTGRES_PASSWORD}"
            f"@{self.POSTGRES_HOST}:{self.POSTGRES_PORT}/{self.POSTGRES_DB}"
        )

    class Config:
        case_sensitive = True

settings = Settings()
