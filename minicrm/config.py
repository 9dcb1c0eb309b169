from pydantic_settings import BaseSettings
from pydantic import field_validator, model_validator
from functools import lru_cache


DEFAULT_SECRET_KEY = "development-secret-key-change-in-production"


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Database
    DATABASE_URL: str = "postgresql+asyncpg://localhost:5432/mini_crm"

    @field_validator('DATABASE_URL', mode='before')
    @classmethod
    def convert_database_url(cls, v: str) -> str:
        """Convert postgresql:// to postgresql+asyncpg:// for async support."""
        if v and v.startswith('postgresql://'):
            return v.replace('postgresql://', 'postgresql+asyncpg://', 1)
        return v

    # Queue (Redis lists)
    REDIS_URL: str = "redis://localhost:6379/0"
    INGESTION_QUEUE: str = "ingestion_queue"
    DELIVERY_QUEUE: str = "campaign_delivery_queue"
    QUEUE_MAX_DELIVERIES: int = 5
    QUEUE_BLOCK_TIMEOUT_SECONDS: int = 5
    RUN_CONSUMERS_IN_PROCESS: bool = False

    # Audience rules
    RULE_MAX_DEPTH: int = 32

    # Auth (tokens are issued by the login service)
    SECRET_KEY: str = DEFAULT_SECRET_KEY
    ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 60 * 24

    # CORS
    FRONTEND_URL: str = "http://localhost:5173"

    # Environment
    ENVIRONMENT: str = "development"
    DEBUG: bool = True
    DOCS_ENABLED: bool = True

    class Config:
        env_file = ".env"
        case_sensitive = True

    @model_validator(mode="after")
    def check_production_secret(self) -> "Settings":
        """Refuse to boot production with the development secret."""
        if self.is_production and self.SECRET_KEY == DEFAULT_SECRET_KEY:
            raise ValueError("SECRET_KEY must be set in production")
        return self

    @property
    def is_production(self) -> bool:
        return self.ENVIRONMENT.lower() == "production"

    @property
    def sqlalchemy_echo(self) -> bool:
        # SECURITY: echo logs bound parameters
        return self.DEBUG and not self.is_production


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


settings = get_settings()
