"""
Configuration management for the Inteligencia generation backend
Environment-based settings with secure defaults
"""

from functools import lru_cache
from typing import List, Optional
from pydantic_settings import BaseSettings
from pydantic import field_validator


class Settings(BaseSettings):
    """Application settings loaded from environment variables"""

    # Application
    APP_NAME: str = "inteligencia"
    APP_ENV: str = "development"  # development, staging, production
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"
    API_VERSION: str = "v1"

    # Server
    HOST: str = "0.0.0.0"
    PORT: int = 8000
    WORKERS: int = 4

    # Database
    DATABASE_URL: str  # Required
    DATABASE_POOL_SIZE: int = 20
    DATABASE_MAX_OVERFLOW: int = 10

    # Server-side secret for provider API key encryption
    ENCRYPTION_KEY: str  # Required - never stored alongside the ciphertext
    SCRYPT_N: int = 2 ** 14
    SCRYPT_R: int = 8
    SCRYPT_P: int = 1

    # Celery
    CELERY_BROKER_URL: str = "redis://localhost:6379/1"
    CELERY_RESULT_BACKEND: str = "redis://localhost:6379/2"

    # Provider default models (used when nothing more specific is configured)
    OPENAI_DEFAULT_MODEL: str = "gpt-4o"
    OPENAI_IMAGE_MODEL: str = "dall-e-3"
    ANTHROPIC_DEFAULT_MODEL: str = "claude-3-5-sonnet-20241022"
    GOOGLE_DEFAULT_MODEL: str = "gemini-1.5-pro-latest"
    GOOGLE_IMAGE_MODEL: str = "imagen-3.0-generate-001"
    PERPLEXITY_DEFAULT_MODEL: str = "llama-3.1-sonar-large-128k-online"

    # Generation settings
    LLM_DEFAULT_TEMPERATURE: float = 0.7
    LLM_DEFAULT_MAX_TOKENS: int = 4000
    LLM_REQUEST_TIMEOUT: int = 60  # seconds
    MAX_OUTPUT_COUNT: int = 5

    # Usage governance
    USAGE_LOG_RETENTION_DAYS: int = 30
    PROVIDER_USAGE_WARNING_RATIO: float = 0.9

    # CORS
    CORS_ORIGINS: str = "http://localhost:3000"

    @field_validator("LOG_LEVEL", mode="before")
    @classmethod
    def normalize_log_level(cls, v: str) -> str:
        return str(v).upper()

    @property
    def cors_origins_list(self) -> List[str]:
        return [origin.strip() for origin in self.CORS_ORIGINS.split(",")]

    @property
    def is_production(self) -> bool:
        return self.APP_ENV == "production"

    @property
    def is_development(self) -> bool:
        return self.APP_ENV == "development"

    def default_model_for(self, provider: str) -> Optional[str]:
        return {
            "openai": self.OPENAI_DEFAULT_MODEL,
            "anthropic": self.ANTHROPIC_DEFAULT_MODEL,
            "google": self.GOOGLE_DEFAULT_MODEL,
            "perplexity": self.PERPLEXITY_DEFAULT_MODEL,
        }.get(provider)

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        case_sensitive = True


@lru_cache()
def get_settings() -> Settings:
    """Cached settings loader"""
    return Settings()


# Verticals the marketing site publishes for
VERTICALS = [
    "hospitality",
    "healthcare",
    "tech",
    "athletics",
    "shopping",
    "social_media",
]

