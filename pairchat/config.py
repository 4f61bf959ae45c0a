from pydantic_settings import BaseSettings
from functools import lru_cache


class Settings(BaseSettings):
    # Database
    database_url: str
    sql_echo: bool = False
    auto_create_tables: bool = False  # Create tables on startup (local SQLite only)

    # Security
    secret_key: str
    algorithm: str = "HS256"
    access_token_expire_minutes: int = 60 * 24 * 7  # 7 days

    # Redis
    redis_url: str = ""  # Optional Redis URL for cross-process event relay (local: redis://localhost:6379)

    # Media storage
    media_upload_url: str = ""  # Upload endpoint for raw image payloads, e.g. a Cloudinary upload URL
    media_upload_preset: str = ""

    # Logging
    log_level: str = "INFO"

    # CORS
    cors_origins: list[str] = [
        "http://localhost:5173",
    ]

    class Config:
        env_file = ".env"


@lru_cache
def get_settings() -> Settings:
    return Settings()
