from typing import List, Union
from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    # Application
    ENVIRONMENT: str = "development"
    NAME: str = "ReviewHub Realtime"
    VERSION: str = "0.1.0"
    API_PREFIX: str = "/api"
    WEB_SOCKET_PREFIX: str = "/ws"
    """Pydantic v2 doesn't support parsing List[str] from a plain comma-separated string by default anymore."""
    ALLOWED_HOSTS: Union[str, List[str]] = "http://localhost:5173"
    LOG_LEVEL: str = "INFO"

    # Database
    MONGODB_URL: str = "mongodb://localhost:27017"
    MONGODB_DB_NAME: str = "reviewhub"

    # Authentication
    JWT_SECRET_KEY: str = "<your-jwt-secret-key-change-me-before-deploying>"
    JWT_ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 15

    # Presence
    PRESENCE_BACKEND: str = "memory"
    REDIS_URL: str = "redis://localhost:6379/0"

    # Notifications
    NOTIFICATION_DEDUP_WINDOW_SECONDS: int = 60
    PENDING_NOTIFICATION_LIMIT: int = 20
    NOTIFICATION_QUEUE_SIZE: int = 1000
    NOTIFICATION_WORKERS: int = 2

    # Firebase Cloud Messaging
    FCM_SERVICE_ACCOUNT_FILE: str = ""
    FCM_PROJECT_ID: str = ""

    @field_validator("ALLOWED_HOSTS", mode="before")
    def assemble_cors_origins(cls, v: Union[str, List[str]]) -> Union[List[str], str]:
        if not v:
            return []
        if isinstance(v, str) and not v.startswith("["):
            return [i.strip() for i in v.split(",")]
        return v

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
    )


settings = Settings()
